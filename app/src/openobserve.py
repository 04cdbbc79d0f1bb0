import base64, json, logging, requests
from typing import Optional
from requests import Response

from app.src.constants import (
    OPENOBSERVE_HOST,
    OPENOBSERVE_ORG,
    OPENOBSERVE_PASSWORD,
    OPENOBSERVE_PORT,
    OPENOBSERVE_PROTOCOL,
    OPENOBSERVE_STREAM,
    OPENOBSERVE_USERNAME,
    OPENOBSERVE_TIMEOUT,
)

credentials = base64.b64encode(
    bytes(f"{OPENOBSERVE_USERNAME}:{OPENOBSERVE_PASSWORD}", "utf-8")
).decode("utf-8")
headers = {"Content-type": "application/json", "Authorization": f"Basic {credentials}"}

openobserveHost = f"{OPENOBSERVE_PROTOCOL}://{OPENOBSERVE_HOST}:{OPENOBSERVE_PORT}"
openobserveURL = f"{openobserveHost}/api/{OPENOBSERVE_ORG}/{OPENOBSERVE_STREAM}/_json"

logger = logging.getLogger("OpenObserve")


def logEvent(eventData: dict) -> Optional[Response]:
    """
    Ship one audit event to the OpenObserve stream of this server.

    Shipping is best effort: when OpenObserve is unreachable or answers
    with an error, the failure is logged and the caller carries on.

    Args:
        eventData (dict): Flat event record, for example:
            {
                "_method": "POST",
                "_path": "/functions/account",
                "_app_id": 1,
                "_account_id": 7,
                "action": "create"
            }

    Returns:
        Optional[requests.Response]: The ingestion API response, None if it was not reached.
    """
    try:
        response = requests.post(
            openobserveURL,
            headers=headers,
            data=json.dumps(eventData, default=str),
            timeout=OPENOBSERVE_TIMEOUT,
        )
    except requests.RequestException as e:
        logger.warning(f"Failed to ship event to OpenObserve: {e!r}")
        return None
    if not response.ok:
        logger.warning(
            f"OpenObserve rejected event with status {response.status_code}"
        )
    return response
