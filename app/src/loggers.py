from app.src.db import AccountToken
from app.src import openobserve
from app.src.schemas import RequestInfo


def logEvent(token: AccountToken, requestInfo: RequestInfo, data: dict) -> None:
    """
    Log an event to OpenObserve with request and account context.

    Args:
        token (AccountToken): Authenticated account token.
        requestInfo (RequestInfo): Metadata about the current request.
        data (dict): Additional event-specific details to include in the log.

    Notes:
        - Automatically attaches `_app_id`, `_method`, `_path` and `_account_id`.
        - Keys in `data` win over the attached context on collision.
    """
    logDetails = {
        "_method": requestInfo.method,
        "_path": requestInfo.path,
        "_app_id": requestInfo.app_id,
        "_account_id": token.account_id,
    }
    logDetails.update(data)
    openobserve.logEvent(logDetails)
