"""
GSTIN verification gateway.

Validates a GSTIN, checks the caller's roles and rate limit, asks a
verification provider about the taxpayer and normalizes the answer.
Every attempt that gets past the format and role checks is written to the
`GstinLookupLog` audit table, whatever its outcome.

Providers disagree on field names and nesting, so normalization is driven
by `ENVELOPE_PATHS` and `TAXPAYER_FIELDS`: ordered lists of dotted paths
tried in order until a non-empty value is found. Supporting a new provider shape
means extending those tables.
"""

import re
import logging
from typing import Any, Iterable, Optional
import requests
from pydantic import BaseModel
from sqlalchemy.orm.session import Session

from app.src import exceptions
from app.src.constants import (
    REGEX_GSTIN,
    REGEX_STATE_CODE,
    GST_API_BASE_URL,
    GST_API_KEY,
    APPYFLOW_API_URL,
    APPYFLOW_KEY_SECRET,
    GST_PROVIDER_TIMEOUT,
    GSTIN_ROLES,
)
from app.src.db import GstinLookupLog
from app.src.enums import GstinLookupOutcome
from app.src.redis import countRecentCalls, recordCall
from app.src.schemas import TenantConfig

logger = logging.getLogger("GSTIN")

ALLOWED_ROLES = set(GSTIN_ROLES)

# Where the taxpayer record sits inside a provider response
ENVELOPE_PATHS = ["taxpayerInfo", "data", "result"]

# Candidate paths per normalized attribute, highest priority first
TAXPAYER_FIELDS = {
    "legal_name": ["lgnm", "legal_name", "legalName"],
    "trade_name": ["tradeNam", "trade_name", "tradeName"],
    "status": ["sts", "status", "gstStatus"],
    "registration_date": ["rgdt", "registration_date", "registrationDate"],
    "address": ["pradr.adr", "principal_address", "address"],
    "state_code": ["pradr.addr.stcd", "state_code", "stateCode"],
    "state": ["pradr.addr.stcd", "pradr.stcd", "state"],
    "pincode": ["pradr.addr.pncd", "pradr.pncd", "pincode"],
    "constitution": ["ctb", "constitution", "constitutionOfBusiness"],
}

# Parts of a structured principal address, joined when no flat address is given
ADDRESS_PARTS = ["bnm", "st", "loc", "bno", "dst", "flno"]

OUTCOMES = {
    exceptions.RateLimited: GstinLookupOutcome.RATE_LIMITED,
    exceptions.GSTProviderNotConfigured: GstinLookupOutcome.NOT_CONFIGURED,
    exceptions.GSTProviderUnreachable: GstinLookupOutcome.PROVIDER_UNREACHABLE,
    exceptions.GSTProviderRejected: GstinLookupOutcome.PROVIDER_REJECTED,
}


class NormalizedTaxpayerInfo(BaseModel):
    gstin: str
    legal_name: str = ""
    trade_name: str = ""
    status: str = ""
    registration_date: Optional[str] = None
    address: Optional[str] = None
    state_code: str
    state: str = ""
    pincode: str = ""
    constitution: str = ""


# ---------------------------------------------------------------------------
# Format
# ---------------------------------------------------------------------------
def normalizeGstin(gstin: Optional[str]) -> str:
    return (gstin or "").strip().upper()


def isValidGstin(gstin: str) -> bool:
    return re.match(REGEX_GSTIN, gstin) is not None


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------
def getPath(data: Any, path: str) -> Any:
    """
    Follow a dotted path through nested dictionaries.

    Example:
        >>> getPath({"pradr": {"addr": {"stcd": "36"}}}, "pradr.addr.stcd")
        '36'
        >>> getPath({"pradr": "flat"}, "pradr.addr.stcd") is None
        True
    """
    for part in path.split("."):
        if not isinstance(data, dict):
            return None
        data = data.get(part)
    return data


def isEmpty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, dict, list)):
        return len(value) == 0
    return False


def firstValue(data: dict, paths: Iterable[str]) -> Any:
    for path in paths:
        value = getPath(data, path)
        if not isEmpty(value) and not isinstance(value, (dict, list)):
            return value
    return None


def extractEnvelope(raw: dict) -> dict:
    for path in ENVELOPE_PATHS:
        envelope = getPath(raw, path)
        if isinstance(envelope, dict) and envelope:
            return envelope
    return raw


def composeAddress(data: dict) -> Optional[str]:
    for path in ["pradr.addr", "pradr"]:
        address = getPath(data, path)
        if isinstance(address, dict):
            parts = [str(address[key]) for key in ADDRESS_PARTS if address.get(key)]
            if parts:
                return ", ".join(parts)
    return None


def normalizeTaxpayer(raw: dict, gstin: str) -> NormalizedTaxpayerInfo:
    """
    Map a provider response onto `NormalizedTaxpayerInfo`.

    Each attribute takes the first non-empty scalar found along its
    `TAXPAYER_FIELDS` paths. The address is composed from structured parts
    when no flat address exists. A missing or malformed state code is
    derived from the first two characters of the GSTIN.
    """
    data = extractEnvelope(raw)
    values = {field: firstValue(data, paths) for field, paths in TAXPAYER_FIELDS.items()}

    if values["address"] is None:
        values["address"] = composeAddress(data)
    stateCode = values["state_code"]
    if stateCode is None or re.match(REGEX_STATE_CODE, str(stateCode)) is None:
        values["state_code"] = gstin[:2]

    normalized = {"gstin": gstin}
    for field, value in values.items():
        if value is not None:
            normalized[field] = str(value)
    return NormalizedTaxpayerInfo(**normalized)


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------
def providerError(raw: dict, statusCode: int) -> Optional[str]:
    """Return the provider's rejection message, or None for a usable answer."""
    error = raw.get("error")
    rejected = (
        error is True
        or (isinstance(error, str) and error != "")
        or raw.get("flag") is False
        or statusCode >= 400
    )
    if not rejected:
        return None
    message = raw.get("message")
    if isEmpty(message) and isinstance(error, str):
        message = error
    return str(message) if not isEmpty(message) else exceptions.GSTProviderRejected.detail


class GSTProvider:
    """
    Base class of GSTIN verification providers.

    Subclasses supply `isConfigured()` and `request()`; `fetch()` turns
    transport and application failures into gateway exceptions.
    """

    name = "provider"

    def __init__(self, timeout: int = GST_PROVIDER_TIMEOUT):
        self.timeout = timeout

    def isConfigured(self) -> bool:
        raise NotImplementedError

    def request(self, gstin: str) -> requests.Response:
        raise NotImplementedError

    def fetch(self, gstin: str) -> dict:
        if not self.isConfigured():
            raise exceptions.GSTProviderNotConfigured()
        try:
            response = self.request(gstin)
        except requests.RequestException as e:
            logger.warning(f"{self.name} unreachable for {gstin}: {e}")
            raise exceptions.GSTProviderUnreachable()

        try:
            raw = response.json()
        except ValueError:
            raise exceptions.GSTProviderRejected(
                "Invalid response from GST verification provider"
            )
        if not isinstance(raw, dict):
            raise exceptions.GSTProviderRejected(
                "Invalid response from GST verification provider"
            )

        message = providerError(raw, response.status_code)
        if message is not None:
            raise exceptions.GSTProviderRejected(message)
        return raw


class CommonApiProvider(GSTProvider):
    """GSP style `commonapi` search endpoint authenticated with a bearer key."""

    name = "commonapi"

    def __init__(
        self,
        baseUrl: Optional[str] = GST_API_BASE_URL,
        apiKey: Optional[str] = GST_API_KEY,
        timeout: int = GST_PROVIDER_TIMEOUT,
    ):
        super().__init__(timeout)
        self.baseUrl = baseUrl
        self.apiKey = apiKey

    def isConfigured(self) -> bool:
        return bool(self.baseUrl) and bool(self.apiKey)

    def request(self, gstin: str) -> requests.Response:
        return requests.get(
            f"{self.baseUrl.rstrip('/')}/commonapi/v1.1/search",
            params={"gstin": gstin, "consent": "Y"},
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self.apiKey}",
            },
            timeout=self.timeout,
        )


class AppyflowProvider(GSTProvider):
    """Appyflow `verifyGST` endpoint authenticated with a key secret."""

    name = "appyflow"

    def __init__(
        self,
        url: Optional[str] = APPYFLOW_API_URL,
        keySecret: Optional[str] = APPYFLOW_KEY_SECRET,
        timeout: int = GST_PROVIDER_TIMEOUT,
    ):
        super().__init__(timeout)
        self.url = url
        self.keySecret = keySecret

    def isConfigured(self) -> bool:
        return bool(self.url) and bool(self.keySecret)

    def request(self, gstin: str) -> requests.Response:
        return requests.get(
            self.url,
            params={"key_secret": self.keySecret, "gstNo": gstin},
            timeout=self.timeout,
        )


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------
def writeLookupLog(
    session: Session,
    gstin: str,
    accountId: int,
    endpoint: str,
    outcome: GstinLookupOutcome,
    detail: dict,
) -> None:
    session.add(
        GstinLookupLog(
            gstin=gstin,
            account_id=accountId,
            endpoint=endpoint,
            outcome=outcome,
            detail=detail,
        )
    )
    session.commit()
    logger.info(f"{endpoint} {gstin} by account {accountId}: {outcome.name}")


def verifyGstin(
    session: Session,
    gstin: str,
    accountId: int,
    roles: Iterable[str],
    endpoint: str,
    provider: GSTProvider,
    config: TenantConfig,
    now: Optional[float] = None,
) -> NormalizedTaxpayerInfo:
    """
    Verify a GSTIN with the provider on behalf of an account.

    Args:
        session (Session): Session used for the audit log.
        gstin (str): GSTIN as typed by the user; trimmed and uppercased.
        accountId (int): Caller account.
        roles (Iterable[str]): Caller roles.
        endpoint (str): Name of the calling function, scopes the rate limit.
        provider (GSTProvider): Verification provider to query.
        config (TenantConfig): Supplies the rate limit and window.
        now (Optional[float]): UNIX time used for rate limiting.

    Returns:
        NormalizedTaxpayerInfo: The normalized provider answer.

    Raises:
        exceptions.NoPermission: Caller has none of the allowed roles.
        exceptions.InvalidGSTIN: Malformed GSTIN. Nothing is recorded.
        exceptions.RateLimited: Too many lookups in the trailing window.
        exceptions.GSTProviderNotConfigured: Provider credentials missing.
        exceptions.GSTProviderUnreachable: Network error or timeout.
        exceptions.GSTProviderRejected: Provider flagged the request.
    """
    if ALLOWED_ROLES.isdisjoint(roles):
        raise exceptions.NoPermission()
    gstin = normalizeGstin(gstin)
    if not isValidGstin(gstin):
        raise exceptions.InvalidGSTIN()

    outcome = GstinLookupOutcome.INTERNAL_ERROR
    detail = {"provider": provider.name}
    try:
        recentCalls = countRecentCalls(
            accountId, endpoint, config.gstin_rate_window, now
        )
        if recentCalls >= config.gstin_rate_limit:
            raise exceptions.RateLimited(
                config.gstin_rate_limit, config.gstin_rate_window
            )
        recordCall(accountId, endpoint, config.gstin_rate_window, now)

        raw = provider.fetch(gstin)
        info = normalizeTaxpayer(raw, gstin)
        outcome = GstinLookupOutcome.SUCCESS
        detail.update(status=info.status, legal_name=info.legal_name)
        return info
    except exceptions.APIException as e:
        outcome = OUTCOMES.get(type(e), GstinLookupOutcome.INTERNAL_ERROR)
        detail["error"] = e.detail
        raise
    except Exception as e:
        session.rollback()
        detail["error"] = type(e).__name__
        raise
    finally:
        writeLookupLog(session, gstin, accountId, endpoint, outcome, detail)
