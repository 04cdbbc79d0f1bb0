from typing import Optional
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.api.bearer import bearer_account
from app.src.db import sessionMaker
from app.src import exceptions, validators, getters
from app.src.gstin import (
    GSTProvider,
    CommonApiProvider,
    AppyflowProvider,
    NormalizedTaxpayerInfo,
    verifyGstin,
)
from app.src.loggers import logEvent
from app.src.functions import fuseExceptionResponses
from app.src.constants import GSTIN_RATE_LIMIT, GSTIN_RATE_WINDOW
from app.src.urls import URL_GSTIN_LOOKUP, URL_GSTIN_VERIFY

route_functions = APIRouter()

ENDPOINT_LOOKUP = "gstin-lookup"
ENDPOINT_VERIFY = "verify-gst"

GSTIN_ERRORS = fuseExceptionResponses(
    [
        exceptions.InvalidGSTIN(),
        exceptions.GSTProviderRejected(),
        exceptions.InvalidToken(),
        exceptions.NoPermission(),
        exceptions.RateLimited(GSTIN_RATE_LIMIT, GSTIN_RATE_WINDOW),
        exceptions.GSTProviderUnreachable(),
        exceptions.GSTProviderNotConfigured(),
        exceptions.InternalError(),
    ]
)


## Output Schema
class TaxpayerResponse(BaseModel):
    success: bool
    data: NormalizedTaxpayerInfo


## Input Forms
class LookupForm(BaseModel):
    gstin: Optional[str] = None


class VerifyForm(BaseModel):
    gstNo: Optional[str] = None


## Dependencies
def lookupProvider() -> GSTProvider:
    return CommonApiProvider()


def verifyProvider() -> GSTProvider:
    return AppyflowProvider()


## Function
def lookup(
    endpoint: str,
    gstin: Optional[str],
    provider: GSTProvider,
    accessToken: str,
    request_info,
) -> dict:
    try:
        session = sessionMaker()
        token = validators.accountToken(accessToken, session)
        roles = getters.accountRoles(token, session)
        config = getters.tenantConfig(session)

        info = verifyGstin(
            session, gstin, token.account_id, roles, endpoint, provider, config
        )
        logEvent(
            token,
            request_info,
            {"gstin": info.gstin, "status": info.status, "provider": provider.name},
        )
        return {"success": True, "data": info}
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Functions]
@route_functions.post(
    URL_GSTIN_LOOKUP,
    tags=["GSTIN"],
    response_model=TaxpayerResponse,
    responses=GSTIN_ERRORS,
    description="""
    Looks up a GSTIN with the GSP common API and returns the normalized taxpayer details.
    Only accounts holding the `admin`, `sales` or `accounts` role can look up GSTINs.
    Each account is limited to 10 lookups per trailing 60 seconds.
    Every attempt past the format check is recorded in the GSTIN audit log.
    """,
)
def gstin_lookup(
    fParam: LookupForm,
    provider: GSTProvider = Depends(lookupProvider),
    bearer=Depends(bearer_account),
    request_info=Depends(getters.requestInfo),
):
    return lookup(
        ENDPOINT_LOOKUP, fParam.gstin, provider, bearer.credentials, request_info
    )


@route_functions.post(
    URL_GSTIN_VERIFY,
    tags=["GSTIN"],
    response_model=TaxpayerResponse,
    responses=GSTIN_ERRORS,
    description="""
    Verifies a GST number with Appyflow and returns the normalized taxpayer details.
    Same authorization, rate limiting and auditing rules as the GSTIN lookup.
    """,
)
def verify_gst(
    fParam: VerifyForm,
    provider: GSTProvider = Depends(verifyProvider),
    bearer=Depends(bearer_account),
    request_info=Depends(getters.requestInfo),
):
    return lookup(
        ENDPOINT_VERIFY, fParam.gstNo, provider, bearer.credentials, request_info
    )
