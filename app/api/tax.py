from decimal import Decimal
from typing import Optional
from fastapi import APIRouter, Depends, Form
from pydantic import BaseModel, Field

from app.api.bearer import bearer_account
from app.src.db import Dealer, sessionMaker
from app.src import exceptions, validators, getters
from app.src.constants import FINANCE_ROLES, REGEX_STATE_CODE
from app.src.tax import TaxSplit, computeGst
from app.src.functions import fuseExceptionResponses
from app.src.urls import URL_GST_COMPUTE

route_finance = APIRouter()


## Output Schema
class GstSchema(TaxSplit):
    taxable_amount: Decimal
    rate_percent: Decimal
    buyer_state_code: Optional[str]
    seller_state_code: str


## Input Forms
class ComputeForm(BaseModel):
    taxable_amount: Decimal = Field(Form(ge=0))
    rate_percent: Decimal = Field(Form(ge=0, le=100))
    buyer_state_code: str | None = Field(
        Form(pattern=REGEX_STATE_CODE, default=None)
    )
    dealer_id: int | None = Field(Form(default=None))


## API endpoints [Finance]
@route_finance.post(
    URL_GST_COMPUTE,
    tags=["GST"],
    response_model=GstSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(),
        ]
    ),
    description="""
    Splits the GST on a taxable amount against the company's own state.
    A buyer in the same state pays CGST and SGST, any other buyer pays IGST.
    The buyer state is taken from `buyer_state_code`, or from the dealer when `dealer_id` is given.
    A buyer without a known state is taxed as inter-state.
    """,
)
async def compute_gst(
    fParam: ComputeForm = Depends(),
    bearer=Depends(bearer_account),
):
    try:
        session = sessionMaker()
        token = validators.accountToken(bearer.credentials, session)
        validators.anyRole(getters.accountRoles(token, session), FINANCE_ROLES)
        config = getters.tenantConfig(session)

        buyerStateCode = fParam.buyer_state_code
        if fParam.dealer_id is not None:
            dealer = session.query(Dealer).filter(Dealer.id == fParam.dealer_id).first()
            if dealer is None:
                raise exceptions.InvalidIdentifier()
            buyerStateCode = dealer.state_code

        split = computeGst(
            fParam.taxable_amount,
            fParam.rate_percent,
            buyerStateCode,
            config.seller_state_code,
        )
        return GstSchema(
            **split.model_dump(),
            taxable_amount=fParam.taxable_amount,
            rate_percent=fParam.rate_percent,
            buyer_state_code=buyerStateCode,
            seller_state_code=config.seller_state_code,
        )
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
