from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm.session import Session
from pydantic import BaseModel, Field

from app.api.bearer import bearer_account
from app.src.db import (
    Dealer,
    Supplier,
    FinancialYear,
    OpeningBalance,
    LedgerEntry,
    sessionMaker,
)
from app.src import exceptions, validators, getters
from app.src.constants import FINANCE_ROLES
from app.src.enums import OrderIn
from app.src.ledger import computeRunningBalance, formatBalance, openingNet
from app.src.functions import enumStr, fuseExceptionResponses
from app.src.urls import URL_LEDGER, URL_SUPPLIER_LEDGER

route_finance = APIRouter()

LEDGER_ERRORS = fuseExceptionResponses(
    [
        exceptions.InvalidToken(),
        exceptions.NoPermission(),
        exceptions.InvalidIdentifier(),
    ]
)


## Output Schema
class LedgerEntrySchema(BaseModel):
    id: int
    dealer_id: Optional[int]
    supplier_id: Optional[int]
    entry_date: date
    debit: Decimal
    credit: Decimal
    description: Optional[str]
    balance: Decimal
    balance_label: str
    created_on: datetime


## Query Parameters
class PeriodQueryParams(BaseModel):
    financial_year_id: int | None = Field(Query(default=None))
    date_from: date | None = Field(Query(default=None))
    date_to: date | None = Field(Query(default=None))
    order_in: OrderIn = Field(Query(default=OrderIn.DESC, description=enumStr(OrderIn)))
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int = Field(Query(default=100, gt=0, le=1000))


class DealerQueryParams(PeriodQueryParams):
    dealer_id: int = Field(Query())


class SupplierQueryParams(PeriodQueryParams):
    supplier_id: int = Field(Query())


## Function
def ledgerOf(
    session: Session,
    qParam: PeriodQueryParams,
    counterparty,
    column,
    openingColumn,
) -> List[LedgerEntrySchema]:
    """
    Running balance ledger of one dealer or supplier.

    With a financial year the entries are limited to its dates and the
    balance starts from that year's opening balance, otherwise the
    optional `date_from`/`date_to` range applies and the balance starts at zero.
    """
    query = session.query(LedgerEntry).filter(column == counterparty.id)
    opening = Decimal("0.00")
    if qParam.financial_year_id is not None:
        year = (
            session.query(FinancialYear)
            .filter(FinancialYear.id == qParam.financial_year_id)
            .first()
        )
        if year is None:
            raise exceptions.InvalidIdentifier()
        query = query.filter(
            LedgerEntry.entry_date >= year.start_date,
            LedgerEntry.entry_date <= year.end_date,
        )
        openingBalance = (
            session.query(OpeningBalance)
            .filter(
                OpeningBalance.financial_year_id == year.id,
                openingColumn == counterparty.id,
            )
            .first()
        )
        opening = openingNet(openingBalance)
    else:
        if qParam.date_from is not None:
            query = query.filter(LedgerEntry.entry_date >= qParam.date_from)
        if qParam.date_to is not None:
            query = query.filter(LedgerEntry.entry_date <= qParam.date_to)

    balanced = computeRunningBalance(query.all(), qParam.order_in, opening)
    page = balanced[qParam.offset : qParam.offset + qParam.limit]
    return [
        LedgerEntrySchema(
            id=entry.id,
            dealer_id=entry.dealer_id,
            supplier_id=entry.supplier_id,
            entry_date=entry.entry_date,
            debit=entry.debit,
            credit=entry.credit,
            description=entry.description,
            balance=balance,
            balance_label=formatBalance(balance),
            created_on=entry.created_on,
        )
        for entry, balance in page
    ]


## API endpoints [Finance]
@route_finance.get(
    URL_LEDGER,
    tags=["Ledger"],
    response_model=List[LedgerEntrySchema],
    responses=LEDGER_ERRORS,
    description="""
    Fetches the ledger of a dealer with the running balance after every entry.
    Balances are always accumulated oldest first, `order_in` only changes the display order.
    When `financial_year_id` is given, only that year's entries are listed and the balance
    starts from the dealer's opening balance for the year.
    A positive balance is shown as `Dr` (owed by the dealer), a negative one as `Cr`.
    Requires the `admin`, `accounts` or `sales` role.
    """,
)
async def fetch_ledger(
    qParam: DealerQueryParams = Depends(),
    bearer=Depends(bearer_account),
):
    try:
        session = sessionMaker()
        token = validators.accountToken(bearer.credentials, session)
        validators.anyRole(getters.accountRoles(token, session), FINANCE_ROLES)

        dealer = session.query(Dealer).filter(Dealer.id == qParam.dealer_id).first()
        if dealer is None:
            raise exceptions.InvalidIdentifier()
        return ledgerOf(
            session, qParam, dealer, LedgerEntry.dealer_id, OpeningBalance.dealer_id
        )
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_finance.get(
    URL_SUPPLIER_LEDGER,
    tags=["Ledger"],
    response_model=List[LedgerEntrySchema],
    responses=LEDGER_ERRORS,
    description="""
    Fetches the ledger of a supplier with the running balance after every entry.
    Supplier bills are credits and payments to the supplier are debits, so a `Cr`
    balance is the amount still owed to the supplier.
    Filtering, ordering and opening balances work as in the dealer ledger.
    Requires the `admin`, `accounts` or `sales` role.
    """,
)
async def fetch_supplier_ledger(
    qParam: SupplierQueryParams = Depends(),
    bearer=Depends(bearer_account),
):
    try:
        session = sessionMaker()
        token = validators.accountToken(bearer.credentials, session)
        validators.anyRole(getters.accountRoles(token, session), FINANCE_ROLES)

        supplier = (
            session.query(Supplier).filter(Supplier.id == qParam.supplier_id).first()
        )
        if supplier is None:
            raise exceptions.InvalidIdentifier()
        return ledgerOf(
            session,
            qParam,
            supplier,
            LedgerEntry.supplier_id,
            OpeningBalance.supplier_id,
        )
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
