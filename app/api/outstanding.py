from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm.session import Session
from pydantic import BaseModel, Field

from app.api.bearer import bearer_account
from app.src.db import Dealer, Invoice, PurchaseInvoice, sessionMaker
from app.src import exceptions, validators, getters
from app.src.constants import FINANCE_ROLES, TMZ_SECONDARY
from app.src.enums import InvoiceStatus
from app.src.ledger import AgingRow, agingReport, summarizeAging, summarizeOverdue
from app.src.functions import fuseExceptionResponses
from app.src.urls import (
    URL_OUTSTANDING_RECEIVABLE,
    URL_OUTSTANDING_PAYABLE,
    URL_OUTSTANDING_OVERDUE,
)

route_finance = APIRouter()

# Invoices that never became, or no longer are, claims
EXCLUDED_STATUS = [InvoiceStatus.DRAFT, InvoiceStatus.VOID]

FINANCE_ERRORS = fuseExceptionResponses(
    [exceptions.InvalidToken(), exceptions.NoPermission()]
)


## Output Schema
class AgingReportSchema(BaseModel):
    rows: List[AgingRow]
    totals: Dict[int, Dict[str, Decimal]]


class OverdueSchema(BaseModel):
    dealer_id: int
    dealer_name: str
    max_days_overdue: int
    total_overdue: Decimal
    overdue_count: int


## Query Parameters
class ReceivableQueryParams(BaseModel):
    dealer_id: int | None = Field(Query(default=None))
    as_of: date | None = Field(Query(default=None))


class PayableQueryParams(BaseModel):
    supplier_id: int | None = Field(Query(default=None))
    as_of: date | None = Field(Query(default=None))


class OverdueQueryParams(BaseModel):
    cutoff: int | None = Field(Query(default=None, ge=0))
    as_of: date | None = Field(Query(default=None))


## Function
def referenceTime(as_of: Optional[date]) -> date | datetime:
    if as_of is not None:
        return as_of
    return datetime.now(TMZ_SECONDARY)


def openInvoices(session: Session, dealerId: Optional[int] = None) -> List[Invoice]:
    query = session.query(Invoice).filter(Invoice.status.notin_(EXCLUDED_STATUS))
    if dealerId is not None:
        query = query.filter(Invoice.dealer_id == dealerId)
    return query.order_by(Invoice.invoice_date.asc(), Invoice.id.asc()).all()


def openPurchaseInvoices(
    session: Session, supplierId: Optional[int] = None
) -> List[PurchaseInvoice]:
    query = session.query(PurchaseInvoice).filter(
        PurchaseInvoice.status.notin_(EXCLUDED_STATUS)
    )
    if supplierId is not None:
        query = query.filter(PurchaseInvoice.supplier_id == supplierId)
    return query.order_by(
        PurchaseInvoice.invoice_date.asc(), PurchaseInvoice.id.asc()
    ).all()


def buildReport(rows: List[AgingRow]) -> AgingReportSchema:
    return AgingReportSchema(rows=rows, totals=summarizeAging(rows))


## API endpoints [Finance]
@route_finance.get(
    URL_OUTSTANDING_RECEIVABLE,
    tags=["Outstanding"],
    response_model=AgingReportSchema,
    responses=FINANCE_ERRORS,
    description="""
    Lists unpaid sales invoices with their age bucket (0-30, 30-60, 60-90, 90+ days).
    Invoices age from their due date, or from the invoice date when no due date is set.
    Invoices with 0.01 or less outstanding are treated as settled and left out.
    `totals` sums the outstanding amount per dealer and bucket.
    """,
)
async def fetch_receivables(
    qParam: ReceivableQueryParams = Depends(),
    bearer=Depends(bearer_account),
):
    try:
        session = sessionMaker()
        token = validators.accountToken(bearer.credentials, session)
        validators.anyRole(getters.accountRoles(token, session), FINANCE_ROLES)
        config = getters.tenantConfig(session)

        rows = agingReport(
            openInvoices(session, qParam.dealer_id),
            referenceTime(qParam.as_of),
            config.receivable_aging,
            lambda invoice: invoice.dealer_id,
        )
        return buildReport(rows)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_finance.get(
    URL_OUTSTANDING_PAYABLE,
    tags=["Outstanding"],
    response_model=AgingReportSchema,
    responses=FINANCE_ERRORS,
    description="""
    Lists unpaid purchase invoices with their age bucket, from 0-30 up to 360+ days.
    Same aging and settlement rules as the receivables report, grouped by supplier.
    """,
)
async def fetch_payables(
    qParam: PayableQueryParams = Depends(),
    bearer=Depends(bearer_account),
):
    try:
        session = sessionMaker()
        token = validators.accountToken(bearer.credentials, session)
        validators.anyRole(getters.accountRoles(token, session), FINANCE_ROLES)
        config = getters.tenantConfig(session)

        rows = agingReport(
            openPurchaseInvoices(session, qParam.supplier_id),
            referenceTime(qParam.as_of),
            config.payable_aging,
            lambda invoice: invoice.supplier_id,
        )
        return buildReport(rows)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_finance.get(
    URL_OUTSTANDING_OVERDUE,
    tags=["Outstanding"],
    response_model=List[OverdueSchema],
    responses=FINANCE_ERRORS,
    description="""
    Summarizes, per dealer, the invoices overdue by more than `cutoff` days (120 by default).
    Returns the summed outstanding amount, the oldest overdue age and the invoice count,
    most overdue dealers first.
    """,
)
async def fetch_overdue(
    qParam: OverdueQueryParams = Depends(),
    bearer=Depends(bearer_account),
):
    try:
        session = sessionMaker()
        token = validators.accountToken(bearer.credentials, session)
        validators.anyRole(getters.accountRoles(token, session), FINANCE_ROLES)
        config = getters.tenantConfig(session)
        cutoff = qParam.cutoff
        if cutoff is None:
            cutoff = config.overdue_threshold_days

        summaries = summarizeOverdue(
            openInvoices(session),
            referenceTime(qParam.as_of),
            cutoff,
            lambda invoice: invoice.dealer_id,
        )
        dealers = {}
        if summaries:
            dealers = {
                dealer.id: dealer.name
                for dealer in session.query(Dealer)
                .filter(Dealer.id.in_(list(summaries)))
                .all()
            }
        ranked = sorted(
            summaries.values(),
            key=lambda summary: (-summary.max_days_overdue, summary.counterparty_id),
        )
        return [
            OverdueSchema(
                dealer_id=summary.counterparty_id,
                dealer_name=dealers.get(summary.counterparty_id, ""),
                max_days_overdue=summary.max_days_overdue,
                total_overdue=summary.total_overdue,
                overdue_count=summary.overdue_count,
            )
            for summary in ranked
        ]
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
