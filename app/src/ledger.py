"""
Ledger and aging arithmetic for receivables and payables.

Balances follow the dealer-account convention: a positive balance is owed
by the counterparty (Dr), a negative balance is owed to it (Cr).
Aging thresholds are plain data, `[(minDays, label), ...]` sorted by
`minDays` descending, so receivable and payable schedules share one code path.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple
from pydantic import BaseModel

from app.src.constants import BASE_AGING_LABEL, SETTLED_EPSILON
from app.src.enums import OrderIn

EPSILON = Decimal(SETTLED_EPSILON)
ONE_DAY = timedelta(days=1)


class OverdueSummary(BaseModel):
    counterparty_id: int
    max_days_overdue: int
    total_overdue: Decimal
    overdue_count: int


class AgingRow(BaseModel):
    document_id: int
    counterparty_id: int
    invoice_number: str
    invoice_date: date
    due_date: Optional[date]
    total_amount: Decimal
    amount_paid: Decimal
    outstanding: Decimal
    days_overdue: int
    bucket: str


# ---------------------------------------------------------------------------
# Running balance
# ---------------------------------------------------------------------------
def computeRunningBalance(
    entries: Iterable[Any],
    orderIn: OrderIn = OrderIn.DESC,
    opening: Decimal = Decimal("0.00"),
) -> List[Tuple[Any, Decimal]]:
    """
    Attach a running balance to each ledger entry.

    Entries are accumulated oldest first by `(entry_date, id)` regardless of
    the order they arrive in, starting from the `opening` balance brought
    forward, then returned in the requested display order without recomputing.

    Args:
        entries (Iterable): Objects exposing `entry_date`, `id`, `debit` and `credit`.
        orderIn (OrderIn): Display order of the result, newest first by default.
        opening (Decimal): Net balance carried into the period (debit - credit).

    Returns:
        List[Tuple[entry, Decimal]]: Each entry paired with the balance after it.

    Example:
        >>> [b for _, b in computeRunningBalance(entries, OrderIn.ASC)]
        [Decimal('500.00'), Decimal('300.00'), Decimal('0.00')]
    """
    chronological = sorted(entries, key=lambda entry: (entry.entry_date, entry.id))

    balance = Decimal(str(opening or 0))
    balanced = []
    for entry in chronological:
        balance += Decimal(str(entry.debit or 0)) - Decimal(str(entry.credit or 0))
        balanced.append((entry, balance))

    if orderIn == OrderIn.DESC:
        balanced.reverse()
    return balanced


def formatBalance(balance) -> str:
    """
    Render a balance as an absolute amount with a Dr/Cr suffix.

    Example:
        >>> formatBalance(Decimal("-200"))
        '200.00 Cr'
        >>> formatBalance(0)
        '0.00'
    """
    balance = Decimal(str(balance))
    amount = f"{abs(balance):.2f}"
    if balance > 0:
        return f"{amount} Dr"
    if balance < 0:
        return f"{amount} Cr"
    return amount


# ---------------------------------------------------------------------------
# Aging
# ---------------------------------------------------------------------------
def daysOverdue(referenceDate: date, now: datetime | date) -> int:
    """
    Whole days elapsed from the start of `referenceDate` until `now`, floored.

    Negative when the reference date is still in the future.
    """
    if isinstance(now, datetime):
        start = datetime.combine(referenceDate, datetime.min.time(), tzinfo=now.tzinfo)
    else:
        start = referenceDate
    return (now - start) // ONE_DAY


def bucketFor(
    days: int, thresholds: Sequence[Tuple[int, str]], baseLabel: str = BASE_AGING_LABEL
) -> str:
    for minDays, label in thresholds:
        if minDays < days:
            return label
    return baseLabel


def ageBucket(
    dueDate: Optional[date],
    invoiceDate: date,
    now: datetime | date,
    thresholds: Sequence[Tuple[int, str]],
    baseLabel: str = BASE_AGING_LABEL,
) -> str:
    """
    Label an outstanding document by how long it is past due.

    The first threshold (largest first) whose `minDays` is strictly less than
    the days overdue wins, so exactly 90 days overdue is still "60-90 days".
    Documents without a due date age from their invoice date.
    """
    referenceDate = dueDate if dueDate is not None else invoiceDate
    return bucketFor(daysOverdue(referenceDate, now), thresholds, baseLabel)


def outstandingAmount(totalAmount, amountPaid) -> Decimal:
    return Decimal(str(totalAmount or 0)) - Decimal(str(amountPaid or 0))


def isSettled(outstanding) -> bool:
    return Decimal(str(outstanding)) <= EPSILON


def isOverdue(days: int, outstanding, cutoff: int) -> bool:
    return days > cutoff and not isSettled(outstanding)


def agingReport(
    documents: Iterable[Any],
    now: datetime | date,
    thresholds: Sequence[Tuple[int, str]],
    counterparty: Callable[[Any], int],
) -> List[AgingRow]:
    """
    Build aging rows for every open document.

    Documents need `id`, `invoice_number`, `invoice_date`, `due_date`,
    `total_amount` and `amount_paid`. Settled documents are skipped.
    """
    rows = []
    for document in documents:
        outstanding = outstandingAmount(document.total_amount, document.amount_paid)
        if isSettled(outstanding):
            continue
        referenceDate = document.due_date or document.invoice_date
        days = daysOverdue(referenceDate, now)
        rows.append(
            AgingRow(
                document_id=document.id,
                counterparty_id=counterparty(document),
                invoice_number=document.invoice_number,
                invoice_date=document.invoice_date,
                due_date=document.due_date,
                total_amount=document.total_amount,
                amount_paid=document.amount_paid,
                outstanding=outstanding,
                days_overdue=days,
                bucket=bucketFor(days, thresholds),
            )
        )
    return rows


def summarizeAging(rows: Iterable[AgingRow]) -> Dict[int, Dict[str, Decimal]]:
    """Sum outstanding amounts per counterparty and bucket, with a `total` key."""
    summary: Dict[int, Dict[str, Decimal]] = {}
    for row in rows:
        buckets = summary.setdefault(row.counterparty_id, {"total": Decimal("0.00")})
        buckets[row.bucket] = buckets.get(row.bucket, Decimal("0.00")) + row.outstanding
        buckets["total"] += row.outstanding
    return summary


def summarizeOverdue(
    documents: Iterable[Any],
    now: datetime | date,
    cutoff: int,
    counterparty: Callable[[Any], int],
) -> Dict[int, OverdueSummary]:
    """
    Group documents overdue by more than `cutoff` days per counterparty.

    Returns:
        Dict[int, OverdueSummary]: Keyed by counterparty id, holding the summed
        outstanding, the oldest overdue age and the number of documents.
    """
    summaries: Dict[int, OverdueSummary] = {}
    for document in documents:
        outstanding = outstandingAmount(document.total_amount, document.amount_paid)
        if isSettled(outstanding):
            continue
        referenceDate = document.due_date or document.invoice_date
        days = daysOverdue(referenceDate, now)
        if not isOverdue(days, outstanding, cutoff):
            continue

        key = counterparty(document)
        existing = summaries.get(key)
        if existing is None:
            summaries[key] = OverdueSummary(
                counterparty_id=key,
                max_days_overdue=days,
                total_overdue=outstanding,
                overdue_count=1,
            )
        else:
            existing.max_days_overdue = max(existing.max_days_overdue, days)
            existing.total_overdue += outstanding
            existing.overdue_count += 1
    return summaries


def openingNet(openingBalance: Optional[Any]) -> Decimal:
    """Net balance brought forward by an opening balance row, zero when there is none."""
    if openingBalance is None:
        return Decimal("0.00")
    return Decimal(str(openingBalance.opening_debit or 0)) - Decimal(
        str(openingBalance.opening_credit or 0)
    )
