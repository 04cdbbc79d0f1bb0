"""
GST computation for invoice lines.

A sale within the seller's own state is taxed as CGST + SGST (half each),
a sale to any other state (or to a buyer whose state is unknown) as IGST.
All amounts are `Decimal` rounded to the paisa.
"""

from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP
from typing import Optional
from pydantic import BaseModel

PAISA = Decimal("0.01")
ZERO = Decimal("0.00")


class TaxSplit(BaseModel):
    cgst: Decimal
    sgst: Decimal
    igst: Decimal
    total_tax: Decimal
    grand_total: Decimal
    is_intra_state: bool


def round2(value) -> Decimal:
    """Round half-up to two decimal places."""
    return Decimal(str(value)).quantize(PAISA, rounding=ROUND_HALF_UP)


def floor2(value) -> Decimal:
    """Truncate toward zero to two decimal places."""
    return Decimal(str(value)).quantize(PAISA, rounding=ROUND_DOWN)


def isIntraState(buyerStateCode: Optional[str], sellerStateCode: str) -> bool:
    return buyerStateCode is not None and buyerStateCode == sellerStateCode


def computeGst(
    taxableAmount,
    ratePercent,
    buyerStateCode: Optional[str],
    sellerStateCode: str,
) -> TaxSplit:
    """
    Split the GST on a taxable amount into its CGST/SGST or IGST components.

    Args:
        taxableAmount: Non-negative amount before tax.
        ratePercent: Non-negative GST rate in percent (18 for 18%).
        buyerStateCode (Optional[str]): Two digit state code of the buyer,
            None when unknown (treated as inter-state).
        sellerStateCode (str): Two digit state code of the seller.

    Returns:
        TaxSplit: The components, always satisfying
        `cgst + sgst + igst == total_tax`.

    Notes:
        - An odd paisa in an intra-state split goes to SGST:
          CGST is the truncated half, SGST the remainder.

    Example:
        >>> computeGst(1000, 18, "36", "36").cgst
        Decimal('90.00')
        >>> computeGst(100, Decimal("0.01"), "36", "36").sgst
        Decimal('0.01')
    """
    taxableAmount = Decimal(str(taxableAmount))
    ratePercent = Decimal(str(ratePercent))

    totalTax = round2(taxableAmount * ratePercent / 100)
    grandTotal = round2(taxableAmount + totalTax)

    if isIntraState(buyerStateCode, sellerStateCode):
        cgst = floor2(totalTax / 2)
        sgst = round2(totalTax - cgst)
        igst = ZERO
        intraState = True
    else:
        cgst = ZERO
        sgst = ZERO
        igst = totalTax
        intraState = False

    return TaxSplit(
        cgst=cgst,
        sgst=sgst,
        igst=igst,
        total_tax=totalTax,
        grand_total=grandTotal,
        is_intra_state=intraState,
    )
