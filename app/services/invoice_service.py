"""
app/services/invoice_service.py

Purpose: Invoice numbering

- Indian fiscal year scoping (April 1 - March 31)
- Prefix selection: P (proforma), B (business tax invoice), R (retail tax invoice)
- Number format: prefix + [state code] + fiscal year + sequence, no padding
  e.g. B2025261, B2025262, R2025261
- Sequence issued by an atomic counter per series, seeded from the last
  invoice already present on orders
- Invoice totals: half-up rounding and the rounding-off adjustment
"""

import re
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Tuple

from app.core.config import settings
from app.core.logging import get_logger
from app.db.mongo import get_orders_collection
from app.services.sequence_service import next_sequence
from utils.constants import InvoiceType
from utils.time_utils import (
    get_financial_year,
    get_financial_year_start,
    local_to_utc,
    to_local,
    utc_now,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class InvoiceNumber:
    invoice_type: InvoiceType
    series: str
    sequence_number: int

    @property
    def number(self) -> str:
        return f"{self.series}{self.sequence_number}"


def get_invoice_prefix(invoice_type: InvoiceType, is_business_account: bool) -> str:
    """
    PI always uses "P"; tax invoices use "B" for business accounts, "R" otherwise.
    """
    if InvoiceType(invoice_type) == InvoiceType.PROFORMA:
        return "P"
    return "B" if is_business_account else "R"


def build_series(prefix: str, financial_year: str, state_code: Optional[str] = None) -> str:
    return f"{prefix}{state_code or ''}{financial_year}"


def parse_sequence(invoice_number: Optional[str], series: str) -> Optional[int]:
    """
    Extracts the numeric suffix following the series.

    >>> parse_sequence("B2025261", "B202526")
    1
    >>> parse_sequence("R2025261", "B202526") is None
    True
    """
    if not invoice_number or not invoice_number.startswith(series):
        return None
    suffix = invoice_number[len(series):]
    if not suffix.isdigit():
        return None
    return int(suffix)


def compute_invoice_totals(total_amount: Optional[float]) -> Tuple[int, float]:
    """
    Rounds the grand total half-up to whole rupees and returns the
    (rounded_total, rounding_off) pair printed on the invoice.

    >>> compute_invoice_totals(1499.4)
    (1499, -0.4)
    >>> compute_invoice_totals(1499.5)
    (1500, 0.5)
    """
    total = Decimal(str(total_amount or 0))
    rounded = total.quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(rounded), float(rounded - total)


async def get_last_issued_sequence(
    invoice_type: InvoiceType,
    series: str,
    financial_year_start_utc: datetime,
    session=None,
) -> int:
    """
    Sequence of the most recent order (by order date) carrying an invoice
    number in this series within the fiscal year; 0 when none or unparseable.
    """
    orders = get_orders_collection()
    last = await orders.find_one(
        {
            "invoice_type": InvoiceType(invoice_type).value,
            "invoice_number": {"$regex": f"^{re.escape(series)}"},
            "order_date": {"$gte": financial_year_start_utc},
        },
        sort=[("order_date", -1)],
        session=session,
    )
    if not last:
        return 0
    return parse_sequence(last.get("invoice_number"), series) or 0


async def generate_invoice_number(
    invoice_type: InvoiceType,
    is_business_account: bool,
    at: Optional[datetime] = None,
    session=None,
) -> InvoiceNumber:
    """
    Issues the next invoice number for (type, account class, fiscal year).

    Args:
        invoice_type: PI or TAX_INVOICE
        is_business_account: Customer's business flag
        at: Naive-UTC instant the invoice is issued (defaults to now)
        session: Optional Motor session

    Returns:
        InvoiceNumber with series and sequence
    """
    at = at or utc_now()
    local_day = to_local(at, settings.TIMEZONE).date()
    financial_year = get_financial_year(local_day)
    fy_start = get_financial_year_start(local_day)
    fy_start_utc = local_to_utc(datetime(fy_start.year, fy_start.month, fy_start.day), settings.TIMEZONE)

    prefix = get_invoice_prefix(invoice_type, is_business_account)
    series = build_series(prefix, financial_year, settings.INVOICE_OFFICE_STATE_CODE)

    seed = await get_last_issued_sequence(invoice_type, series, fy_start_utc, session=session)
    sequence = await next_sequence(f"invoice:{series}", seed=seed, session=session)

    invoice = InvoiceNumber(
        invoice_type=InvoiceType(invoice_type),
        series=series,
        sequence_number=sequence,
    )
    logger.info(
        f"Issued invoice number {invoice.number}",
        extra={"invoice_number": invoice.number}
    )
    return invoice
