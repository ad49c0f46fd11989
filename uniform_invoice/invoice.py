"""Invoice data model and the totals printed on the form."""

from __future__ import annotations

import base64
import binascii
import random
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

from .formatting import fmt_amount, round_half_up, safe_float
from .numerals import POSITION_KEYS, to_capital_numerals, to_positioned_digits
from .roc_date import (
    current_roc_year,
    format_roc_date,
    get_invoice_period,
    period_for_month,
    taiwan_date,
    taiwan_today,
)

TAXABLE = "taxable"
ZERO_RATE = "zero_rate"
TAX_EXEMPT = "tax_exempt"
TAX_TYPES = (TAXABLE, ZERO_RATE, TAX_EXEMPT)
TAX_TYPE_LABELS = {TAXABLE: "應稅", ZERO_RATE: "零稅率", TAX_EXEMPT: "免稅"}

BUSINESS_TAX_RATE = 0.05
FORM_ROWS = 4
TAX_ID_LENGTH = 8

# I and O are left out so they cannot be mistaken for 1 and 0.
INVOICE_NUMBER_LETTERS = "ABCDEFGHJKLMNPQRSTUVWXYZ"


@dataclass(frozen=True)
class LineItem:
    name: str = ""
    quantity: str = ""
    unit_price: str = ""
    notes: str = ""

    @property
    def amount(self) -> float:
        return safe_float(self.quantity) * safe_float(self.unit_price)


@dataclass(frozen=True)
class InvoiceTotals:
    sales_total: float
    tax_amount: int
    grand_total: float


@dataclass
class Invoice:
    buyer_name: str = ""
    buyer_tax_id: str = ""
    buyer_address: str = ""
    invoice_date: date = field(default_factory=taiwan_today)
    period_start_month: int = 1
    period_end_month: int = 2
    period_year: int = 0
    tax_type: str = TAXABLE
    line_items: List[LineItem] = field(default_factory=list)
    invoice_number: str = ""
    stamp_image: Optional[bytes] = None

    @property
    def form_rows(self) -> List[LineItem]:
        rows = list(self.line_items[:FORM_ROWS])
        rows.extend(LineItem() for _ in range(FORM_ROWS - len(rows)))
        return rows

    @property
    def totals(self) -> InvoiceTotals:
        return calculate_totals(self.line_items, self.tax_type)


def calculate_totals(items: List[LineItem], tax_type: str) -> InvoiceTotals:
    sales_total = sum(item.amount for item in items)
    tax_amount = round_half_up(sales_total * BUSINESS_TAX_RATE) if tax_type == TAXABLE else 0
    return InvoiceTotals(
        sales_total=sales_total,
        tax_amount=tax_amount,
        grand_total=sales_total + tax_amount,
    )


def grand_total_boxes(totals: InvoiceTotals) -> Dict[str, str]:
    """The nine capital-numeral boxes; left blank unless the grand total is positive."""
    if totals.grand_total <= 0:
        return {key: "" for key in POSITION_KEYS}
    return to_positioned_digits(totals.grand_total)


def generate_invoice_number(rng: Optional[random.Random] = None) -> str:
    """Return a random number in the Uniform Invoice shape, e.g. ``AB 12345678``."""
    rng = rng or random.Random()
    prefix = "".join(rng.choice(INVOICE_NUMBER_LETTERS) for _ in range(2))
    return f"{prefix} {rng.randrange(100_000_000):08d}"


def tax_id_boxes(tax_id: str) -> List[str]:
    """Spread a business tax ID over the eight boxes of the buyer row."""
    return list(tax_id[:TAX_ID_LENGTH].ljust(TAX_ID_LENGTH, " "))


def _text(payload: Dict[str, Any], key: str) -> str:
    value = payload.get(key)
    return "" if value is None else str(value).strip()


def _line_item(raw: Any) -> LineItem:
    if not isinstance(raw, dict):
        raise ValueError("Each line item must be an object.")
    return LineItem(
        name=_text(raw, "name"),
        quantity=_text(raw, "quantity"),
        unit_price=_text(raw, "unit_price"),
        notes=_text(raw, "notes"),
    )


def decode_image(raw: str) -> bytes:
    """Decode base64 image data, with or without a ``data:image/...;base64,`` prefix."""
    if raw.startswith("data:"):
        raw = raw.partition(",")[2]
    try:
        return base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("'stamp_image' must be base64-encoded image data.") from exc


def invoice_from_payload(payload: Dict[str, Any]) -> Invoice:
    """Build an invoice from a JSON payload, filling the form's usual defaults."""
    raw_date = _text(payload, "date")
    invoice_date = taiwan_date(raw_date) if raw_date else taiwan_today()

    default_start, default_end = period_for_month(invoice_date.month)
    start = int(payload.get("period_start_month") or default_start)
    end = int(payload.get("period_end_month") or default_end)
    year = int(payload.get("period_year") or current_roc_year(invoice_date))
    get_invoice_period(start, end, year)

    tax_type = _text(payload, "tax_type") or TAXABLE
    if tax_type not in TAX_TYPES:
        raise ValueError(f"'tax_type' must be one of {', '.join(TAX_TYPES)}.")

    items = payload.get("items") or []
    stamp = _text(payload, "stamp_image")
    return Invoice(
        buyer_name=_text(payload, "buyer_name"),
        buyer_tax_id=_text(payload, "buyer_tax_id"),
        buyer_address=_text(payload, "buyer_address"),
        invoice_date=invoice_date,
        period_start_month=start,
        period_end_month=end,
        period_year=year,
        tax_type=tax_type,
        line_items=[_line_item(raw) for raw in items],
        invoice_number=_text(payload, "number") or generate_invoice_number(),
        stamp_image=decode_image(stamp) if stamp else None,
    )


def summarize(invoice: Invoice) -> Dict[str, Any]:
    """Everything printed on the form, as plain JSON-ready data."""
    totals = invoice.totals
    roc = format_roc_date(invoice.invoice_date)
    return {
        "number": invoice.invoice_number,
        "period": get_invoice_period(invoice.period_start_month, invoice.period_end_month, invoice.period_year),
        "date": {"year": roc.year, "month": roc.month, "day": roc.day, "formatted": roc.formatted},
        "tax_type": invoice.tax_type,
        "sales_total": totals.sales_total,
        "tax_amount": totals.tax_amount,
        "grand_total": totals.grand_total,
        "grand_total_text": fmt_amount(totals.grand_total),
        "capital_numerals": to_capital_numerals(totals.grand_total),
        "positioned_digits": grand_total_boxes(totals),
        "tax_id_boxes": tax_id_boxes(invoice.buyer_tax_id),
    }
