"""Number and text formatting helpers shared by the invoice renderers."""

from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Protocol


class TextWidthProvider(Protocol):
    def text_width(self, text: str, size: float, bold: bool = False) -> float:
        ...


def safe_float(value: Any, default: float = 0.0) -> float:
    try:
        result = float(value)
    except Exception:
        return default
    return result if math.isfinite(result) else default


def round_half_up(value: Any) -> int:
    """Round to the nearest integer, halves away from zero."""
    try:
        quantized = Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ValueError(f"Cannot round non-finite amount {value!r}") from exc
    return int(quantized)


def fmt_amount(amount: float) -> str:
    """Group thousands the way zh-TW locale formatting does: '12,345.5'."""
    if float(amount).is_integer():
        return f"{int(amount):,}"
    return f"{amount:,.3f}".rstrip("0").rstrip(".")


def fmt_qty(qty: Any) -> str:
    quantity = safe_float(qty, math.nan)
    if math.isnan(quantity):
        return str(qty)
    return str(int(quantity)) if quantity.is_integer() else str(quantity)


def truncate_to_width(
    fonts_obj: TextWidthProvider,
    text: str,
    max_width: float,
    font_size: float,
    bold: bool = False,
) -> str:
    """Fit ``text`` on one line of a form cell, ending in '…' when cut."""
    text = text.replace("\n", " ")
    if fonts_obj.text_width(text, font_size, bold=bold) <= max_width:
        return text
    kept = text
    while kept and fonts_obj.text_width(kept + "…", font_size, bold=bold) > max_width:
        kept = kept[:-1]
    return kept.rstrip() + "…"
