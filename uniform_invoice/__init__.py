"""Mock Taiwan Uniform Invoice toolkit.

Capital-numeral and ROC calendar formatting, invoice PDFs, and ``{{field}}``
filling of .docx letter templates with an HTML preview.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping

from .numerals import to_capital_numerals, to_positioned_digits
from .roc_date import ad_to_roc, format_roc_date, get_invoice_period, roc_to_ad

__version__ = "0.1.0"


def render_invoice(data: Dict[str, Any]) -> bytes:
    from .rendering import render_invoice as _render_invoice

    return _render_invoice(data)


def render_template(template: bytes, fields: Mapping[str, object]):
    from .templating import render_template as _render_template

    return _render_template(template, fields)


def run(host: str = "0.0.0.0", port: int = 8080) -> None:
    from .server import run as _run

    _run(host, port)


__all__ = [
    "ad_to_roc",
    "format_roc_date",
    "get_invoice_period",
    "render_invoice",
    "render_template",
    "roc_to_ad",
    "run",
    "to_capital_numerals",
    "to_positioned_digits",
]
