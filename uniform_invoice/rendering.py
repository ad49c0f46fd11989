"""Uniform Invoice PDF rendering."""

from __future__ import annotations

import io
from typing import Any, Dict, List

from fpdf import FPDF

from .fonts import FontManager
from .formatting import fmt_amount, fmt_qty, safe_float, truncate_to_width
from .invoice import TAX_TYPE_LABELS, TAX_TYPES, TAXABLE, Invoice, grand_total_boxes, invoice_from_payload, tax_id_boxes
from .numerals import POSITION_KEYS, POSITION_LABELS
from .pdf_constants import (
    ADDRESS_LABEL_X,
    BUYER_Y,
    CELL_PADDING,
    COLOR_HEADER_FILL,
    COLOR_HINT,
    COLOR_MUTED,
    COLOR_RULE,
    COLOR_TEXT,
    COLOR_WATERMARK,
    COLUMN_WIDTHS,
    FONT_SIZE_NORMAL,
    FONT_SIZE_SMALL,
    FONT_SIZE_TITLE,
    FONT_SIZE_WATERMARK,
    FONT_SIZE_WATERMARK_SUB,
    FOOTER_Y,
    HEADER_ROW_H,
    HEADER_Y,
    ITEM_ROW_H,
    LINE_WIDTH,
    MARGIN,
    NUMERAL_ROW_H,
    PAGE_H,
    PAGE_W,
    PERIOD_Y,
    PT_TO_MM,
    SALES_ROW_H,
    STAMP_MAX_H,
    STAMP_MAX_W,
    SUB_HEADER_H,
    TABLE_X,
    TABLE_Y,
    TAX_ID_BOX,
    TAX_ID_BOX_GAP,
    TAX_ID_LABEL_X,
    TAX_ROW_H,
    WATERMARK_ANGLE,
    WATERMARK_OPACITY,
)
from .roc_date import format_roc_date, get_invoice_period

TITLE = "統 一 發 票（三 聯 式）"
ITEM_HEADERS = ("品　　名", "數量", "單價", "金　　額", "備　　註")
FOOTER_NOTE = "※應稅、零稅率、免稅之銷售額應分別開立統一發票，並應於各該欄打「✓」。"
COPY_MARKER = "第＿聯＿＿聯"


def baseline(top: float, height: float, size: float) -> float:
    """Baseline that vertically centres text of ``size`` points in a box."""
    return top + height / 2.0 + size * PT_TO_MM * 0.35


class InvoiceRenderer:
    def __init__(self, invoice: Invoice) -> None:
        self.invoice = invoice
        self.pdf = FPDF(orientation="P", unit="mm", format=(PAGE_W, PAGE_H))
        self.pdf.set_auto_page_break(False)
        self.pdf.set_margins(MARGIN, MARGIN, MARGIN)
        self.pdf.add_page()
        self.pdf.set_line_width(LINE_WIDTH)
        self.pdf.set_draw_color(*COLOR_RULE)

        self.fonts = FontManager(self.pdf)
        self.totals = invoice.totals

        self.columns: List[float] = []
        x = TABLE_X
        for width in COLUMN_WIDTHS:
            self.columns.append(x)
            x += width
        self.items_top = TABLE_Y + HEADER_ROW_H
        self.sales_top = self.items_top + ITEM_ROW_H * len(invoice.form_rows)
        self.tax_top = self.sales_top + SALES_ROW_H
        self.numeral_top = self.tax_top + TAX_ROW_H

    def _span(self, first: int, last: int) -> float:
        return sum(COLUMN_WIDTHS[first : last + 1])

    def _cell(self, x: float, y: float, width: float, height: float, header: bool = False) -> None:
        if header:
            self.pdf.set_fill_color(*COLOR_HEADER_FILL)
            self.pdf.rect(x, y, width, height, style="FD")
        else:
            self.pdf.rect(x, y, width, height, style="D")

    def _check_mark(self, center_x: float, center_y: float) -> None:
        self.pdf.line(center_x - 1.3, center_y, center_x - 0.3, center_y + 1.1)
        self.pdf.line(center_x - 0.3, center_y + 1.1, center_x + 1.5, center_y - 1.3)

    def _draw_header(self) -> None:
        invoice = self.invoice
        self.fonts.draw_text(MARGIN, HEADER_Y, invoice.invoice_number, FONT_SIZE_NORMAL + 2, COLOR_TEXT)
        self.fonts.draw_centered(PAGE_W / 2.0, HEADER_Y, TITLE, FONT_SIZE_TITLE, COLOR_TEXT, bold=True)

        period = get_invoice_period(invoice.period_start_month, invoice.period_end_month, invoice.period_year)
        self.fonts.draw_centered(PAGE_W / 2.0, PERIOD_Y, period, FONT_SIZE_NORMAL, COLOR_TEXT)

        roc = format_roc_date(invoice.invoice_date)
        self.fonts.draw_right(PAGE_W - MARGIN, HEADER_Y, roc.compact, FONT_SIZE_NORMAL, COLOR_TEXT)

    def _draw_buyer_row(self) -> None:
        invoice = self.invoice
        label = "買受人:"
        self.fonts.draw_text(MARGIN, BUYER_Y, label, FONT_SIZE_NORMAL, COLOR_TEXT, bold=True)
        name_x = MARGIN + self.fonts.text_width(label, FONT_SIZE_NORMAL, bold=True) + 1.0
        name = truncate_to_width(self.fonts, invoice.buyer_name, TAX_ID_LABEL_X - name_x - 2.0, FONT_SIZE_NORMAL)
        self.fonts.draw_text(name_x, BUYER_Y, name, FONT_SIZE_NORMAL, COLOR_TEXT)

        label = "統一編號:"
        self.fonts.draw_text(TAX_ID_LABEL_X, BUYER_Y, label, FONT_SIZE_NORMAL, COLOR_TEXT, bold=True)
        box_x = TAX_ID_LABEL_X + self.fonts.text_width(label, FONT_SIZE_NORMAL, bold=True) + 1.0
        box_top = BUYER_Y - TAX_ID_BOX + 0.9
        for digit in tax_id_boxes(invoice.buyer_tax_id):
            self.pdf.rect(box_x, box_top, TAX_ID_BOX, TAX_ID_BOX)
            if digit.strip():
                self.fonts.draw_centered(
                    box_x + TAX_ID_BOX / 2.0,
                    baseline(box_top, TAX_ID_BOX, FONT_SIZE_NORMAL),
                    digit,
                    FONT_SIZE_NORMAL,
                    COLOR_TEXT,
                )
            box_x += TAX_ID_BOX + TAX_ID_BOX_GAP

        label = "地址:"
        self.fonts.draw_text(ADDRESS_LABEL_X, BUYER_Y, label, FONT_SIZE_NORMAL, COLOR_TEXT, bold=True)
        optional_hint = "可省略"
        hint_x = PAGE_W - MARGIN - self.fonts.text_width(optional_hint, FONT_SIZE_SMALL)
        address_x = ADDRESS_LABEL_X + self.fonts.text_width(label, FONT_SIZE_NORMAL, bold=True) + 1.0
        address = truncate_to_width(self.fonts, invoice.buyer_address, hint_x - address_x - 2.0, FONT_SIZE_NORMAL)
        self.fonts.draw_text(address_x, BUYER_Y, address, FONT_SIZE_NORMAL, COLOR_TEXT)
        self.fonts.draw_text(hint_x, BUYER_Y, optional_hint, FONT_SIZE_SMALL, COLOR_MUTED)

    def _draw_item_rows(self) -> None:
        for column, title in enumerate(ITEM_HEADERS):
            x, width = self.columns[column], COLUMN_WIDTHS[column]
            self._cell(x, TABLE_Y, width, HEADER_ROW_H, header=True)
            self.fonts.draw_centered(
                x + width / 2.0,
                baseline(TABLE_Y, HEADER_ROW_H, FONT_SIZE_NORMAL),
                title,
                FONT_SIZE_NORMAL,
                COLOR_TEXT,
            )

        rows = self.invoice.form_rows
        notes_x = self.columns[4]
        self._cell(notes_x, self.items_top, COLUMN_WIDTHS[4], ITEM_ROW_H * len(rows))

        for index, item in enumerate(rows):
            top = self.items_top + index * ITEM_ROW_H
            text_y = baseline(top, ITEM_ROW_H, FONT_SIZE_NORMAL)
            for column in range(4):
                self._cell(self.columns[column], top, COLUMN_WIDTHS[column], ITEM_ROW_H)

            name_width = COLUMN_WIDTHS[0] - 2 * CELL_PADDING
            if item.name:
                name = truncate_to_width(self.fonts, item.name, name_width, FONT_SIZE_NORMAL)
                self.fonts.draw_text(self.columns[0] + CELL_PADDING, text_y, name, FONT_SIZE_NORMAL, COLOR_TEXT)
            elif index == 0:
                self.fonts.draw_text(
                    self.columns[0] + CELL_PADDING, text_y, "請填上品項", FONT_SIZE_NORMAL, COLOR_HINT
                )

            if item.quantity:
                self.fonts.draw_right(
                    self.columns[2] - CELL_PADDING, text_y, fmt_qty(item.quantity), FONT_SIZE_NORMAL, COLOR_TEXT
                )
            if item.unit_price:
                self.fonts.draw_right(
                    self.columns[3] - CELL_PADDING,
                    text_y,
                    fmt_amount(safe_float(item.unit_price)),
                    FONT_SIZE_NORMAL,
                    COLOR_TEXT,
                )
            if item.amount > 0:
                self.fonts.draw_right(
                    self.columns[4] - CELL_PADDING, text_y, fmt_amount(item.amount), FONT_SIZE_NORMAL, COLOR_TEXT
                )
            if item.notes:
                notes = truncate_to_width(self.fonts, item.notes, COLUMN_WIDTHS[4] - 2 * CELL_PADDING, FONT_SIZE_SMALL)
                self.fonts.draw_text(notes_x + CELL_PADDING, text_y, notes, FONT_SIZE_SMALL, COLOR_TEXT)

    def _draw_sales_row(self) -> None:
        top = self.sales_top
        self._cell(self.columns[0], top, COLUMN_WIDTHS[0], SALES_ROW_H, header=True)
        self.fonts.draw_centered(
            self.columns[0] + COLUMN_WIDTHS[0] / 2.0,
            baseline(top, SALES_ROW_H, FONT_SIZE_NORMAL),
            "銷售額合計",
            FONT_SIZE_NORMAL,
            COLOR_TEXT,
        )
        self._cell(self.columns[1], top, self._span(1, 3), SALES_ROW_H)
        self.fonts.draw_right(
            self.columns[4] - CELL_PADDING - 1.0,
            baseline(top, SALES_ROW_H, FONT_SIZE_NORMAL),
            fmt_amount(self.totals.sales_total),
            FONT_SIZE_NORMAL,
            COLOR_TEXT,
        )

    def _draw_stamp_cell(self) -> None:
        x, width = self.columns[4], COLUMN_WIDTHS[4]
        height = SALES_ROW_H + TAX_ROW_H
        self._cell(x, self.sales_top, width, height)
        center_x = x + width / 2.0
        self.fonts.draw_centered(center_x, self.sales_top + 3.5, "營業人蓋用統一發票專用章", FONT_SIZE_SMALL, COLOR_MUTED)

        image_top = self.sales_top + 5.0
        if self.invoice.stamp_image:
            self.pdf.image(
                io.BytesIO(self.invoice.stamp_image),
                x=center_x - STAMP_MAX_W / 2.0,
                y=image_top,
                w=STAMP_MAX_W,
                h=STAMP_MAX_H,
                keep_aspect_ratio=True,
            )
            return
        self.fonts.draw_centered(center_x, image_top + 4.5, "記得要蓋", FONT_SIZE_NORMAL, COLOR_HINT, bold=True)
        self.fonts.draw_centered(center_x, image_top + 8.5, "發票章唷", FONT_SIZE_NORMAL, COLOR_HINT, bold=True)

    def _draw_tax_row(self) -> None:
        top = self.tax_top
        self._cell(self.columns[0], top, COLUMN_WIDTHS[0], TAX_ROW_H, header=True)
        self.fonts.draw_centered(
            self.columns[0] + COLUMN_WIDTHS[0] / 2.0,
            baseline(top, TAX_ROW_H, FONT_SIZE_NORMAL),
            "營業稅",
            FONT_SIZE_NORMAL,
            COLOR_TEXT,
        )

        box_width = self._span(1, 2) / len(TAX_TYPES)
        value_top = top + SUB_HEADER_H
        value_h = TAX_ROW_H - SUB_HEADER_H
        for index, tax_type in enumerate(TAX_TYPES):
            x = self.columns[1] + index * box_width
            self._cell(x, top, box_width, SUB_HEADER_H)
            self._cell(x, value_top, box_width, value_h)
            center_x = x + box_width / 2.0
            self.fonts.draw_centered(
                center_x, baseline(top, SUB_HEADER_H, FONT_SIZE_SMALL), TAX_TYPE_LABELS[tax_type], FONT_SIZE_SMALL, COLOR_TEXT
            )
            if tax_type != self.invoice.tax_type:
                continue
            if tax_type == TAXABLE:
                self.fonts.draw_centered(
                    center_x,
                    baseline(value_top, value_h, FONT_SIZE_NORMAL),
                    fmt_amount(self.totals.tax_amount),
                    FONT_SIZE_NORMAL,
                    COLOR_TEXT,
                )
            else:
                self._check_mark(center_x, value_top + value_h / 2.0)

        x, width = self.columns[3], COLUMN_WIDTHS[3]
        self._cell(x, top, width, TAX_ROW_H)
        text_y = baseline(top, TAX_ROW_H, FONT_SIZE_NORMAL)
        self.fonts.draw_text(x + CELL_PADDING, text_y, "總計", FONT_SIZE_SMALL, COLOR_TEXT)
        self.fonts.draw_right(
            x + width - CELL_PADDING, text_y, fmt_amount(self.totals.grand_total), FONT_SIZE_NORMAL, COLOR_TEXT, bold=True
        )

    def _draw_numeral_row(self) -> None:
        top = self.numeral_top
        x0, w0 = self.columns[0], COLUMN_WIDTHS[0]
        self._cell(x0, top, w0, NUMERAL_ROW_H, header=True)
        self.fonts.draw_centered(x0 + w0 / 2.0, top + 4.5, "總計新臺幣", FONT_SIZE_NORMAL, COLOR_TEXT)
        self.fonts.draw_centered(x0 + w0 / 2.0, top + 8.5, "(中文大寫)", FONT_SIZE_SMALL, COLOR_TEXT)

        digits = grand_total_boxes(self.totals)
        box_width = self._span(1, 4) / len(POSITION_KEYS)
        value_top = top + SUB_HEADER_H
        value_h = NUMERAL_ROW_H - SUB_HEADER_H
        for index, (key, label) in enumerate(zip(POSITION_KEYS, POSITION_LABELS)):
            x = self.columns[1] + index * box_width
            self._cell(x, top, box_width, SUB_HEADER_H)
            self._cell(x, value_top, box_width, value_h)
            center_x = x + box_width / 2.0
            self.fonts.draw_centered(center_x, baseline(top, SUB_HEADER_H, FONT_SIZE_SMALL), label, FONT_SIZE_SMALL, COLOR_TEXT)
            if digits[key]:
                self.fonts.draw_centered(
                    center_x, baseline(value_top, value_h, FONT_SIZE_NORMAL), digits[key], FONT_SIZE_NORMAL, COLOR_TEXT
                )

    def _draw_footer(self) -> None:
        self.fonts.draw_text(MARGIN, FOOTER_Y, FOOTER_NOTE, FONT_SIZE_SMALL, COLOR_MUTED)
        self.fonts.draw_right(PAGE_W - MARGIN, FOOTER_Y, COPY_MARKER, FONT_SIZE_SMALL, COLOR_MUTED)

    def _draw_watermark(self) -> None:
        center_x, center_y = PAGE_W / 2.0, PAGE_H / 2.0
        with self.pdf.local_context(fill_opacity=WATERMARK_OPACITY):
            with self.pdf.rotation(WATERMARK_ANGLE, x=center_x, y=center_y):
                self.fonts.draw_centered(center_x, center_y, "樣本", FONT_SIZE_WATERMARK, COLOR_WATERMARK, bold=True)
                self.fonts.draw_centered(
                    center_x, center_y + 10.0, "SAMPLE", FONT_SIZE_WATERMARK_SUB, COLOR_WATERMARK, bold=True
                )

    def render(self) -> bytes:
        self._draw_header()
        self._draw_buyer_row()
        self._draw_item_rows()
        self._draw_sales_row()
        self._draw_stamp_cell()
        self._draw_tax_row()
        self._draw_numeral_row()
        self._draw_footer()
        self._draw_watermark()
        return bytes(self.pdf.output())


def render_invoice(data: Dict[str, Any]) -> bytes:
    return InvoiceRenderer(invoice_from_payload(data)).render()
