"""Layout constants of the three-copy Uniform Invoice form (millimetres, top-left origin)."""

from __future__ import annotations

PAGE_W = 190.0
PAGE_H = 109.0
MARGIN = 4.0

# Header row
HEADER_Y = 9.0
PERIOD_Y = 14.0

# Buyer row
BUYER_Y = 20.5
TAX_ID_LABEL_X = 62.0
TAX_ID_BOX = 4.2
TAX_ID_BOX_GAP = 0.5
ADDRESS_LABEL_X = 116.0

# Item table
TABLE_X = MARGIN
TABLE_Y = 23.5
TABLE_W = PAGE_W - 2 * MARGIN
COLUMN_FRACTIONS = (0.40, 0.10, 0.12, 0.15, 0.23)
COLUMN_WIDTHS = tuple(TABLE_W * fraction for fraction in COLUMN_FRACTIONS)

HEADER_ROW_H = 6.5
ITEM_ROW_H = 8.0
SALES_ROW_H = 7.0
TAX_ROW_H = 11.0
NUMERAL_ROW_H = 11.0
SUB_HEADER_H = 4.5
CELL_PADDING = 1.5

FOOTER_Y = 97.0

# Type sizes (points)
FONT_SIZE_TITLE = 13
FONT_SIZE_NORMAL = 8
FONT_SIZE_SMALL = 6
FONT_SIZE_WATERMARK = 64
FONT_SIZE_WATERMARK_SUB = 20

PT_TO_MM = 25.4 / 72.0
LINE_WIDTH = 0.2

COLOR_TEXT = (0, 0, 0)
COLOR_MUTED = (107, 114, 128)
COLOR_HINT = (59, 130, 246)
COLOR_HEADER_FILL = (249, 250, 251)
COLOR_RULE = (0, 0, 0)
COLOR_WATERMARK = (220, 38, 38)
WATERMARK_OPACITY = 0.08
WATERMARK_ANGLE = 45

STAMP_MAX_W = 28.0
STAMP_MAX_H = 10.0
