"""CJK font discovery and text drawing helpers."""

from __future__ import annotations

import os
import threading
from typing import List, Optional, Tuple

from fpdf import FPDF

_PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def find_font_path(env_var: str, candidates: List[str]) -> Optional[str]:
    """First existing file among the ``env_var`` override and ``candidates``."""
    override = os.getenv(env_var)
    paths = [override, *candidates] if override else candidates
    return next((path for path in paths if os.path.exists(path)), None)


FONT_INIT_LOCK = threading.Lock()
FAKE_BOLD_OFFSET = 0.12

Color = Tuple[int, int, int]


class FontManager:
    """Registers a Traditional Chinese font with the PDF and draws text with it.

    Collections (.ttc) are not loaded, so candidates are single-face .ttf/.otf
    files.
    """

    FAMILY = "InvoiceCJK"
    BUNDLED_REGULAR = os.path.join(_PROJECT_ROOT, "fonts", "NotoSansTC-Regular.ttf")
    BUNDLED_BOLD = os.path.join(_PROJECT_ROOT, "fonts", "NotoSansTC-Bold.ttf")
    SYSTEM_REGULAR_CANDIDATES = [
        "/usr/share/fonts/truetype/noto/NotoSansTC-Regular.ttf",
        "/usr/share/fonts/opentype/noto/NotoSansTC-Regular.otf",
        "/usr/share/fonts/google-noto-sans-tc-fonts/NotoSansTC-Regular.otf",
        "/usr/share/fonts/truetype/arphic-bkai00mp/bkai00mp.ttf",
        "/usr/share/fonts/truetype/arphic-bsmi00lp/bsmi00lp.ttf",
        "/Library/Fonts/Arial Unicode.ttf",
        "/System/Library/Fonts/Supplemental/Arial Unicode.ttf",
        "C:/Windows/Fonts/kaiu.ttf",
    ]
    SYSTEM_BOLD_CANDIDATES = [
        "/usr/share/fonts/truetype/noto/NotoSansTC-Bold.ttf",
        "/usr/share/fonts/opentype/noto/NotoSansTC-Bold.otf",
        "/usr/share/fonts/google-noto-sans-tc-fonts/NotoSansTC-Bold.otf",
    ]

    def __init__(self, pdf: FPDF) -> None:
        self.pdf = pdf
        self.family = self.FAMILY
        self.has_bold = False

        regular_path = self.regular_font_path()
        if not regular_path:
            raise RuntimeError(
                "Traditional Chinese font not found. Set UNIFORM_INVOICE_FONT_PATH to a .ttf or .otf file."
            )

        bold_path = find_font_path(
            "UNIFORM_INVOICE_FONT_BOLD_PATH",
            [self.BUNDLED_BOLD, *self.SYSTEM_BOLD_CANDIDATES],
        )

        with FONT_INIT_LOCK:
            self.pdf.add_font(self.FAMILY, "", regular_path)
            if bold_path:
                self.pdf.add_font(self.FAMILY, "B", bold_path)
                self.has_bold = True

    @classmethod
    def regular_font_path(cls) -> Optional[str]:
        return find_font_path(
            "UNIFORM_INVOICE_FONT_PATH",
            [cls.BUNDLED_REGULAR, *cls.SYSTEM_REGULAR_CANDIDATES],
        )

    def _select(self, size: float, bold: bool) -> None:
        self.pdf.set_font(self.family, "B" if bold and self.has_bold else "", size)

    def text_width(self, text: str, size: float, bold: bool = False) -> float:
        self._select(size, bold)
        return self.pdf.get_string_width(text)

    def draw_text(self, x: float, y: float, text: str, size: float, color: Color, bold: bool = False) -> None:
        """Write ``text`` with its baseline at ``y``."""
        self._select(size, bold)
        self.pdf.set_text_color(*color)
        self.pdf.text(x, y, text)
        # Overprint when no bold face is installed.
        if bold and not self.has_bold:
            self.pdf.text(x + FAKE_BOLD_OFFSET, y, text)

    def draw_centered(self, center_x: float, y: float, text: str, size: float, color: Color, bold: bool = False) -> None:
        self.draw_text(center_x - self.text_width(text, size, bold) / 2.0, y, text, size, color, bold)

    def draw_right(self, right_x: float, y: float, text: str, size: float, color: Color, bold: bool = False) -> None:
        self.draw_text(right_x - self.text_width(text, size, bold), y, text, size, color, bold)
