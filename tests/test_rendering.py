import base64
import unittest
from importlib import util as importlib_util

from docx_builder import PNG_BYTES

FPDF_AVAILABLE = importlib_util.find_spec("fpdf") is not None
FONT_AVAILABLE = False
if FPDF_AVAILABLE:
    from uniform_invoice.fonts import FontManager
    from uniform_invoice.rendering import render_invoice

    FONT_AVAILABLE = FontManager.regular_font_path() is not None


@unittest.skipUnless(FPDF_AVAILABLE, "fpdf2 is not installed")
@unittest.skipUnless(FONT_AVAILABLE, "no Traditional Chinese font found")
class RenderingTests(unittest.TestCase):
    def _assert_pdf(self, pdf: bytes) -> None:
        self.assertIsInstance(pdf, bytes)
        self.assertTrue(pdf.startswith(b"%PDF"))
        self.assertGreater(len(pdf), 100)

    def test_render_invoice_returns_pdf_bytes(self) -> None:
        payload = {
            "buyer_name": "範例股份有限公司",
            "buyer_tax_id": "12345678",
            "buyer_address": "台北市信義區市府路1號",
            "date": "2026-01-15",
            "items": [
                {"name": "顧問費", "quantity": 2, "unit_price": 1500},
                {"name": "交通費", "quantity": 1, "unit_price": 250, "notes": "高鐵"},
            ],
            "stamp_image": base64.b64encode(PNG_BYTES).decode("ascii"),
        }

        self._assert_pdf(render_invoice(payload))

    def test_zero_rate_and_empty_invoices(self) -> None:
        self._assert_pdf(render_invoice({"tax_type": "zero_rate", "items": [{"name": "出口貨物", "quantity": 1, "unit_price": 900}]}))
        self._assert_pdf(render_invoice({}))


if __name__ == "__main__":
    unittest.main()
