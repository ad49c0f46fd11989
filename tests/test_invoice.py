import base64
import random
import re
import unittest
from datetime import date

from uniform_invoice.invoice import (
    TAX_EXEMPT,
    TAXABLE,
    ZERO_RATE,
    LineItem,
    calculate_totals,
    decode_image,
    generate_invoice_number,
    invoice_from_payload,
    summarize,
    tax_id_boxes,
)


class TotalsTests(unittest.TestCase):
    def setUp(self) -> None:
        self.items = [
            LineItem(name="顧問費", quantity="2", unit_price="1500"),
            LineItem(name="交通費", quantity="1", unit_price="250"),
            LineItem(name="", quantity="abc", unit_price="10"),
        ]

    def test_taxable_invoices_add_five_percent(self) -> None:
        totals = calculate_totals(self.items, TAXABLE)
        self.assertEqual(totals.sales_total, 3250)
        self.assertEqual(totals.tax_amount, 163)
        self.assertEqual(totals.grand_total, 3413)

    def test_zero_rate_and_exempt_invoices_have_no_tax(self) -> None:
        for tax_type in (ZERO_RATE, TAX_EXEMPT):
            with self.subTest(tax_type=tax_type):
                totals = calculate_totals(self.items, tax_type)
                self.assertEqual(totals.tax_amount, 0)
                self.assertEqual(totals.grand_total, 3250)

    def test_empty_invoice_totals_are_zero(self) -> None:
        totals = calculate_totals([], TAXABLE)
        self.assertEqual((totals.sales_total, totals.tax_amount, totals.grand_total), (0, 0, 0))


class InvoiceHelpersTests(unittest.TestCase):
    def test_invoice_number_shape(self) -> None:
        number = generate_invoice_number(random.Random(7))
        self.assertRegex(number, r"^[A-HJ-NP-Z]{2} \d{8}$")

    def test_invoice_numbers_never_use_i_or_o(self) -> None:
        rng = random.Random(1)
        for _ in range(200):
            self.assertIsNone(re.search(r"[IO]", generate_invoice_number(rng)))

    def test_tax_id_boxes_pad_and_truncate(self) -> None:
        self.assertEqual(tax_id_boxes("1234"), ["1", "2", "3", "4", " ", " ", " ", " "])
        self.assertEqual(len(tax_id_boxes("1234567890")), 8)
        self.assertEqual("".join(tax_id_boxes("1234567890")), "12345678")

    def test_decode_image_accepts_data_uris(self) -> None:
        encoded = base64.b64encode(b"\x89PNG").decode("ascii")
        self.assertEqual(decode_image(f"data:image/png;base64,{encoded}"), b"\x89PNG")
        self.assertEqual(decode_image(encoded), b"\x89PNG")
        with self.assertRaises(ValueError):
            decode_image("not base64!")


class PayloadTests(unittest.TestCase):
    def test_defaults_follow_the_invoice_date(self) -> None:
        invoice = invoice_from_payload({"date": "2025-08-15"})
        self.assertEqual(invoice.invoice_date, date(2025, 8, 15))
        self.assertEqual((invoice.period_start_month, invoice.period_end_month), (7, 8))
        self.assertEqual(invoice.period_year, 114)
        self.assertEqual(invoice.tax_type, TAXABLE)
        self.assertRegex(invoice.invoice_number, r"^[A-Z]{2} \d{8}$")
        self.assertEqual(len(invoice.form_rows), 4)

    def test_explicit_values_are_kept(self) -> None:
        invoice = invoice_from_payload(
            {
                "buyer_name": " 範例股份有限公司 ",
                "buyer_tax_id": "12345678",
                "date": "2025-01-20",
                "period_start_month": 1,
                "period_end_month": 2,
                "period_year": 114,
                "tax_type": ZERO_RATE,
                "number": "AB 12345678",
                "items": [{"name": "服務費", "quantity": 1, "unit_price": 1000}],
            }
        )
        self.assertEqual(invoice.buyer_name, "範例股份有限公司")
        self.assertEqual(invoice.invoice_number, "AB 12345678")
        self.assertEqual(invoice.line_items[0].amount, 1000)
        self.assertEqual(invoice.totals.grand_total, 1000)

    def test_rejects_invalid_values(self) -> None:
        with self.assertRaises(ValueError):
            invoice_from_payload({"tax_type": "luxury"})
        with self.assertRaises(ValueError):
            invoice_from_payload({"period_start_month": 2, "period_end_month": 3})
        with self.assertRaises(ValueError):
            invoice_from_payload({"items": ["not an object"]})

    def test_summary_contains_the_printed_strings(self) -> None:
        summary = summarize(
            invoice_from_payload(
                {
                    "date": "2025-01-20",
                    "number": "AB 12345678",
                    "items": [{"name": "服務費", "quantity": 1, "unit_price": 1000}],
                }
            )
        )
        self.assertEqual(summary["period"], "一一四年一、二月份")
        self.assertEqual(summary["date"]["formatted"], "中華民國 114 年 1 月 20 日")
        self.assertEqual(summary["tax_amount"], 50)
        self.assertEqual(summary["grand_total"], 1050)
        self.assertEqual(summary["grand_total_text"], "1,050")
        self.assertEqual(summary["capital_numerals"], "壹仟零伍拾元")
        self.assertEqual(summary["positioned_digits"]["qian"], "壹")

    def test_credit_note_leaves_the_digit_boxes_blank(self) -> None:
        summary = summarize(invoice_from_payload({"items": [{"name": "折讓", "quantity": "-1", "unit_price": "100"}]}))

        self.assertEqual(summary["grand_total"], -105)
        self.assertEqual(summary["capital_numerals"], "負壹佰零伍元")
        self.assertEqual(set(summary["positioned_digits"].values()), {""})


if __name__ == "__main__":
    unittest.main()
