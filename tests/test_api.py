import base64
import http.client
import json
import threading
import unittest

from docx_builder import build_docx
from uniform_invoice.server import (
    ApiError,
    InvoiceHandler,
    InvoiceHTTPServer,
    validate_invoice_payload,
    validate_template_payload,
)


def _json_bytes(payload: object) -> bytes:
    return json.dumps(payload).encode("utf-8")


class InvoiceValidationTests(unittest.TestCase):
    def _rejection(self, body: bytes) -> ApiError:
        with self.assertRaises(ApiError) as ctx:
            validate_invoice_payload(body)
        return ctx.exception

    def test_accepts_valid_payload(self) -> None:
        payload, invoice = validate_invoice_payload(
            _json_bytes({"items": [{"name": "顧問費", "quantity": 1, "unit_price": 2000}]})
        )

        self.assertIn("items", payload)
        self.assertEqual(invoice.totals.grand_total, 2100)

    def test_rejects_invalid_utf8(self) -> None:
        error = self._rejection(b"\xff")

        self.assertEqual(error.status, 400)
        self.assertEqual(error.error, "invalid_encoding")

    def test_rejects_invalid_json(self) -> None:
        error = self._rejection(b'{"items":')

        self.assertEqual(error.status, 400)
        self.assertEqual(error.error, "invalid_json")

    def test_rejects_non_object_root(self) -> None:
        error = self._rejection(_json_bytes(["bad-root"]))

        self.assertEqual(error.status, 400)
        self.assertEqual(error.error, "invalid_payload")

    def test_rejects_non_array_items(self) -> None:
        error = self._rejection(_json_bytes({"items": "bad"}))

        self.assertEqual(error.status, 400)
        self.assertEqual(error.error, "invalid_payload")

    def test_rejects_more_items_than_the_form_holds(self) -> None:
        items = [{"name": f"item {index}", "quantity": 1, "unit_price": 1} for index in range(5)]
        error = self._rejection(_json_bytes({"items": items}))

        self.assertEqual(error.status, 400)
        self.assertEqual(error.error, "too_many_items")
        self.assertEqual(error.body["max_items"], 4)

    def test_rejects_amounts_wider_than_the_form(self) -> None:
        error = self._rejection(
            _json_bytes({"items": [{"name": "土地", "quantity": 1, "unit_price": 1_000_000_000}]})
        )

        self.assertEqual(error.error, "amount_too_large")

    def test_rejects_negative_amounts_wider_than_the_form(self) -> None:
        error = self._rejection(
            _json_bytes({"items": [{"name": "退款", "quantity": "-1", "unit_price": "2000000000"}]})
        )

        self.assertEqual(error.status, 400)
        self.assertEqual(error.error, "amount_too_large")

    def test_rejects_unknown_tax_type_and_period(self) -> None:
        for payload in ({"tax_type": "luxury"}, {"period_start_month": 2, "period_end_month": 3}):
            with self.subTest(payload=payload):
                self.assertEqual(self._rejection(_json_bytes(payload)).error, "invalid_payload")


class TemplateValidationTests(unittest.TestCase):
    def test_accepts_template_and_fields(self) -> None:
        template = build_docx(["{{Name}}"])
        encoded = base64.b64encode(template).decode("ascii")

        parsed = validate_template_payload(_json_bytes({"template": encoded, "fields": {"Name": "ACME", "vip": False}}))

        self.assertEqual(parsed, (template, {"Name": "ACME", "vip": False}))

    def test_fields_default_to_empty(self) -> None:
        _, fields = validate_template_payload(_json_bytes({"template": "UEsFBg=="}))
        self.assertEqual(fields, {})

    def test_rejects_missing_or_invalid_template(self) -> None:
        for payload in ({}, {"template": ""}, {"template": "not base64!"}):
            with self.subTest(payload=payload):
                with self.assertRaises(ApiError) as ctx:
                    validate_template_payload(_json_bytes(payload))
                self.assertEqual(ctx.exception.status, 400)
                self.assertEqual(ctx.exception.error, "invalid_payload")

    def test_rejects_nested_field_values(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            validate_template_payload(_json_bytes({"template": "UEsFBg==", "fields": {"a": {"b": 1}}}))
        self.assertIn("'a'", ctx.exception.detail)


class HandlerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.server = InvoiceHTTPServer(("127.0.0.1", 0), InvoiceHandler)
        self.thread = threading.Thread(target=self.server.serve_forever, daemon=True)
        self.thread.start()

    def tearDown(self) -> None:
        self.server.shutdown()
        self.server.server_close()
        self.thread.join()

    def _request(self, method: str, path: str, payload: object = None):
        connection = http.client.HTTPConnection(*self.server.server_address, timeout=10)
        body = None if payload is None else _json_bytes(payload)
        headers = {} if body is None else {"Content-Type": "application/json"}
        try:
            connection.request(method, path, body=body, headers=headers)
            response = connection.getresponse()
            return response.status, json.loads(response.read().decode("utf-8"))
        finally:
            connection.close()

    def test_health(self) -> None:
        self.assertEqual(self._request("GET", "/health"), (200, {"status": "ok"}))

    def test_unknown_route(self) -> None:
        status, body = self._request("POST", "/nowhere", {})
        self.assertEqual(status, 404)
        self.assertEqual(body["error"], "not_found")

    def test_invoice_summary(self) -> None:
        status, body = self._request(
            "POST",
            "/invoice/summary",
            {"date": "2025-01-20", "items": [{"name": "服務費", "quantity": 1, "unit_price": 1000}]},
        )

        self.assertEqual(status, 200)
        self.assertEqual(body["period"], "一一四年一、二月份")
        self.assertEqual(body["capital_numerals"], "壹仟零伍拾元")

    def test_negative_invoice_summary(self) -> None:
        status, body = self._request(
            "POST", "/invoice/summary", {"items": [{"name": "折讓", "quantity": "-1", "unit_price": "100"}]}
        )

        self.assertEqual(status, 200)
        self.assertEqual(body["capital_numerals"], "負壹佰零伍元")
        self.assertEqual(set(body["positioned_digits"].values()), {""})

    def test_template_rendering(self) -> None:
        template = base64.b64encode(build_docx(["Dear {{Name}}"])).decode("ascii")
        status, body = self._request("POST", "/template", {"template": template, "fields": {"Name": "ACME"}})

        self.assertEqual(status, 200)
        self.assertIn("Dear ACME", body["html"])
        self.assertIsNone(body["logo"])
        self.assertFalse(body["repaired"])
        self.assertTrue(base64.b64decode(body["document"]).startswith(b"PK"))

    def test_template_errors(self) -> None:
        not_a_docx = base64.b64encode(b"plain text").decode("ascii")
        status, body = self._request("POST", "/template", {"template": not_a_docx})
        self.assertEqual(status, 400)
        self.assertEqual(body["error"], "invalid_archive")

        broken = base64.b64encode(build_docx(["{{Name"])).decode("ascii")
        status, body = self._request("POST", "/template", {"template": broken})
        self.assertEqual(status, 422)
        self.assertEqual(body["error"], "multi_error")
        self.assertTrue(body["detail"].startswith("Template Issues Found:"))


if __name__ == "__main__":
    unittest.main()
