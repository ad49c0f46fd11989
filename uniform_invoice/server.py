"""HTTP API: invoice PDFs, invoice summaries and letter template rendering."""

from __future__ import annotations

import atexit
import base64
import binascii
import errno
import json
import logging
import multiprocessing as mp
import threading
from concurrent.futures import ProcessPoolExecutor, TimeoutError as FutureTimeoutError
from concurrent.futures.process import BrokenProcessPool
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Dict, Optional, Tuple

from . import config
from .errors import TemplateRenderError
from .invoice import FORM_ROWS, Invoice, invoice_from_payload, summarize
from .numerals import POSITION_KEYS
from .templating import render_template

logger = logging.getLogger(__name__)

MAX_GRAND_TOTAL = 10 ** len(POSITION_KEYS) - 1
TEMPLATE_ERROR_STATUS = {"invalid_archive": 400}
HEALTH_PATHS = ("/", "/health", "/healthz", "/ready")
DISCONNECT_ERRNOS = {errno.EPIPE, errno.ECONNRESET, errno.ETIMEDOUT}


class DependencyError(RuntimeError):
    """Raised when a required runtime dependency is missing."""


class ApiError(Exception):
    """A failed request, answered with a JSON ``{"error", "detail"}`` body."""

    def __init__(self, status: int, error: str, detail: str, **extra: Any) -> None:
        super().__init__(detail)
        self.status = status
        self.error = error
        self.detail = detail
        self.extra = extra

    @property
    def body(self) -> Dict[str, Any]:
        return {"error": self.error, "detail": self.detail, **self.extra}


def is_client_disconnect(exc: BaseException) -> bool:
    if isinstance(exc, (BrokenPipeError, ConnectionResetError, TimeoutError)):
        return True
    return isinstance(exc, OSError) and exc.errno in DISCONNECT_ERRNOS


def load_render_invoice():
    try:
        from .rendering import render_invoice
    except ModuleNotFoundError as exc:
        if exc.name == "fpdf":
            raise DependencyError(
                "Missing dependency 'fpdf2'. Install the project with 'pip install -e .'."
            ) from exc
        raise
    return render_invoice


class RenderPool:
    """Spawned worker processes for PDF renders behind a bounded waiting room.

    At most ``max_inflight`` requests hold a slot; the rest wait up to
    ``queue_timeout_ms`` and are then turned away with 503.
    """

    def __init__(self, workers: int, max_inflight: int, queue_timeout_ms: int, render_timeout_ms: int) -> None:
        self.workers = workers
        self.max_inflight = max_inflight
        self.queue_timeout_ms = queue_timeout_ms
        self.render_timeout_ms = render_timeout_ms
        self._slots = threading.BoundedSemaphore(max_inflight)
        self._lock = threading.Lock()
        self._executor: Optional[ProcessPoolExecutor] = None

    def executor(self) -> ProcessPoolExecutor:
        with self._lock:
            if self._executor is None:
                self._executor = ProcessPoolExecutor(max_workers=self.workers, mp_context=mp.get_context("spawn"))
            return self._executor

    def discard(self, broken: ProcessPoolExecutor) -> None:
        with self._lock:
            if self._executor is broken:
                self._executor = None
        broken.shutdown(wait=False, cancel_futures=True)

    def shutdown(self) -> None:
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=False, cancel_futures=True)

    def render(self, payload: Dict[str, Any]) -> bytes:
        if not self._slots.acquire(timeout=self.queue_timeout_ms / 1000.0):
            raise ApiError(
                503,
                "server_busy",
                "Render queue is full; retry shortly.",
                retry_after_seconds=max(1, (self.queue_timeout_ms + 999) // 1000),
                max_inflight_renders=self.max_inflight,
            )
        try:
            return self._render(payload)
        finally:
            self._slots.release()

    def _render(self, payload: Dict[str, Any]) -> bytes:
        render_invoice = load_render_invoice()
        executor = self.executor()
        try:
            future = executor.submit(render_invoice, payload)
        except BrokenProcessPool:
            self.discard(executor)
            executor = self.executor()
            future = executor.submit(render_invoice, payload)

        try:
            return future.result(timeout=self.render_timeout_ms / 1000.0)
        except FutureTimeoutError:
            future.cancel()
            raise ApiError(504, "render_timeout", f"Render exceeded timeout of {self.render_timeout_ms} ms.")
        except BrokenProcessPool:
            self.discard(executor)
            raise ApiError(503, "render_pool_restarting", "Render worker pool restarted; retry shortly.")


RENDER_POOL = RenderPool(
    config.MAX_CONCURRENT_RENDERS,
    config.MAX_INFLIGHT_RENDERS,
    config.RENDER_QUEUE_TIMEOUT_MS,
    config.RENDER_TIMEOUT_MS,
)
atexit.register(RENDER_POOL.shutdown)


def parse_json_object(body: bytes) -> Dict[str, Any]:
    try:
        payload = json.loads(body.decode("utf-8"))
    except UnicodeDecodeError:
        raise ApiError(400, "invalid_encoding", "Body must be UTF-8 encoded JSON.") from None
    except json.JSONDecodeError as exc:
        raise ApiError(400, "invalid_json", f"{exc.msg} (line {exc.lineno}, column {exc.colno})") from None

    if not isinstance(payload, dict):
        raise ApiError(400, "invalid_payload", "JSON root must be an object.")
    return payload


def validate_invoice_payload(body: bytes) -> Tuple[Dict[str, Any], Invoice]:
    """Parse an invoice request, rejecting anything the printed form cannot hold."""
    payload = parse_json_object(body)

    items = payload.get("items") or []
    if not isinstance(items, list):
        raise ApiError(400, "invalid_payload", "'items' must be an array.")
    if len(items) > FORM_ROWS:
        raise ApiError(
            400,
            "too_many_items",
            f"The invoice form has {FORM_ROWS} item rows; got {len(items)} items.",
            max_items=FORM_ROWS,
        )

    try:
        invoice = invoice_from_payload(payload)
    except (ValueError, TypeError) as exc:
        raise ApiError(400, "invalid_payload", str(exc)) from exc

    if abs(invoice.totals.grand_total) > MAX_GRAND_TOTAL:
        raise ApiError(
            400,
            "amount_too_large",
            f"Grand total must be within ±{MAX_GRAND_TOTAL:,}, the widest amount the form can show.",
        )
    return payload, invoice


def validate_template_payload(body: bytes) -> Tuple[bytes, Dict[str, Any]]:
    payload = parse_json_object(body)

    raw_template = payload.get("template")
    if not isinstance(raw_template, str) or not raw_template:
        raise ApiError(400, "invalid_payload", "'template' must be a base64-encoded .docx file.")
    try:
        template = base64.b64decode(raw_template, validate=True)
    except (binascii.Error, ValueError):
        raise ApiError(400, "invalid_payload", "'template' is not valid base64.") from None

    fields = payload.get("fields") or {}
    if not isinstance(fields, dict):
        raise ApiError(400, "invalid_payload", "'fields' must be an object.")
    for key, value in fields.items():
        if isinstance(value, (dict, list)):
            raise ApiError(400, "invalid_payload", f"Field '{key}' must be a string, number or boolean.")
    return template, fields


class InvoiceHandler(BaseHTTPRequestHandler):
    MAX_BODY_BYTES = config.MAX_BODY_BYTES
    POST_ROUTES = {
        "/invoice": "_post_invoice_pdf",
        "/invoice/summary": "_post_invoice_summary",
        "/template": "_post_template",
    }

    def _write_response(self, status: int, content_type: str, body: bytes) -> bool:
        try:
            self.send_response(status)
            self.send_header("Content-Type", content_type)
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)
        except Exception as exc:
            if is_client_disconnect(exc):
                return False
            raise
        return True

    def _send_json(self, status: int, payload: Dict[str, Any]) -> bool:
        body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        return self._write_response(status, "application/json; charset=utf-8", body)

    def _read_body(self) -> Optional[bytes]:
        header = self.headers.get("Content-Length")
        if header is None:
            raise ApiError(411, "missing_content_length", "Content-Length header is required.")
        try:
            length = int(header)
        except ValueError:
            raise ApiError(400, "invalid_content_length", "Content-Length must be an integer.") from None
        if length <= 0:
            raise ApiError(400, "empty_body", "Request body cannot be empty.")
        if length > self.MAX_BODY_BYTES:
            raise ApiError(413, "payload_too_large", f"Body exceeds {self.MAX_BODY_BYTES} bytes.")

        try:
            return self.rfile.read(length)
        except Exception as exc:
            if is_client_disconnect(exc):
                return None
            raise

    def do_POST(self) -> None:
        route = self.POST_ROUTES.get(self.path.rstrip("/") or "/")
        try:
            if route is None:
                raise ApiError(404, "not_found", "Unsupported endpoint.")
            body = self._read_body()
            if body is not None:
                getattr(self, route)(body)
        except ApiError as exc:
            self._send_json(exc.status, exc.body)

    def _post_invoice_summary(self, body: bytes) -> None:
        _, invoice = validate_invoice_payload(body)
        self._send_json(200, summarize(invoice))

    def _post_invoice_pdf(self, body: bytes) -> None:
        payload, _ = validate_invoice_payload(body)
        try:
            pdf = RENDER_POOL.render(payload)
        except ApiError:
            raise
        except Exception as exc:
            logger.exception("Invoice render failed")
            raise ApiError(500, "render_failed", str(exc)) from exc
        self._write_response(200, "application/pdf", pdf)

    def _post_template(self, body: bytes) -> None:
        template, fields = validate_template_payload(body)
        try:
            output = render_template(template, fields)
        except TemplateRenderError as exc:
            raise ApiError(TEMPLATE_ERROR_STATUS.get(exc.kind, 422), exc.kind, exc.message) from exc

        self._send_json(
            200,
            {
                "html": output.html,
                "document": base64.b64encode(output.document).decode("ascii"),
                "logo": output.logo,
                "messages": output.messages,
                "repaired": output.repaired,
            },
        )

    def do_GET(self) -> None:
        if self.path in HEALTH_PATHS:
            self._send_json(200, {"status": "ok"})
        else:
            self._send_json(404, {"error": "not_found", "detail": "Unsupported endpoint."})

    def handle_one_request(self) -> None:
        try:
            super().handle_one_request()
        except Exception as exc:
            if not is_client_disconnect(exc):
                raise

    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("%s - %s", self.address_string(), format % args)


class InvoiceHTTPServer(ThreadingHTTPServer):
    daemon_threads = True
    allow_reuse_address = True
    request_queue_size = config.LISTEN_BACKLOG


def run(host: str = "0.0.0.0", port: int = 8080) -> None:
    load_render_invoice()
    RENDER_POOL.executor()
    server = InvoiceHTTPServer((host, port), InvoiceHandler)
    logger.info("Uniform invoice API listening on http://%s:%s", host, port)
    server.serve_forever()
