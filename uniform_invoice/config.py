"""Runtime configuration loaded from environment variables."""

from __future__ import annotations

import os


def env_int(name: str, default: int, minimum: int = 1) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value >= minimum else default


def env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


HOST = env_str("UNIFORM_INVOICE_HOST", "0.0.0.0")
PORT = env_int("UNIFORM_INVOICE_PORT", 8080, minimum=1)
LOG_LEVEL = env_str("UNIFORM_INVOICE_LOG_LEVEL", "INFO").upper()

DEFAULT_MAX_CONCURRENT_RENDERS = max(2, min(16, os.cpu_count() or 2))
MAX_CONCURRENT_RENDERS = env_int(
    "UNIFORM_INVOICE_MAX_CONCURRENT_RENDERS",
    DEFAULT_MAX_CONCURRENT_RENDERS,
    minimum=1,
)
MAX_INFLIGHT_RENDERS = env_int(
    "UNIFORM_INVOICE_MAX_INFLIGHT_RENDERS",
    max(32, MAX_CONCURRENT_RENDERS * 4),
    minimum=1,
)
RENDER_QUEUE_TIMEOUT_MS = env_int("UNIFORM_INVOICE_RENDER_QUEUE_TIMEOUT_MS", 30000, minimum=0)
RENDER_TIMEOUT_MS = env_int("UNIFORM_INVOICE_RENDER_TIMEOUT_MS", 60000, minimum=1000)

# Templates arrive base64-encoded inside JSON, a third larger than the .docx.
MAX_BODY_BYTES = env_int("UNIFORM_INVOICE_MAX_BODY_BYTES", 32 * 1024 * 1024, minimum=1024)
LISTEN_BACKLOG = env_int("UNIFORM_INVOICE_LISTEN_BACKLOG", 128, minimum=1)

LOGO_ALT_TEXT = env_str("UNIFORM_INVOICE_LOGO_ALT", "Logo")
