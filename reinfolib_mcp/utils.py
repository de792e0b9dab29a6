"""Logging and text helpers shared by the client and both front ends."""
import logging
import os
import sys
import time
import uuid
from pythonjsonlogger import jsonlogger

TRUNCATION_MARKER = "\n...<truncated>"

# ---------- logger JSON ----------
# stderr only: stdout carries the MCP stdio stream
logger = logging.getLogger("reinfolib_mcp")
_handler = logging.StreamHandler(sys.stderr)
_handler.setFormatter(jsonlogger.JsonFormatter("%(levelname)s %(message)s %(asctime)s %(name)s"))
logger.addHandler(_handler)
_level = getattr(logging, os.getenv("REINFOLIB_LOG_LEVEL", "INFO").upper(), None)
logger.setLevel(_level if isinstance(_level, int) else logging.INFO)


def new_request_id() -> str:
    return uuid.uuid4().hex


class Timer:
    """`with Timer() as t: ...` leaves the duration in `t.elapsed_ms`."""

    def __enter__(self):
        self._start = time.perf_counter()
        self.elapsed_ms = 0.0
        return self

    def __exit__(self, *_):
        self.elapsed_ms = round((time.perf_counter() - self._start) * 1000.0, 2)


# ---------- string/bytes helpers ----------
def safe_truncate_bytes(s: str, limit_bytes: int) -> str:
    """Cut `s` to at most `limit_bytes` of UTF-8 without splitting a character."""
    raw = s.encode("utf-8")
    if len(raw) <= limit_bytes:
        return s
    # only the trailing partial character can be invalid
    return raw[:limit_bytes].decode("utf-8", errors="ignore")


def clip_utf8(text: str, limit_bytes: int) -> str:
    """Tool output cap: oversized text keeps its first half plus a marker."""
    if len(text.encode("utf-8")) <= limit_bytes:
        return text
    return safe_truncate_bytes(text, limit_bytes // 2) + TRUNCATION_MARKER


def preview(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + TRUNCATION_MARKER
