"""
Backend error handling: locate the native error object in whatever the
backend sent, and rewrite it as an OpenAI-style error envelope.
"""

from typing import Optional, Tuple

import httpx
import structlog
from pydantic import ValidationError

from gateway.providers.native import NativeError
from gateway.schemas import ErrorDetail, ErrorEnvelope

logger = structlog.get_logger()

STATUS_ERROR_TYPES = {
    400: "invalid_request_error",
    401: "authentication_error",
    403: "permission_error",
    404: "invalid_request_error",
    429: "rate_limit_error",
    500: "server_error",
    502: "server_error",
    503: "server_error",
}
FALLBACK_ERROR_TYPE = "api_error"
GENERIC_ERROR_MESSAGE = "API request failed"


def error_type_for_status(status_code: int) -> str:
    return STATUS_ERROR_TYPES.get(status_code, FALLBACK_ERROR_TYPE)


def _match_braces(buf: bytes, start: int) -> Optional[bytes]:
    # Counts raw braces only; a brace inside a JSON string value will throw
    # the match off.
    depth = 0
    for i in range(start, len(buf)):
        ch = buf[i]
        if ch == ord("{"):
            depth += 1
        elif ch == ord("}"):
            depth -= 1
            if depth == 0:
                return buf[start : i + 1]
    return None


def extract_error_json(body: bytes) -> Optional[bytes]:
    """
    Return the most relevant JSON object in `body`, or None.

    Looks, in order, at: the whole body when it is a single object; the last
    SSE `data:` line carrying an object; the first `{` anywhere in the body.
    """
    trimmed = body.strip()
    if trimmed.startswith(b"{") and trimmed.endswith(b"}"):
        return body

    for line in reversed(body.split(b"\n")):
        line = line.strip()
        if not line.startswith(b"data:"):
            continue
        payload = line[len(b"data:") :].strip()
        if payload.startswith(b"{"):
            return _match_braces(payload, 0) or payload

    start = body.find(b"{")
    if start >= 0:
        return _match_braces(body, start)
    return None


def translate_error(body: bytes, status_code: int) -> Optional[ErrorEnvelope]:
    """
    Map a non-2xx backend body onto the standard error envelope.

    Returns None when nothing usable was found, in which case the caller
    forwards the raw body.
    """
    candidate = extract_error_json(body) or body
    try:
        native = NativeError.model_validate_json(candidate)
    except ValidationError as e:
        logger.warning(
            "native_error_unparseable",
            error=str(e),
            body=body[:500].decode("utf-8", errors="replace"),
        )
        if b'"message"' not in body:
            return None
        native = NativeError(code=FALLBACK_ERROR_TYPE, message=GENERIC_ERROR_MESSAGE)

    envelope = ErrorEnvelope(
        error=ErrorDetail(
            message=native.message or "",
            type=error_type_for_status(status_code),
            code=native.code or None,
        )
    )
    logger.info(
        "native_error_translated",
        status_code=status_code,
        code=native.code,
        message=native.message,
        upstream_request_id=native.request_id,
    )
    return envelope


def translate_transport_error(exc: Exception) -> Tuple[int, ErrorEnvelope]:
    """Status code and envelope for a call that never got a backend response."""
    if isinstance(exc, (httpx.TimeoutException, TimeoutError)):
        return 504, ErrorEnvelope(
            error=ErrorDetail(
                message="Request timed out, please retry later",
                type="timeout_error",
            )
        )
    return 500, ErrorEnvelope(
        error=ErrorDetail(
            message=f"Cannot reach upstream API: {exc}",
            type="server_error",
        )
    )


def error_body(envelope: ErrorEnvelope) -> bytes:
    return envelope.model_dump_json(exclude_none=True).encode("utf-8")
