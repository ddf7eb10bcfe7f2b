from gateway.adapter.errors import (
    error_type_for_status,
    extract_error_json,
    translate_error,
    translate_transport_error,
)
from gateway.adapter.requests import build_native_request
from gateway.adapter.responses import translate_response
from gateway.adapter.stream import StreamCursor, StreamTranslator, translate_stream

__all__ = [
    "StreamCursor",
    "StreamTranslator",
    "build_native_request",
    "error_type_for_status",
    "extract_error_json",
    "translate_error",
    "translate_response",
    "translate_stream",
    "translate_transport_error",
]
