import time
from typing import Optional

import structlog
from pydantic import ValidationError

from gateway.providers.native import NativeResponse
from gateway.schemas import (
    AssistantMessage,
    ChatCompletionResponse,
    Choice,
    Usage,
)

logger = structlog.get_logger()

DEFAULT_FINISH_REASON = "stop"


def usage_from_native(native: NativeResponse) -> Optional[Usage]:
    """Token usage from the first per-model entry, or None when none is reported."""
    first = native.first_usage()
    if first is None:
        return None
    prompt_tokens = first.input_tokens or 0
    completion_tokens = first.output_tokens or 0
    return Usage(
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        total_tokens=prompt_tokens + completion_tokens,
    )


def translate_response(body: bytes, model: str) -> Optional[ChatCompletionResponse]:
    """
    Convert a buffered native response body into a chat completion.

    Returns None when the body is not a native response; the caller then
    forwards the body untouched.
    """
    try:
        native = NativeResponse.model_validate_json(body)
    except ValidationError as e:
        logger.warning(
            "native_response_unparseable",
            error=str(e),
            body=body[:500].decode("utf-8", errors="replace"),
        )
        return None

    usage = usage_from_native(native) or Usage()
    logger.info(
        "native_response_translated",
        input_tokens=usage.prompt_tokens,
        output_tokens=usage.completion_tokens,
    )
    return ChatCompletionResponse(
        id=native.response_id,
        created=int(time.time()),
        model=model,
        choices=[
            Choice(
                index=0,
                message=AssistantMessage(content=native.text),
                finish_reason=native.finish_reason or DEFAULT_FINISH_REASON,
            )
        ],
        usage=usage,
    )
