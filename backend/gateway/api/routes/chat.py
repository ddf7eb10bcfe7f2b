import asyncio
from typing import AsyncIterator, Optional

import httpx
import structlog
from fastapi import APIRouter, Header, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse

from gateway.adapter import (
    StreamTranslator,
    build_native_request,
    translate_error,
    translate_response,
    translate_stream,
    translate_transport_error,
)
from gateway.adapter.errors import error_body
from gateway.adapter.stream import sse_format
from gateway.api.deps import ForwarderDep
from gateway.core.config import settings
from gateway.observability import record_stream_end, record_upstream
from gateway.providers.bailian import BailianForwarder
from gateway.schemas import ChatCompletionRequest
from gateway.services.router import resolve_upstream
from gateway.utils.rate_limit import caller_key, get_limiter

router = APIRouter(tags=["chat"])
logger = structlog.get_logger()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # Disable nginx buffering
}
# Consumed by httpx (framing, decompression) or set again on our side
_DROPPED_RESPONSE_HEADERS = {
    "content-type",
    "content-length",
    "content-encoding",
    "transfer-encoding",
    "connection",
    "keep-alive",
    "date",
    "server",
}
LOG_BODY_LIMIT = 500


def _truncate(body: bytes) -> str:
    text = body.decode("utf-8", errors="replace")
    if len(text) > LOG_BODY_LIMIT:
        return text[:LOG_BODY_LIMIT] + "...(truncated)"
    return text


def _sse_bytes(payload: bytes) -> bytes:
    return b"data: " + payload + b"\n\n"


async def _stream_with_timeout(generator: AsyncIterator[str], timeout_seconds: float) -> AsyncIterator[str]:
    """Bound the lifetime of a whole streamed exchange"""
    try:
        async with asyncio.timeout(timeout_seconds):
            async for chunk in generator:
                yield chunk
    except TimeoutError as e:
        logger.error("Streaming timeout exceeded", timeout_seconds=timeout_seconds)
        record_stream_end("error")
        _, envelope = translate_transport_error(e)
        yield sse_format(envelope.model_dump(exclude_none=True))
    finally:
        await generator.aclose()


async def _relay_native(upstream: httpx.Response, model: str, request_id: str) -> AsyncIterator[str]:
    translator = StreamTranslator(model)
    try:
        async for event in translate_stream(upstream.aiter_lines(), model, translator):
            yield event
        if translator.finish_reason is not None:
            record_stream_end("finished")
            logger.info(
                "Stream completed",
                finish_reason=translator.finish_reason,
                sent_chars=translator.cursor.last_length,
                request_id=request_id,
            )
        else:
            record_stream_end("abnormal")
    except httpx.HTTPError as e:
        logger.error("Error reading upstream stream", error=str(e), request_id=request_id)
        record_stream_end("error")
        _, envelope = translate_transport_error(e)
        yield sse_format(envelope.model_dump(exclude_none=True))
    finally:
        await upstream.aclose()


async def _relay_raw(upstream: httpx.Response, request_id: str) -> AsyncIterator[bytes]:
    try:
        async for chunk in upstream.aiter_bytes():
            yield chunk
    except httpx.HTTPError as e:
        logger.error("Error reading upstream stream", error=str(e), request_id=request_id)
        _, envelope = translate_transport_error(e)
        yield _sse_bytes(error_body(envelope))
    finally:
        await upstream.aclose()


async def _stream(
    forwarder: BailianForwarder,
    endpoint: str,
    native: bool,
    body: bytes,
    model: str,
    request_id: str,
) -> Response:
    mode = "native" if native else "compatible"
    try:
        upstream = await forwarder.open_stream(endpoint, body)
    except httpx.HTTPError as e:
        logger.error("Streaming request failed", error=str(e), request_id=request_id)
        record_upstream(mode, "error")
        status_code, envelope = translate_transport_error(e)
        return Response(
            content=_sse_bytes(error_body(envelope)),
            status_code=status_code,
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    record_upstream(mode, upstream.status_code)
    if not upstream.is_success:
        try:
            raw = await upstream.aread()
        except httpx.HTTPError as e:
            logger.error("Error reading upstream error body", error=str(e), request_id=request_id)
            raw = b""
        finally:
            await upstream.aclose()
        logger.warning("Upstream returned an error", status_code=upstream.status_code, body=_truncate(raw))
        payload = raw
        if native:
            envelope = translate_error(raw, upstream.status_code)
            if envelope is not None:
                payload = error_body(envelope)
        return Response(
            content=_sse_bytes(payload),
            status_code=upstream.status_code,
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    if native:
        events = _stream_with_timeout(
            _relay_native(upstream, model, request_id), settings.STREAM_TIMEOUT
        )
    else:
        events = _relay_raw(upstream, request_id)
    return StreamingResponse(events, media_type="text/event-stream", headers=SSE_HEADERS)


async def _complete(
    forwarder: BailianForwarder,
    endpoint: str,
    native: bool,
    body: bytes,
    model: str,
    accept: Optional[str],
    request_id: str,
) -> Response:
    mode = "native" if native else "compatible"
    try:
        upstream = await forwarder.complete(endpoint, body, accept=accept)
    except (httpx.HTTPError, TimeoutError) as e:
        logger.error("Upstream request failed", error=str(e) or type(e).__name__, request_id=request_id)
        record_upstream(mode, "error")
        status_code, envelope = translate_transport_error(e)
        return JSONResponse(status_code=status_code, content=envelope.model_dump(exclude_none=True))

    record_upstream(mode, upstream.status_code)
    content = upstream.content
    if native:
        if upstream.is_success:
            converted = translate_response(content, model)
            if converted is not None:
                content = converted.model_dump_json().encode("utf-8")
            else:
                logger.warning("Response translation failed, forwarding raw body", request_id=request_id)
        else:
            envelope = translate_error(content, upstream.status_code)
            if envelope is not None:
                content = error_body(envelope)

    response = Response(content=content, status_code=upstream.status_code, media_type="application/json")
    for key, value in upstream.headers.multi_items():
        if key.lower() not in _DROPPED_RESPONSE_HEADERS:
            response.headers.append(key, value)
    logger.info("Upstream response received", status_code=upstream.status_code, request_id=request_id)
    return response


@router.post("/chat/completions")
async def chat_completions(
    payload: ChatCompletionRequest,
    request: Request,
    forwarder: ForwarderDep,
    authorization: str | None = Header(default=None),
):
    """
    OpenAI-compatible chat completions, served by the Bailian app backend.
    """
    request_id = request.state.request_id
    upstream = resolve_upstream(settings)

    if upstream.native:
        body = build_native_request(payload).to_json()
    else:
        body = payload.model_dump_json(exclude_none=True).encode("utf-8")

    logger.info(
        "Forwarding request",
        endpoint=upstream.endpoint,
        native=upstream.native,
        stream=payload.stream,
        body=_truncate(body),
    )

    async with get_limiter(caller_key(authorization)):
        if payload.stream:
            return await _stream(
                forwarder, upstream.endpoint, upstream.native, body, payload.model, request_id
            )
        return await _complete(
            forwarder,
            upstream.endpoint,
            upstream.native,
            body,
            payload.model,
            request.headers.get("accept"),
            request_id,
        )
