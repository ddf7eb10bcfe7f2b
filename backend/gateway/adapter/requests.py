from gateway.providers.native import (
    NativeInput,
    NativeMessage,
    NativeParameters,
    NativeRequest,
)
from gateway.schemas import ChatCompletionRequest


def build_native_request(req: ChatCompletionRequest) -> NativeRequest:
    """
    Map a chat completion request onto the native app completion request.

    A lone user message goes out as `input.prompt`; anything else is sent as
    the ordered `input.messages` list.
    """
    if len(req.messages) == 1 and req.messages[0].role == "user":
        native_input = NativeInput(prompt=req.messages[0].content)
    else:
        native_input = NativeInput(
            messages=[
                NativeMessage(role=m.role, content=m.content, name=m.name or None)
                for m in req.messages
            ]
        )

    return NativeRequest(input=native_input, parameters=_parameters(req))


def _parameters(req: ChatCompletionRequest) -> NativeParameters:
    return NativeParameters(
        temperature=req.temperature,
        top_p=req.top_p,
        max_tokens=req.max_tokens,
        stop=req.stop or None,
        presence_penalty=req.presence_penalty,
        frequency_penalty=req.frequency_penalty,
    )
