import json

from gateway.adapter import build_native_request
from gateway.schemas import ChatCompletionRequest


def _request(**kwargs) -> ChatCompletionRequest:
    return ChatCompletionRequest.model_validate({"model": "qwen-plus", **kwargs})


def test_single_user_message_uses_prompt() -> None:
    req = _request(messages=[{"role": "user", "content": "hi"}])
    native = json.loads(build_native_request(req).to_json())
    assert native == {"input": {"prompt": "hi"}, "parameters": {}, "debug": {}}


def test_single_non_user_message_uses_messages() -> None:
    req = _request(messages=[{"role": "system", "content": "be brief"}])
    native = json.loads(build_native_request(req).to_json())
    assert "prompt" not in native["input"]
    assert native["input"]["messages"] == [{"role": "system", "content": "be brief"}]


def test_conversation_keeps_order_and_names() -> None:
    req = _request(
        messages=[
            {"role": "system", "content": "be brief"},
            {"role": "user", "content": "hi", "name": "alice"},
            {"role": "assistant", "content": "hello", "name": ""},
            {"role": "user", "content": "how are you?"},
        ]
    )
    native = json.loads(build_native_request(req).to_json())
    assert native["input"] == {
        "messages": [
            {"role": "system", "content": "be brief"},
            {"role": "user", "content": "hi", "name": "alice"},
            {"role": "assistant", "content": "hello"},
            {"role": "user", "content": "how are you?"},
        ]
    }


def test_only_explicit_parameters_are_sent() -> None:
    req = _request(
        messages=[{"role": "user", "content": "hi"}],
        temperature=0.0,
        max_tokens=256,
        stop=["\n\n"],
        user="u-1",
        stream=True,
    )
    native = json.loads(build_native_request(req).to_json())
    assert native["parameters"] == {"temperature": 0.0, "max_tokens": 256, "stop": ["\n\n"]}


def test_all_parameters_copied() -> None:
    req = _request(
        messages=[{"role": "user", "content": "hi"}],
        temperature=0.7,
        top_p=0.9,
        max_tokens=64,
        stop=["END"],
        presence_penalty=0.5,
        frequency_penalty=-0.5,
    )
    params = json.loads(build_native_request(req).to_json())["parameters"]
    assert params == {
        "temperature": 0.7,
        "top_p": 0.9,
        "max_tokens": 64,
        "stop": ["END"],
        "presence_penalty": 0.5,
        "frequency_penalty": -0.5,
    }


def test_empty_stop_list_is_dropped() -> None:
    req = _request(messages=[{"role": "user", "content": "hi"}], stop=[])
    native = json.loads(build_native_request(req).to_json())
    assert native["parameters"] == {}
