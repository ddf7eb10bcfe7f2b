"""Wire models for the Bailian app completion API (the "native" protocol)."""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator

# Request

class NativeMessage(BaseModel):
    role: str
    content: str
    name: Optional[str] = None  # omitted on the wire when unset

class NativeInput(BaseModel):
    # exactly one of the two is set
    prompt: Optional[str] = None
    messages: Optional[List[NativeMessage]] = None

class NativeParameters(BaseModel):
    """Sampling parameters; a field is sent only when the caller set it."""
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    max_tokens: Optional[int] = None
    stop: Optional[List[str]] = None
    presence_penalty: Optional[float] = None
    frequency_penalty: Optional[float] = None

class NativeRequest(BaseModel):
    input: NativeInput
    parameters: NativeParameters = Field(default_factory=NativeParameters)
    debug: Dict[str, Any] = Field(default_factory=dict)

    def to_json(self) -> bytes:
        return self.model_dump_json(exclude_none=True).encode("utf-8")

# Response. Streamed frames share this shape, with `output.text` holding the
# cumulative text so far. Every field tolerates absence and null.

class NativeOutput(BaseModel):
    finish_reason: Optional[str] = None
    reject_status: Optional[bool] = None
    session_id: Optional[str] = None
    text: Optional[str] = None

class NativeModelUsage(BaseModel):
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    model_id: Optional[str] = None

class NativeUsage(BaseModel):
    models: Optional[List[NativeModelUsage]] = None

class NativeResponse(BaseModel):
    output: NativeOutput = Field(default_factory=NativeOutput)
    usage: NativeUsage = Field(default_factory=NativeUsage)
    request_id: Optional[str] = None

    @field_validator("output", "usage", mode="before")
    @classmethod
    def _null_as_empty(cls, v: Any) -> Any:
        return {} if v is None else v

    @property
    def text(self) -> str:
        return self.output.text or ""

    @property
    def response_id(self) -> str:
        return self.request_id or self.output.session_id or ""

    @property
    def finish_reason(self) -> Optional[str]:
        """Reported finish reason, or None when absent, empty or the literal "null"."""
        reason = self.output.finish_reason
        if not reason or reason == "null":
            return None
        return reason

    def first_usage(self) -> Optional[NativeModelUsage]:
        if self.usage.models:
            return self.usage.models[0]
        return None

# Error

class NativeError(BaseModel):
    code: Optional[str] = None
    message: Optional[str] = None
    request_id: Optional[str] = None
