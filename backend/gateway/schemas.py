from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

# OpenAI-compatible chat completion protocol (the subset callers use)

class ChatMessage(BaseModel):
    role: str  # "system" | "user" | "assistant"
    content: str
    name: Optional[str] = None

class ChatCompletionRequest(BaseModel):
    model: str = ""
    messages: List[ChatMessage] = Field(min_length=1)
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    max_tokens: Optional[int] = None
    stream: bool = False
    presence_penalty: Optional[float] = None
    frequency_penalty: Optional[float] = None
    stop: Optional[List[str]] = None
    user: Optional[str] = None
    # Not understood by the native API; forwarded in compatible mode only
    functions: Optional[List[Dict[str, Any]]] = None
    function_call: Optional[Any] = None

class AssistantMessage(BaseModel):
    role: str = "assistant"
    content: str

class Choice(BaseModel):
    index: int = 0
    message: AssistantMessage
    finish_reason: str

class Usage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

class ChatCompletionResponse(BaseModel):
    id: str
    object: str = "chat.completion"
    created: int
    model: str
    choices: List[Choice]
    usage: Usage

class ChunkChoice(BaseModel):
    index: int = 0
    # {"content": "..."} for content chunks, {} for the terminal one
    delta: Dict[str, str] = Field(default_factory=dict)
    finish_reason: Optional[str] = None

class ChatCompletionChunk(BaseModel):
    id: str
    object: str = "chat.completion.chunk"
    created: int
    model: str
    choices: List[ChunkChoice]
    usage: Optional[Usage] = None  # only on the terminal chunk

# Error envelope

class ErrorDetail(BaseModel):
    message: str
    type: str
    code: Optional[str] = None

class ErrorEnvelope(BaseModel):
    error: ErrorDetail
