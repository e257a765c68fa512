"""
Chat Completion Models

Payloads forwarded by the chat proxy. Field names match the upstream
chat-completions API so a request can be sent as-is with model_dump().
Streaming is chosen by the proxy method called, not by the request.
"""

from typing import Optional

from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    """One turn of the conversation."""

    role: str = Field(
        ...,
        pattern="^(system|user|assistant)$",
    )
    content: str


class ChatRequest(BaseModel):
    """Parameters of one chat completion call."""

    messages: list[ChatMessage] = Field(..., min_length=1)
    # None means the proxy's configured default model
    model: Optional[str] = None
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=1024, ge=1, le=8192)
