"""Types for the outbound OpenAI-style chat completions wire protocol.

Every backend speaks some flavor of this format. Only the fields the proxy
reads or writes are declared; backends are free to send more.
"""

from typing import Any, Optional

from typing_extensions import TypedDict


class OutboundMessage(TypedDict):
    """A flattened conversation turn (content is always a single string)."""
    role: str
    content: str


class OutboundRequest(TypedDict, total=False):
    """Request body posted to a backend's /chat/completions endpoint.

    Attributes:
        model: Backend model name after remapping.
        messages: Flattened conversation turns.
        temperature: Optional sampling temperature.
        max_tokens: Optional generation limit.
        stream: Whether to request an SSE stream.
        system: Top-level system prompt, only for backends that accept one.
    """
    model: str
    messages: list[OutboundMessage]
    temperature: Optional[float]
    max_tokens: Optional[int]
    stream: bool
    system: Optional[str]


class ChoiceMessage(TypedDict, total=False):
    role: str
    content: Optional[str]


class Choice(TypedDict, total=False):
    """A completion choice. Only choices[0] is used."""
    index: int
    message: ChoiceMessage
    finish_reason: Optional[str]


class OutboundUsage(TypedDict, total=False):
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


class OutboundResponse(TypedDict, total=False):
    """A non-streaming chat completion."""
    id: str
    model: str
    choices: list[Choice]
    usage: OutboundUsage


class ChunkDelta(TypedDict, total=False):
    role: str
    content: Optional[str]


class ChunkChoice(TypedDict, total=False):
    index: int
    delta: ChunkDelta
    finish_reason: Optional[str]


class OutboundStreamChunk(TypedDict, total=False):
    """One parsed `data:` payload from a streaming chat completion."""
    id: str
    model: str
    choices: list[ChunkChoice]
    usage: Optional[OutboundUsage]
    error: Any
