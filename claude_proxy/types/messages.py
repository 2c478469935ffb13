"""Types for the inbound Anthropic Messages wire protocol.

These are the shapes clients of the proxy send and receive. Requests arrive
as parsed JSON, so every field is optional at the type level and the
translation helpers tolerate anything missing.
"""

from typing import Literal, Union

from typing_extensions import TypedDict


StopReason = Literal["end_turn", "max_tokens", "stop_sequence"]


class TextBlock(TypedDict, total=False):
    """A content block in a Messages request or response.

    Attributes:
        type: Block type. Only "text" blocks survive translation; other
            types (image, document, tool_use, ...) are dropped.
        text: The text content.
    """
    type: str
    text: str


class InboundMessage(TypedDict, total=False):
    """A conversation turn.

    Attributes:
        role: "user" or "assistant".
        content: List of content blocks, or a bare string which is treated
            as a single text block.
    """
    role: str
    content: Union[list[TextBlock], str]


class InboundRequest(TypedDict, total=False):
    """A Messages API request as received from a client.

    Attributes:
        model: Model name. At the HTTP surface it carries a provider prefix
            ("vllm/modelA"); adapters see the name without the prefix.
        messages: Ordered conversation turns.
        system: Optional top-level system prompt.
        temperature: Optional sampling temperature.
        max_tokens: Maximum number of tokens to generate.
        stream: Whether the client wants a live event stream.
    """
    model: str
    messages: list[InboundMessage]
    system: str
    temperature: float
    max_tokens: int
    stream: bool


class InboundUsage(TypedDict):
    input_tokens: int
    output_tokens: int


class InboundResponse(TypedDict):
    """A complete Messages API response."""
    id: str
    type: Literal["message"]
    role: Literal["assistant"]
    content: list[TextBlock]
    model: str
    stop_reason: StopReason
    usage: InboundUsage


class TextDelta(TypedDict):
    type: Literal["text_delta"]
    text: str


class ContentBlockDeltaEvent(TypedDict):
    """Incremental text for the single content block (index 0)."""
    type: Literal["content_block_delta"]
    index: int
    delta: TextDelta


class StopDelta(TypedDict):
    stop_reason: StopReason


class MessageDeltaEvent(TypedDict, total=False):
    """Terminal event carrying the stop reason and, when known, usage."""
    type: Literal["message_delta"]
    delta: StopDelta
    usage: InboundUsage


InboundStreamEvent = Union[ContentBlockDeltaEvent, MessageDeltaEvent]
