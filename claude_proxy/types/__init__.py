"""Wire types for the inbound Messages protocol and outbound chat completions."""

from .chat import (
    Choice,
    ChoiceMessage,
    ChunkChoice,
    ChunkDelta,
    OutboundMessage,
    OutboundRequest,
    OutboundResponse,
    OutboundStreamChunk,
    OutboundUsage,
)
from .messages import (
    ContentBlockDeltaEvent,
    InboundMessage,
    InboundRequest,
    InboundResponse,
    InboundStreamEvent,
    InboundUsage,
    MessageDeltaEvent,
    StopDelta,
    StopReason,
    TextBlock,
    TextDelta,
)

__all__ = [
    "Choice",
    "ChoiceMessage",
    "ChunkChoice",
    "ChunkDelta",
    "ContentBlockDeltaEvent",
    "InboundMessage",
    "InboundRequest",
    "InboundResponse",
    "InboundStreamEvent",
    "InboundUsage",
    "MessageDeltaEvent",
    "OutboundMessage",
    "OutboundRequest",
    "OutboundResponse",
    "OutboundStreamChunk",
    "OutboundUsage",
    "StopDelta",
    "StopReason",
    "TextBlock",
    "TextDelta",
]
