"""Stream translation from backend chunks to Messages events."""

from .engine import StreamState, StreamTranslator, collect_text, translate_stream
from .framing import error_event, frame_message_stream, message_start_event

__all__ = [
    "StreamState",
    "StreamTranslator",
    "collect_text",
    "error_event",
    "frame_message_stream",
    "message_start_event",
    "translate_stream",
]
