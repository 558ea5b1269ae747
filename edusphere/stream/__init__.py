"""
Streaming chat: frame decoding and incremental transcript building.
"""
from edusphere.stream.decoder import Delta, FrameDecoder, Terminator
from edusphere.stream.transcript import (
    ASSISTANT,
    USER,
    Conversation,
    Message,
    TranscriptBuilder,
    normalize_delta,
)

__all__ = [
    "ASSISTANT",
    "USER",
    "Conversation",
    "Delta",
    "FrameDecoder",
    "Message",
    "Terminator",
    "TranscriptBuilder",
    "normalize_delta",
]
