"""
Stream frame decoder: raw body chunks → Delta / Terminator frames.

Wire format, as sent by the chat endpoint:

    data: Hello\n
    \n
    data: world\n
    \n
    data: [DONE]\n

Chunks arrive in order but may end anywhere, mid-line or in the middle of a
multi-byte character. The decoder keeps a carry-over buffer of raw bytes and
only decodes complete lines. Splitting on b"\\n" before decoding is safe for
UTF-8, since 0x0A never occurs inside a multi-byte sequence.

One decoder per stream; it is not reusable.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Union

from edusphere.errors import DecodeAnomaly

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"
LINE_SEPARATOR = b"\n"


@dataclass(frozen=True)
class Delta:
    """An incremental fragment of assistant text."""
    text: str


@dataclass(frozen=True)
class Terminator:
    """End-of-stream marker."""


Frame = Union[Delta, Terminator]


def parse_line(raw: bytes) -> Frame | None:
    """
    Decode one complete line. Returns None for lines that carry nothing.
    Raises DecodeAnomaly when the bytes are not valid UTF-8.
    """
    try:
        line = raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeAnomaly(f"undecodable line ({len(raw)} bytes): {e.reason}") from e

    if not line.startswith(DATA_PREFIX):
        return None
    payload = line[len(DATA_PREFIX):].strip()
    if payload == DONE_SENTINEL:
        return Terminator()
    if payload:
        return Delta(payload)
    return None


class FrameDecoder:
    """Incremental decoder for one stream."""

    def __init__(self):
        self._buffer = b""
        self._done = False
        self.anomalies = 0

    @property
    def done(self) -> bool:
        """True once the terminator has been seen."""
        return self._done

    def feed(self, chunk: bytes) -> list[Frame]:
        """Consume one physical read and return the frames it completed."""
        if self._done or not chunk:
            return []

        self._buffer += chunk
        *lines, self._buffer = self._buffer.split(LINE_SEPARATOR)

        frames: list[Frame] = []
        for raw in lines:
            try:
                frame = parse_line(raw)
            except DecodeAnomaly as e:
                self.anomalies += 1
                logger.debug("Skipping malformed stream line: %s", e)
                continue
            if frame is None:
                continue
            frames.append(frame)
            if isinstance(frame, Terminator):
                self._done = True
                self._buffer = b""
                break
        return frames

    def finish(self) -> list[Frame]:
        """
        End of input. An incomplete trailing line is dropped, not emitted:
        a partial record is never trusted.
        """
        if self._buffer:
            logger.debug("Discarding %d bytes of incomplete trailing line", len(self._buffer))
            self._buffer = b""
        return []

