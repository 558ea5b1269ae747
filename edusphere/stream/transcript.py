"""
Conversation model and the incremental transcript builder.

The builder folds Delta frames into the conversation's single open assistant
message. Raw model output is repaired on the way in:

    \\n literal      → newline
    \\t literal      → two spaces
    whitespace runs  → one space
    ***              → **        (bold markers split by the tokenizer)
    aB               → a B       (word boundary dropped by the tokenizer)

Each delta is normalized once, then joined to the existing text with a single
space and the result trimmed. Because the join always inserts a space and
both sides are already normalized, none of the rules can match across the
seam, so the cumulative text is exactly what re-normalizing the whole
message would give.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterator

logger = logging.getLogger(__name__)

USER = "user"
ASSISTANT = "assistant"

_WHITESPACE = re.compile(r"\s+")
_BOLD_RUN = re.compile(r"\*{3,}")
_CASE_SEAM = re.compile(r"([a-z])([A-Z])")


def normalize_delta(text: str) -> str:
    """Apply the repair rules to one delta."""
    text = text.replace("\\n", "\n").replace("\\t", "  ")
    text = _WHITESPACE.sub(" ", text)
    text = _BOLD_RUN.sub("**", text)
    text = _CASE_SEAM.sub(r"\1 \2", text)
    return text.strip()


@dataclass
class Message:
    """A single chat message. `open` is True while deltas are still arriving."""
    role: str
    content: str = ""
    open: bool = False

    def to_payload(self) -> dict:
        return {"role": self.role, "content": self.content}


class Conversation:
    """
    Ordered messages. Append-only, except for the open last message.
    At most one message is open, and it is always the last one.
    """

    def __init__(self, messages: list[Message] | None = None):
        self._messages: list[Message] = list(messages or [])

    def append(self, message: Message):
        if self.open_message is not None:
            raise RuntimeError("cannot append while a message is still open")
        self._messages.append(message)

    @property
    def open_message(self) -> Message | None:
        if self._messages and self._messages[-1].open:
            return self._messages[-1]
        return None

    @property
    def last(self) -> Message | None:
        return self._messages[-1] if self._messages else None

    def to_payload(self) -> list[dict]:
        """The closed messages, in the shape the chat endpoint expects."""
        return [m.to_payload() for m in self._messages if not m.open]

    def snapshot(self) -> list[Message]:
        """Copies of the messages; safe to hand to a renderer."""
        return [Message(m.role, m.content, m.open) for m in self._messages]

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(list(self._messages))

    def __getitem__(self, index: int) -> Message:
        return self._messages[index]

    def __repr__(self) -> str:
        return f"<Conversation messages={len(self._messages)} open={self.open_message is not None}>"


class TranscriptBuilder:
    """Grows one assistant message from a sequence of deltas."""

    def __init__(self, conversation: Conversation):
        self.conversation = conversation
        self._message: Message | None = None

    @property
    def is_open(self) -> bool:
        return self._message is not None

    def open(self) -> Message:
        """Append an empty assistant message and make it the open one."""
        message = Message(role=ASSISTANT, content="", open=True)
        self.conversation.append(message)
        self._message = message
        return message

    def apply(self, delta: str) -> str:
        """Fold one delta into the open message and return its new content."""
        if self._message is None:
            raise RuntimeError("apply() called with no open message")
        clean = normalize_delta(delta)
        if clean:
            # one assignment: readers never see a half-applied delta
            self._message.content = f"{self._message.content} {clean}".strip()
        return self._message.content

    def close(self) -> Message:
        """Finalize the open message. No further apply() calls are valid."""
        if self._message is None:
            raise RuntimeError("close() called with no open message")
        message = self._message
        message.open = False
        self._message = None
        logger.debug("Closed assistant message (%d chars)", len(message.content))
        return message
