"""
Conversation session: one user turn at a time, streamed.

    IDLE → SENDING → STREAMING → IDLE        the reply streamed to completion
    IDLE → SENDING → FAILED    → IDLE        transport error; fallback reply appended

The session guards itself against reentrancy: a second send_turn() while a
turn is in flight raises SessionBusyError and leaves the conversation alone.
A CancelToken passed to send_turn() is checked before the request and after
every chunk; cancelling keeps whatever text had already arrived.
"""

from __future__ import annotations

import logging
from contextlib import aclosing
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from edusphere.errors import SessionInvalidated, TransportError
from edusphere.stream.decoder import Delta, FrameDecoder
from edusphere.stream.transcript import (
    ASSISTANT,
    USER,
    Conversation,
    Message,
    TranscriptBuilder,
)
from edusphere.transport.client import Envelope, TransportClient

logger = logging.getLogger(__name__)

FALLBACK_REPLY = "Sorry, something went wrong."
CONTEXT_HEADER = "X-Recommendation-ID"


class TurnState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"
    FAILED = "failed"


class TurnOutcome(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    SESSION_ENDED = "session_ended"


class SessionBusyError(RuntimeError):
    """A turn is already in flight."""


class CancelToken:
    """Cooperative cancellation flag for one turn."""

    def __init__(self):
        self._cancelled = False

    def cancel(self):
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


@dataclass
class TurnResult:
    outcome: TurnOutcome
    messages: list[Message]
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is TurnOutcome.COMPLETED

    @property
    def reply(self) -> str:
        """Content of the last assistant message, if any."""
        for message in reversed(self.messages):
            if message.role == ASSISTANT:
                return message.content
        return ""


class ConversationSession:
    """Drives chat turns against the streaming endpoint."""

    def __init__(
        self,
        transport: TransportClient,
        stream_path: str = "/chat/stream",
        context_id: Callable[[], str | int | None] | None = None,
        on_update: Callable[[Conversation], None] | None = None,
        conversation: Conversation | None = None,
    ):
        self.transport = transport
        self.stream_path = stream_path
        self.context_id = context_id
        self.on_update = on_update
        self.conversation = conversation if conversation is not None else Conversation()
        self.state = TurnState.IDLE

    @property
    def busy(self) -> bool:
        return self.state is not TurnState.IDLE

    @property
    def messages(self) -> list[Message]:
        return self.conversation.snapshot()

    def _emit(self):
        if self.on_update is None:
            return
        try:
            self.on_update(self.conversation)
        except Exception as e:
            logger.error("Conversation update callback failed: %s", e)

    def _envelope(self) -> Envelope:
        headers = {}
        ctx = self.context_id() if self.context_id else None
        if ctx:
            headers[CONTEXT_HEADER] = str(ctx)
        return Envelope(
            method="POST",
            path=self.stream_path,
            json={"messages": self.conversation.to_payload()},
            headers=headers,
        )

    def _result(self, outcome: TurnOutcome, error: Exception | None = None) -> TurnResult:
        return TurnResult(outcome=outcome, messages=self.conversation.snapshot(), error=error)

    async def send_turn(self, text: str, cancel: CancelToken | None = None) -> TurnResult:
        """
        Append the user's message, stream the assistant's reply into the
        conversation, and report how the turn ended.
        """
        if self.busy:
            raise SessionBusyError(f"turn already in flight (state={self.state.value})")
        text = text.strip()
        if not text:
            raise ValueError("message is empty")
        if cancel is not None and cancel.cancelled:
            return self._result(TurnOutcome.CANCELLED)

        self.state = TurnState.SENDING
        self.conversation.append(Message(role=USER, content=text))
        self._emit()
        builder = TranscriptBuilder(self.conversation)
        try:
            outcome = await self._stream_reply(builder, cancel)
            return self._result(outcome)
        except SessionInvalidated as e:
            logger.info("Chat turn ended: session invalidated")
            return self._result(TurnOutcome.SESSION_ENDED, e)
        except TransportError as e:
            logger.warning("Chat turn failed: %s", e)
            self.state = TurnState.FAILED
            if builder.is_open:
                builder.close()
            self.conversation.append(Message(role=ASSISTANT, content=FALLBACK_REPLY))
            self._emit()
            return self._result(TurnOutcome.FAILED, e)
        finally:
            if builder.is_open:
                builder.close()
            self.state = TurnState.IDLE

    async def _stream_reply(self, builder: TranscriptBuilder, cancel: CancelToken | None) -> TurnOutcome:
        envelope = self._envelope()
        async with self.transport.stream(envelope) as response:
            if cancel is not None and cancel.cancelled:
                return TurnOutcome.CANCELLED

            self.state = TurnState.STREAMING
            builder.open()
            self._emit()

            decoder = FrameDecoder()
            async with aclosing(self.transport.aiter_bytes(response, envelope.path)) as chunks:
                async for chunk in chunks:
                    for frame in decoder.feed(chunk):
                        if isinstance(frame, Delta):
                            builder.apply(frame.text)
                    self._emit()
                    if decoder.done:
                        break
                    if cancel is not None and cancel.cancelled:
                        logger.info("Chat turn cancelled mid-stream")
                        builder.close()
                        self._emit()
                        return TurnOutcome.CANCELLED
                else:
                    decoder.finish()
                    logger.debug("Stream ended without terminator")

            builder.close()
            self._emit()
        return TurnOutcome.COMPLETED
