"""Per-conversation state: continuation ids, history and the busy flag."""

from __future__ import annotations

import logging
from contextlib import aclosing
from enum import StrEnum
from typing import TYPE_CHECKING

from .exceptions import A2AClientError, StreamingError
from .normalizer import normalize
from .reducer import iter_states
from .request_builder import (
    GREETING_TURN_ID,
    HISTORY_LIMIT,
    build_history,
    build_send_request,
    build_stream_request,
    build_user_message,
)
from .types import CanonicalTurn, ChatTurn

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Sequence

    from .client import AgentClient
    from .types import FileAttachment, RpcRequest, StreamEvent

logger = logging.getLogger(__name__)

DEFAULT_GREETING = "Hello, I am your agent. How can I assist you today?"
STREAMING_ERROR_PREFIX = "Streaming error: "
ERROR_PREFIX = "Error: "


class ConversationPhase(StrEnum):
    FRESH = "fresh"
    BOUND = "bound"


class ConversationState:
    """Task/context ids that pin outgoing messages to server-side state.

    ``FRESH`` until a reply or stream event reveals a task id, ``BOUND``
    afterwards. Stream events only bind a fresh state; a blocking reply
    naming another task moves the conversation onto it. ``reset`` is the
    only way back to ``FRESH``.
    """

    def __init__(self, context_id: str | None = None) -> None:
        self._initial_context_id = context_id
        self.current_task_id: str | None = None
        self.current_context_id: str | None = context_id

    @property
    def initial_context_id(self) -> str | None:
        """Context id supplied when the conversation was opened."""
        return self._initial_context_id

    @property
    def phase(self) -> ConversationPhase:
        if self.current_task_id:
            return ConversationPhase.BOUND
        return ConversationPhase.FRESH

    def bind_task(self, task_id: str) -> bool:
        """Bind to ``task_id`` if no task is known yet.

        Returns:
            True if this call moved the state to ``BOUND``.
        """
        if self.current_task_id or not task_id:
            return False
        logger.info("Conversation bound to task %s", task_id)
        self.current_task_id = task_id
        return True

    def update_task(self, task_id: str) -> bool:
        """Follow the task named by a blocking reply, bound or not.

        Returns:
            True if the current task id changed.
        """
        if not task_id or task_id == self.current_task_id:
            return False
        if self.current_task_id:
            logger.info(
                "Conversation moved from task %s to %s", self.current_task_id, task_id
            )
        else:
            logger.info("Conversation bound to task %s", task_id)
        self.current_task_id = task_id
        return True

    def observe_context(self, context_id: str) -> None:
        if context_id and context_id != self.current_context_id:
            logger.debug("Conversation context is now %s", context_id)
            self.current_context_id = context_id

    def reset(self) -> None:
        """Forget the task; keep only an externally supplied context id."""
        logger.info("Resetting conversation (task %s)", self.current_task_id)
        self.current_task_id = None
        self.current_context_id = self._initial_context_id

    def __repr__(self) -> str:
        return (
            f"ConversationState(phase={self.phase.value}, "
            f"task_id={self.current_task_id!r}, "
            f"context_id={self.current_context_id!r})"
        )


def with_error_marker(partial_text: str, error: Exception) -> str:
    """Append a visible error marker to whatever text had arrived."""
    marker = f"{STREAMING_ERROR_PREFIX}{error}"
    return f"{partial_text}\n\n{marker}" if partial_text else marker


class Conversation:
    """One open conversation with an agent.

    At most one turn is in flight at a time: calls made while a turn is
    running are ignored, not queued.

    Usage:
        async with AgentClient("http://agent:8080") as client:
            chat = Conversation(client, streaming=True)
            async for turn in chat.stream("explain in detail"):
                render(turn.text)
    """

    def __init__(
        self,
        client: AgentClient,
        *,
        streaming: bool = False,
        context_id: str | None = None,
        greeting: str | None = DEFAULT_GREETING,
        history_limit: int = HISTORY_LIMIT,
        agent_name: str = "Assistant",
        user_name: str = "You",
    ) -> None:
        self._client = client
        self._streaming = streaming
        self._history_limit = history_limit
        self._agent_name = agent_name
        self._user_name = user_name
        self.state = ConversationState(context_id)
        self._turns: list[ChatTurn] = []
        if greeting:
            self._turns.append(
                ChatTurn(
                    id=GREETING_TURN_ID,
                    sender="agent",
                    content=greeting,
                    sender_name=agent_name,
                )
            )
        self._busy = False

    @property
    def client(self) -> AgentClient:
        return self._client

    @property
    def turns(self) -> tuple[ChatTurn, ...]:
        return tuple(self._turns)

    @property
    def is_busy(self) -> bool:
        return self._busy

    @property
    def streaming(self) -> bool:
        return self._streaming

    def reset(self) -> None:
        self.state.reset()

    def _accepts(
        self, text: str, attachments: Sequence[FileAttachment] | None
    ) -> bool:
        if not text.strip() and not attachments:
            return False
        if self._busy:
            logger.debug("Ignoring message while a turn is in flight")
            return False
        return True

    def _append(
        self,
        sender: str,
        content: str,
        *,
        attachments: Sequence[FileAttachment] | None = None,
        turn: CanonicalTurn | None = None,
    ) -> ChatTurn:
        entry = ChatTurn(
            id=len(self._turns) + 1,
            sender=sender,  # type: ignore[arg-type]
            content=content,
            sender_name=self._user_name if sender == "user" else self._agent_name,
            attachments=list(attachments or []),
            turn=turn,
        )
        self._turns.append(entry)
        return entry

    def _prepare(
        self,
        text: str,
        attachments: Sequence[FileAttachment] | None,
        *,
        streaming: bool,
    ) -> RpcRequest:
        # History is what preceded this message.
        history = build_history(
            self._turns,
            limit=self._history_limit,
            context_id=self.state.initial_context_id,
        )
        message = build_user_message(text, self.state, attachments=attachments)
        total = len(self._turns) + 1
        if streaming:
            request = build_stream_request(message, history, total_messages=total)
        else:
            request = build_send_request(message, history, total_messages=total)
        logger.debug(
            "Prepared %s with %d history messages (%r)",
            request.method,
            len(history),
            self.state,
        )
        self._append("user", text, attachments=attachments)
        return request

    async def send(
        self,
        text: str,
        attachments: Sequence[FileAttachment] | None = None,
    ) -> CanonicalTurn | None:
        """Send one user message and return the agent's turn.

        In streaming mode the stream is consumed to its end and the final
        turn returned. Returns None when the message was ignored (empty,
        or another turn is in flight).

        Raises:
            A2AClientError: For blocking sends; an ``Error:`` turn is
                recorded in the history first.
        """
        if self._streaming:
            final: CanonicalTurn | None = None
            async for turn in self.stream(text, attachments):
                final = turn
            return final

        if not self._accepts(text, attachments):
            return None

        self._busy = True
        try:
            request = self._prepare(text, attachments, streaming=False)
            reply = await self._client.send_message(request)
            turn = normalize(reply, self.state)
        except A2AClientError as e:
            logger.warning("Send failed: %s", e)
            self._append("agent", f"{ERROR_PREFIX}{e}")
            raise
        finally:
            self._busy = False

        self._append("agent", turn.text, turn=turn)
        return turn

    async def stream(
        self,
        text: str,
        attachments: Sequence[FileAttachment] | None = None,
    ) -> AsyncIterator[CanonicalTurn]:
        """Send one user message and yield the agent's turn as it grows.

        Every yielded turn is a complete snapshot; the last one is final.
        A failure mid-stream does not raise: the last turn carries the
        partial text with an error marker and ``error`` set.
        """
        if not self._accepts(text, attachments):
            return

        self._busy = True
        try:
            request = self._prepare(text, attachments, streaming=True)
            events = self._observe_ids(self._client.stream_message(request))
            last: CanonicalTurn | None = None
            try:
                async with aclosing(iter_states(events)) as states:
                    async for state in states:
                        last = state.to_turn()
                        yield last
            except StreamingError as e:
                partial = e.partial_turn or CanonicalTurn(text=e.partial_text)
                failed = partial.model_copy(
                    update={
                        "text": with_error_marker(e.partial_text, e),
                        "error": str(e),
                    }
                )
                self._append("agent", failed.text, turn=failed)
                yield failed
                return

            if last is not None and (last.text or last.artifacts):
                self._append("agent", last.text, turn=last)
        finally:
            self._busy = False

    async def _observe_ids(
        self, events: AsyncIterator[StreamEvent]
    ) -> AsyncIterator[StreamEvent]:
        async with aclosing(events):
            async for event in events:
                if event.task_id:
                    self.state.bind_task(event.task_id)
                if event.context_id:
                    self.state.observe_context(event.context_id)
                yield event
