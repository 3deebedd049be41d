"""Streaming reducer: folds stream events into a growing turn.

``reduce`` is a pure function ``(state, event) -> state'``. ``run_stream``
drives it over an event source, stops at the final event, and converts
mid-stream failures into ``StreamingError`` while keeping partial content.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from .exceptions import A2AClientError, IncompleteStreamError, StreamingError
from .types import (
    Artifact,
    ArtifactUpdateEvent,
    CanonicalTurn,
    StatusUpdateEvent,
    StreamEvent,
    TaskStatus,
    text_of,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

logger = logging.getLogger(__name__)


class StreamState(BaseModel):
    """Accumulator for one streamed turn.

    ``materialized`` turns True with the first text chunk (the moment a
    visible turn should appear); ``revision`` counts visible updates.
    """

    model_config = ConfigDict(frozen=True)

    text: str = ""
    artifacts: tuple[Artifact, ...] = ()
    task_id: str | None = None
    context_id: str | None = None
    materialized: bool = False
    revision: int = 0
    done: bool = False
    events_seen: int = Field(default=0, ge=0)

    def to_turn(self) -> CanonicalTurn:
        return CanonicalTurn(text=self.text, artifacts=list(self.artifacts))


def _status_chunk(status: TaskStatus | None) -> str:
    if status is None or status.message is None:
        return ""
    return text_of(status.message.parts)


def merge_artifact(
    artifacts: tuple[Artifact, ...], artifact: Artifact, *, append: bool
) -> tuple[Artifact, ...]:
    """Reconcile ``artifact`` into ``artifacts`` by ``artifact_id``.

    In append mode the new parts are concatenated onto an existing
    artifact with the same id; otherwise it replaces it. Unknown ids are
    added at the end.
    """
    for index, existing in enumerate(artifacts):
        if existing.artifact_id != artifact.artifact_id:
            continue
        if append:
            merged = existing.model_copy(
                update={"parts": [*existing.parts, *artifact.parts]}
            )
        else:
            merged = artifact
        return (*artifacts[:index], merged, *artifacts[index + 1 :])
    return (*artifacts, artifact)


def reduce(state: StreamState, event: StreamEvent) -> StreamState:
    """Apply one event to the accumulator.

    - status text is a candidate chunk
    - placeholder artifacts are ignored entirely
    - artifacts holding non-text parts are merged by id; text-only
      artifacts are never stored, their text is a candidate chunk
    - when both a status and an artifact chunk arrive in one event, the
      status chunk wins
    - ``append`` concatenates the chunk, otherwise it replaces the text
    """
    if state.done:
        return state

    task_id = state.task_id or event.task_id
    context_id = event.context_id or state.context_id
    artifacts = state.artifacts
    append = bool(event.append)

    chunk = ""
    if isinstance(event, StatusUpdateEvent):
        chunk = _status_chunk(event.status)
    elif isinstance(event, ArtifactUpdateEvent):
        artifact = event.artifact
        if artifact.is_placeholder:
            logger.debug("Ignoring placeholder artifact %s", artifact.artifact_id)
        else:
            if any(p.kind != "text" for p in artifact.parts):
                artifacts = merge_artifact(artifacts, artifact, append=append)
            chunk = _status_chunk(event.status) or artifact.text

    text = state.text
    materialized = state.materialized
    revision = state.revision
    if chunk:
        text = text + chunk if append else chunk
        materialized = True
        revision += 1
    elif artifacts != state.artifacts and materialized:
        revision += 1

    return state.model_copy(
        update={
            "text": text,
            "artifacts": artifacts,
            "task_id": task_id,
            "context_id": context_id,
            "materialized": materialized,
            "revision": revision,
            "done": event.final,
            "events_seen": state.events_seen + 1,
        }
    )


async def iter_states(
    events: AsyncIterator[StreamEvent],
    *,
    initial: StreamState | None = None,
) -> AsyncIterator[StreamState]:
    """Drive ``reduce`` over ``events``, yielding each visible change.

    A state is yielded whenever the text or stored artifacts change, and
    once more for the final state. The source is closed as soon as the
    final event has been reduced, or when this iterator is closed.

    Raises:
        IncompleteStreamError: If the source ends without a final event.
        StreamingError: If the source fails; the partial turn is attached.
    """
    state = initial or StreamState()
    try:
        async for event in events:
            previous = state
            state = reduce(state, event)
            if state.done:
                break
            if state.revision != previous.revision:
                yield state
    except IncompleteStreamError as e:
        raise IncompleteStreamError(
            str(e), partial_text=state.text, partial_turn=state.to_turn(), cause=e
        ) from e
    except A2AClientError as e:
        logger.warning("Stream failed after %d events: %s", state.events_seen, e)
        raise StreamingError(
            str(e), partial_text=state.text, partial_turn=state.to_turn(), cause=e
        ) from e
    finally:
        aclose = getattr(events, "aclose", None)
        if aclose is not None:
            await aclose()

    if not state.done:
        raise IncompleteStreamError(
            "Stream ended before the final event",
            partial_text=state.text,
            partial_turn=state.to_turn(),
        )
    yield state


async def run_stream(
    events: AsyncIterator[StreamEvent],
    *,
    initial: StreamState | None = None,
    on_update: Callable[[StreamState], None] | None = None,
) -> StreamState:
    """Reduce ``events`` to the final state.

    ``on_update`` sees every intermediate state that changed what a reader
    would see.
    """
    final = initial or StreamState()
    async for state in iter_states(events, initial=initial):
        if not state.done and on_update is not None:
            on_update(state)
        final = state
    return final
