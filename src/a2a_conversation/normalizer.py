"""Normalization of blocking replies into a CanonicalTurn.

Agents answer ``message/send`` in one of a few shapes:

- a Task whose ``status.message`` holds the reply
- a Task (or Task-like object) exposing top-level ``artifacts``
- a bare Message with top-level ``parts``

``classify_reply`` maps a raw reply onto exactly one of those shapes and
``normalize`` collapses it into a ``CanonicalTurn``. Anything else is an
``UnrecognizedReplyError``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeAlias

from pydantic import ValidationError

from .exceptions import UnrecognizedReplyError
from .types import Artifact, CanonicalTurn, Message, Task, text_of

if TYPE_CHECKING:
    from .conversation import ConversationState

logger = logging.getLogger(__name__)

NO_RESPONSE = "No response"
EMPTY_RESPONSE = "Empty response"


@dataclass(frozen=True)
class TaskStatusReply:
    """Task carrying its answer in ``status.message``."""

    task: Task
    message: Message


@dataclass(frozen=True)
class ArtifactsReply:
    """Reply exposing a top-level ``artifacts`` list."""

    artifacts: list[Artifact]
    task_id: str | None
    context_id: str | None


@dataclass(frozen=True)
class MessageReply:
    message: Message


@dataclass(frozen=True)
class BareTaskReply:
    """Task with neither a status message nor artifacts (e.g. still working)."""

    task: Task


ReplyShape: TypeAlias = TaskStatusReply | ArtifactsReply | MessageReply | BareTaskReply


def classify_reply(reply: Any) -> ReplyShape:
    """Map a raw ``message/send`` result onto one known shape.

    Raises:
        UnrecognizedReplyError: If the reply matches no known shape or a
            matching shape fails validation.
    """
    if not isinstance(reply, dict):
        raise UnrecognizedReplyError(
            f"Reply is not an object: {type(reply).__name__}", reply=reply
        )

    try:
        if reply.get("kind") == "task":
            task = Task.model_validate(reply)
            message = task.status.message if task.status else None
            if message is not None and message.parts:
                return TaskStatusReply(task=task, message=message)
            if task.artifacts is not None:
                return ArtifactsReply(
                    artifacts=list(task.artifacts),
                    task_id=task.id,
                    context_id=task.context_id,
                )
            return BareTaskReply(task=task)

        if isinstance(reply.get("artifacts"), list):
            artifacts = [Artifact.model_validate(a) for a in reply["artifacts"]]
            task_id = reply.get("id")
            context_id = reply.get("contextId")
            return ArtifactsReply(
                artifacts=artifacts,
                task_id=task_id if isinstance(task_id, str) else None,
                context_id=context_id if isinstance(context_id, str) else None,
            )

        if isinstance(reply.get("parts"), list):
            return MessageReply(message=Message.model_validate(reply))

        if isinstance(reply.get("id"), str) and isinstance(reply.get("status"), dict):
            return BareTaskReply(task=Task.model_validate(reply))
    except ValidationError as e:
        raise UnrecognizedReplyError(
            f"Reply failed validation: {e}", reply=reply, cause=e
        ) from e

    raise UnrecognizedReplyError(
        f"Unrecognized reply shape with keys {sorted(reply)}", reply=reply
    )


def reply_ids(shape: ReplyShape) -> tuple[str | None, str | None]:
    """Task id and context id revealed by a reply, if any.

    The context id comes from the top level first, then from the status
    message, where some servers put it.
    """
    match shape:
        case TaskStatusReply(task=task, message=message):
            return task.id, task.context_id or message.context_id
        case ArtifactsReply(task_id=task_id, context_id=context_id):
            return task_id, context_id
        case MessageReply(message=message):
            # A Message's taskId names the task it belongs to, not a new one.
            return message.task_id, message.context_id
        case BareTaskReply(task=task):
            nested = task.status.message if task.status else None
            return task.id, task.context_id or (nested.context_id if nested else None)


def to_turn(shape: ReplyShape) -> CanonicalTurn:
    match shape:
        case TaskStatusReply(task=task, message=message):
            return CanonicalTurn(
                text=text_of(message.parts) or NO_RESPONSE,
                parts=list(message.parts),
                artifacts=list(task.artifacts or []),
            )
        case ArtifactsReply(artifacts=artifacts):
            texts = [a.text for a in artifacts if a.text]
            return CanonicalTurn(
                text="\n".join(texts) or NO_RESPONSE,
                artifacts=list(artifacts),
            )
        case MessageReply(message=message):
            return CanonicalTurn(
                text=text_of(message.parts) or EMPTY_RESPONSE,
                parts=list(message.parts),
            )
        case BareTaskReply():
            return CanonicalTurn(text=NO_RESPONSE)


def normalize(reply: Any, state: ConversationState | None = None) -> CanonicalTurn:
    """Collapse a blocking reply into a ``CanonicalTurn``.

    When ``state`` is given it is updated with any task/context ids the
    reply reveals before the turn is returned.

    Raises:
        UnrecognizedReplyError: If the reply shape is unknown.
    """
    shape = classify_reply(reply)
    logger.debug("Normalizing %s", type(shape).__name__)

    if state is not None:
        task_id, context_id = reply_ids(shape)
        if task_id and not isinstance(shape, MessageReply):
            state.update_task(task_id)
        if context_id:
            state.observe_context(context_id)

    return to_turn(shape)
