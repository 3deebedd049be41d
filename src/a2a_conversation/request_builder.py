"""Construction of outgoing JSON-RPC envelopes."""

from __future__ import annotations

import logging
import time
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from .types import (
    FileContent,
    FilePart,
    Message,
    Part,
    RpcRequest,
    TextPart,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .conversation import ConversationState
    from .types import ChatTurn, FileAttachment

logger = logging.getLogger(__name__)

METHOD_SEND = "message/send"
METHOD_STREAM = "message/stream"
METHOD_TASK_GET = "tasks/get"

HISTORY_LIMIT = 10
GREETING_TURN_ID = 1
USER_AGENT = "a2a-conversation"


def build_history(
    turns: Sequence[ChatTurn],
    *,
    limit: int = HISTORY_LIMIT,
    context_id: str | None = None,
) -> list[Message]:
    """Re-express the last ``limit`` turns as A2A Messages.

    A conversation holding nothing but the greeting sends no history.
    """
    if len(turns) == 1 and turns[0].id == GREETING_TURN_ID:
        return []
    selected = list(turns)[-limit:] if limit > 0 else []
    stamp = int(time.time() * 1000)
    return [
        Message(
            message_id=f"chat-{turn.id}-{stamp}",
            role="user" if turn.sender == "user" else "agent",
            parts=[TextPart(text=turn.content)],
            context_id=context_id,
            metadata={
                "timestamp": turn.timestamp.isoformat(),
                "senderName": turn.sender_name,
                "originalId": turn.id,
            },
        )
        for turn in selected
    ]


def build_file_parts(attachments: Sequence[FileAttachment] | None) -> list[Part]:
    """Turn finished attachments into file parts.

    Attachments still being read, or whose read failed, are skipped.
    """
    parts: list[Part] = []
    for attachment in attachments or []:
        if attachment.status != "ready" or not attachment.base64:
            logger.debug(
                "Skipping attachment %s (status=%s)",
                attachment.name,
                attachment.status,
            )
            continue
        parts.append(
            FilePart(
                file=FileContent(
                    bytes=attachment.base64,
                    name=attachment.name,
                    mime_type=attachment.mime_type or "application/octet-stream",
                    kind="bytes",
                )
            )
        )
    return parts


def build_user_message(
    text: str,
    state: ConversationState,
    *,
    attachments: Sequence[FileAttachment] | None = None,
) -> Message:
    """Build the user's Message, pinned to the conversation.

    Once a task is known the message carries its ``taskId`` and nothing
    else; before that, the ``contextId`` if one is known.
    """
    parts: list[Part] = [TextPart(text=text)]
    parts.extend(build_file_parts(attachments))

    task_id = state.current_task_id
    context_id = None if task_id else state.current_context_id
    return Message(
        message_id=str(uuid4()),
        role="user",
        parts=parts,
        task_id=task_id,
        context_id=context_id,
    )


def _session_info(total_messages: int) -> dict[str, Any]:
    return {
        "totalMessages": total_messages,
        "timestamp": datetime.now(UTC).isoformat(),
        "userAgent": USER_AGENT,
    }


def build_send_request(
    message: Message,
    history: Sequence[Message],
    *,
    total_messages: int,
    accepted_output_modes: Sequence[str] = ("text",),
) -> RpcRequest:
    """Envelope for a blocking ``message/send``."""
    history_wire = [m.to_wire() for m in history]
    return RpcRequest(
        id=str(uuid4()),
        method=METHOD_SEND,
        params={
            "message": message.to_wire(),
            "configuration": {
                "acceptedOutputModes": list(accepted_output_modes),
                "historyLength": len(history_wire),
                "blocking": True,
            },
            "metadata": {
                "messageHistory": history_wire,
                "sessionInfo": _session_info(total_messages),
            },
        },
    )


def build_stream_request(
    message: Message,
    history: Sequence[Message],
    *,
    total_messages: int,
    task_id: str | None = None,
) -> RpcRequest:
    """Envelope for a streaming ``message/stream`` subscription.

    The params carry a freshly generated task ``id``; the history and
    session metadata are advisory.
    """
    history_wire = [m.to_wire() for m in history]
    return RpcRequest(
        id=str(uuid4()),
        method=METHOD_STREAM,
        params={
            "id": task_id or str(uuid4()),
            "message": message.to_wire(),
            "metadata": {
                "messageHistory": history_wire,
                "historyCount": len(history_wire),
                "sessionInfo": _session_info(total_messages),
            },
        },
    )


def build_get_task_request(
    task_id: str, *, history_length: int | None = None
) -> RpcRequest:
    params: dict[str, Any] = {"id": task_id}
    if history_length is not None:
        params["historyLength"] = history_length
    return RpcRequest(id=str(uuid4()), method=METHOD_TASK_GET, params=params)
