"""Type definitions for a2a-conversation.

Wire models mirror the A2A JSON shapes (camelCase on the wire, snake_case
in Python) and tolerate unknown fields, since agent servers disagree on
the details. ``CanonicalTurn`` is the one structure the rest of an
application needs to understand.
"""

from __future__ import annotations

import base64
import mimetypes
from datetime import UTC, datetime
from pathlib import Path
from typing import Annotated, Any, Literal, TypeAlias

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag, model_validator
from pydantic.alias_generators import to_camel

JSONRPC_VERSION = "2.0"


class WireModel(BaseModel):
    """Base for models that travel over the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
        frozen=True,
    )

    def to_wire(self) -> dict[str, Any]:
        """Dump with camelCase keys and without unset optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Parts
# ---------------------------------------------------------------------------


class TextPart(WireModel):
    kind: Literal["text"] = "text"
    text: str
    metadata: dict[str, Any] | None = None


class FileContent(WireModel):
    """File payload: inline base64 ``bytes`` or a ``uri``."""

    name: str | None = None
    mime_type: str | None = None
    bytes: str | None = None
    uri: str | None = None


class FilePart(WireModel):
    kind: Literal["file"] = "file"
    file: FileContent
    metadata: dict[str, Any] | None = None


class DataPart(WireModel):
    kind: Literal["data"] = "data"
    data: Any
    metadata: dict[str, Any] | None = None


class UnknownPart(WireModel):
    """A part of a kind this client does not know; kept as received."""

    kind: str | None = None
    metadata: dict[str, Any] | None = None


_KNOWN_KINDS = ("text", "file", "data")


def _part_kind(value: Any) -> str | None:
    # Older servers tag parts with "type" or not at all.
    if isinstance(value, dict):
        kind = value.get("kind") or value.get("type")
        if not kind:
            kind = next((key for key in _KNOWN_KINDS if key in value), None)
    elif isinstance(value, BaseModel):
        kind = getattr(value, "kind", None)
    else:
        return None
    return kind if kind in _KNOWN_KINDS else "other"


Part = Annotated[
    Annotated[TextPart, Tag("text")]
    | Annotated[FilePart, Tag("file")]
    | Annotated[DataPart, Tag("data")]
    | Annotated[UnknownPart, Tag("other")],
    Discriminator(_part_kind),
]


def text_of(parts: list[Part] | None) -> str:
    """Concatenate the text parts, in order, with no separator."""
    return "".join(p.text for p in parts or [] if isinstance(p, TextPart))


def has_non_text_parts(parts: list[Part] | None) -> bool:
    return any(not isinstance(p, TextPart) for p in parts or [])


# ---------------------------------------------------------------------------
# Artifacts, messages, tasks
# ---------------------------------------------------------------------------


class Artifact(WireModel):
    """An identified, named bundle of parts produced by the agent."""

    artifact_id: str | None = None
    name: str | None = None
    description: str | None = None
    metadata: dict[str, Any] | None = None
    parts: list[Part] = Field(default_factory=list)

    @property
    def is_placeholder(self) -> bool:
        """True for announcement-only artifacts carrying nothing to show."""
        return not self.parts and not self.description and not self.metadata

    @property
    def text(self) -> str:
        return text_of(self.parts)


class Message(WireModel):
    message_id: str | None = None
    role: Literal["user", "agent"] = "agent"
    parts: list[Part] = Field(default_factory=list)
    kind: Literal["message"] = "message"
    task_id: str | None = None
    context_id: str | None = None
    metadata: dict[str, Any] | None = None


class TaskStatus(WireModel):
    state: str | None = None
    message: Message | None = None
    timestamp: str | None = None


class Task(WireModel):
    id: str
    kind: Literal["task"] = "task"
    context_id: str | None = None
    status: TaskStatus | None = None
    artifacts: list[Artifact] | None = None
    history: list[Message] | None = None


# ---------------------------------------------------------------------------
# Stream events
# ---------------------------------------------------------------------------


class _UpdateEvent(WireModel):
    task_id: str | None = None
    context_id: str | None = None
    final: bool = False
    append: bool | None = None
    metadata: dict[str, Any] | None = None

    @model_validator(mode="before")
    @classmethod
    def _legacy_task_id(cls, data: Any) -> Any:
        # Pre-0.2 servers identify the task with "id" instead of "taskId".
        if isinstance(data, dict) and "taskId" not in data and "task_id" not in data:
            legacy = data.get("id")
            if isinstance(legacy, str):
                data = {**data, "taskId": legacy}
        return data


class StatusUpdateEvent(_UpdateEvent):
    kind: Literal["status-update"] = "status-update"
    status: TaskStatus


class ArtifactUpdateEvent(_UpdateEvent):
    """Artifact delivery; ``append`` marks a delta rather than a snapshot."""

    kind: Literal["artifact-update"] = "artifact-update"
    artifact: Artifact
    last_chunk: bool | None = None
    # Some servers piggyback a status on artifact events.
    status: TaskStatus | None = None


StreamEvent: TypeAlias = StatusUpdateEvent | ArtifactUpdateEvent


# ---------------------------------------------------------------------------
# JSON-RPC envelope
# ---------------------------------------------------------------------------


class RpcRequest(BaseModel):
    """A JSON-RPC 2.0 request ready to be posted."""

    jsonrpc: Literal["2.0"] = JSONRPC_VERSION
    id: str
    method: str
    params: dict[str, Any] = Field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


# ---------------------------------------------------------------------------
# Client-side structures
# ---------------------------------------------------------------------------


class CanonicalTurn(BaseModel):
    """Normalized agent turn that every reply shape collapses into.

    - ``text``: concatenated text content
    - ``parts``: parts of the replying message (kept for non-text content)
    - ``artifacts``: artifacts worth rendering
    - ``error``: set when the turn ended in a streaming failure
    """

    text: str = ""
    parts: list[Part] = Field(default_factory=list)
    artifacts: list[Artifact] = Field(default_factory=list)
    error: str | None = None

    @property
    def has_rich_parts(self) -> bool:
        """True when ``parts`` holds something besides text."""
        return has_non_text_parts(self.parts)


class FileAttachment(BaseModel):
    """A user file on its way into an outgoing message.

    Only attachments whose read finished (``status == "ready"``) are sent.
    """

    name: str
    mime_type: str = "application/octet-stream"
    status: Literal["pending", "ready", "error"] = "pending"
    base64: str | None = None
    size: int | None = None
    error: str | None = None

    @classmethod
    def from_bytes(
        cls, name: str, content: bytes, mime_type: str | None = None
    ) -> FileAttachment:
        return cls(
            name=name,
            mime_type=mime_type or _guess_mime_type(name),
            status="ready",
            base64=base64.b64encode(content).decode("utf-8"),
            size=len(content),
        )

    @classmethod
    def from_path(cls, path: str | Path) -> FileAttachment:
        """Read a local file; a failed read yields an ``error`` attachment."""
        path = Path(path)
        try:
            content = path.read_bytes()
        except OSError as e:
            return cls(
                name=path.name,
                mime_type=_guess_mime_type(path.name),
                status="error",
                error=str(e),
            )
        return cls.from_bytes(path.name, content)


def _guess_mime_type(name: str) -> str:
    guessed, _ = mimetypes.guess_type(name)
    return guessed or "application/octet-stream"


class ChatTurn(BaseModel):
    """One entry in a conversation's local history."""

    id: int
    sender: Literal["user", "agent"]
    content: str
    sender_name: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    attachments: list[FileAttachment] = Field(default_factory=list)
    turn: CanonicalTurn | None = None
