"""Tests for a2a_conversation.types."""

import pytest
from pydantic import ValidationError

from a2a_conversation.types import (
    Artifact,
    ArtifactUpdateEvent,
    CanonicalTurn,
    DataPart,
    FileAttachment,
    FilePart,
    Message,
    RpcRequest,
    StatusUpdateEvent,
    Task,
    TextPart,
    UnknownPart,
    text_of,
)

from .conftest import make_data_part, make_file_part, make_text_part


class TestParts:
    def test_discriminates_on_kind(self):
        message = Message.model_validate(
            {
                "parts": [
                    make_text_part("hi"),
                    make_file_part(),
                    make_data_part({"x": 1}),
                ]
            }
        )

        assert [type(p) for p in message.parts] == [TextPart, FilePart, DataPart]
        assert message.parts[1].file.mime_type == "application/pdf"

    def test_legacy_type_tag_and_untagged_parts(self):
        message = Message.model_validate(
            {"parts": [{"type": "text", "text": "a"}, {"text": "b"}]}
        )

        assert text_of(message.parts) == "ab"

    def test_unknown_part_kind_kept(self):
        message = Message.model_validate(
            {
                "parts": [
                    make_text_part("before "),
                    {"kind": "hologram", "frames": 3},
                    make_text_part("after"),
                ]
            }
        )

        unknown = message.parts[1]
        assert isinstance(unknown, UnknownPart)
        assert unknown.kind == "hologram"
        assert unknown.to_wire() == {"kind": "hologram", "frames": 3}
        assert text_of(message.parts) == "before after"

    def test_malformed_known_part_rejected(self):
        with pytest.raises(ValidationError):
            Message.model_validate({"parts": [{"kind": "text"}]})

    def test_non_object_part_rejected(self):
        with pytest.raises(ValidationError):
            Message.model_validate({"parts": ["hello"]})

    def test_text_of_concatenates_in_order_without_separator(self):
        parts = [TextPart(text="Hel"), DataPart(data={}), TextPart(text="lo")]

        assert text_of(parts) == "Hello"
        assert text_of(None) == ""


class TestWireModels:
    def test_camel_case_round_trip_keeps_unknown_fields(self):
        raw = {
            "kind": "message",
            "messageId": "m1",
            "role": "user",
            "parts": [make_text_part("hi")],
            "contextId": "c1",
            "vendorExtension": {"a": 1},
        }

        message = Message.model_validate(raw)

        assert message.context_id == "c1"
        assert message.to_wire() == raw

    def test_to_wire_drops_none(self):
        wire = Message(message_id="m1", role="user", parts=[]).to_wire()

        assert "taskId" not in wire
        assert "contextId" not in wire

    def test_task_minimal(self):
        task = Task.model_validate({"id": "t1", "status": {"state": "working"}})

        assert task.kind == "task"
        assert task.status is not None
        assert task.status.state == "working"
        assert task.artifacts is None


class TestArtifact:
    def test_placeholder(self):
        assert Artifact(artifact_id="a1").is_placeholder
        assert not Artifact(artifact_id="a1", description="pending").is_placeholder
        assert not Artifact(
            artifact_id="a1", parts=[TextPart(text="x")]
        ).is_placeholder

    def test_text(self):
        artifact = Artifact.model_validate(
            {"artifactId": "a1", "parts": [make_text_part("x"), make_text_part("y")]}
        )

        assert artifact.text == "xy"


class TestStreamEvents:
    def test_status_event(self):
        event = StatusUpdateEvent.model_validate(
            {"taskId": "t1", "status": {"state": "working"}, "final": False}
        )

        assert event.task_id == "t1"
        assert event.append is None

    def test_legacy_id_becomes_task_id(self):
        event = StatusUpdateEvent.model_validate(
            {"id": "legacy-1", "status": {"state": "working"}}
        )

        assert event.task_id == "legacy-1"

    def test_task_id_wins_over_legacy_id(self):
        event = ArtifactUpdateEvent.model_validate(
            {"id": "x", "taskId": "t1", "artifact": {"artifactId": "a1"}}
        )

        assert event.task_id == "t1"
        assert event.status is None


class TestRpcRequest:
    def test_payload(self):
        request = RpcRequest(id="1", method="message/send", params={"a": 1})

        assert request.to_payload() == {
            "jsonrpc": "2.0",
            "id": "1",
            "method": "message/send",
            "params": {"a": 1},
        }


class TestCanonicalTurn:
    def test_defaults(self):
        turn = CanonicalTurn()

        assert turn.text == ""
        assert turn.parts == []
        assert turn.artifacts == []
        assert turn.error is None
        assert not turn.has_rich_parts

    def test_rich_parts(self):
        turn = CanonicalTurn(text="x", parts=[DataPart(data={"k": 1})])

        assert turn.has_rich_parts


class TestFileAttachment:
    def test_from_bytes(self):
        attachment = FileAttachment.from_bytes("notes.txt", b"hello")

        assert attachment.status == "ready"
        assert attachment.base64 == "aGVsbG8="
        assert attachment.size == 5
        assert attachment.mime_type == "text/plain"

    def test_from_bytes_unknown_extension(self):
        attachment = FileAttachment.from_bytes("blob.zzqq", b"\x00")

        assert attachment.mime_type == "application/octet-stream"

    def test_from_path(self, tmp_path):
        path = tmp_path / "data.json"
        path.write_bytes(b"{}")

        attachment = FileAttachment.from_path(path)

        assert attachment.name == "data.json"
        assert attachment.status == "ready"
        assert attachment.mime_type == "application/json"

    def test_from_missing_path(self, tmp_path):
        attachment = FileAttachment.from_path(tmp_path / "nope.txt")

        assert attachment.status == "error"
        assert attachment.base64 is None
        assert attachment.error
