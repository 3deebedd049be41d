"""Shared fixtures for a2a-conversation tests."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Callable
from typing import Any, TypeAlias, TypeVar

import httpx
import pytest
from a2a.types import AgentCapabilities, AgentCard, AgentSkill

from a2a_conversation.client import AgentClient
from a2a_conversation.discovery import LEGACY_AGENT_CARD_PATH

BASE_URL = "http://test-agent:8080"

# ---------------------------------------------------------------------------
# Agent cards
# ---------------------------------------------------------------------------


@pytest.fixture
def agent_card() -> AgentCard:
    return AgentCard(
        name="Test Agent",
        description="A test agent for unit tests",
        url=BASE_URL,
        version="1.0.0",
        capabilities=AgentCapabilities(streaming=True),
        default_input_modes=["text/plain"],
        default_output_modes=["text/plain"],
        skills=[
            AgentSkill(
                id="summarize",
                name="Summarize",
                description="Summarize documents",
                tags=["summarize"],
            ),
        ],
    )


def card_json(card: AgentCard) -> dict[str, Any]:
    return card.model_dump(mode="json", by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Wire payload builders (plain JSON, as servers send them)
# ---------------------------------------------------------------------------


def make_text_part(text: str) -> dict[str, Any]:
    return {"kind": "text", "text": text}


def make_data_part(data: dict[str, Any]) -> dict[str, Any]:
    return {"kind": "data", "data": data}


def make_file_part(
    *,
    name: str = "report.pdf",
    mime_type: str = "application/pdf",
    uri: str | None = "https://files.example.com/report.pdf",
    bytes_: str | None = None,
) -> dict[str, Any]:
    file: dict[str, Any] = {"name": name, "mimeType": mime_type}
    if uri is not None:
        file["uri"] = uri
    if bytes_ is not None:
        file["bytes"] = bytes_
    return {"kind": "file", "file": file}


def make_message(
    parts: list[dict[str, Any]],
    *,
    role: str = "agent",
    task_id: str | None = None,
    context_id: str | None = None,
) -> dict[str, Any]:
    message: dict[str, Any] = {
        "kind": "message",
        "messageId": "m1",
        "role": role,
        "parts": parts,
    }
    if task_id is not None:
        message["taskId"] = task_id
    if context_id is not None:
        message["contextId"] = context_id
    return message


def make_artifact(
    parts: list[dict[str, Any]],
    *,
    artifact_id: str = "a1",
    name: str | None = None,
) -> dict[str, Any]:
    artifact: dict[str, Any] = {"artifactId": artifact_id, "parts": parts}
    if name is not None:
        artifact["name"] = name
    return artifact


def make_task(
    *,
    task_id: str = "t1",
    context_id: str | None = "c1",
    state: str = "completed",
    status_message: dict[str, Any] | None = None,
    artifacts: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    status: dict[str, Any] = {"state": state}
    if status_message is not None:
        status["message"] = status_message
    task: dict[str, Any] = {"kind": "task", "id": task_id, "status": status}
    if context_id is not None:
        task["contextId"] = context_id
    if artifacts is not None:
        task["artifacts"] = artifacts
    return task


def make_status_event(
    text: str | None = None,
    *,
    task_id: str = "t1",
    context_id: str = "c1",
    state: str = "working",
    append: bool | None = None,
    final: bool = False,
) -> dict[str, Any]:
    status: dict[str, Any] = {"state": state}
    if text is not None:
        status["message"] = make_message([make_text_part(text)])
    event: dict[str, Any] = {
        "kind": "status-update",
        "taskId": task_id,
        "contextId": context_id,
        "status": status,
        "final": final,
    }
    if append is not None:
        event["append"] = append
    return event


def make_artifact_event(
    parts: list[dict[str, Any]],
    *,
    artifact_id: str = "a1",
    task_id: str = "t1",
    context_id: str = "c1",
    append: bool | None = None,
    final: bool = False,
    last_chunk: bool | None = None,
) -> dict[str, Any]:
    event: dict[str, Any] = {
        "kind": "artifact-update",
        "taskId": task_id,
        "contextId": context_id,
        "artifact": make_artifact(parts, artifact_id=artifact_id),
        "final": final,
    }
    if append is not None:
        event["append"] = append
    if last_chunk is not None:
        event["lastChunk"] = last_chunk
    return event


# ---------------------------------------------------------------------------
# JSON-RPC and SSE builders
# ---------------------------------------------------------------------------


def rpc_result(result: Any, *, request_id: str = "1") -> dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


def rpc_error(code: int = -32001, message: str = "Task not found") -> dict[str, Any]:
    return {"jsonrpc": "2.0", "id": "1", "error": {"code": code, "message": message}}


def sse_frame(payload: dict[str, Any]) -> bytes:
    return f"data: {json.dumps(payload)}\n\n".encode()


def sse_response(*events: dict[str, Any]) -> httpx.Response:
    """SSE response carrying each event wrapped in a JSON-RPC envelope."""
    body = b"".join(sse_frame(rpc_result(event)) for event in events)
    return httpx.Response(
        200, headers={"content-type": "text/event-stream"}, content=body
    )


T = TypeVar("T")


async def collect(source: AsyncIterator[T]) -> list[T]:
    return [item async for item in source]


async def iterate_events(*events: Any) -> AsyncIterator[Any]:
    for event in events:
        yield event


# ---------------------------------------------------------------------------
# Fake agent server
# ---------------------------------------------------------------------------

Reply: TypeAlias = httpx.Response | Callable[[httpx.Request], httpx.Response]


class FakeAgent:
    """In-process agent behind ``httpx.MockTransport``.

    GET requests serve the card at the legacy well-known path and 404
    elsewhere. POST requests are answered from ``replies`` in order.
    """

    def __init__(self, card: dict[str, Any] | None) -> None:
        self.card = card
        self.replies: list[Reply] = []
        self.requests: list[httpx.Request] = []

    def reply_with(self, *replies: Reply) -> FakeAgent:
        self.replies.extend(replies)
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "GET":
            if self.card is not None and request.url.path == LEGACY_AGENT_CARD_PATH:
                return httpx.Response(200, json=self.card)
            return httpx.Response(404)
        reply = self.replies.pop(0)
        return reply(request) if callable(reply) else reply

    @property
    def rpc_bodies(self) -> list[dict[str, Any]]:
        return [json.loads(r.content) for r in self.requests if r.method == "POST"]

    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def fake_agent(agent_card: AgentCard) -> FakeAgent:
    return FakeAgent(card_json(agent_card))


@pytest.fixture
def agent_client(fake_agent: FakeAgent) -> AgentClient:
    return AgentClient(BASE_URL, http_client=fake_agent.http_client())
