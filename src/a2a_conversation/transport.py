"""HTTP transport for JSON-RPC calls and SSE streams."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import ssl
from typing import TYPE_CHECKING, Any

import httpx
from a2a.types import TaskState
from httpx_sse import SSEError, ServerSentEvent, aconnect_sse
from pydantic import ValidationError

from .exceptions import (
    A2AHTTPError,
    A2AProtocolError,
    A2ATimeoutError,
    A2ATransportError,
    IncompleteStreamError,
    MalformedEventError,
    UnrecognizedReplyError,
    _raise_for_rpc_error,
)
from .types import (
    ArtifactUpdateEvent,
    Message,
    StatusUpdateEvent,
    StreamEvent,
    Task,
    TaskStatus,
    TextPart,
    text_of,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Mapping

    from .auth import AuthConfig
    from .types import RpcRequest

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 300.0

_TERMINAL_STATES = frozenset(
    {
        TaskState.completed.value,
        TaskState.canceled.value,
        TaskState.failed.value,
        TaskState.rejected.value,
    }
)


def parse_stream_event(raw: Any) -> StreamEvent:
    """Decode one streamed ``result`` into a status or artifact event.

    Besides the two update events, agents may stream a Task snapshot or
    answer with a single Message. A snapshot becomes a status update
    (final only when the task is already terminal); a Message becomes a
    final status update carrying that message. Use
    ``parse_stream_events`` to keep a snapshot's artifacts.

    Raises:
        MalformedEventError: If the payload matches no known event.
    """
    if not isinstance(raw, dict):
        raise MalformedEventError(f"Stream event is not an object: {raw!r}")

    kind = raw.get("kind")
    try:
        if kind == "artifact-update" or (kind is None and "artifact" in raw):
            return ArtifactUpdateEvent.model_validate(raw)
        if kind == "status-update" or (kind is None and "status" in raw):
            return StatusUpdateEvent.model_validate(raw)
        if kind == "task":
            return _task_snapshot_events(Task.model_validate(raw))[-1]
        if kind == "message" or (kind is None and "parts" in raw):
            message = Message.model_validate(raw)
            return StatusUpdateEvent(
                task_id=message.task_id,
                context_id=message.context_id,
                status=TaskStatus(state=TaskState.completed.value, message=message),
                final=True,
            )
    except ValidationError as e:
        raise MalformedEventError(
            f"Invalid {kind or 'untyped'} stream event: {e}", cause=e
        ) from e

    raise MalformedEventError(f"Unrecognized stream event: {raw!r}")


def parse_stream_events(raw: Any) -> list[StreamEvent]:
    """Decode one streamed ``result`` into the events it stands for.

    A Task snapshot expands into one artifact update per artifact followed
    by its status update, so a completed Task carrying artifacts reduces to
    the same turn a blocking reply would. Everything else is a single event.

    Raises:
        MalformedEventError: If the payload matches no known event.
    """
    if isinstance(raw, dict) and raw.get("kind") == "task":
        try:
            task = Task.model_validate(raw)
        except ValidationError as e:
            raise MalformedEventError(
                f"Invalid task stream event: {e}", cause=e
            ) from e
        return _task_snapshot_events(task)
    return [parse_stream_event(raw)]


def _task_snapshot_events(task: Task) -> list[StreamEvent]:
    artifacts = [a for a in task.artifacts or [] if not a.is_placeholder]
    events: list[StreamEvent] = [
        ArtifactUpdateEvent(
            task_id=task.id,
            context_id=task.context_id,
            artifact=artifact,
            append=False,
        )
        for artifact in artifacts
    ]

    status = task.status or TaskStatus()
    status_text = text_of(status.message.parts) if status.message else ""
    artifact_texts = [a.text for a in artifacts if a.text]
    if not status_text and artifact_texts:
        # The status carries the joined artifact text, as blocking replies do.
        status = status.model_copy(
            update={
                "message": Message(
                    role="agent",
                    parts=[TextPart(text="\n".join(artifact_texts))],
                    task_id=task.id,
                    context_id=task.context_id,
                )
            }
        )
    events.append(
        StatusUpdateEvent(
            task_id=task.id,
            context_id=task.context_id,
            status=status,
            final=status.state in _TERMINAL_STATES,
        )
    )
    return events


def unwrap_rpc_response(payload: Any) -> Any:
    """Return the ``result`` of a JSON-RPC response or raise its error."""
    if not isinstance(payload, dict):
        raise UnrecognizedReplyError(
            "JSON-RPC response is not an object", reply=payload
        )
    if payload.get("error") is not None:
        _raise_for_rpc_error(payload["error"])
    if "result" not in payload:
        raise UnrecognizedReplyError(
            "JSON-RPC response has neither 'result' nor 'error'", reply=payload
        )
    return payload["result"]


class HttpTransport:
    """Issues JSON-RPC calls against one agent endpoint.

    All calls run against a deadline of ``timeout`` seconds. With
    ``relay_url`` set, every request is wrapped and posted to the
    forwarding relay instead of going to the agent directly.
    """

    def __init__(
        self,
        endpoint_url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        headers: Mapping[str, str] | None = None,
        auth: AuthConfig | None = None,
        relay_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._endpoint_url = endpoint_url
        self._timeout = timeout
        self._auth = auth
        self._relay_url = relay_url

        self._headers = dict(headers or {})
        if auth:
            self._headers.update(auth.build_headers())

        self._http_client = http_client
        self._owns_client = http_client is None

    @property
    def endpoint_url(self) -> str:
        return self._endpoint_url

    @endpoint_url.setter
    def endpoint_url(self, value: str) -> None:
        self._endpoint_url = value

    @property
    def timeout(self) -> float:
        return self._timeout

    @property
    def headers(self) -> dict[str, str]:
        return dict(self._headers)

    def _client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            verify: bool | ssl.SSLContext = True
            if self._auth:
                ssl_context = self._auth.build_ssl_context()
                if ssl_context:
                    verify = ssl_context
            # Deadlines are enforced per call, not by httpx.
            self._http_client = httpx.AsyncClient(timeout=None, verify=verify)
            self._owns_client = True
        return self._http_client

    def _build_request(
        self,
        method: str,
        url: str,
        *,
        body: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> tuple[str, str, dict[str, str], bytes | None]:
        """Resolve method, URL, headers and content, relay-wrapped if needed."""
        call_headers = dict(headers or {})
        content = json.dumps(body).encode("utf-8") if body is not None else None

        if self._relay_url is None:
            merged = {**self._headers, **call_headers}
            if content is not None:
                merged.setdefault("Content-Type", "application/json")
            return method, url, merged, content

        if content is not None:
            call_headers.setdefault("Content-Type", "application/json")
        envelope = {
            "url": url,
            "method": method,
            "headers": self._headers,
            "body": content.decode("utf-8") if content is not None else None,
            "customHeaders": call_headers,
        }
        return (
            "POST",
            self._relay_url,
            {"Content-Type": "application/json"},
            json.dumps(envelope).encode("utf-8"),
        )

    def _timeout_error(
        self, what: str, started: float, cause: Exception
    ) -> A2ATimeoutError:
        elapsed = asyncio.get_running_loop().time() - started
        return A2ATimeoutError(
            f"{what} to {self._endpoint_url} timed out after {elapsed:.1f}s "
            f"(limit {self._timeout}s)",
            elapsed=elapsed,
            cause=cause,
        )

    def _transport_error(self, e: httpx.HTTPError) -> A2ATransportError:
        return A2ATransportError(
            f"Failed to reach A2A agent at {self._endpoint_url}: {e}",
            cause=e,
        )

    async def get(
        self, url: str, *, headers: Mapping[str, str] | None = None
    ) -> httpx.Response:
        """GET ``url``; the response is returned whatever its status."""
        method, target, merged, content = self._build_request(
            "GET", url, headers={"Accept": "application/json", **(headers or {})}
        )
        started = asyncio.get_running_loop().time()
        try:
            async with asyncio.timeout(self._timeout):
                return await self._client().request(
                    method, target, headers=merged, content=content
                )
        except TimeoutError as e:
            raise self._timeout_error("GET", started, e) from e
        except httpx.TimeoutException as e:
            raise self._timeout_error("GET", started, e) from e
        except httpx.HTTPError as e:
            raise self._transport_error(e) from e

    async def post_rpc(
        self, request: RpcRequest, *, url: str | None = None
    ) -> httpx.Response:
        """POST a JSON-RPC request and return the raw HTTP response."""
        method, target, merged, content = self._build_request(
            "POST",
            url or self._endpoint_url,
            body=request.to_payload(),
            headers={"Accept": "application/json"},
        )
        logger.debug("POST %s %s (id=%s)", target, request.method, request.id)
        started = asyncio.get_running_loop().time()
        try:
            async with asyncio.timeout(self._timeout):
                return await self._client().request(
                    method, target, headers=merged, content=content
                )
        except TimeoutError as e:
            raise self._timeout_error(request.method, started, e) from e
        except httpx.TimeoutException as e:
            raise self._timeout_error(request.method, started, e) from e
        except httpx.HTTPError as e:
            raise self._transport_error(e) from e

    async def send(self, request: RpcRequest) -> Any:
        """Issue a blocking JSON-RPC call and return its ``result``.

        Raises:
            A2ATimeoutError: If the deadline expires.
            A2ATransportError: On network failure or non-2xx status.
            A2AProtocolError: If the agent answers with a JSON-RPC error.
        """
        response = await self.post_rpc(request)
        payload = _decode_json_body(response, request.method)
        if response.is_error and not (
            isinstance(payload, dict) and payload.get("error") is not None
        ):
            raise A2AHTTPError(
                f"{request.method} failed with HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return unwrap_rpc_response(payload)

    async def stream(self, request: RpcRequest) -> AsyncIterator[StreamEvent]:
        """Open an SSE stream and yield decoded events until the final one.

        The sequence is single-pass. The connection is released as soon as
        the final event is yielded, the deadline expires, or the consumer
        closes the iterator.

        Raises:
            A2ATimeoutError: If the deadline expires mid-stream.
            A2ATransportError: On network failure or non-2xx status.
            A2AProtocolError: If the agent streams a JSON-RPC error.
            MalformedEventError: If an event cannot be decoded.
            IncompleteStreamError: If the connection closes before an
                event with ``final: true``.
        """
        method, target, merged, content = self._build_request(
            "POST",
            self._endpoint_url,
            body=request.to_payload(),
            headers={"Accept": "text/event-stream"},
        )
        loop = asyncio.get_running_loop()
        started = loop.time()
        deadline = started + self._timeout
        logger.debug(
            "Opening stream %s %s (id=%s)", target, request.method, request.id
        )

        async with contextlib.AsyncExitStack() as stack:
            try:
                async with asyncio.timeout_at(deadline):
                    event_source = await stack.enter_async_context(
                        aconnect_sse(
                            self._client(),
                            method,
                            target,
                            headers=merged,
                            content=content,
                        )
                    )
                    response = event_source.response
                    content_type = response.headers.get("content-type", "")
                    if "text/event-stream" not in content_type:
                        # Agent answered without streaming; decode the body
                        # as a single JSON-RPC response.
                        await response.aread()
                        payload = _decode_json_body(response, request.method)
                        if response.is_error and not (
                            isinstance(payload, dict)
                            and payload.get("error") is not None
                        ):
                            raise A2AHTTPError(
                                f"{request.method} failed with HTTP "
                                f"{response.status_code}",
                                status_code=response.status_code,
                            )
                        immediate: list[StreamEvent] | None = parse_stream_events(
                            unwrap_rpc_response(payload)
                        )
                    else:
                        if response.is_error:
                            raise A2AHTTPError(
                                f"{request.method} failed with HTTP "
                                f"{response.status_code}",
                                status_code=response.status_code,
                            )
                        immediate = None

                if immediate is not None:
                    for event in immediate:
                        yield event
                    return

                sse_iter = event_source.aiter_sse()
                while True:
                    async with asyncio.timeout_at(deadline):
                        sse = await anext(sse_iter, None)
                    if sse is None:
                        raise IncompleteStreamError(
                            f"Stream {request.id} closed before the final event"
                        )
                    for event in _decode_sse(sse):
                        yield event
                        if event.final:
                            logger.debug(
                                "Stream %s reached final event", request.id
                            )
                            return
            except TimeoutError as e:
                raise self._timeout_error(request.method, started, e) from e
            except httpx.TimeoutException as e:
                raise self._timeout_error(request.method, started, e) from e
            except SSEError as e:
                raise A2ATransportError(
                    f"Invalid SSE stream from {self._endpoint_url}: {e}", cause=e
                ) from e
            except httpx.HTTPError as e:
                raise self._transport_error(e) from e

    async def close(self) -> None:
        """Close the underlying HTTP client if this transport created it."""
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
        self._http_client = None


def _decode_json_body(response: httpx.Response, method: str) -> Any:
    try:
        return response.json()
    except ValueError as e:
        if response.is_error:
            raise A2AHTTPError(
                f"{method} failed with HTTP {response.status_code}",
                status_code=response.status_code,
                cause=e,
            ) from e
        raise A2AProtocolError(
            f"{method} returned a body that is not JSON",
            code=-32700,
            cause=e,
        ) from e


def _decode_sse(sse: ServerSentEvent) -> list[StreamEvent]:
    """Decode one SSE frame; keep-alive frames yield no events."""
    if not sse.data or not sse.data.strip():
        return []
    try:
        payload = json.loads(sse.data)
    except ValueError as e:
        raise MalformedEventError(
            f"Stream event is not JSON: {sse.data[:200]!r}", cause=e
        ) from e
    # Envelope-less events are accepted as-is.
    if isinstance(payload, dict) and payload.get("jsonrpc") is not None:
        payload = unwrap_rpc_response(payload)
    return parse_stream_events(payload)
