"""Same-origin forwarding relay.

Browser front-ends cannot call most agents directly (CORS). The relay
accepts a JSON envelope describing the upstream request, forwards it and
passes the answer back, streaming ``text/event-stream`` bodies through
unbuffered. ``AgentClient(relay_url=...)`` produces the envelopes.

Run with ``uvicorn --factory a2a_conversation.relay:create_relay_app``.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any
from urllib.parse import urlsplit
from uuid import uuid4

import httpx
from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel
from starlette.background import BackgroundTask

from .exceptions import UnauthorizedOriginError
from .transport import DEFAULT_TIMEOUT

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Mapping

logger = logging.getLogger(__name__)

RELAY_PATH = "/api/proxy"

SENSITIVE_HEADERS = frozenset(
    {"authorization", "auth", "api-key", "x-api-key", "cookie", "set-cookie"}
)

# Hop-by-hop headers, plus the two that stop being true once httpx has
# decoded the body.
STRIPPED_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailers",
        "transfer-encoding",
        "upgrade",
        "content-encoding",
        "content-length",
    }
)

SSE_HEADERS = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class RelaySettings(BaseModel):
    timeout: float = DEFAULT_TIMEOUT
    path: str = RELAY_PATH


class RelayEnvelope(BaseModel):
    """Upstream request as described by the caller."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    url: str | None = None
    method: str | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    body: str | None = None
    custom_headers: dict[str, str] | None = None


def mask_sensitive_headers(headers: Mapping[str, str]) -> dict[str, str]:
    """Copy of ``headers`` safe to log."""
    return {
        key: (value[:10] + "***MASKED***")
        if key.lower() in SENSITIVE_HEADERS
        else value
        for key, value in headers.items()
    }


def _origin_of(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}"


def check_origin(request: Request) -> None:
    """Reject calls from pages served by another origin.

    ``Origin`` is checked when present, else the ``Referer``. Requests
    carrying neither (non-browser callers) pass.

    Raises:
        UnauthorizedOriginError: On a mismatch.
    """
    allowed = _origin_of(str(request.url))
    origin = request.headers.get("origin")
    if origin:
        if origin != allowed:
            raise UnauthorizedOriginError(origin, allowed)
        return
    referer = request.headers.get("referer")
    if referer and _origin_of(referer) != allowed:
        raise UnauthorizedOriginError(_origin_of(referer), allowed)


def filter_response_headers(headers: httpx.Headers) -> dict[str, str]:
    return {
        key: value
        for key, value in headers.items()
        if key.lower() not in STRIPPED_HEADERS
    }


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def create_relay_app(
    settings: RelaySettings | None = None,
    *,
    http_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    """Build the relay application.

    Args:
        settings: Relay settings; defaults to a 300 s upstream timeout.
        http_client: Client used for upstream calls. Created (and closed
            on shutdown) when not given.
    """
    settings = settings or RelaySettings()
    owns_client = http_client is None
    client = http_client or httpx.AsyncClient(timeout=settings.timeout)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        if owns_client:
            await client.aclose()

    app = FastAPI(title="A2A relay", lifespan=lifespan)
    router = APIRouter()

    @app.exception_handler(UnauthorizedOriginError)
    async def _unauthorized(
        request: Request, exc: UnauthorizedOriginError
    ) -> JSONResponse:
        logger.warning("Relay rejected request: %s", exc)
        return _error(403, "Unauthorized origin")

    @router.post(settings.path)
    async def relay(request: Request) -> Response:
        request_id = f"req_{uuid4().hex[:12]}"
        check_origin(request)

        try:
            envelope = RelayEnvelope.model_validate(await request.json())
        except (ValueError, ValidationError) as e:
            logger.warning("[%s] Invalid relay envelope: %s", request_id, e)
            return _error(400, "Invalid relay request")

        if not envelope.url:
            logger.warning("[%s] Relay request without a URL", request_id)
            return _error(400, "URL is required")

        method = (envelope.method or "POST").upper()
        headers = httpx.Headers(envelope.headers)
        if envelope.custom_headers:
            headers.update(envelope.custom_headers)

        content: Any = None
        if envelope.body:
            if method in ("GET", "HEAD"):
                logger.debug(
                    "[%s] Ignoring body on %s request", request_id, method
                )
            else:
                content = envelope.body.encode("utf-8")

        logger.debug(
            "[%s] %s %s headers=%s body=%d chars",
            request_id,
            method,
            envelope.url,
            mask_sensitive_headers(headers),
            len(envelope.body or ""),
        )

        try:
            upstream_request = client.build_request(
                method, envelope.url, headers=headers, content=content
            )
            upstream = await client.send(upstream_request, stream=True)
        except httpx.HTTPError as e:
            logger.exception("[%s] Relay to %s failed", request_id, envelope.url)
            return _error(500, str(e) or "Proxy request failed")

        content_type = upstream.headers.get("content-type", "")
        response_headers = filter_response_headers(upstream.headers)
        logger.debug(
            "[%s] Upstream answered %d (%s)",
            request_id,
            upstream.status_code,
            content_type,
        )

        if "text/event-stream" in content_type:
            response_headers = {
                key: value
                for key, value in response_headers.items()
                if key.lower() not in {k.lower() for k in SSE_HEADERS}
            }
            response_headers.update(SSE_HEADERS)
            return StreamingResponse(
                upstream.aiter_bytes(),
                status_code=upstream.status_code,
                headers=response_headers,
                background=BackgroundTask(upstream.aclose),
            )

        try:
            body = await upstream.aread()
        except httpx.HTTPError as e:
            logger.exception(
                "[%s] Reading upstream body from %s failed",
                request_id,
                envelope.url,
            )
            return _error(500, str(e) or "Proxy request failed")
        finally:
            await upstream.aclose()

        return Response(
            content=body,
            status_code=upstream.status_code,
            headers=response_headers,
        )

    app.include_router(router)
    return app
