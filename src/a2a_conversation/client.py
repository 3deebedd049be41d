"""Client facade tying discovery, transport and normalization together."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Self

from pydantic import ValidationError

from .auth import AuthConfig
from .discovery import CardResolver
from .exceptions import A2AClientError, UnrecognizedReplyError
from .request_builder import build_get_task_request
from .transport import DEFAULT_TIMEOUT, HttpTransport
from .types import Task

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Mapping, Sequence
    from types import TracebackType

    import httpx
    from a2a.types import AgentCard

    from .types import RpcRequest, StreamEvent

logger = logging.getLogger(__name__)


class AgentClient:
    """Connection to one A2A agent.

    The agent card is fetched lazily on first use. JSON-RPC calls go to the
    endpoint the card advertises, or to ``base_url`` when it advertises none.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        headers: Mapping[str, str] | None = None,
        auth: AuthConfig | None = None,
        authorization_header: str | None = None,
        relay_url: str | None = None,
        card_paths: Sequence[str] | None = None,
        http_client: httpx.AsyncClient | None = None,
        use_card_url: bool = True,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Agent base URL; card discovery starts here.
            timeout: Deadline in seconds for every call (default 300).
            headers: Additional HTTP headers.
            auth: Authentication configuration.
            authorization_header: Raw ``Authorization`` value; shorthand
                for ``AuthConfig().add_authorization_header(...)``.
            relay_url: Route every request through this forwarding relay.
            card_paths: Agent card locations to try, in order.
            http_client: Externally managed client; not closed by ``close``.
            use_card_url: Send JSON-RPC calls to the URL in the agent card.
        """
        self._base_url = base_url.rstrip("/")
        self._use_card_url = use_card_url

        if authorization_header:
            auth = (auth or AuthConfig()).add_authorization_header(
                authorization_header
            )

        self._transport = HttpTransport(
            self._base_url,
            timeout=timeout,
            headers=headers,
            auth=auth,
            relay_url=relay_url,
            http_client=http_client,
        )
        self._resolver = CardResolver(
            self._transport, self._base_url, card_paths=card_paths
        )
        self._agent_card: AgentCard | None = None

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def transport(self) -> HttpTransport:
        return self._transport

    @property
    def agent_card(self) -> AgentCard | None:
        return self._agent_card

    async def get_agent_card(self) -> AgentCard:
        """Return the agent card, discovering it on first call.

        Raises:
            DiscoveryFailedError: If no card could be found.
        """
        if self._agent_card is None:
            card = await self._resolver.resolve()
            if self._use_card_url and card.url:
                self._transport.endpoint_url = card.url
            logger.debug(
                "Using endpoint %s for agent '%s'",
                self._transport.endpoint_url,
                card.name,
            )
            self._agent_card = card
        return self._agent_card

    def _warn_if_not_streaming(self) -> None:
        if self._agent_card is None or self._agent_card.capabilities is None:
            return
        if self._agent_card.capabilities.streaming is False:
            logger.warning(
                "Agent '%s' does not advertise streaming; trying anyway",
                self._agent_card.name,
            )

    async def send_message(self, request: RpcRequest) -> Any:
        """Issue a blocking ``message/send`` and return the raw result.

        Raises:
            A2ATimeoutError: If the deadline expires.
            A2ATransportError: On network failure or non-2xx status.
            A2AProtocolError: If the agent answers with a JSON-RPC error.
        """
        await self.get_agent_card()
        logger.debug("Sending %s to %s", request.method, self._transport.endpoint_url)
        return await self._transport.send(request)

    async def stream_message(self, request: RpcRequest) -> AsyncIterator[StreamEvent]:
        """Issue a ``message/stream`` and yield its events until the final one."""
        await self.get_agent_card()
        self._warn_if_not_streaming()
        async for event in self._transport.stream(request):
            yield event

    async def get_task(
        self, task_id: str, *, history_length: int | None = None
    ) -> Task:
        """Retrieve the current state of a task via ``tasks/get``.

        Raises:
            A2ATaskNotFoundError: If the agent does not know the task.
            UnrecognizedReplyError: If the result is not a Task.
        """
        await self.get_agent_card()
        result = await self._transport.send(
            build_get_task_request(task_id, history_length=history_length)
        )
        try:
            return Task.model_validate(result)
        except ValidationError as e:
            raise UnrecognizedReplyError(
                f"tasks/get returned something other than a Task: {e}",
                reply=result,
                cause=e,
            ) from e

    async def health_check(self) -> bool:
        """Check if the agent is reachable by fetching its card."""
        try:
            await self._resolver.resolve()
        except A2AClientError:
            logger.warning(
                "A2A health check failed for %s", self._base_url, exc_info=True
            )
            return False
        else:
            return True

    async def close(self) -> None:
        await self._transport.close()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()
