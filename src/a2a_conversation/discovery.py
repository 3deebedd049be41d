"""Agent card discovery with ordered well-known paths."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from a2a.types import AgentCard
from a2a.utils import AGENT_CARD_WELL_KNOWN_PATH
from pydantic import ValidationError

from .exceptions import (
    A2AMethodNotFoundError,
    A2AProtocolError,
    A2ATransportError,
    DiscoveryFailedError,
    UnrecognizedReplyError,
)
from .transport import unwrap_rpc_response
from .types import RpcRequest

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .transport import HttpTransport

logger = logging.getLogger(__name__)

# Pre-0.3 servers (and several hosted platforms) still publish here.
LEGACY_AGENT_CARD_PATH = "/.well-known/agent.json"

DEFAULT_CARD_PATHS: tuple[str, ...] = (
    LEGACY_AGENT_CARD_PATH,
    AGENT_CARD_WELL_KNOWN_PATH,
)

EXTENDED_CARD_METHOD = "agent/getAuthenticatedExtendedCard"


def _join(base_url: str, path: str) -> str:
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"


class CardResolver:
    """Locates and fetches an agent's card.

    Paths are tried in order. A 404 moves on to the next path; any other
    failure ends discovery at once. If every path is missing the card is
    requested through the JSON-RPC discovery method on the base URL.
    """

    def __init__(
        self,
        transport: HttpTransport,
        base_url: str,
        *,
        card_paths: Sequence[str] | None = None,
    ) -> None:
        self._transport = transport
        self._base_url = base_url.rstrip("/")
        self._card_paths = tuple(card_paths or DEFAULT_CARD_PATHS)

    @property
    def card_paths(self) -> tuple[str, ...]:
        return self._card_paths

    async def resolve(self) -> AgentCard:
        """Fetch the agent card.

        Raises:
            DiscoveryFailedError: If no location yields a valid card.
                ``not_found`` is True only when every location, the
                discovery method included, reported the card as missing.
            A2ATimeoutError: If a request exceeds the transport deadline.
        """
        tried: list[str] = []
        for path in self._card_paths:
            url = _join(self._base_url, path)
            tried.append(path)
            try:
                response = await self._transport.get(url)
            except A2ATransportError as e:
                raise DiscoveryFailedError(
                    f"Could not reach {url}: {e}", tried_paths=tried, cause=e
                ) from e

            if response.status_code == 404:
                logger.debug("No agent card at %s (404)", url)
                continue

            if response.status_code != 200:
                raise DiscoveryFailedError(
                    f"Agent card request to {url} failed with HTTP "
                    f"{response.status_code}",
                    status_code=response.status_code,
                    tried_paths=tried,
                )

            card = self._parse_card(response, url, tried)
            logger.info("Discovered agent '%s' via %s", card.name, url)
            return card

        return await self._resolve_via_rpc(tried)

    def _parse_card(self, response: Any, url: str, tried: list[str]) -> AgentCard:
        try:
            return AgentCard.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise DiscoveryFailedError(
                f"Agent card at {url} is not a valid descriptor: {e}",
                status_code=response.status_code,
                tried_paths=tried,
                cause=e,
            ) from e

    async def _resolve_via_rpc(self, tried: list[str]) -> AgentCard:
        tried.append(EXTENDED_CARD_METHOD)
        request = RpcRequest(id=str(uuid4()), method=EXTENDED_CARD_METHOD)
        logger.debug(
            "All card paths missing at %s, trying %s",
            self._base_url,
            EXTENDED_CARD_METHOD,
        )
        try:
            response = await self._transport.post_rpc(request, url=self._base_url)
        except A2ATransportError as e:
            raise DiscoveryFailedError(
                f"Could not reach {self._base_url}: {e}", tried_paths=tried, cause=e
            ) from e

        if response.status_code == 404:
            raise DiscoveryFailedError(
                f"No agent card found at {self._base_url} "
                f"(tried {', '.join(tried)})",
                status_code=404,
                not_found=True,
                tried_paths=tried,
            )
        if response.status_code != 200:
            raise DiscoveryFailedError(
                f"{EXTENDED_CARD_METHOD} at {self._base_url} failed with HTTP "
                f"{response.status_code}",
                status_code=response.status_code,
                tried_paths=tried,
            )

        try:
            result = unwrap_rpc_response(response.json())
        except A2AMethodNotFoundError as e:
            raise DiscoveryFailedError(
                f"No agent card found at {self._base_url} "
                f"(tried {', '.join(tried)})",
                not_found=True,
                tried_paths=tried,
                cause=e,
            ) from e
        except (ValueError, A2AProtocolError, UnrecognizedReplyError) as e:
            raise DiscoveryFailedError(
                f"{EXTENDED_CARD_METHOD} at {self._base_url} failed: {e}",
                status_code=response.status_code,
                tried_paths=tried,
                cause=e,
            ) from e

        try:
            card = AgentCard.model_validate(result)
        except ValidationError as e:
            raise DiscoveryFailedError(
                f"{EXTENDED_CARD_METHOD} returned an invalid descriptor: {e}",
                status_code=response.status_code,
                tried_paths=tried,
                cause=e,
            ) from e

        logger.info(
            "Discovered agent '%s' via %s", card.name, EXTENDED_CARD_METHOD
        )
        return card
