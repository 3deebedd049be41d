"""LangChain Runnable over a Conversation."""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
from collections.abc import AsyncIterator
from contextlib import aclosing
from typing import Any, TypeAlias

from langchain_core.runnables import Runnable, RunnableConfig

from .auth import AuthConfig
from .client import AgentClient
from .conversation import Conversation
from .transport import DEFAULT_TIMEOUT
from .types import CanonicalTurn, FileAttachment

logger = logging.getLogger(__name__)

# Public input type: plain text, or {"text": ..., "attachments": [...]}
TurnInput: TypeAlias = str | dict[str, Any]


def _split_input(
    input: TurnInput,
    files: list[tuple[str, bytes, str]] | None,
) -> tuple[str, list[FileAttachment]]:
    """Separate text from attachments.

    ``files`` are (filename, file_bytes, mime_type) tuples.

    Raises:
        ValueError: If a dict input holds neither text nor attachments.
    """
    attachments = [
        FileAttachment.from_bytes(name, content, mime_type)
        for name, content, mime_type in files or []
    ]
    if isinstance(input, str):
        return input, attachments

    text = input.get("text") or ""
    for item in input.get("attachments") or []:
        attachments.append(
            item if isinstance(item, FileAttachment) else FileAttachment(**item)
        )
    if not text and not attachments:
        raise ValueError("Input must contain 'text' or 'attachments'")
    return text, attachments


class ConversationRunnable(Runnable[TurnInput, CanonicalTurn | None]):
    """LangChain Runnable holding one conversation with an A2A agent.

    Successive invocations continue the same server-side task. Invocations
    made while a turn is in flight are ignored and return None.

    Usage:
        chat = await ConversationRunnable.from_agent_url("http://agent:8080")
        turn = await chat.ainvoke("summarize this document")

        async for turn in chat.astream("explain in detail"):
            print(turn.text)

        chat.reset()  # start a new task
    """

    def __init__(self, conversation: Conversation) -> None:
        self._conversation = conversation

    @classmethod
    async def from_agent_url(
        cls,
        url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        headers: dict[str, str] | None = None,
        auth: AuthConfig | None = None,
        relay_url: str | None = None,
        context_id: str | None = None,
    ) -> ConversationRunnable:
        """Create a ConversationRunnable by discovering the agent card at the URL.

        Raises:
            DiscoveryFailedError: If agent discovery fails.
        """
        client = AgentClient(
            url, timeout=timeout, headers=headers, auth=auth, relay_url=relay_url
        )
        card = await client.get_agent_card()
        logger.info("Initialized conversation with agent '%s'", card.name)
        return cls(Conversation(client, context_id=context_id))

    @property
    def conversation(self) -> Conversation:
        return self._conversation

    def reset(self) -> None:
        self._conversation.reset()

    async def ainvoke(
        self,
        input: TurnInput,
        config: RunnableConfig | None = None,
        *,
        files: list[tuple[str, bytes, str]] | None = None,
        **kwargs: Any,
    ) -> CanonicalTurn | None:
        """Send one message and return the agent's complete turn.

        Maps to A2A ``message/send`` (or a fully consumed ``message/stream``
        when the conversation streams).

        Raises:
            A2ATimeoutError: If the request times out.
            A2ATransportError: If the agent cannot be reached.
            A2AProtocolError: If the agent returns a JSON-RPC error.
        """
        if kwargs:
            logger.debug("Ignoring unsupported kwargs in ainvoke: %s", set(kwargs))
        text, attachments = _split_input(input, files)
        return await self._conversation.send(text, attachments)

    def invoke(
        self,
        input: TurnInput,
        config: RunnableConfig | None = None,
        *,
        files: list[tuple[str, bytes, str]] | None = None,
        **kwargs: Any,
    ) -> CanonicalTurn | None:
        """Synchronous invocation.

        Runs ``ainvoke`` on a worker thread when called from inside a
        running event loop.
        """

        async def run_async() -> CanonicalTurn | None:
            return await self.ainvoke(input, config, files=files, **kwargs)

        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return asyncio.run(run_async())
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as executor:
            return executor.submit(asyncio.run, run_async()).result()

    async def astream(  # type: ignore[override]
        self,
        input: TurnInput,
        config: RunnableConfig | None = None,
        *,
        files: list[tuple[str, bytes, str]] | None = None,
        **kwargs: Any,
    ) -> AsyncIterator[CanonicalTurn]:
        """Stream the agent's turn via ``message/stream``.

        Each yielded turn is a complete snapshot of the text so far.
        """
        if kwargs:
            logger.debug("Ignoring unsupported kwargs in astream: %s", set(kwargs))
        text, attachments = _split_input(input, files)
        async with aclosing(self._conversation.stream(text, attachments)) as turns:
            async for turn in turns:
                yield turn

    async def close(self) -> None:
        await self._conversation.client.close()

    async def __aenter__(self) -> ConversationRunnable:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
