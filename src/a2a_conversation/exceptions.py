"""Exception hierarchy for a2a-conversation.

Every failure the client surfaces is a subclass of ``A2AClientError`` so
callers can catch the whole family at once, or branch on the specific
type (discovery, timeout, transport, protocol, streaming).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, NoReturn

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .types import CanonicalTurn


class A2AClientError(Exception):
    """Base exception for all a2a-conversation errors.

    Attributes:
        message: Human-readable error message.
        __cause__: Optional chained exception (from another error).
    """

    def __init__(
        self,
        message: str,
        *,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.__cause__ = cause


class DiscoveryFailedError(A2AClientError):
    """The agent card could not be located or fetched.

    ``not_found`` distinguishes "nothing published at any known location"
    from "a server answered with an error" so the caller can phrase the
    failure accordingly.

    Attributes:
        status_code: HTTP status that ended discovery, if any.
        not_found: True when every location answered 404.
        tried_paths: Paths attempted, in order.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        not_found: bool = False,
        tried_paths: Sequence[str] = (),
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, cause=cause)
        self.status_code = status_code
        self.not_found = not_found
        self.tried_paths = list(tried_paths)


class A2ATimeoutError(A2AClientError):
    """A call exceeded the configured deadline.

    Attributes:
        elapsed: Seconds spent before the call was abandoned.
    """

    def __init__(
        self,
        message: str,
        *,
        elapsed: float,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, cause=cause)
        self.elapsed = elapsed


class A2ATransportError(A2AClientError):
    """Network-level failure talking to the agent (or the relay).

    Raised for DNS failures, refused connections, dropped sockets and
    TLS errors.
    """


class A2AHTTPError(A2ATransportError):
    """The agent answered with a non-success HTTP status.

    Attributes:
        status_code: HTTP status code returned.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, cause=cause)
        self.status_code = status_code


class A2AProtocolError(A2AClientError):
    """The agent returned a JSON-RPC error object.

    Attributes:
        code: JSON-RPC error code.
        data: Optional error data from the server.
    """

    def __init__(
        self,
        message: str,
        *,
        code: int,
        data: Any = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, cause=cause)
        self.code = code
        self.data = data


class A2ATaskNotFoundError(A2AProtocolError):
    """Task ID not found on the agent (code -32001)."""


class A2ATaskNotCancelableError(A2AProtocolError):
    """Task cannot be canceled in its current state (code -32002)."""


class A2AUnsupportedOperationError(A2AProtocolError):
    """Agent does not support the requested operation (code -32004)."""


class A2AContentTypeError(A2AProtocolError):
    """Agent rejected the message content type (code -32005)."""


class A2AMethodNotFoundError(A2AProtocolError):
    """Agent does not implement the JSON-RPC method (code -32601)."""


class UnrecognizedReplyError(A2AClientError):
    """A reply matched none of the known Message/Task shapes.

    Attributes:
        reply: The raw reply, kept for diagnosis.
    """

    def __init__(
        self,
        message: str,
        *,
        reply: Any,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, cause=cause)
        self.reply = reply


class MalformedEventError(A2AClientError):
    """A streamed event could not be decoded into a known event type."""


class StreamingError(A2AClientError):
    """A stream failed after it started.

    Whatever had been accumulated is preserved so the turn can still be
    shown.

    Attributes:
        partial_text: Text accumulated before the failure.
        partial_turn: Canonical turn accumulated before the failure.
    """

    def __init__(
        self,
        message: str,
        *,
        partial_text: str = "",
        partial_turn: CanonicalTurn | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, cause=cause)
        self.partial_text = partial_text
        self.partial_turn = partial_turn


class IncompleteStreamError(StreamingError):
    """The connection closed before an event with ``final: true`` arrived."""


class UnauthorizedOriginError(A2AClientError):
    """Relay request came from an origin other than the relay's own.

    Attributes:
        origin: Origin presented by the caller.
        allowed: The relay's own origin.
    """

    def __init__(self, origin: str, allowed: str) -> None:
        super().__init__(f"Unauthorized origin: {origin} (allowed: {allowed})")
        self.origin = origin
        self.allowed = allowed


# Error code mapping for JSON-RPC error responses
_ERROR_CODE_MAP: dict[int, type[A2AProtocolError]] = {
    -32001: A2ATaskNotFoundError,
    -32002: A2ATaskNotCancelableError,
    -32004: A2AUnsupportedOperationError,
    -32005: A2AContentTypeError,
    -32601: A2AMethodNotFoundError,
}


def _raise_for_rpc_error(error: Any) -> NoReturn:
    """Convert a JSON-RPC error object to a typed exception.

    Accepts the raw ``error`` member of a JSON-RPC response. Servers in the
    wild sometimes send a bare string instead of ``{code, message}``; that
    is reported with code -32603 (internal error).

    Raises:
        A2AProtocolError: Or one of its subclasses based on error code.
    """
    if isinstance(error, dict):
        error_code = error.get("code", -32603)
        error_message = error.get("message", "Unknown error")
        error_data = error.get("data")
    else:
        error_code = -32603
        error_message = str(error)
        error_data = None

    if not isinstance(error_code, int):
        try:
            error_code = int(error_code)
        except (TypeError, ValueError):
            error_code = -32603

    exc_class = _ERROR_CODE_MAP.get(error_code, A2AProtocolError)

    raise exc_class(
        f"[{error_code}] {error_message}",
        code=error_code,
        data=error_data,
    )
