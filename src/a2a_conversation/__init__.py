"""A2A conversation client: discovery, JSON-RPC/SSE transport and turn reduction.

``Conversation`` is the primary abstraction; ``ConversationRunnable`` exposes
it to LangChain/LangGraph and ``create_relay_app`` serves the forwarding
relay for browser front-ends.
"""

from .auth import (
    APIKeyCredentials,
    AuthConfig,
    BasicAuthCredentials,
    BearerTokenCredentials,
    TLSCertificates,
)
from .client import AgentClient
from .conversation import (
    DEFAULT_GREETING,
    Conversation,
    ConversationPhase,
    ConversationState,
)
from .discovery import CardResolver
from .exceptions import (
    A2AClientError,
    A2AContentTypeError,
    A2AHTTPError,
    A2AMethodNotFoundError,
    A2AProtocolError,
    A2ATaskNotCancelableError,
    A2ATaskNotFoundError,
    A2ATimeoutError,
    A2ATransportError,
    A2AUnsupportedOperationError,
    DiscoveryFailedError,
    IncompleteStreamError,
    MalformedEventError,
    StreamingError,
    UnauthorizedOriginError,
    UnrecognizedReplyError,
)
from .normalizer import normalize
from .reducer import StreamState, reduce, run_stream
from .relay import RelaySettings, create_relay_app
from .runnable import ConversationRunnable
from .transport import HttpTransport
from .types import (
    Artifact,
    ArtifactUpdateEvent,
    CanonicalTurn,
    ChatTurn,
    FileAttachment,
    Message,
    StatusUpdateEvent,
    Task,
)

__all__ = [
    "DEFAULT_GREETING",
    "A2AClientError",
    "A2AContentTypeError",
    "A2AHTTPError",
    "A2AMethodNotFoundError",
    "A2AProtocolError",
    "A2ATaskNotCancelableError",
    "A2ATaskNotFoundError",
    "A2ATimeoutError",
    "A2ATransportError",
    "A2AUnsupportedOperationError",
    "APIKeyCredentials",
    "AgentClient",
    "Artifact",
    "ArtifactUpdateEvent",
    "AuthConfig",
    "BasicAuthCredentials",
    "BearerTokenCredentials",
    "CanonicalTurn",
    "CardResolver",
    "ChatTurn",
    "Conversation",
    "ConversationPhase",
    "ConversationRunnable",
    "ConversationState",
    "DiscoveryFailedError",
    "FileAttachment",
    "HttpTransport",
    "IncompleteStreamError",
    "MalformedEventError",
    "Message",
    "RelaySettings",
    "StatusUpdateEvent",
    "StreamState",
    "StreamingError",
    "TLSCertificates",
    "Task",
    "UnauthorizedOriginError",
    "UnrecognizedReplyError",
    "create_relay_app",
    "normalize",
    "reduce",
    "run_stream",
]
