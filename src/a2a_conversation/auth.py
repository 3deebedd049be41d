"""Credentials attached to every request sent to an agent.

Discovery, ``message/send`` and ``message/stream`` all carry the headers
built here; when requests go through the relay, they travel inside the
envelope and the relay masks them in its logs.
"""

from __future__ import annotations

import base64
import ssl
from dataclasses import dataclass
from pathlib import Path

AUTHORIZATION = "Authorization"


@dataclass(frozen=True)
class TLSCertificates:
    """Client certificate and key for agents that require mTLS.

    Attributes:
        client_cert_path: PEM certificate presented to the agent.
        client_key_path: Private key matching ``client_cert_path``.
        ca_cert_path: CA bundle used to verify the agent; system
            defaults when None.
    """

    client_cert_path: str
    client_key_path: str
    ca_cert_path: str | None = None

    def ssl_context(self) -> ssl.SSLContext:
        context = ssl.create_default_context(cafile=self.ca_cert_path)
        context.load_cert_chain(
            certfile=self.client_cert_path, keyfile=self.client_key_path
        )
        return context


@dataclass(frozen=True)
class BearerTokenCredentials:
    token: str
    token_type: str = "Bearer"

    def header(self) -> tuple[str, str]:
        return AUTHORIZATION, f"{self.token_type} {self.token}"


@dataclass(frozen=True)
class APIKeyCredentials:
    key: str
    header_name: str = "X-API-Key"

    def header(self) -> tuple[str, str]:
        return self.header_name, self.key


@dataclass(frozen=True)
class BasicAuthCredentials:
    username: str
    password: str

    def header(self) -> tuple[str, str]:
        pair = f"{self.username}:{self.password}".encode()
        return AUTHORIZATION, f"Basic {base64.b64encode(pair).decode()}"


class AuthConfig:
    """Fluent builder for agent credentials.

    Schemes are applied in a fixed order, so when several of them set
    ``Authorization`` the later one wins: Bearer, then Basic, then a raw
    header value. Custom headers go first and can be overridden by any
    scheme.

    Example:
        ```python
        auth = AuthConfig().add_bearer_token("eyJhbGc...")
        client = AgentClient("https://agent.example.com", auth=auth)
        ```
    """

    def __init__(self) -> None:
        self.tls_certificates: TLSCertificates | None = None
        self.bearer_token: BearerTokenCredentials | None = None
        self.api_key: APIKeyCredentials | None = None
        self.basic_auth: BasicAuthCredentials | None = None
        self.authorization_header: str | None = None
        self._extra_headers: dict[str, str] = {}

    def add_tls_certificates(
        self,
        client_cert: str | Path,
        client_key: str | Path,
        ca_cert: str | Path | None = None,
    ) -> AuthConfig:
        self.tls_certificates = TLSCertificates(
            str(client_cert), str(client_key), str(ca_cert) if ca_cert else None
        )
        return self

    def add_bearer_token(self, token: str, token_type: str = "Bearer") -> AuthConfig:
        self.bearer_token = BearerTokenCredentials(token, token_type)
        return self

    def add_api_key(self, key: str, header_name: str = "X-API-Key") -> AuthConfig:
        self.api_key = APIKeyCredentials(key, header_name)
        return self

    def add_basic_auth(self, username: str, password: str) -> AuthConfig:
        self.basic_auth = BasicAuthCredentials(username, password)
        return self

    def add_authorization_header(self, value: str) -> AuthConfig:
        """Send ``value`` verbatim as the ``Authorization`` header.

        Surrounding whitespace is dropped; a blank value clears the header
        instead of sending an empty one.
        """
        self.authorization_header = value.strip() or None
        return self

    def add_custom_header(self, header_name: str, value: str) -> AuthConfig:
        self._extra_headers[header_name] = value
        return self

    @property
    def schemes(self) -> list[str]:
        """Names of the configured schemes, safe to log."""
        configured = {
            "bearer": self.bearer_token,
            "api_key": self.api_key,
            "basic": self.basic_auth,
            "authorization_header": self.authorization_header,
            "mtls": self.tls_certificates,
        }
        return [name for name, value in configured.items() if value]

    def build_headers(self) -> dict[str, str]:
        headers = dict(self._extra_headers)
        for credentials in (self.bearer_token, self.api_key, self.basic_auth):
            if credentials:
                name, value = credentials.header()
                headers[name] = value
        if self.authorization_header:
            headers[AUTHORIZATION] = self.authorization_header
        return headers

    def build_ssl_context(self) -> ssl.SSLContext | None:
        """SSL context presenting the client certificate, if one is set.

        Raises:
            FileNotFoundError: If a certificate file is missing.
            ssl.SSLError: If the certificate or key is invalid.
        """
        if self.tls_certificates is None:
            return None
        return self.tls_certificates.ssl_context()

    def __repr__(self) -> str:
        return f"AuthConfig(schemes={self.schemes})"
