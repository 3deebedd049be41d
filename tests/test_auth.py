"""Tests for authentication configuration and integration."""

from __future__ import annotations

import base64
import ssl
from pathlib import Path
from unittest.mock import MagicMock, patch

import httpx
import pytest

from a2a_conversation import (
    AgentClient,
    APIKeyCredentials,
    AuthConfig,
    BasicAuthCredentials,
    BearerTokenCredentials,
    TLSCertificates,
)
from a2a_conversation.transport import HttpTransport

from .conftest import FakeAgent, card_json


class TestBearerTokenAuth:
    def test_bearer_token_header(self):
        config = AuthConfig().add_bearer_token("eyJhbGc...")

        assert config.build_headers()["Authorization"] == "Bearer eyJhbGc..."

    def test_bearer_token_custom_type(self):
        config = AuthConfig().add_bearer_token("token123", token_type="DPoP")

        assert config.build_headers()["Authorization"] == "DPoP token123"

    def test_bearer_token_persistence(self):
        config = AuthConfig().add_bearer_token("token")

        assert config.bearer_token == BearerTokenCredentials(token="token")


class TestAPIKeyAuth:
    def test_api_key_default_header(self):
        headers = AuthConfig().add_api_key("sk-123").build_headers()

        assert headers == {"X-API-Key": "sk-123"}

    def test_api_key_custom_header(self):
        headers = (
            AuthConfig().add_api_key("sk-123", header_name="api-key").build_headers()
        )

        assert headers == {"api-key": "sk-123"}


class TestBasicAuth:
    def test_basic_auth_header(self):
        headers = AuthConfig().add_basic_auth("alice", "s3cret").build_headers()

        expected = base64.b64encode(b"alice:s3cret").decode()
        assert headers["Authorization"] == f"Basic {expected}"

    def test_basic_auth_with_special_chars(self):
        config = AuthConfig().add_basic_auth("user@corp", "p:ss word")
        headers = config.build_headers()

        encoded = headers["Authorization"].removeprefix("Basic ")
        assert base64.b64decode(encoded).decode() == "user@corp:p:ss word"


class TestRawAuthorizationHeader:
    def test_value_sent_verbatim(self):
        headers = (
            AuthConfig().add_authorization_header("Token abc123").build_headers()
        )

        assert headers["Authorization"] == "Token abc123"

    def test_value_is_trimmed(self):
        config = AuthConfig().add_authorization_header("  Bearer xyz \n")

        assert config.authorization_header == "Bearer xyz"

    def test_blank_value_ignored(self):
        config = AuthConfig().add_authorization_header("   ")

        assert config.authorization_header is None
        assert "Authorization" not in config.build_headers()

    def test_precedence_raw_over_basic_over_bearer(self):
        config = AuthConfig().add_bearer_token("tok").add_basic_auth("u", "p")
        assert config.build_headers()["Authorization"].startswith("Basic ")

        config.add_authorization_header("Custom xyz")
        assert config.build_headers()["Authorization"] == "Custom xyz"


class TestTLSAuth:
    def test_tls_certificates_persistence(self):
        config = AuthConfig().add_tls_certificates(
            "/certs/client.crt", "/certs/client.key", "/certs/ca.crt"
        )

        assert config.tls_certificates == TLSCertificates(
            client_cert_path="/certs/client.crt",
            client_key_path="/certs/client.key",
            ca_cert_path="/certs/ca.crt",
        )

    def test_tls_path_objects(self):
        config = AuthConfig().add_tls_certificates(
            Path("/certs/client.crt"), Path("/certs/client.key")
        )

        assert config.tls_certificates is not None
        assert config.tls_certificates.client_cert_path == "/certs/client.crt"
        assert config.tls_certificates.ca_cert_path is None

    def test_build_ssl_context_no_tls(self):
        assert AuthConfig().build_ssl_context() is None

    def test_build_ssl_context_loads_chain(self):
        config = AuthConfig().add_tls_certificates(
            "/certs/client.crt", "/certs/client.key", "/certs/ca.crt"
        )
        context = MagicMock(spec=ssl.SSLContext)

        with patch(
            "a2a_conversation.auth.ssl.create_default_context", return_value=context
        ) as create:
            assert config.build_ssl_context() is context

        create.assert_called_once_with(cafile="/certs/ca.crt")
        context.load_cert_chain.assert_called_once_with(
            certfile="/certs/client.crt", keyfile="/certs/client.key"
        )

    def test_build_ssl_context_missing_files(self, tmp_path):
        config = AuthConfig().add_tls_certificates(
            tmp_path / "missing.crt", tmp_path / "missing.key"
        )

        with pytest.raises((FileNotFoundError, ssl.SSLError)):
            config.build_ssl_context()


class TestCustomHeaders:
    def test_multiple_custom_headers(self):
        headers = (
            AuthConfig()
            .add_custom_header("X-Tenant", "acme")
            .add_custom_header("X-Trace", "on")
            .build_headers()
        )

        assert headers == {"X-Tenant": "acme", "X-Trace": "on"}

    def test_chaining_returns_self(self):
        config = AuthConfig()

        assert config.add_bearer_token("t") is config
        assert config.add_api_key("k") is config
        assert config.add_custom_header("a", "b") is config
        assert config.add_authorization_header("x") is config


class TestCredentialDataclasses:
    def test_defaults(self):
        assert BearerTokenCredentials(token="t").token_type == "Bearer"
        assert APIKeyCredentials(key="k").header_name == "X-API-Key"
        assert BasicAuthCredentials(username="u", password="p").password == "p"

    def test_each_credential_renders_its_header(self):
        assert APIKeyCredentials(key="k", header_name="api-key").header() == (
            "api-key",
            "k",
        )
        assert BearerTokenCredentials(token="t").header() == (
            "Authorization",
            "Bearer t",
        )


class TestSchemes:
    def test_lists_configured_schemes(self):
        config = (
            AuthConfig()
            .add_bearer_token("secret-token")
            .add_tls_certificates("c.crt", "c.key")
        )

        assert config.schemes == ["bearer", "mtls"]

    def test_repr_hides_secrets(self):
        config = AuthConfig().add_api_key("sk-very-secret")

        assert repr(config) == "AuthConfig(schemes=['api_key'])"
        assert "sk-very-secret" not in repr(config)


class TestClientAuth:
    """Headers reach every request the client issues."""

    def test_transport_merges_headers(self):
        transport = HttpTransport(
            "http://agent.test",
            headers={"X-Base": "1"},
            auth=AuthConfig().add_api_key("sk-1"),
        )

        assert transport.headers == {"X-Base": "1", "X-API-Key": "sk-1"}

    def test_authorization_header_shorthand(self):
        client = AgentClient("http://agent.test", authorization_header="Bearer abc")

        assert client.transport.headers["Authorization"] == "Bearer abc"

    def test_authorization_header_shorthand_extends_auth(self):
        client = AgentClient(
            "http://agent.test",
            auth=AuthConfig().add_api_key("sk-1"),
            authorization_header="Token zzz",
        )

        assert client.transport.headers == {
            "X-API-Key": "sk-1",
            "Authorization": "Token zzz",
        }

    @pytest.mark.asyncio
    async def test_headers_sent_on_discovery(self, agent_card):
        agent = FakeAgent(card_json(agent_card))
        client = AgentClient(
            "http://test-agent:8080",
            auth=AuthConfig().add_bearer_token("tok"),
            http_client=agent.http_client(),
        )

        await client.get_agent_card()

        request: httpx.Request = agent.requests[0]
        assert request.headers["Authorization"] == "Bearer tok"
