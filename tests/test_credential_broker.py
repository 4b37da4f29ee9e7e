from __future__ import annotations

import asyncio
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from backend.pacelab.repositories.token_repository import TokenRepository
from backend.pacelab.services.credential_broker import (
    TOKEN_ENDPOINT,
    UPLOAD_SCOPES,
    CredentialBroker,
)
from backend.pacelab.services.errors import CodeExchangeFailed, CredentialConfigurationError


def _broker(
    repository: TokenRepository,
    *,
    static_refresh_token: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    client_id: str | None = "client-id",
    redirect_uri: str | None = "http://localhost:3001/api/youtube/auth/callback",
) -> CredentialBroker:
    return CredentialBroker(
        token_repository=repository,
        client_id=client_id,
        client_secret="client-secret",
        redirect_uri=redirect_uri,
        static_refresh_token=static_refresh_token,
        transport=transport,
    )


def test_resolve_refresh_token_prefers_stored_token(token_repository: TokenRepository) -> None:
    token_repository.save_refresh_token("owner", "stored-token")
    broker = _broker(token_repository, static_refresh_token="static-token")

    resolved = asyncio.run(broker.resolve_refresh_token("owner"))

    assert resolved.refresh_token == "stored-token"
    assert resolved.source == "stored"


def test_resolve_refresh_token_falls_back_to_static(token_repository: TokenRepository) -> None:
    broker = _broker(token_repository, static_refresh_token="static-token")

    resolved = asyncio.run(broker.resolve_refresh_token("owner"))

    assert resolved.refresh_token == "static-token"
    assert resolved.source == "static"


def test_resolve_refresh_token_reports_none(token_repository: TokenRepository) -> None:
    broker = _broker(token_repository)

    resolved = asyncio.run(broker.resolve_refresh_token("owner"))

    assert resolved.refresh_token is None
    assert resolved.source == "none"


def test_build_credentials_without_token_is_unauthenticated(
    token_repository: TokenRepository,
) -> None:
    broker = _broker(token_repository)

    session = asyncio.run(broker.build_credentials("owner"))

    assert session.authenticated is False
    assert session.source == "none"
    assert asyncio.run(broker.fetch_access_token(session)) is None


def test_build_credentials_uses_stored_refresh_token(token_repository: TokenRepository) -> None:
    token_repository.save_refresh_token("owner", "stored-token")
    broker = _broker(token_repository)

    session = asyncio.run(broker.build_credentials("owner"))

    assert session.authenticated is True
    assert session.source == "stored"
    assert session.credentials.refresh_token == "stored-token"
    assert session.credentials.client_id == "client-id"


def test_build_authorization_url_is_deterministic(token_repository: TokenRepository) -> None:
    broker = _broker(token_repository)

    first = broker.build_authorization_url()
    second = broker.build_authorization_url()

    assert first == second
    params = parse_qs(urlparse(first).query)
    assert params["access_type"] == ["offline"]
    assert params["prompt"] == ["consent"]
    assert params["response_type"] == ["code"]
    assert params["client_id"] == ["client-id"]
    assert params["scope"] == [" ".join(UPLOAD_SCOPES)]


def test_build_authorization_url_requires_client_config(
    token_repository: TokenRepository,
) -> None:
    broker = _broker(token_repository, client_id=None)

    with pytest.raises(CredentialConfigurationError):
        broker.build_authorization_url()


def test_exchange_code_persists_refresh_token(token_repository: TokenRepository) -> None:
    seen_forms: list[dict[str, list[str]]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert str(request.url) == TOKEN_ENDPOINT
        seen_forms.append(parse_qs(request.content.decode("utf-8")))
        return httpx.Response(
            200,
            json={
                "access_token": "ya29.access",
                "refresh_token": "1//fresh",
                "expires_in": 3599,
                "scope": "https://www.googleapis.com/auth/youtube.upload",
            },
        )

    broker = _broker(token_repository, transport=httpx.MockTransport(handler))

    result = asyncio.run(broker.exchange_code("auth-code", "owner"))

    assert result.refresh_token_saved is True
    assert result.expires_in == 3599
    assert token_repository.get_refresh_token("owner") == "1//fresh"
    assert seen_forms[0]["code"] == ["auth-code"]
    assert seen_forms[0]["grant_type"] == ["authorization_code"]


def test_exchange_code_without_refresh_token_persists_nothing(
    token_repository: TokenRepository,
) -> None:
    token_repository.save_refresh_token("owner", "existing")

    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"access_token": "ya29.access", "expires_in": 3599})

    broker = _broker(token_repository, transport=httpx.MockTransport(handler))

    result = asyncio.run(broker.exchange_code("auth-code", "owner"))

    assert result.refresh_token_saved is False
    assert token_repository.get_refresh_token("owner") == "existing"


def test_exchange_code_rejection_raises(token_repository: TokenRepository) -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": "invalid_grant"})

    broker = _broker(token_repository, transport=httpx.MockTransport(handler))

    with pytest.raises(CodeExchangeFailed) as excinfo:
        asyncio.run(broker.exchange_code("bad-code", "owner"))

    assert "invalid_grant" in excinfo.value.payload
    assert token_repository.get_refresh_token("owner") is None
