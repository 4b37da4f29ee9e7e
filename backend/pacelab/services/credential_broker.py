from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from importlib import import_module
from typing import Any, Literal
from urllib.parse import urlencode

import httpx

from backend.pacelab.repositories.token_repository import TokenRepository
from backend.pacelab.services.errors import (
    CodeExchangeFailed,
    CredentialConfigurationError,
    summarize_error,
)

LOGGER = logging.getLogger("pacelab.credentials")

AUTHORIZATION_ENDPOINT = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_ENDPOINT = "https://oauth2.googleapis.com/token"
UPLOAD_SCOPES: tuple[str, ...] = (
    "openid",
    "https://www.googleapis.com/auth/userinfo.profile",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/youtube.upload",
)

CredentialSource = Literal["stored", "static", "none"]


@dataclass(frozen=True)
class ResolvedRefreshToken:
    refresh_token: str | None
    source: CredentialSource


@dataclass(frozen=True)
class DelegatedSession:
    owner_id: str
    source: CredentialSource
    credentials: Any | None

    @property
    def authenticated(self) -> bool:
        return self.credentials is not None


@dataclass(frozen=True)
class CodeExchangeResult:
    owner_id: str
    refresh_token_saved: bool
    scope: str | None = None
    expires_in: int | None = None


class CredentialBroker:
    """Turns an owner's stored (or statically configured) refresh token into
    short-lived access credentials, and runs the consent/code-exchange half of
    the OAuth flow that produces those refresh tokens."""

    def __init__(
        self,
        *,
        token_repository: TokenRepository,
        client_id: str | None,
        client_secret: str | None,
        redirect_uri: str | None,
        static_refresh_token: str | None = None,
        http_timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._token_repository = token_repository
        self._client_id = client_id
        self._client_secret = client_secret
        self._redirect_uri = redirect_uri
        self._static_refresh_token = static_refresh_token
        self._http_timeout_seconds = max(1.0, float(http_timeout_seconds))
        self._transport = transport

    @property
    def token_repository(self) -> TokenRepository:
        return self._token_repository

    async def resolve_refresh_token(self, owner_id: str) -> ResolvedRefreshToken:
        stored = await asyncio.to_thread(self._token_repository.get_refresh_token, owner_id)
        if stored:
            return ResolvedRefreshToken(refresh_token=stored, source="stored")
        if self._static_refresh_token:
            return ResolvedRefreshToken(refresh_token=self._static_refresh_token, source="static")
        return ResolvedRefreshToken(refresh_token=None, source="none")

    async def build_credentials(self, owner_id: str) -> DelegatedSession:
        resolved = await self.resolve_refresh_token(owner_id)
        if resolved.refresh_token is None:
            LOGGER.warning(
                "youtube credentials missing owner_id=%s; outbound writes will be unauthenticated",
                owner_id,
            )
            return DelegatedSession(owner_id=owner_id, source="none", credentials=None)

        credentials_module = import_module("google.oauth2.credentials")
        credentials_cls: Any = credentials_module.Credentials
        credentials = credentials_cls(
            token=None,
            refresh_token=resolved.refresh_token,
            token_uri=TOKEN_ENDPOINT,
            client_id=self._client_id,
            client_secret=self._client_secret,
            scopes=list(UPLOAD_SCOPES),
        )
        return DelegatedSession(owner_id=owner_id, source=resolved.source, credentials=credentials)

    async def fetch_access_token(self, session: DelegatedSession) -> str | None:
        if session.credentials is None:
            return None
        await asyncio.to_thread(_refresh_credentials, session.credentials)
        token = getattr(session.credentials, "token", None)
        if isinstance(token, str) and token:
            return token
        return None

    def build_authorization_url(self) -> str:
        if not self._client_id or not self._redirect_uri:
            raise CredentialConfigurationError(
                "PACELAB_GOOGLE_CLIENT_ID and PACELAB_GOOGLE_REDIRECT_URI are required "
                "to build the YouTube consent URL."
            )
        query = urlencode(
            {
                "client_id": self._client_id,
                "redirect_uri": self._redirect_uri,
                "response_type": "code",
                "scope": " ".join(UPLOAD_SCOPES),
                "access_type": "offline",
                "prompt": "consent",
            }
        )
        return f"{AUTHORIZATION_ENDPOINT}?{query}"

    async def exchange_code(self, code: str, owner_id: str) -> CodeExchangeResult:
        if not self._client_id or not self._client_secret or not self._redirect_uri:
            raise CredentialConfigurationError(
                "PACELAB_GOOGLE_CLIENT_ID, PACELAB_GOOGLE_CLIENT_SECRET and "
                "PACELAB_GOOGLE_REDIRECT_URI are required to exchange an authorization code."
            )

        form = {
            "code": code,
            "client_id": self._client_id,
            "client_secret": self._client_secret,
            "redirect_uri": self._redirect_uri,
            "grant_type": "authorization_code",
        }
        try:
            async with httpx.AsyncClient(
                timeout=self._http_timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.post(TOKEN_ENDPOINT, data=form)
        except httpx.HTTPError as exc:
            raise CodeExchangeFailed(
                f"Authorization code exchange failed: {summarize_error(exc)}"
            ) from exc

        if response.status_code >= 400:
            LOGGER.warning(
                "youtube oauth code_exchange_failed owner_id=%s status=%s",
                owner_id,
                response.status_code,
            )
            raise CodeExchangeFailed(
                f"Authorization code exchange failed with status {response.status_code}",
                payload=response.text,
            )

        payload = _parse_json_object(response)
        refresh_token = payload.get("refresh_token")
        saved = False
        if isinstance(refresh_token, str) and refresh_token.strip():
            await asyncio.to_thread(
                self._token_repository.save_refresh_token,
                owner_id,
                refresh_token.strip(),
            )
            saved = True
        else:
            # Google omits refresh tokens on re-consent without prompt=consent.
            LOGGER.warning(
                "youtube oauth code_exchange_without_refresh_token owner_id=%s",
                owner_id,
            )

        raw_scope = payload.get("scope")
        raw_expires_in = payload.get("expires_in")
        return CodeExchangeResult(
            owner_id=owner_id,
            refresh_token_saved=saved,
            scope=raw_scope if isinstance(raw_scope, str) else None,
            expires_in=raw_expires_in if isinstance(raw_expires_in, int) else None,
        )


def _refresh_credentials(credentials: Any) -> None:
    requests_module = import_module("google.auth.transport.requests")
    request_cls: Any = requests_module.Request
    credentials.refresh(request_cls())


def _parse_json_object(response: httpx.Response) -> dict[str, Any]:
    try:
        parsed = response.json()
    except ValueError:
        return {}
    if isinstance(parsed, dict):
        return {str(key): value for key, value in parsed.items()}
    return {}
