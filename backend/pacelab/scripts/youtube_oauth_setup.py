from __future__ import annotations

import argparse
from importlib import import_module
from pathlib import Path
from typing import Any

from backend.pacelab.config import load_settings
from backend.pacelab.repositories.database import Database
from backend.pacelab.repositories.token_repository import TokenRepository
from backend.pacelab.services.credential_broker import (
    AUTHORIZATION_ENDPOINT,
    TOKEN_ENDPOINT,
    UPLOAD_SCOPES,
)
from backend.pacelab.services.errors import CredentialConfigurationError


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Authorize PaceLab to upload to YouTube and store the refresh token.",
    )
    parser.add_argument(
        "--client-secret",
        type=Path,
        default=None,
        help=(
            "Path to a downloaded Google OAuth client secret JSON. "
            "Defaults to PACELAB_GOOGLE_CLIENT_ID/PACELAB_GOOGLE_CLIENT_SECRET."
        ),
    )
    parser.add_argument(
        "--owner",
        type=str,
        default=None,
        help="Owner id to store the token under (defaults to PACELAB_DEFAULT_OWNER_ID).",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=0,
        help="Local port for the consent redirect (0 picks a free port).",
    )
    return parser.parse_args()


def build_client_config(client_id: str | None, client_secret: str | None) -> dict[str, Any]:
    if not client_id or not client_secret:
        raise CredentialConfigurationError(
            "PACELAB_GOOGLE_CLIENT_ID and PACELAB_GOOGLE_CLIENT_SECRET are required "
            "unless --client-secret is given."
        )
    return {
        "installed": {
            "client_id": client_id,
            "client_secret": client_secret,
            "auth_uri": AUTHORIZATION_ENDPOINT,
            "token_uri": TOKEN_ENDPOINT,
            "redirect_uris": ["http://localhost"],
        }
    }


def store_granted_credentials(
    credentials: Any,
    *,
    repository: TokenRepository,
    owner_id: str,
) -> str:
    refresh_token = getattr(credentials, "refresh_token", None)
    if not isinstance(refresh_token, str) or not refresh_token.strip():
        raise CredentialConfigurationError(
            "Consent flow did not return a refresh token; revoke the app's access and retry."
        )
    repository.save_refresh_token(owner_id, refresh_token.strip())
    return refresh_token.strip()


def build_consent_flow(
    *,
    client_config: dict[str, Any] | None,
    client_secret_path: Path | None,
) -> Any:
    flow_module = import_module("google_auth_oauthlib.flow")
    flow_cls: Any = flow_module.InstalledAppFlow
    scopes = list(UPLOAD_SCOPES)
    if client_secret_path is not None:
        resolved = client_secret_path.expanduser().resolve()
        if not resolved.exists():
            raise CredentialConfigurationError(f"Client secret file does not exist: {resolved}")
        flow = flow_cls.from_client_secrets_file(str(resolved), scopes)
    elif client_config is not None:
        flow = flow_cls.from_client_config(client_config, scopes)
    else:
        raise CredentialConfigurationError("No OAuth client configuration available")
    return flow


def run_consent_flow(
    *,
    client_config: dict[str, Any] | None,
    client_secret_path: Path | None,
    port: int = 0,
) -> Any:
    flow = build_consent_flow(client_config=client_config, client_secret_path=client_secret_path)
    return flow.run_local_server(port=port, access_type="offline", prompt="consent")


def main() -> None:
    args = _parse_args()
    settings = load_settings()
    owner_id = (args.owner or "").strip() or settings.default_owner_id

    client_config: dict[str, Any] | None = None
    if args.client_secret is None:
        client_config = build_client_config(
            settings.google_client_id,
            settings.google_client_secret,
        )

    credentials = run_consent_flow(
        client_config=client_config,
        client_secret_path=args.client_secret,
        port=args.port,
    )

    database = Database(settings.db_path)
    database.initialize()
    store_granted_credentials(
        credentials,
        repository=TokenRepository(database),
        owner_id=owner_id,
    )
    print(f"OAuth success. Refresh token stored for owner '{owner_id}' in {settings.db_path}")


if __name__ == "__main__":
    main()
