from __future__ import annotations

import asyncio
from typing import Any

import pytest

from backend.pacelab.repositories.token_repository import TokenRepository
from backend.pacelab.services.credential_broker import CredentialBroker, DelegatedSession
from backend.pacelab.services.errors import LifecycleOperationFailed
from backend.pacelab.services.lifecycle_controller import LifecycleController, VideoStatus


class _FakeCall:
    def __init__(self, result: Any) -> None:
        self._result = result

    def execute(self) -> Any:
        if isinstance(self._result, Exception):
            raise self._result
        return self._result


class _FakeVideos:
    def __init__(self, client: _FakeDelegatedClient) -> None:
        self._client = client

    def list(self, **kwargs: Any) -> _FakeCall:
        self._client.calls.append(("list", kwargs))
        return _FakeCall(self._client.list_result)

    def delete(self, **kwargs: Any) -> _FakeCall:
        self._client.calls.append(("delete", kwargs))
        return _FakeCall(self._client.delete_result)


class _FakeDelegatedClient:
    def __init__(self, *, list_result: Any = None, delete_result: Any = "") -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.list_result = list_result if list_result is not None else {"items": []}
        self.delete_result = delete_result

    def videos(self) -> _FakeVideos:
        return _FakeVideos(self)


def _controller(
    token_repository: TokenRepository,
    fake: _FakeDelegatedClient,
    sessions: list[DelegatedSession] | None = None,
) -> LifecycleController:
    broker = CredentialBroker(
        token_repository=token_repository,
        client_id="client-id",
        client_secret="client-secret",
        redirect_uri="http://localhost/callback",
    )

    def factory(session: DelegatedSession) -> _FakeDelegatedClient:
        if sessions is not None:
            sessions.append(session)
        return fake

    return LifecycleController(broker=broker, client_factory=factory)


def test_get_status_without_items_is_all_unknown(token_repository: TokenRepository) -> None:
    fake = _FakeDelegatedClient()
    sessions: list[DelegatedSession] = []
    controller = _controller(token_repository, fake, sessions)

    status = asyncio.run(controller.get_status("vid123", "owner"))

    assert status == VideoStatus.unknown()
    assert fake.calls == [("list", {"part": "status,processingDetails", "id": "vid123"})]
    assert sessions[0].owner_id == "owner"


def test_get_status_maps_processing_details(token_repository: TokenRepository) -> None:
    fake = _FakeDelegatedClient(
        list_result={
            "items": [
                {
                    "status": {
                        "uploadStatus": "processed",
                        "privacyStatus": "unlisted",
                        "embeddable": True,
                    },
                    "processingDetails": {"processingStatus": "succeeded"},
                }
            ]
        }
    )
    controller = _controller(token_repository, fake)

    status = asyncio.run(controller.get_status("vid123", "owner"))

    assert status == VideoStatus(
        upload_status="processed",
        processing_status="succeeded",
        failure_reason=None,
        privacy_status="unlisted",
        embeddable=True,
    )


def test_delete_returns_ok(token_repository: TokenRepository) -> None:
    fake = _FakeDelegatedClient()
    controller = _controller(token_repository, fake)

    assert asyncio.run(controller.delete("vid123", "owner")) == {"ok": True}
    assert fake.calls == [("delete", {"id": "vid123"})]


def test_invalid_grant_failure_is_flagged_but_token_kept(
    token_repository: TokenRepository,
) -> None:
    token_repository.save_refresh_token("owner", "stored-token")
    fake = _FakeDelegatedClient(delete_result=RuntimeError("invalid_grant: Token has been revoked"))
    controller = _controller(token_repository, fake)

    with pytest.raises(LifecycleOperationFailed) as excinfo:
        asyncio.run(controller.delete("vid123", "owner"))

    assert excinfo.value.invalid_grant is True
    assert isinstance(excinfo.value.cause, RuntimeError)
    assert token_repository.get_refresh_token("owner") == "stored-token"


def test_other_failures_are_not_flagged(token_repository: TokenRepository) -> None:
    fake = _FakeDelegatedClient(list_result=RuntimeError("videoNotFound"))
    controller = _controller(token_repository, fake)

    with pytest.raises(LifecycleOperationFailed) as excinfo:
        asyncio.run(controller.get_status("missing", "owner"))

    assert excinfo.value.invalid_grant is False
    assert "videoNotFound" in str(excinfo.value)
