from __future__ import annotations

import pytest

from backend.pacelab.services.errors import (
    UploadHttpError,
    describe_error,
    is_invalid_grant,
    summarize_error,
)


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (Exception("invalid_grant: token expired"), True),
        (Exception("INVALID_GRANT"), True),
        (Exception("Missing Refresh_Token for owner"), True),
        (Exception("network timeout"), False),
        ("invalid_grant", True),
        ("quota exceeded", False),
    ],
)
def test_is_invalid_grant_matches_markers_case_insensitively(error: object, expected: bool) -> None:
    assert is_invalid_grant(error) is expected


def test_is_invalid_grant_inspects_attached_payload() -> None:
    error = UploadHttpError(
        "YouTube initiate request failed with status 400",
        status_code=400,
        payload='{"error": "invalid_grant", "error_description": "Token has been revoked."}',
    )
    assert is_invalid_grant(error) is True


def test_is_invalid_grant_inspects_bytes_content() -> None:
    class _HttpLikeError(Exception):
        def __init__(self) -> None:
            super().__init__("<HttpError 400>")
            self.content = b'{"error": "invalid_grant"}'

    assert is_invalid_grant(_HttpLikeError()) is True


def test_is_invalid_grant_inspects_extra_args() -> None:
    error = Exception("token refresh failed", {"error": "invalid_grant"})
    assert is_invalid_grant(error) is True


def test_describe_error_joins_message_and_payload() -> None:
    error = UploadHttpError("failed", status_code=500, payload="backend error")
    assert "failed" in describe_error(error)
    assert "backend error" in describe_error(error)


def test_summarize_error_truncates_and_falls_back_to_repr() -> None:
    assert summarize_error(Exception("x" * 50), max_length=10) == "xxxxxxx..."
    assert summarize_error(RuntimeError()) == "RuntimeError()"
