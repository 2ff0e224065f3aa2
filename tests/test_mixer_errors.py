from __future__ import annotations

import json

from tastemixer.errors import (
    CREDENTIAL_ERRORS,
    AuthFailedError,
    ErrorCode,
    HttpError,
    NotFoundError,
    PlaylistMutationError,
    RateLimitedError,
    RefreshFailedError,
    TransientHttpError,
)


def test_error_envelope() -> None:
    response = PlaylistMutationError("attach failed", playlist_id="pl-1").as_response()

    assert response.status_code == 502
    assert json.loads(response.body) == {
        "ok": False,
        "error": {
            "code": "PLAYLIST_MUTATION_FAILED",
            "message": "attach failed",
            "meta": {"playlist_id": "pl-1"},
        },
    }


def test_retryability_follows_status_taxonomy() -> None:
    assert RateLimitedError(retry_after_s=1.0).retryable
    assert TransientHttpError(500).retryable
    assert not NotFoundError().retryable
    assert not HttpError(400).retryable
    assert NotFoundError().code is ErrorCode.NOT_FOUND


def test_credential_errors_group() -> None:
    assert isinstance(AuthFailedError(), CREDENTIAL_ERRORS)
    assert isinstance(RefreshFailedError(status_code=400), CREDENTIAL_ERRORS)
    assert not isinstance(TransientHttpError(500), CREDENTIAL_ERRORS)
    assert RefreshFailedError().user_message == "Your session expired. Please log in again."


def test_playlist_mutation_error_is_an_http_error() -> None:
    error = PlaylistMutationError("create failed", status_code=403)

    assert isinstance(error, HttpError)
    assert not error.retryable
    assert error.playlist_id is None
    assert error.meta == {"upstream_status": 403}
