import copy

from auth.google_oauth2 import ProviderError
from auth.models import SessionTokens
from tests.oauth_helpers import (
    SESSION_COOKIE,
    _build_oauth_server,
    _login,
    _only_session,
    _token_response,
)


def _drop_refresh_token(session_store) -> None:
    session_id, session = next(iter(session_store._sessions.items()))
    session.tokens = SessionTokens(
        access_token=session.tokens.access_token,
        refresh_token=None,
        expiry_date=session.tokens.expiry_date,
    )
    session_store._sessions[session_id] = session


def _assert_cookie_cleared(response) -> None:
    set_cookie = response.headers["set-cookie"].lower()
    assert set_cookie.startswith(f'{SESSION_COOKIE}=""') or set_cookie.startswith(
        f"{SESSION_COOKIE}=;"
    )
    assert "max-age=0" in set_cookie


def test_refresh_requires_session() -> None:
    _, test_client, _, _ = _build_oauth_server()

    response = test_client.post("/auth/refresh")

    assert response.status_code == 401
    assert response.json()["error"] == "not_authenticated"


def test_refresh_keeps_refresh_token_when_not_rotated() -> None:
    seen = {}

    async def refresh_token_fn(**kwargs):
        seen.update(kwargs)
        return _token_response(
            access_token="google-access-token-2",
            refresh_token=None,
            id_token=None,
        )

    _, test_client, _, session_store = _build_oauth_server(refresh_token_fn=refresh_token_fn)
    _login(test_client)
    before = _only_session(session_store).tokens.expiry_date

    response = test_client.post("/auth/refresh")

    assert response.status_code == 200
    assert response.json() == {"success": True}
    assert seen["refresh_token"] == "google-refresh-token"
    tokens = _only_session(session_store).tokens
    assert tokens.access_token == "google-access-token-2"
    assert tokens.refresh_token == "google-refresh-token"
    assert tokens.expiry_date >= before


def test_refresh_stores_rotated_refresh_token() -> None:
    async def refresh_token_fn(**kwargs):
        del kwargs
        return _token_response(
            access_token="google-access-token-2",
            refresh_token="google-refresh-token-2",
            id_token=None,
        )

    _, test_client, _, session_store = _build_oauth_server(refresh_token_fn=refresh_token_fn)
    _login(test_client)

    test_client.post("/auth/refresh")

    assert _only_session(session_store).tokens.refresh_token == "google-refresh-token-2"


def test_refresh_without_refresh_token_leaves_session_untouched() -> None:
    calls = []

    async def refresh_token_fn(**kwargs):
        calls.append(kwargs)
        return _token_response()

    _, test_client, _, session_store = _build_oauth_server(refresh_token_fn=refresh_token_fn)
    _login(test_client)
    _drop_refresh_token(session_store)
    before = copy.deepcopy(_only_session(session_store))

    response = test_client.post("/auth/refresh")

    assert response.status_code == 401
    assert response.json()["error"] == "no_refresh_token"
    assert calls == []
    assert _only_session(session_store) == before


def test_refresh_provider_rejection_keeps_session() -> None:
    async def refresh_token_fn(**kwargs):
        del kwargs
        raise ProviderError("Token request failed with status 400: invalid_grant", status_code=400)

    _, test_client, _, session_store = _build_oauth_server(refresh_token_fn=refresh_token_fn)
    _login(test_client)

    response = test_client.post("/auth/refresh")

    assert response.status_code == 401
    assert response.json()["error"] == "refresh_failed"
    assert _only_session(session_store).tokens.access_token == "google-access-token"
    assert test_client.get("/auth/user").status_code == 200


def test_refresh_persistence_failure() -> None:
    _, test_client, _, session_store = _build_oauth_server()
    _login(test_client)
    session_store.fail_writes = True

    response = test_client.post("/auth/refresh")

    assert response.status_code == 500
    assert response.json()["error"] == "session_error"


def test_refresh_does_not_clobber_role() -> None:
    _, test_client, _, session_store = _build_oauth_server()
    _login(test_client)
    test_client.post("/auth/complete-profile", json={"role": "wholesaler"})

    test_client.post("/auth/refresh")

    session = _only_session(session_store)
    assert session.user.role.value == "wholesaler"
    assert session.tokens.access_token == "google-access-token-refreshed"


def test_logout_revokes_and_clears_session() -> None:
    revoked = []

    async def revoke_token_fn(**kwargs):
        revoked.append(kwargs["token"])

    _, test_client, _, session_store = _build_oauth_server(revoke_token_fn=revoke_token_fn)
    _login(test_client)

    response = test_client.post("/auth/logout")

    assert response.status_code == 200
    assert response.json() == {"success": True}
    _assert_cookie_cleared(response)
    assert revoked == ["google-access-token"]
    assert len(session_store) == 0
    assert test_client.get("/auth/user").status_code == 401


def test_logout_succeeds_when_revocation_fails() -> None:
    async def revoke_token_fn(**kwargs):
        del kwargs
        raise ProviderError("Token revocation failed with status 503: unavailable", status_code=503)

    _, test_client, _, session_store = _build_oauth_server(revoke_token_fn=revoke_token_fn)
    _login(test_client)

    response = test_client.post("/auth/logout")

    assert response.status_code == 200
    assert response.json() == {"success": True}
    _assert_cookie_cleared(response)
    assert len(session_store) == 0


def test_logout_without_session_still_clears_cookie() -> None:
    _, test_client, _, _ = _build_oauth_server()

    response = test_client.post("/auth/logout")

    assert response.status_code == 200
    _assert_cookie_cleared(response)


def test_logout_destroy_failure() -> None:
    _, test_client, _, session_store = _build_oauth_server()
    _login(test_client)
    session_store.fail_deletes = True

    response = test_client.post("/auth/logout")

    assert response.status_code == 500
    assert response.json()["error"] == "logout_failed"
