from __future__ import annotations

import httpx
import requests
from starlette.requests import Request
from starlette.responses import JSONResponse, RedirectResponse, Response
from starlette.routing import Route

from auth import google_oauth2
from auth.cors import apply_cors_response, cors_error_response, origin_of, preflight_route
from auth.google_oauth2 import ProviderError
from auth.models import AuthStatus, Role, auth_status
from auth.pending_store import PendingAuthStore
from auth.sessions import SessionManager
from auth.urls import frontend_auth_url
from storefront.constants import DEFAULT_PROVIDER_TIMEOUT_SECONDS, LOGGER

API_PATHS = (
    "/auth/user",
    "/auth/complete-profile",
    "/auth/refresh",
    "/auth/logout",
)


class GoogleAuthServer:
    def __init__(
        self,
        *,
        google_client_id: str,
        google_client_secret: str,
        redirect_uri: str,
        frontend_url: str,
        sessions: SessionManager,
        pending_store: PendingAuthStore,
        scopes: list[str] | None = None,
        cors_origins: set[str] | None = None,
        provider_timeout: float = DEFAULT_PROVIDER_TIMEOUT_SECONDS,
        http_client: httpx.AsyncClient | None = None,
        certs_session: requests.Session | None = None,
        exchange_code_fn=google_oauth2.exchange_code,
        refresh_token_fn=google_oauth2.refresh_token,
        revoke_token_fn=google_oauth2.revoke_token,
        verify_id_token_fn=google_oauth2.verify_id_token,
        code_verifier_fn=google_oauth2.generate_code_verifier,
        state_fn=google_oauth2.generate_state,
    ) -> None:
        self.google_client_id = google_client_id
        self.google_client_secret = google_client_secret
        self.redirect_uri = redirect_uri
        self.frontend_url = frontend_url.rstrip("/")
        self.sessions = sessions
        self.pending_store = pending_store
        self.scopes = scopes or list(google_oauth2.DEFAULT_SCOPES)
        self.cors_origins = {origin_of(self.frontend_url)}
        if cors_origins:
            self.cors_origins.update(cors_origins)
        self.provider_timeout = provider_timeout
        self.http_client = http_client
        self.certs_session = certs_session

        self._exchange_code_fn = exchange_code_fn
        self._refresh_token_fn = refresh_token_fn
        self._revoke_token_fn = revoke_token_fn
        self._verify_id_token_fn = verify_id_token_fn
        self._code_verifier_fn = code_verifier_fn
        self._state_fn = state_fn

    # -- routes ----------------------------------------------------------------

    def routes(self) -> list[Route]:
        routes = [
            Route("/auth/google", self._handle_authorize, methods=["GET"]),
            Route("/auth/google/callback", self._handle_callback, methods=["GET"]),
            Route("/auth/user", self._handle_user, methods=["GET"]),
            Route("/auth/complete-profile", self._handle_complete_profile, methods=["POST"]),
            Route("/auth/refresh", self._handle_refresh, methods=["POST"]),
            Route("/auth/logout", self._handle_logout, methods=["POST"]),
        ]
        routes.extend(preflight_route(path, self.cors_origins) for path in API_PATHS)
        return routes

    async def status_of(self, request: Request) -> AuthStatus:
        loaded = await self.sessions.load(request)
        return auth_status(loaded[1] if loaded else None)

    async def is_authenticated(self, request: Request) -> bool:
        return await self.status_of(request) is not AuthStatus.UNAUTHENTICATED

    # -- browser flow ----------------------------------------------------------

    async def _handle_authorize(self, request: Request) -> Response:
        del request
        try:
            await self.pending_store.sweep_expired()

            code_verifier = self._code_verifier_fn()
            code_challenge = google_oauth2.generate_code_challenge(code_verifier)
            state = self._state_fn()
            await self.pending_store.put(state, code_verifier)

            authorize_url = google_oauth2.build_authorization_url(
                client_id=self.google_client_id,
                redirect_uri=self.redirect_uri,
                scopes=self.scopes,
                state=state,
                code_challenge=code_challenge,
            )
        except Exception:
            LOGGER.exception("Error initiating Google OAuth flow")
            return self._redirect_to_app({"error": "auth_init_failed"})

        LOGGER.info("Initiating Google OAuth flow state=%s...", state[:8])
        return RedirectResponse(url=authorize_url, status_code=302)

    async def _handle_callback(self, request: Request) -> Response:
        provider_error = request.query_params.get("error")
        if provider_error:
            LOGGER.warning("Google OAuth error: %s", provider_error)
            return self._redirect_to_app({"error": provider_error})

        code = request.query_params.get("code")
        state = request.query_params.get("state")
        if not code or not state:
            LOGGER.warning("OAuth callback missing code or state")
            return self._redirect_to_app({"error": "invalid_callback"})

        code_verifier = await self.pending_store.consume(state)
        if code_verifier is None:
            LOGGER.warning("OAuth callback with unknown, used or expired state")
            return self._redirect_to_app({"error": "invalid_state"})

        try:
            tokens = await self._exchange_code_fn(
                client_id=self.google_client_id,
                client_secret=self.google_client_secret,
                code=code,
                redirect_uri=self.redirect_uri,
                code_verifier=code_verifier,
                client=self.http_client,
                timeout=self.provider_timeout,
            )
            if not tokens.id_token:
                raise ProviderError("Token response missing id_token.")
            identity = await self._verify_id_token_fn(
                id_token=tokens.id_token,
                client_id=self.google_client_id,
                session=self.certs_session,
                timeout=self.provider_timeout,
            )
        except Exception as error:
            LOGGER.warning("Token exchange error: %s", error)
            return self._redirect_to_app({"error": "token_exchange_failed"})

        try:
            session_id = await self.sessions.create(identity, tokens)
        except Exception:
            LOGGER.exception("Session save error")
            return self._redirect_to_app({"error": "session_error"})

        LOGGER.info("User authenticated: %s", identity.email)
        response = self._redirect_to_app({"google_auth": "success"})
        return self.sessions.set_cookie(response, session_id)

    # -- API -------------------------------------------------------------------

    async def _handle_user(self, request: Request) -> Response:
        loaded = await self.sessions.load(request)
        if loaded is None:
            return self._error(request, "not_authenticated", "Not authenticated.", 401)

        _, session = loaded
        return self._json(
            request,
            {"user": session.user.to_public(), "status": session.status.value},
        )

    async def _handle_complete_profile(self, request: Request) -> Response:
        loaded = await self.sessions.load(request)
        if loaded is None:
            return self._error(request, "not_authenticated", "Not authenticated.", 401)
        session_id, _ = loaded

        try:
            payload = await request.json()
        except Exception:
            return self._error(request, "invalid_request", "Invalid JSON body.", 400)
        if not isinstance(payload, dict):
            return self._error(request, "invalid_request", "Body must be a JSON object.", 400)

        role = Role.parse(payload.get("role"))
        if role is None:
            return self._error(
                request,
                "invalid_role",
                f"role must be one of: {', '.join(r.value for r in Role)}.",
                400,
            )

        try:
            updated = await self.sessions.complete_profile(session_id, role)
        except Exception:
            LOGGER.exception("Session save error")
            return self._error(request, "session_error", "Failed to save role.", 500)
        if updated is None:
            return self._error(request, "not_authenticated", "Not authenticated.", 401)

        LOGGER.info("User profile completed: %s as %s", updated.user.email, role.value)
        return self._json(
            request,
            {"user": updated.user.to_public(), "status": updated.status.value},
        )

    async def _handle_refresh(self, request: Request) -> Response:
        loaded = await self.sessions.load(request)
        if loaded is None:
            return self._error(request, "not_authenticated", "Not authenticated.", 401)
        session_id, session = loaded

        stored_refresh_token = session.tokens.refresh_token
        if not stored_refresh_token:
            return self._error(
                request, "no_refresh_token", "No refresh token available.", 401
            )

        try:
            refreshed = await self._refresh_token_fn(
                client_id=self.google_client_id,
                client_secret=self.google_client_secret,
                refresh_token=stored_refresh_token,
                client=self.http_client,
                timeout=self.provider_timeout,
            )
        except Exception as error:
            LOGGER.warning("Token refresh error: %s", error)
            return self._error(request, "refresh_failed", "Token refresh failed.", 401)

        try:
            updated = await self.sessions.replace_tokens(session_id, refreshed)
        except Exception:
            LOGGER.exception("Session save error")
            return self._error(request, "session_error", "Failed to save tokens.", 500)
        if updated is None:
            return self._error(request, "not_authenticated", "Not authenticated.", 401)

        return self._json(request, {"success": True})

    async def _handle_logout(self, request: Request) -> Response:
        try:
            loaded = await self.sessions.load(request)
            if loaded is not None:
                session_id, session = loaded
                await self._revoke_quietly(session.tokens.access_token)
                await self.sessions.destroy(session_id)
        except Exception:
            LOGGER.exception("Session destruction error")
            return self._error(request, "logout_failed", "Logout failed.", 500)

        response = self._json(request, {"success": True})
        return self.sessions.clear_cookie(response)

    # -- helpers ---------------------------------------------------------------

    async def _revoke_quietly(self, access_token: str | None) -> None:
        if not access_token:
            return
        try:
            await self._revoke_token_fn(
                token=access_token,
                client=self.http_client,
                timeout=self.provider_timeout,
            )
        except Exception as error:
            LOGGER.warning("Token revocation error (non-fatal): %s", error)
            return
        LOGGER.info("Google token revoked")

    def _redirect_to_app(self, params: dict[str, str]) -> Response:
        return RedirectResponse(
            url=frontend_auth_url(self.frontend_url, params),
            status_code=302,
        )

    def _json(self, request: Request, payload: dict, status_code: int = 200) -> Response:
        return apply_cors_response(
            request,
            JSONResponse(payload, status_code=status_code),
            self.cors_origins,
        )

    def _error(self, request: Request, code: str, description: str, status_code: int) -> Response:
        return cors_error_response(
            request=request,
            allowed_origins=self.cors_origins,
            code=code,
            description=description,
            status_code=status_code,
        )
