from __future__ import annotations

import secrets
import time

from starlette.requests import Request
from starlette.responses import Response

from auth import signed_token
from auth.google_oauth2 import IdentityClaims, TokenResponse
from auth.models import Role, Session, SessionTokens, SessionUser
from auth.session_store import SessionStore
from storefront.constants import DEFAULT_SESSION_COOKIE_NAME, SESSION_MAX_AGE_SECONDS


class SessionManager:
    def __init__(
        self,
        store: SessionStore,
        *,
        session_secret: str,
        cookie_name: str = DEFAULT_SESSION_COOKIE_NAME,
        cookie_secure: bool = False,
        max_age_seconds: int = SESSION_MAX_AGE_SECONDS,
    ) -> None:
        self.store = store
        self.cookie_name = cookie_name
        self.cookie_secure = cookie_secure
        self.max_age_seconds = max_age_seconds
        self._key = signed_token.derive_key(session_secret)

    # -- cookie ----------------------------------------------------------------

    def encode_cookie(self, session_id: str) -> str:
        return signed_token.encode({"sid": session_id, "iat": time.time()}, self._key)

    def session_id_from_request(self, request: Request) -> str | None:
        raw = request.cookies.get(self.cookie_name)
        if not raw:
            return None
        try:
            payload = signed_token.decode(raw, self._key)
        except signed_token.InvalidTokenError:
            return None

        session_id = payload.get("sid")
        issued_at = payload.get("iat")
        if not isinstance(session_id, str) or not isinstance(issued_at, (int, float)):
            return None
        if time.time() - issued_at > self.max_age_seconds:
            return None
        return session_id

    def set_cookie(self, response: Response, session_id: str) -> Response:
        response.set_cookie(
            self.cookie_name,
            self.encode_cookie(session_id),
            max_age=self.max_age_seconds,
            path="/",
            secure=self.cookie_secure,
            httponly=True,
            samesite="lax",
        )
        return response

    def clear_cookie(self, response: Response) -> Response:
        response.delete_cookie(
            self.cookie_name,
            path="/",
            secure=self.cookie_secure,
            httponly=True,
            samesite="lax",
        )
        return response

    # -- session lifecycle -----------------------------------------------------

    async def load(self, request: Request) -> tuple[str, Session] | None:
        session_id = self.session_id_from_request(request)
        if session_id is None:
            return None
        session = await self.store.get(session_id)
        if session is None:
            return None
        return session_id, session

    async def create(self, identity: IdentityClaims, tokens: TokenResponse) -> str:
        await self.store.sweep_expired()
        session_id = secrets.token_urlsafe(32)
        session = Session(
            user=SessionUser(
                id=identity.subject,
                email=identity.email,
                name=identity.name,
                picture=identity.picture,
                email_verified=identity.email_verified,
            ),
            tokens=SessionTokens(
                access_token=tokens.access_token,
                refresh_token=tokens.refresh_token,
                expiry_date=tokens.expiry_date,
            ),
        )
        await self.store.set(session_id, session)
        return session_id

    async def complete_profile(self, session_id: str, role: Role) -> Session | None:
        def _set_role(session: Session) -> None:
            session.user.role = role

        return await self.store.update(session_id, _set_role)

    async def replace_tokens(self, session_id: str, tokens: TokenResponse) -> Session | None:
        def _replace(session: Session) -> None:
            # Providers do not always rotate refresh tokens.
            session.tokens = SessionTokens(
                access_token=tokens.access_token,
                refresh_token=tokens.refresh_token or session.tokens.refresh_token,
                expiry_date=tokens.expiry_date,
            )

        return await self.store.update(session_id, _replace)

    async def destroy(self, session_id: str) -> None:
        await self.store.delete(session_id)
