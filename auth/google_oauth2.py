from __future__ import annotations

import asyncio
import base64
import hashlib
import secrets
import time
import urllib.parse
from dataclasses import dataclass

import httpx
import requests
from google.auth import exceptions as google_exceptions
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token as google_id_token

from storefront.constants import DEFAULT_PROVIDER_TIMEOUT_SECONDS

GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_REVOKE_URL = "https://oauth2.googleapis.com/revoke"

DEFAULT_SCOPES = [
    "https://www.googleapis.com/auth/userinfo.profile",
    "https://www.googleapis.com/auth/userinfo.email",
]


class ProviderError(RuntimeError):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass
class TokenResponse:
    access_token: str
    refresh_token: str | None
    expires_in: int | None
    expires_at: float | None
    scope: str
    id_token: str | None = None

    @property
    def expiry_date(self) -> int | None:
        if self.expires_at is None:
            return None
        return int(self.expires_at * 1000)

    @classmethod
    def from_payload(cls, payload: dict) -> "TokenResponse":
        access_token = payload.get("access_token")
        refresh_token = payload.get("refresh_token")
        expires_in = payload.get("expires_in")
        scope = payload.get("scope", "")
        id_token = payload.get("id_token")

        if not isinstance(access_token, str) or not access_token:
            raise ProviderError("Token response missing access_token.")
        if refresh_token is not None and not isinstance(refresh_token, str):
            raise ProviderError("Token response refresh_token must be a string.")
        if expires_in is not None and not isinstance(expires_in, int):
            raise ProviderError("Token response expires_in must be an integer.")
        if not isinstance(scope, str):
            raise ProviderError("Token response scope must be a string.")
        if id_token is not None and not isinstance(id_token, str):
            raise ProviderError("Token response id_token must be a string.")

        return cls(
            access_token=access_token,
            refresh_token=refresh_token or None,
            expires_in=expires_in,
            expires_at=time.time() + expires_in if expires_in is not None else None,
            scope=scope,
            id_token=id_token or None,
        )


@dataclass
class IdentityClaims:
    subject: str
    email: str | None
    name: str | None
    picture: str | None
    email_verified: bool

    @classmethod
    def from_claims(cls, claims: dict) -> "IdentityClaims":
        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject:
            raise ProviderError("ID token is missing the sub claim.")

        email_verified = claims.get("email_verified", False)
        if isinstance(email_verified, str):
            email_verified = email_verified.lower() == "true"

        return cls(
            subject=subject,
            email=claims.get("email"),
            name=claims.get("name"),
            picture=claims.get("picture"),
            email_verified=bool(email_verified),
        )


def generate_code_verifier() -> str:
    while True:
        verifier = secrets.token_urlsafe(64)
        if 43 <= len(verifier) <= 128:
            return verifier


def generate_code_challenge(verifier: str) -> str:
    digest = hashlib.sha256(verifier.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).decode("utf-8").rstrip("=")


def generate_state() -> str:
    return secrets.token_urlsafe(24)


def build_authorization_url(
    client_id: str,
    redirect_uri: str,
    scopes: list[str],
    state: str,
    code_challenge: str,
) -> str:
    query = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": " ".join(scopes),
        "access_type": "offline",
        "prompt": "consent",
        "state": state,
        "code_challenge": code_challenge,
        "code_challenge_method": "S256",
    }
    return f"{GOOGLE_AUTHORIZE_URL}?{urllib.parse.urlencode(query)}"


async def _post_form(
    url: str,
    payload: dict[str, str],
    *,
    client: httpx.AsyncClient | None,
    timeout: float,
    action: str,
) -> httpx.Response:
    own_client = client is None
    http_client = client or httpx.AsyncClient(timeout=timeout)

    try:
        response = await http_client.post(url, data=payload, timeout=timeout)
        response.raise_for_status()
    except httpx.HTTPStatusError as error:
        detail = error.response.text
        raise ProviderError(
            f"{action} failed with status {error.response.status_code}: {detail}",
            status_code=error.response.status_code,
        ) from error
    except httpx.TimeoutException as error:
        raise ProviderError(f"{action} timed out after {timeout}s.") from error
    except httpx.HTTPError as error:
        raise ProviderError(f"{action} failed: {error}") from error
    finally:
        if own_client:
            await http_client.aclose()

    return response


async def _token_request(
    payload: dict[str, str],
    *,
    client: httpx.AsyncClient | None = None,
    timeout: float = DEFAULT_PROVIDER_TIMEOUT_SECONDS,
) -> TokenResponse:
    response = await _post_form(
        GOOGLE_TOKEN_URL,
        payload,
        client=client,
        timeout=timeout,
        action="Token request",
    )
    try:
        body = response.json()
    except ValueError as error:
        raise ProviderError("Token response is not valid JSON.") from error
    if not isinstance(body, dict):
        raise ProviderError("Token response must be a JSON object.")
    return TokenResponse.from_payload(body)


async def exchange_code(
    client_id: str,
    client_secret: str,
    code: str,
    redirect_uri: str,
    code_verifier: str,
    *,
    client: httpx.AsyncClient | None = None,
    timeout: float = DEFAULT_PROVIDER_TIMEOUT_SECONDS,
) -> TokenResponse:
    return await _token_request(
        {
            "grant_type": "authorization_code",
            "client_id": client_id,
            "client_secret": client_secret,
            "code": code,
            "redirect_uri": redirect_uri,
            "code_verifier": code_verifier,
        },
        client=client,
        timeout=timeout,
    )


async def refresh_token(
    client_id: str,
    client_secret: str,
    refresh_token: str,
    *,
    client: httpx.AsyncClient | None = None,
    timeout: float = DEFAULT_PROVIDER_TIMEOUT_SECONDS,
) -> TokenResponse:
    return await _token_request(
        {
            "grant_type": "refresh_token",
            "client_id": client_id,
            "client_secret": client_secret,
            "refresh_token": refresh_token,
        },
        client=client,
        timeout=timeout,
    )


async def revoke_token(
    token: str,
    *,
    client: httpx.AsyncClient | None = None,
    timeout: float = DEFAULT_PROVIDER_TIMEOUT_SECONDS,
) -> None:
    await _post_form(
        GOOGLE_REVOKE_URL,
        {"token": token},
        client=client,
        timeout=timeout,
        action="Token revocation",
    )


class TimeoutRequest(google_requests.Request):
    """google-auth transport that applies one timeout to every call.

    ``verify_oauth2_token`` fetches certificates without passing a timeout, which
    would otherwise fall back to the library default of 120 seconds.
    """

    def __init__(self, session: requests.Session | None = None, *, timeout: float) -> None:
        super().__init__(session)
        self.timeout = timeout

    def __call__(self, url, method="GET", body=None, headers=None, timeout=None, **kwargs):
        del timeout
        return super().__call__(
            url,
            method=method,
            body=body,
            headers=headers,
            timeout=self.timeout,
            **kwargs,
        )


def _verify_id_token_sync(
    raw_id_token: str,
    client_id: str,
    session: requests.Session,
    timeout: float,
) -> dict:
    return google_id_token.verify_oauth2_token(
        raw_id_token,
        TimeoutRequest(session, timeout=timeout),
        audience=client_id,
    )


async def verify_id_token(
    id_token: str,
    client_id: str,
    *,
    session: requests.Session | None = None,
    timeout: float = DEFAULT_PROVIDER_TIMEOUT_SECONDS,
) -> IdentityClaims:
    own_session = session is None
    certs_session = session or requests.Session()

    # Certificate fetch is blocking; keep it off the event loop.
    try:
        claims = await asyncio.wait_for(
            asyncio.to_thread(_verify_id_token_sync, id_token, client_id, certs_session, timeout),
            timeout=timeout,
        )
    except asyncio.TimeoutError as error:
        raise ProviderError(f"ID token verification timed out after {timeout}s.") from error
    except (ValueError, google_exceptions.GoogleAuthError) as error:
        raise ProviderError(f"ID token verification failed: {error}") from error
    finally:
        if own_session:
            certs_session.close()

    return IdentityClaims.from_claims(claims)
