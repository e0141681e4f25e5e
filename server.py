from __future__ import annotations

import contextlib
from datetime import datetime, timezone

import httpx
import requests
import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from auth.oauth_server import GoogleAuthServer
from auth.pending_store import MemoryPendingAuthStore
from auth.session_store import MemorySessionStore
from auth.sessions import SessionManager
from storefront.constants import APP_VERSION, LOGGER
from storefront.env import Settings, load_env, load_settings, setup_logging
from storefront.http import build_provider_client


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def health_route(oauth_server: GoogleAuthServer) -> Route:
    async def health(request: Request) -> Response:
        return JSONResponse(
            {
                "status": "ok",
                "timestamp": _utc_timestamp(),
                "authenticated": await oauth_server.is_authenticated(request),
                "version": APP_VERSION,
            }
        )

    return Route("/health", health, methods=["GET"])


def build_app(
    oauth_server: GoogleAuthServer,
    *,
    http_client: httpx.AsyncClient | None = None,
    certs_session: requests.Session | None = None,
) -> Starlette:
    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette):
        del app
        yield
        if http_client is not None:
            await http_client.aclose()
        if certs_session is not None:
            certs_session.close()

    app = Starlette(
        routes=[*oauth_server.routes(), health_route(oauth_server)],
        lifespan=lifespan,
    )
    app.state.oauth_server = oauth_server
    return app


def build_oauth_server(
    settings: Settings,
    *,
    http_client: httpx.AsyncClient | None = None,
    certs_session: requests.Session | None = None,
) -> GoogleAuthServer:
    sessions = SessionManager(
        MemorySessionStore(),
        session_secret=settings.session_secret,
        cookie_name=settings.cookie_name,
        cookie_secure=settings.cookie_secure,
    )
    return GoogleAuthServer(
        google_client_id=settings.google_client_id,
        google_client_secret=settings.google_client_secret,
        redirect_uri=settings.redirect_uri,
        frontend_url=settings.frontend_url,
        sessions=sessions,
        pending_store=MemoryPendingAuthStore(ttl_seconds=settings.pending_auth_ttl_seconds),
        cors_origins=settings.cors_origins,
        provider_timeout=settings.provider_timeout,
        http_client=http_client,
        certs_session=certs_session,
    )


def create_app() -> Starlette:
    load_env()
    setup_logging()
    settings = load_settings()

    http_client = build_provider_client(timeout=settings.provider_timeout)
    certs_session = requests.Session()
    oauth_server = build_oauth_server(
        settings, http_client=http_client, certs_session=certs_session
    )
    app = build_app(oauth_server, http_client=http_client, certs_session=certs_session)
    app.state.settings = settings

    LOGGER.info("Allowed CORS origins: %s", ", ".join(sorted(oauth_server.cors_origins)))
    LOGGER.info("Authorized redirect URI must be registered with Google: %s", settings.redirect_uri)
    return app


def main() -> None:
    app = create_app()
    settings: Settings = app.state.settings
    LOGGER.info("Auth server listening on http://%s:%s", settings.host, settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
