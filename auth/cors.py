from __future__ import annotations

from urllib.parse import urlparse

from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route


def origin_of(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"


def _is_allowed_origin(origin: str | None, allowed_origins: set[str]) -> bool:
    return bool(origin and origin in allowed_origins)


def apply_cors_response(
    request: Request,
    response: Response,
    allowed_origins: set[str],
) -> Response:
    origin = request.headers.get("origin")
    if _is_allowed_origin(origin, allowed_origins):
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Credentials"] = "true"
        response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type"
        response.headers["Vary"] = "Origin"
    return response


def cors_preflight_response(request: Request, allowed_origins: set[str]) -> Response:
    return apply_cors_response(request, Response(status_code=204), allowed_origins)


def preflight_route(path: str, allowed_origins: set[str]) -> Route:
    async def preflight(request: Request) -> Response:
        return cors_preflight_response(request, allowed_origins)

    return Route(path, preflight, methods=["OPTIONS"])


def cors_error_response(
    request: Request,
    allowed_origins: set[str],
    code: str,
    description: str,
    status_code: int,
) -> Response:
    return apply_cors_response(
        request,
        JSONResponse(
            {"error": code, "error_description": description},
            status_code=status_code,
        ),
        allowed_origins,
    )
