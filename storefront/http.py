from __future__ import annotations

import logging

import httpx

from .constants import DEFAULT_PROVIDER_TIMEOUT_SECONDS, LOGGER


def _redacted_url(url: httpx.URL) -> str:
    return str(url.copy_with(query=None))


def build_provider_client(
    *,
    timeout: float = DEFAULT_PROVIDER_TIMEOUT_SECONDS,
    transport: httpx.AsyncBaseTransport | None = None,
    logger: logging.Logger | None = None,
) -> httpx.AsyncClient:
    log = logger or LOGGER

    async def log_request(request: httpx.Request) -> None:
        log.info("Provider request %s %s", request.method, _redacted_url(request.url))

    async def log_response(response: httpx.Response) -> None:
        log.info(
            "Provider response %s %s -> %s",
            response.request.method,
            _redacted_url(response.request.url),
            response.status_code,
        )
        if response.status_code >= 400:
            body = await response.aread()
            text = body.decode("utf-8", errors="replace")
            if len(text) > 1000:
                text = text[:1000] + "...<truncated>"
            log.warning("Provider error body: %s", text)

    return httpx.AsyncClient(
        timeout=timeout,
        transport=transport,
        event_hooks={"request": [log_request], "response": [log_response]},
    )
