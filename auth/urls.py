from __future__ import annotations

import urllib.parse

from storefront.constants import FRONTEND_AUTH_PATH


def append_query_params(url: str, params: dict[str, str]) -> str:
    parsed = urllib.parse.urlparse(url)
    existing = urllib.parse.parse_qs(parsed.query, keep_blank_values=True)
    for key, value in params.items():
        existing[key] = [value]

    new_query = urllib.parse.urlencode(existing, doseq=True)
    return urllib.parse.urlunparse(parsed._replace(query=new_query))


def frontend_auth_url(frontend_url: str, params: dict[str, str]) -> str:
    return append_query_params(f"{frontend_url.rstrip('/')}{FRONTEND_AUTH_PATH}", params)
