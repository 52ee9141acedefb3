import json
import logging
from typing import Any, Mapping, Optional
from urllib.parse import quote, urlsplit, urlunsplit

import httpx

from iplookup.core.errors import RdapHttpError
from iplookup.services.http import build_client

logger = logging.getLogger(__name__)

RDAP_ACCEPT = "application/rdap+json, application/json;q=0.9, */*;q=0.1"
DEFAULT_TIMEOUT_SECONDS = 10.0


def normalize_base_url(base_url: str) -> str:
    """
    Turn a registry base URL into its IP query root.
    "https://rdap.arin.net/registry" -> "https://rdap.arin.net/registry/ip/"
    """
    parts = urlsplit(base_url.strip())
    path = parts.path or "/"
    if not path.endswith("/"):
        path += "/"
    if not path.endswith("/ip/"):
        path += "ip/"
    return urlunsplit((parts.scheme, parts.netloc, path, "", ""))


def build_rdap_url(ip: str, base_url: str) -> str:
    # ':' must stay literal for IPv6 queries to reach the registry intact
    return normalize_base_url(base_url) + quote(ip, safe=":")


def _decode_body(text: str) -> Any:
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return {"raw": text}


def fetch_rdap(
    ip: str,
    base_url: str,
    *,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    env: Optional[Mapping[str, str]] = None,
    transport: Optional[httpx.BaseTransport] = None,
) -> Any:
    """
    Fetch the RDAP document for ``ip`` from the registry at ``base_url``.

    The document is returned as decoded JSON without any schema applied;
    a body that is not JSON comes back as {"raw": <text>}.
    Raises RdapHttpError on a non-2xx answer or a transport failure.
    """
    url = build_rdap_url(ip, base_url)
    try:
        with build_client(url, timeout=timeout, env=env, transport=transport) as client:
            response = client.get(url, headers={"Accept": RDAP_ACCEPT})
    except httpx.HTTPError as exc:
        logger.warning(f"RDAP request to {url} failed: {exc!r}")
        raise RdapHttpError(
            None,
            {"code": "rdap_fetch_failed", "url": url, "cause": str(exc) or repr(exc)},
            url,
        ) from exc

    document = _decode_body(response.text)
    if not response.is_success:
        logger.warning(f"RDAP request to {url} returned {response.status_code}")
        raise RdapHttpError(response.status_code, document, url)
    return document
