"""
Outbound HTTP helpers shared by the RDAP client and the bootstrap loader.

Proxy selection follows the conventional environment variables:
  - NO_PROXY / no_proxy: comma-separated hosts that bypass the proxy.
    Entries may be an exact host, a leading-dot domain suffix (".example.com")
    or "*" to bypass everything.
  - HTTPS_PROXY / https_proxy (falling back to HTTP_PROXY / http_proxy) for
    https URLs, HTTP_PROXY / http_proxy for http URLs.

httpx's own environment handling is disabled (trust_env=False) so these rules
are the only ones that apply.
"""

import os
from typing import List, Mapping, Optional
from urllib.parse import urlsplit

import httpx

_HTTPS_PROXY_VARS = ("HTTPS_PROXY", "https_proxy", "HTTP_PROXY", "http_proxy")
_HTTP_PROXY_VARS = ("HTTP_PROXY", "http_proxy")


def no_proxy_entries(env: Optional[Mapping[str, str]] = None) -> List[str]:
    env = os.environ if env is None else env
    raw = env.get("NO_PROXY") or env.get("no_proxy") or ""
    return [entry.strip().lower() for entry in raw.split(",") if entry.strip()]


def host_matches_no_proxy(host: Optional[str], entries: List[str]) -> bool:
    if not host:
        return False
    host = host.lower()
    for entry in entries:
        if entry == "*":
            return True
        if entry.startswith("."):
            if host.endswith(entry):
                return True
        elif host == entry:
            return True
    return False


def proxy_for_url(url: str, env: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """Return the proxy URL to use for ``url``, or None for a direct connection."""
    env = os.environ if env is None else env
    parts = urlsplit(url)
    if host_matches_no_proxy(parts.hostname, no_proxy_entries(env)):
        return None

    if parts.scheme == "https":
        candidates = _HTTPS_PROXY_VARS
    elif parts.scheme == "http":
        candidates = _HTTP_PROXY_VARS
    else:
        return None

    for name in candidates:
        if env.get(name):
            return env[name]
    return None


def build_client(
    url: str,
    *,
    timeout: float,
    env: Optional[Mapping[str, str]] = None,
    transport: Optional[httpx.BaseTransport] = None,
) -> httpx.Client:
    """Create a client for a single request to ``url`` with the right proxy."""
    return httpx.Client(
        proxy=proxy_for_url(url, env),
        timeout=timeout,
        transport=transport,
        trust_env=False,
        follow_redirects=True,
    )
