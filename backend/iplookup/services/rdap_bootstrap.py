"""
IANA RDAP bootstrap: which registry serves which address block.

Ref: https://data.iana.org/rdap/ (RFC 9224). Each family's document looks like

    {"services": [[["41.0.0.0/8", ...], ["https://rdap.afrinic.net/rdap/", ...]], ...]}

RdapBootstrap keeps one parsed, immutable table per address family. A table
older than the TTL is re-fetched on the next resolution; on success the new
table replaces the old one in a single swap, on failure the old table is kept
and the error is raised to the caller.
"""

import ipaddress
import logging
import threading
import time
from dataclasses import dataclass
from functools import partial
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union
from urllib.parse import urlsplit

import httpx

from iplookup.core.errors import RdapBootstrapFetchError, RdapBootstrapHttpError
from iplookup.services.http import build_client
from iplookup.services.ip_classifier import IpAddress, parse_ip

logger = logging.getLogger(__name__)

IANA_BOOTSTRAP_URLS: Dict[int, str] = {
    4: "https://data.iana.org/rdap/ipv4.json",
    6: "https://data.iana.org/rdap/ipv6.json",
}
DEFAULT_TTL_SECONDS = 24 * 60 * 60
DEFAULT_TIMEOUT_SECONDS = 10.0

_FAMILY_BITS = {4: 32, 6: 128}

# (network as int, prefix length)
Block = Tuple[int, int]


def _mask(prefix: int, bits: int) -> int:
    return ((1 << prefix) - 1) << (bits - prefix)


def parse_cidr(cidr: Any, family: int) -> Optional[Block]:
    """Parse "a.b.c.d/n" or "x:y::/n" for ``family``; None when malformed."""
    if not isinstance(cidr, str):
        return None
    base, sep, prefix_text = cidr.strip().partition("/")
    if not sep:
        return None
    bits = _FAMILY_BITS[family]
    try:
        prefix = int(prefix_text)
        address = ipaddress.ip_address(base)
    except ValueError:
        return None
    if address.version != family or not 0 <= prefix <= bits:
        return None
    return int(address) & _mask(prefix, bits), prefix


def address_in_block(address: int, block: Block, bits: int) -> bool:
    network, prefix = block
    return address & _mask(prefix, bits) == network


def _is_http_url(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    parts = urlsplit(value)
    return parts.scheme in ("http", "https") and bool(parts.netloc)


@dataclass(frozen=True)
class BootstrapEntry:
    blocks: Tuple[Block, ...]
    endpoints: Tuple[str, ...]

    def endpoint(self) -> Optional[str]:
        for url in self.endpoints:
            if _is_http_url(url):
                return url
        return None


@dataclass(frozen=True)
class BootstrapTable:
    family: int
    entries: Tuple[BootstrapEntry, ...]
    fetched_at: float

    @classmethod
    def from_document(cls, family: int, document: Any, fetched_at: float) -> "BootstrapTable":
        """Build a table from a bootstrap document, skipping malformed entries."""
        entries: List[BootstrapEntry] = []
        for service in document.get("services") or []:
            if not isinstance(service, list) or len(service) < 2:
                continue
            ranges, urls = service[0], service[1]
            if not isinstance(ranges, list) or not isinstance(urls, list) or not urls:
                continue
            blocks = tuple(
                block
                for block in (parse_cidr(cidr, family) for cidr in ranges)
                if block is not None
            )
            entries.append(
                BootstrapEntry(
                    blocks=blocks,
                    endpoints=tuple(url for url in urls if isinstance(url, str)),
                )
            )
        return cls(family=family, entries=tuple(entries), fetched_at=fetched_at)

    def match(self, address: int) -> Optional[str]:
        """Base URL of the first entry covering ``address``; None when nothing matches."""
        bits = _FAMILY_BITS[self.family]
        for entry in self.entries:
            if any(address_in_block(address, block, bits) for block in entry.blocks):
                return entry.endpoint()
        return None


def fetch_bootstrap_document(
    url: str,
    *,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    env: Optional[Mapping[str, str]] = None,
    transport: Optional[httpx.BaseTransport] = None,
) -> Dict[str, Any]:
    try:
        with build_client(url, timeout=timeout, env=env, transport=transport) as client:
            response = client.get(url, headers={"Accept": "application/json"})
    except httpx.HTTPError as exc:
        raise RdapBootstrapFetchError(url, str(exc) or repr(exc)) from exc

    if not response.is_success:
        raise RdapBootstrapHttpError(url, response.status_code)

    try:
        document = response.json()
    except ValueError as exc:
        raise RdapBootstrapFetchError(url, f"invalid JSON: {exc}") from exc
    if not isinstance(document, dict) or not isinstance(document.get("services"), list):
        raise RdapBootstrapFetchError(url, "document has no services list")
    return document


class RdapBootstrap:
    """
    Per-family bootstrap tables with TTL refresh and copy-on-write replacement.

    ``fetch_document`` takes a URL and returns the decoded document (or raises
    one of the bootstrap errors); it defaults to an HTTP fetch.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        fetch_document: Optional[Callable[[str], Any]] = None,
        clock: Callable[[], float] = time.time,
        urls: Optional[Dict[int, str]] = None,
    ):
        self.ttl_seconds = ttl_seconds
        self._fetch_document = fetch_document or partial(
            fetch_bootstrap_document, timeout=DEFAULT_TIMEOUT_SECONDS
        )
        self._clock = clock
        self._urls = dict(urls or IANA_BOOTSTRAP_URLS)
        self._tables: Dict[int, BootstrapTable] = {}
        self._lock = threading.Lock()

    def table(self, family: int) -> Optional[BootstrapTable]:
        return self._tables.get(family)

    def is_fresh(self, table: Optional[BootstrapTable]) -> bool:
        return table is not None and self._clock() - table.fetched_at < self.ttl_seconds

    def refresh(self, family: int) -> BootstrapTable:
        """Fetch the family's document and swap in the new table."""
        url = self._urls[family]
        document = self._fetch_document(url)
        table = BootstrapTable.from_document(family, document, fetched_at=self._clock())
        with self._lock:
            tables = dict(self._tables)
            tables[family] = table
            self._tables = tables
        logger.info(
            f"Loaded RDAP bootstrap for IPv{family}: {len(table.entries)} services"
        )
        return table

    def resolve_base_url(self, address: Union[IpAddress, str]) -> Optional[str]:
        if isinstance(address, str):
            address = parse_ip(address)
        # ::ffff:a.b.c.d stays a 128-bit value and is matched in the IPv6 table
        table = self._tables.get(address.version)
        if not self.is_fresh(table):
            table = self.refresh(address.version)
        return table.match(int(address))
