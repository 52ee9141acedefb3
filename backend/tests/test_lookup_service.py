"""
test_lookup_service.py

Unit tests for the resolution pipeline. The quota counter must move only
when a live RDAP fetch happens; private addresses and cache hits are free.
"""

import pytest

from conftest import CACHE_TTL_SECONDS, DAILY_LIMIT, REGISTRY_BASE_URL
from iplookup.core.errors import (
    InvalidIpAddress,
    RateLimited,
    RdapBootstrapHttpError,
    RdapHttpError,
    RdapUnresolved,
)
from iplookup.services import rate_limit
from iplookup.services.ip_classifier import IpKind
from iplookup.services.lookup import LookupService
from iplookup.services.rdap_bootstrap import RdapBootstrap

pytestmark = pytest.mark.unit

CLIENT = "198.51.100.23"


def _used(db, service):
    return service.quota(db, CLIENT).current


def test_private_address_is_skipped(db, service, registry):
    result = service.lookup(db, "192.168.1.1", CLIENT)

    assert result.source == "skipped"
    assert result.rdap is None
    assert result.fetched_at is None
    assert result.classification.is_public is False
    assert result.classification.kind == IpKind.RFC1918
    assert registry.calls == []
    assert result.rate_limit.remaining == DAILY_LIMIT


def test_private_lookups_never_touch_quota(db, service):
    for _ in range(DAILY_LIMIT + 2):
        service.lookup(db, "10.0.0.1", CLIENT)
        service.lookup(db, "::1", CLIENT)
    assert _used(db, service) == 0


def test_invalid_address_raises(db, service, registry):
    with pytest.raises(InvalidIpAddress):
        service.lookup(db, "not-an-ip", CLIENT)
    with pytest.raises(InvalidIpAddress):
        service.lookup(db, None, CLIENT)
    assert registry.calls == []


def test_public_miss_fetches_live_and_charges_quota(db, service, registry, clock):
    result = service.lookup(db, "8.8.8.8", CLIENT)

    assert result.source == "live"
    assert result.rdap["handle"] == "TEST-HANDLE"
    assert result.fetched_at == int(clock.now.timestamp() * 1000)
    assert registry.calls == [("8.8.8.8", REGISTRY_BASE_URL)]
    assert result.rate_limit.current == 1
    assert result.rate_limit.remaining == DAILY_LIMIT - 1


def test_cache_hit_is_free(db, service, registry):
    service.lookup(db, "8.8.8.8", CLIENT)
    for _ in range(5):
        result = service.lookup(db, "8.8.8.8", CLIENT)
        assert result.source == "cache"
        assert result.rdap["query"] == "8.8.8.8"

    assert len(registry.calls) == 1
    assert _used(db, service) == 1


def test_cache_is_shared_between_clients(db, service, registry):
    service.lookup(db, "8.8.8.8", CLIENT)
    result = service.lookup(db, "8.8.8.8", "203.0.113.77")

    assert result.source == "cache"
    assert result.rate_limit.current == 0
    assert len(registry.calls) == 1


def test_stale_cache_refetches(db, service, registry, clock):
    service.lookup(db, "8.8.8.8", CLIENT)
    clock.advance(seconds=CACHE_TTL_SECONDS)
    assert service.lookup(db, "8.8.8.8", CLIENT).source == "cache"

    clock.advance(seconds=1)
    result = service.lookup(db, "8.8.8.8", CLIENT)
    assert result.source == "live"
    assert len(registry.calls) == 2
    assert result.rate_limit.current == 2


def test_exhausted_quota_blocks_fetch(db, service, registry):
    for i in range(DAILY_LIMIT):
        service.lookup(db, f"8.8.8.{i + 1}", CLIENT)
    assert _used(db, service) == DAILY_LIMIT

    with pytest.raises(RateLimited) as exc_info:
        service.lookup(db, "1.1.1.1", CLIENT)

    assert exc_info.value.limit == DAILY_LIMIT
    assert exc_info.value.reset_day == "2026-10-19"
    assert len(registry.calls) == DAILY_LIMIT
    assert _used(db, service) == DAILY_LIMIT


def test_exhausted_quota_still_serves_cache_and_private(db, service):
    for i in range(DAILY_LIMIT):
        service.lookup(db, f"8.8.8.{i + 1}", CLIENT)

    assert service.lookup(db, "8.8.8.1", CLIENT).source == "cache"
    assert service.lookup(db, "172.16.5.4", CLIENT).source == "skipped"


def test_quota_resets_on_new_utc_day(db, service, clock):
    for i in range(DAILY_LIMIT):
        service.lookup(db, f"8.8.8.{i + 1}", CLIENT)

    clock.advance(days=1)
    result = service.lookup(db, "1.1.1.1", CLIENT)
    assert result.source == "live"
    assert result.rate_limit.day == "2026-10-20"
    assert result.rate_limit.current == 1
    # Yesterday's row is kept
    assert rate_limit.get_state(db, CLIENT, DAILY_LIMIT, "2026-10-19").current == DAILY_LIMIT


def test_failed_fetch_charges_nothing_and_caches_nothing(db, service, registry):
    registry.error = RdapHttpError(503, {"title": "busy"}, "http://registry.test/rdap/ip/8.8.8.8")
    with pytest.raises(RdapHttpError):
        service.lookup(db, "8.8.8.8", CLIENT)
    assert _used(db, service) == 0

    registry.error = None
    assert service.lookup(db, "8.8.8.8", CLIENT).source == "live"


def test_ipv6_lookup_uses_canonical_form(db, service, registry):
    result = service.lookup(db, "2606:4700:4700:0:0:0:0:1111", CLIENT)
    assert result.ip == "2606:4700:4700::1111"
    assert registry.calls[0][0] == "2606:4700:4700::1111"


# ──────────────────────────────────────────────────────────────────────────────
# Bootstrap discovery
# ──────────────────────────────────────────────────────────────────────────────


def _bootstrap(document=None, error=None):
    def fetch(url):
        if error is not None:
            raise error
        return document

    return RdapBootstrap(fetch_document=fetch, urls={4: "https://v4.test", 6: "https://v6.test"})


def _service_with(bootstrap, registry, clock):
    return LookupService(
        cache_ttl_seconds=CACHE_TTL_SECONDS,
        daily_limit=DAILY_LIMIT,
        bootstrap=bootstrap,
        fetch_document=registry,
        clock=clock,
    )


def test_bootstrap_endpoint_is_used(db, registry, clock):
    bootstrap = _bootstrap({"services": [[["8.0.0.0/8"], ["https://rdap.arin.test/registry/"]]]})
    service = _service_with(bootstrap, registry, clock)

    assert service.lookup(db, "8.8.8.8", CLIENT).source == "live"
    assert registry.calls == [("8.8.8.8", "https://rdap.arin.test/registry/")]


def test_unresolved_address_fails_without_fallback(db, registry, clock):
    bootstrap = _bootstrap({"services": [[["8.0.0.0/8"], ["https://rdap.arin.test/registry/"]]]})
    service = _service_with(bootstrap, registry, clock)

    with pytest.raises(RdapUnresolved) as exc_info:
        service.lookup(db, "1.1.1.1", CLIENT)
    assert exc_info.value.details["code"] == "rdap_bootstrap_no_match"
    assert registry.calls == []
    assert _used(db, service) == 0


def test_bootstrap_failure_fails_the_lookup(db, registry, clock):
    service = _service_with(_bootstrap(error=RdapBootstrapHttpError("https://v4.test", 500)), registry, clock)

    with pytest.raises(RdapBootstrapHttpError):
        service.lookup(db, "8.8.8.8", CLIENT)
    assert registry.calls == []


def test_service_requires_a_registry_source():
    with pytest.raises(ValueError):
        LookupService(cache_ttl_seconds=1, daily_limit=1)
