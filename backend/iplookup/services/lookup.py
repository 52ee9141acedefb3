import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import partial
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session

from iplookup.core.config import Settings
from iplookup.core.errors import RateLimited, RdapUnresolved
from iplookup.services import rate_limit, rdap_cache
from iplookup.services.ip_classifier import Classification, IpAddress, classify, parse_ip
from iplookup.services.rate_limit import RateLimitState
from iplookup.services.rdap import fetch_rdap
from iplookup.services.rdap_bootstrap import RdapBootstrap, fetch_bootstrap_document

logger = logging.getLogger(__name__)

SOURCE_LIVE = "live"
SOURCE_CACHE = "cache"
SOURCE_SKIPPED = "skipped"


@dataclass(frozen=True)
class LookupResult:
    ip: str
    classification: Classification
    rdap: Any
    source: str
    fetched_at: Optional[int]
    rate_limit: RateLimitState


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _log_event(msg: str, level: int = logging.INFO, **fields):
    log_record = logging.LogRecord(
        name="lookup",
        level=level,
        pathname="",
        lineno=0,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in fields.items():
        setattr(log_record, key, value)
    logger.handle(log_record)


class LookupService:
    """
    Resolution pipeline for a single /lookup request.

    Order of decisions:
      1. parse + classify; non-public addresses skip RDAP entirely
      2. fresh cache hit -> served from cache, quota untouched
      3. quota exhausted -> RateLimited, nothing fetched
      4. resolve registry (fixed base URL or IANA bootstrap), fetch live,
         cache the document and charge one unit of quota

    Only step 4 ever increments the client's counter.
    """

    def __init__(
        self,
        *,
        cache_ttl_seconds: int,
        daily_limit: int,
        rdap_base_url: Optional[str] = None,
        bootstrap: Optional[RdapBootstrap] = None,
        fetch_document: Optional[Callable[[str, str], Any]] = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        if rdap_base_url is None and bootstrap is None:
            raise ValueError("Either rdap_base_url or bootstrap is required")
        self.cache_ttl_seconds = cache_ttl_seconds
        self.daily_limit = daily_limit
        self.rdap_base_url = rdap_base_url
        self.bootstrap = bootstrap
        self._fetch_document = fetch_document or fetch_rdap
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings) -> "LookupService":
        timeout = settings.HTTP_TIMEOUT_SECONDS
        bootstrap = None
        base_url = settings.RDAP_BASE_URL
        if settings.uses_bootstrap():
            bootstrap = RdapBootstrap(
                ttl_seconds=settings.RDAP_BOOTSTRAP_TTL_SECONDS,
                fetch_document=partial(fetch_bootstrap_document, timeout=timeout),
            )
            base_url = None
        return cls(
            cache_ttl_seconds=settings.RDAP_CACHE_TTL_SECONDS,
            daily_limit=settings.RATE_LIMIT_DAILY,
            rdap_base_url=base_url,
            bootstrap=bootstrap,
            fetch_document=partial(fetch_rdap, timeout=timeout),
        )

    def today(self) -> str:
        return rate_limit.day_key(self._clock())

    def quota(self, db: Session, client: str) -> RateLimitState:
        return rate_limit.get_state(db, client, self.daily_limit, self.today())

    def resolve_base_url(self, address: IpAddress) -> str:
        if self.bootstrap is None:
            return self.rdap_base_url
        base_url = self.bootstrap.resolve_base_url(address)
        if base_url is None:
            raise RdapUnresolved(str(address))
        return base_url

    def lookup(self, db: Session, ip_text: Any, client: str) -> LookupResult:
        address = parse_ip(ip_text)
        ip = str(address)
        classification = classify(address)

        now = self._clock()
        day = rate_limit.day_key(now)
        now_ms = int(now.timestamp() * 1000)

        document = None
        fetched_at = None
        if not classification.is_public:
            source = SOURCE_SKIPPED
        else:
            cached = rdap_cache.get_fresh(db, ip, self.cache_ttl_seconds, now_ms)
            if cached.hit:
                source = SOURCE_CACHE
                document = cached.document
                fetched_at = cached.fetched_at
            else:
                state = rate_limit.get_state(db, client, self.daily_limit, day)
                if state.current >= self.daily_limit:
                    _log_event("Daily quota exhausted", client=client, ip=ip)
                    raise RateLimited(self.daily_limit, day)

                base_url = self.resolve_base_url(address)
                document = self._fetch_document(ip, base_url)
                fetched_at = now_ms
                rdap_cache.upsert(db, ip, document, fetched_at)
                rate_limit.increment(db, client, day)
                source = SOURCE_LIVE

        _log_event("Lookup resolved", client=client, ip=ip, rdap_source=source)
        return LookupResult(
            ip=ip,
            classification=classification,
            rdap=document,
            source=source,
            fetched_at=fetched_at,
            rate_limit=rate_limit.get_state(db, client, self.daily_limit, day),
        )
