import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from iplookup.models.rdap_cache import RdapCacheEntry
from iplookup.models.upsert import insert_for

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheLookup:
    hit: bool
    document: Any = None
    fetched_at: Optional[int] = None


MISS = CacheLookup(hit=False)


def get_fresh(db: Session, ip: str, ttl_seconds: int, now_ms: int) -> CacheLookup:
    """
    Return the cached document for ``ip`` if it is at most ``ttl_seconds`` old.
    Stale rows are reported as a miss and left in place for the next upsert.
    """
    row = db.execute(
        select(RdapCacheEntry.response_json, RdapCacheEntry.fetched_at).where(
            RdapCacheEntry.ip == ip
        )
    ).first()
    if row is None:
        return MISS

    age_seconds = (now_ms - row.fetched_at) / 1000
    if age_seconds > ttl_seconds:
        logger.debug(f"RDAP cache entry for {ip} is stale ({age_seconds:.0f}s old)")
        return MISS
    return CacheLookup(hit=True, document=json.loads(row.response_json), fetched_at=row.fetched_at)


def upsert(db: Session, ip: str, document: Any, fetched_at: int) -> None:
    """Insert or replace the entry for ``ip``; document and timestamp change together."""
    stmt = insert_for(db, RdapCacheEntry).values(
        ip=ip, response_json=json.dumps(document), fetched_at=fetched_at
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[RdapCacheEntry.ip],
        set_={
            "response_json": stmt.excluded.response_json,
            "fetched_at": stmt.excluded.fetched_at,
        },
    )
    db.execute(stmt)
    db.commit()
