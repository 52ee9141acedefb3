"""
Per-client daily quota for billable (live RDAP) lookups.

Counters are keyed by (client, UTC day). A new day simply starts a new row;
rows from earlier days are left for operational pruning.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from iplookup.models.rate_limit import RateLimitCounter
from iplookup.models.upsert import insert_for


@dataclass(frozen=True)
class RateLimitState:
    day: str
    current: int
    limit: int
    remaining: int


def day_key(now: Optional[datetime] = None) -> str:
    """UTC day key: YYYY-MM-DD"""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return now.strftime("%Y-%m-%d")


def get_state(db: Session, client: str, limit: int, day: str) -> RateLimitState:
    current = db.execute(
        select(RateLimitCounter.count).where(
            RateLimitCounter.client == client, RateLimitCounter.day == day
        )
    ).scalar_one_or_none() or 0
    return RateLimitState(
        day=day, current=current, limit=limit, remaining=max(0, limit - current)
    )


def increment(db: Session, client: str, day: str) -> int:
    """
    Add one to the (client, day) counter and return the new count.
    A single INSERT .. ON CONFLICT .. RETURNING statement, so concurrent
    increments of the same key are serialized by the database.
    """
    stmt = insert_for(db, RateLimitCounter).values(client=client, day=day, count=1)
    stmt = stmt.on_conflict_do_update(
        index_elements=[RateLimitCounter.client, RateLimitCounter.day],
        set_={"count": RateLimitCounter.count + 1},
    ).returning(RateLimitCounter.count)
    new_count = db.execute(stmt).scalar_one()
    db.commit()
    return new_count
