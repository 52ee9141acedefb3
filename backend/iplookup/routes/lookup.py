import logging
from typing import Dict, Optional

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from iplookup.core.config import settings
from iplookup.core.database import get_db
from iplookup.core.errors import InternalError, IpLookupError
from iplookup.schemas.lookup import (
    IpClassificationSchema,
    LookupResponse,
    MeResponse,
    RateLimitSnapshot,
)
from iplookup.services.geoip import GeoIpReaders, lookup_geo
from iplookup.services.lookup import LookupService
from iplookup.services.rate_limit import RateLimitState

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def get_lookup_service(request: Request) -> LookupService:
    return request.app.state.lookup_service


def get_geoip_readers(request: Request) -> Optional[GeoIpReaders]:
    return getattr(request.app.state, "geoip_readers", None)


def client_ip(request: Request) -> Optional[str]:
    """Caller address: first X-Forwarded-For hop when behind a trusted proxy."""
    if settings.TRUST_PROXY:
        forwarded = request.headers.get("x-forwarded-for", "")
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    return request.client.host if request.client else None


def _rate_limit_headers(state: RateLimitState) -> Dict[str, str]:
    return {
        "X-RateLimit-Limit": str(state.limit),
        "X-RateLimit-Remaining": str(state.remaining),
        "X-RateLimit-Reset": state.day,
    }


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.get("/me", response_model=MeResponse)
def me(request: Request):
    """Echo the caller's address as the API sees it."""
    return MeResponse(ip=client_ip(request))


@router.get("/lookup", response_model=LookupResponse)
def lookup(
    request: Request,
    response: Response,
    ip: Optional[str] = None,
    db: Session = Depends(get_db),
    service: LookupService = Depends(get_lookup_service),
    geo_readers: Optional[GeoIpReaders] = Depends(get_geoip_readers),
):
    """
    RDAP + geo details for ``ip`` (defaults to the caller's address).
    Only live RDAP fetches count against the caller's daily quota.
    """
    caller = client_ip(request)
    client = caller or "unknown"
    target = ip if ip is not None else caller

    try:
        result = service.lookup(db, target, client)
    except IpLookupError as exc:
        exc.headers.update(_rate_limit_headers(service.quota(db, client)))
        raise
    except Exception as exc:
        logger.error(f"Unhandled exception on /lookup: {exc}", exc_info=True)
        db.rollback()
        internal = InternalError()
        internal.headers.update(_rate_limit_headers(service.quota(db, client)))
        raise internal from exc

    response.headers.update(_rate_limit_headers(result.rate_limit))
    state = result.rate_limit
    return LookupResponse(
        ip=result.ip,
        ip_classification=IpClassificationSchema(
            is_public=result.classification.is_public,
            kind=result.classification.kind.value,
        ),
        rdap=result.rdap,
        rdap_source=result.source,
        rdap_fetched_at=result.fetched_at,
        rate_limit=RateLimitSnapshot(
            limit=state.limit,
            remaining=state.remaining,
            used=state.current,
            reset_day=state.day,
        ),
        geo=lookup_geo(geo_readers, result.ip),
        maxmind=geo_readers.status() if geo_readers is not None else None,
    )
