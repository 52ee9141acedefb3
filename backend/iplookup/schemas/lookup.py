from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, Literal, Optional


class HealthResponse(BaseModel):
    ok: bool


class MeResponse(BaseModel):
    ip: Optional[str]


class IpClassificationSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_public: bool = Field(alias="isPublic")
    # none | rfc1918 | loopback | link_local | cgnat | this_network
    # | documentation | multicast | unique_local
    kind: str


class RateLimitSnapshot(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    limit: int
    remaining: int
    used: int
    reset_day: str = Field(alias="resetDay")


class LookupResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ip: str
    ip_classification: IpClassificationSchema = Field(alias="ipClassification")
    # Registry document exactly as returned upstream; null when skipped
    rdap: Any = None
    rdap_source: Literal["live", "cache", "skipped"] = Field(alias="rdapSource")
    rdap_fetched_at: Optional[int] = Field(default=None, alias="rdapFetchedAt")
    rate_limit: RateLimitSnapshot = Field(alias="rateLimit")
    geo: Dict[str, Any] = Field(default_factory=dict)
    maxmind: Optional[Dict[str, Any]] = None
