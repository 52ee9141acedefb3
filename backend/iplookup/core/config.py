from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from typing import List

# RDAP_BASE_URL values that switch registry discovery to the IANA bootstrap
BOOTSTRAP_SENTINELS = {"iana", "bootstrap"}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Search .env in CWD first, then parent dir.
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        case_sensitive=True,
        # Proxy variables and the like live in the same environment
        extra="ignore",
    )

    # --- Server ---
    HOST: str = "0.0.0.0"
    PORT: int = Field(default=3000, gt=0)
    # Trust X-Forwarded-For when running behind a reverse proxy
    TRUST_PROXY: bool = True

    # --- Database ---
    DATABASE_URL: str = "sqlite:///./data/iplookup.sqlite"

    # --- RDAP ---
    RDAP_CACHE_TTL_SECONDS: int = Field(default=86400, gt=0)
    RDAP_BASE_URL: str = "https://rdap.org/ip/"
    RDAP_BOOTSTRAP_TTL_SECONDS: int = Field(default=86400, gt=0)
    HTTP_TIMEOUT_SECONDS: float = Field(default=10.0, gt=0)

    # --- Rate limit (billable live fetches per client per UTC day) ---
    RATE_LIMIT_DAILY: int = Field(default=24, gt=0)

    # --- MaxMind ---
    GEOIP_DB_DIR: str = "./data/geoip"
    GEOIP_CITY_MMDB: str = "GeoLite2-City.mmdb"
    GEOIP_ASN_MMDB: str = "GeoLite2-ASN.mmdb"

    # --- Observability ---
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"  # development | staging | production

    # --- CORS (comma-separated string parsed into a list) ---
    CORS_ORIGINS: str = "https://nettools.im,https://www.nettools.im"

    @field_validator("LOG_LEVEL")
    @classmethod
    def log_level_must_be_valid(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"LOG_LEVEL must be one of {valid}")
        return v.upper()

    @field_validator("RDAP_BASE_URL")
    @classmethod
    def rdap_base_url_must_be_http(cls, v: str) -> str:
        v = v.strip()
        if v.lower() in BOOTSTRAP_SENTINELS:
            return v.lower()
        if not v.startswith(("http://", "https://")):
            raise ValueError(
                "RDAP_BASE_URL must be an http(s) URL or one of "
                f"{sorted(BOOTSTRAP_SENTINELS)}"
            )
        return v

    def uses_bootstrap(self) -> bool:
        """True when registry endpoints are discovered from the IANA bootstrap."""
        return self.RDAP_BASE_URL in BOOTSTRAP_SENTINELS

    def get_cors_origins(self) -> List[str]:
        """Parse comma-separated CORS_ORIGINS into a list."""
        return [
            origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()
        ]


settings = Settings()
