import logging
import json
import time
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from iplookup.core.database import engine, Base
from iplookup.core.config import settings
from iplookup.core.errors import IpLookupError
from iplookup.models import rate_limit, rdap_cache  # noqa: F401 (registers tables)
from iplookup.routes import lookup
from iplookup.schemas.lookup import HealthResponse
from iplookup.services.geoip import open_geoip_readers
from iplookup.services.lookup import LookupService

# Configure structured JSON logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(message)s",
)
logger = logging.getLogger(__name__)


class JSONFormatter(logging.Formatter):
    EXTRA_FIELDS = (
        "client",
        "ip",
        "rdap_source",
        "status_code",
        "request_path",
        "response_time",
    )

    def format(self, record):
        log_data = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "message": record.getMessage(),
            "module": record.module,
        }
        for field in self.EXTRA_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data)


# Apply JSON formatter to root logger
handler = logging.StreamHandler()
handler.setFormatter(JSONFormatter())
logging.getLogger().handlers = [handler]


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting IP Lookup API")
    if settings.ENVIRONMENT.lower() in {"development", "dev", "testing", "test"}:
        # NOTE: create_all is acceptable for local and test workflows.
        Base.metadata.create_all(bind=engine)
    else:
        logger.info(
            "Skipping schema auto-creation in non-dev environment; run migrations instead"
        )
    app.state.lookup_service = LookupService.from_settings(settings)
    app.state.geoip_readers = open_geoip_readers(
        settings.GEOIP_DB_DIR, settings.GEOIP_CITY_MMDB, settings.GEOIP_ASN_MMDB
    )
    if settings.uses_bootstrap():
        logger.info("RDAP registries resolved through the IANA bootstrap")
    else:
        logger.info(f"RDAP registry fixed at {settings.RDAP_BASE_URL}")
    yield
    # Shutdown
    app.state.geoip_readers.close()
    logger.info("Shutting down IP Lookup API")


app = FastAPI(
    title="IP Lookup API",
    description="RDAP and geolocation lookups with caching and per-client daily quotas",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware, origins driven by CORS_ORIGINS env var
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_methods=["GET"],
    allow_headers=["*"],
    expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset"],
)


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()

    response = await call_next(request)

    process_time = time.time() - start_time

    log_record = logging.LogRecord(
        name="api",
        level=logging.INFO,
        pathname="",
        lineno=0,
        msg=f"{request.method} {request.url.path}",
        args=(),
        exc_info=None,
    )
    log_record.request_path = str(request.url.path)
    log_record.status_code = response.status_code
    log_record.response_time = f"{process_time:.3f}s"

    logger.handle(log_record)

    return response


# Include routers
app.include_router(lookup.router, tags=["Lookup"])


@app.get("/health", response_model=HealthResponse)
async def health_check():
    return HealthResponse(ok=True)


@app.get("/ready")
async def readiness_check():
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        return {"ok": True, "environment": settings.ENVIRONMENT}
    except Exception:
        logger.warning("Readiness check failed", exc_info=True)
        return JSONResponse(status_code=503, content={"ok": False})


@app.exception_handler(IpLookupError)
async def lookup_error_handler(request: Request, exc: IpLookupError):
    if exc.status_code >= 500:
        logger.warning(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_body(),
        headers=exc.headers or None,
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"error": "internal_error", "message": "Internal Server Error"},
    )


def run():
    import uvicorn

    uvicorn.run(app, host=settings.HOST, port=settings.PORT, log_config=None)
