"""
Domain errors for the lookup pipeline.

Every error carries the HTTP status and JSON body it maps to, so a single
exception handler in main.py can render all of them. Routes may attach
response headers (e.g. rate-limit headers) through ``headers``.
"""

from typing import Any, Dict, Optional


class IpLookupError(Exception):
    status_code: int = 500
    error: str = "request_failed"

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        details: Any = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details
        self.headers: Dict[str, str] = {}

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.error, "message": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class InvalidIpAddress(IpLookupError):
    status_code = 400

    def __init__(self, value: Any):
        super().__init__("Invalid IP address", details={"code": "invalid_ip"})
        self.value = value


class RateLimited(IpLookupError):
    status_code = 429
    error = "rate_limited"

    def __init__(self, limit: int, reset_day: str):
        super().__init__(f"Daily rate limit exceeded ({limit}/day).")
        self.limit = limit
        self.reset_day = reset_day

    def to_body(self) -> Dict[str, Any]:
        return {
            "error": self.error,
            "message": self.message,
            "limit": self.limit,
            "remaining": 0,
            "resetDay": self.reset_day,
        }


class RdapHttpError(IpLookupError):
    """Registry answered with a non-2xx status, or could not be reached (status None)."""

    def __init__(self, status: Optional[int], body: Any, url: str):
        if status is None:
            message = "RDAP request failed"
        else:
            message = f"RDAP request failed ({status})"
        super().__init__(message, status_code=status or 502, details=body)
        self.status = status
        self.url = url


class RdapBootstrapFetchError(IpLookupError):
    status_code = 502

    def __init__(self, url: str, cause: str):
        super().__init__(
            "RDAP bootstrap fetch failed",
            details={"code": "rdap_bootstrap_fetch_failed", "url": url, "cause": cause},
        )
        self.url = url


class RdapBootstrapHttpError(IpLookupError):
    status_code = 502

    def __init__(self, url: str, status: int):
        super().__init__(
            f"RDAP bootstrap fetch failed ({status})",
            details={"code": "rdap_bootstrap_http_error", "url": url, "status": status},
        )
        self.url = url
        self.status = status


class RdapUnresolved(IpLookupError):
    status_code = 502

    def __init__(self, ip: str):
        super().__init__(
            "No RDAP service found for address",
            details={"code": "rdap_bootstrap_no_match", "ip": ip},
        )
        self.ip = ip


class InternalError(IpLookupError):
    """Unexpected failure; the response body hides the cause."""

    error = "internal_error"

    def __init__(self):
        super().__init__("Internal Server Error")
