# app/transport/security.py
"""
Request-level security helpers.

- Client IP resolution (proxy-aware)
- Internal network / bearer token guard for monitoring endpoints
- Security response headers
- Error message sanitization for production responses
"""
import hmac
import ipaddress
from functools import lru_cache

from fastapi import Request, HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.config import settings
from app.core.relay.errors import (
    ImageGenerationError,
    MediaDownloadError,
    RelayError,
    StorageError,
    WatermarkError,
)
from app.infra.logging_config import get_logger

logger = get_logger(__name__)

metrics_bearer_scheme = HTTPBearer(
    scheme_name="Metrics Token",
    description="Enter your metrics token (without 'Bearer ' prefix)",
    auto_error=False,
)


@lru_cache(maxsize=1)
def _get_internal_networks() -> list[ipaddress.IPv4Network | ipaddress.IPv6Network]:
    """Parse and cache internal network CIDRs from settings."""
    networks = []
    for cidr in settings.internal_networks.split(","):
        cidr = cidr.strip()
        if not cidr:
            continue
        try:
            networks.append(ipaddress.ip_network(cidr, strict=False))
        except ValueError as e:
            logger.warning(f"Invalid CIDR in INTERNAL_NETWORKS: {cidr} - {e}")
    return networks


def get_client_ip(request: Request) -> str:
    """
    Real client IP: first X-Forwarded-For hop when proxy headers are
    trusted, else the socket peer.

    SECURITY NOTE: clients can spoof X-Forwarded-For unless a proxy
    overwrites it. Set TRUST_PROXY_HEADERS=false when exposed directly.
    """
    client_ip = request.client.host if request.client else "127.0.0.1"

    if settings.trust_proxy_headers:
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            first = forwarded_for.split(",")[0].strip()
            if first:
                client_ip = first

    return client_ip


def get_user_agent(request: Request) -> str:
    return request.headers.get("User-Agent") or settings.default_user_agent


def _is_internal_ip(ip_str: str) -> bool:
    try:
        ip = ipaddress.ip_address(ip_str)
    except ValueError:
        logger.warning(f"Invalid IP address format: {ip_str}")
        return False

    return any(ip in network for network in _get_internal_networks())


def require_internal_network(request: Request):
    """Only allow access from INTERNAL_NETWORKS (RFC1918 + localhost by default)."""
    client_ip = get_client_ip(request)

    if _is_internal_ip(client_ip):
        return

    logger.warning(f"Access denied from non-internal IP: {client_ip}")
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")


def require_metrics_auth(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(metrics_bearer_scheme),
):
    """
    Dependency for /metrics and /health/detailed.

    1. METRICS_TOKEN set: require ``Authorization: Bearer <token>``
    2. Otherwise: require internal network access
    """
    if settings.metrics_token:
        if not credentials:
            logger.warning("Metrics endpoint accessed without token")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Authentication required",
                headers={"WWW-Authenticate": "Bearer"},
            )

        if not hmac.compare_digest(credentials.credentials, settings.metrics_token):
            logger.warning("Invalid metrics token attempt")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid credentials",
                headers={"WWW-Authenticate": "Bearer"},
            )
        return

    require_internal_network(request)


class SecurityHeaders:
    """OWASP recommended headers for API responses."""

    @staticmethod
    def add_security_headers(response):
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"

        # Media is fetched cross-origin by browsers and players
        response.headers["Cross-Origin-Resource-Policy"] = "cross-origin"

        if "Cache-Control" not in response.headers:
            response.headers["Cache-Control"] = "no-store"

        if settings.is_production or settings.is_staging:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        if "Server" in response.headers:
            del response.headers["Server"]

        return response


_GENERIC_RELAY_MESSAGES = {
    StorageError: "Failed to upload to storage",
    ImageGenerationError: "Failed to generate image",
    WatermarkError: "Failed to apply watermark",
}


def sanitize_error_message(error: Exception, is_production: bool) -> str:
    """
    Message safe to return to callers.

    In dev: the raw message. In production: our own relay messages
    pass through when they carry no upstream detail, everything else is
    mapped to a generic message.
    """
    if not is_production:
        return str(error)

    if isinstance(error, RelayError):
        if error.status_code < 500:
            return error.detail
        if isinstance(error, MediaDownloadError):
            return f"Failed to fetch {error.leg} file"
        for error_type, message in _GENERIC_RELAY_MESSAGES.items():
            if isinstance(error, error_type):
                return message
        return error.detail

    generic_messages = {
        "ValueError": "Invalid input",
        "KeyError": "Invalid request",
        "ConnectionError": "Service temporarily unavailable",
        "TimeoutError": "Request timeout",
    }

    return generic_messages.get(type(error).__name__, "An error occurred")
