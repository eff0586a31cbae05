"""Per-IP rate limiting (SlowAPI); honours X-Forwarded-For behind a proxy."""
from fastapi import Request

from slowapi import Limiter

from .config import settings

_analyze_per_minute = settings.rate_limit_per_minute


def _get_client_ip(request: Request) -> str:
    """Real client IP behind a proxy (Fly.io, Nginx)."""
    xff = request.headers.get("x-forwarded-for")
    if xff:
        return xff.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "127.0.0.1"


def set_analyze_rate_limit(per_minute: int) -> None:
    """Called by create_app with its own settings; the limiter itself is process-wide."""
    global _analyze_per_minute
    _analyze_per_minute = per_minute


def analyze_rate_limit() -> str:
    """Evaluated by SlowAPI on every request."""
    return f"{_analyze_per_minute}/minute"


limiter = Limiter(key_func=_get_client_ip)
