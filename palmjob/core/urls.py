"""Public base URL for generated links (card image copies)."""
from fastapi import Request

from .config import Settings


def resolve_base_url(request: Request, settings: Settings) -> str:
    """
    BASE_URL wins when set. Otherwise the request host is trusted only if it is
    one of ALLOWED_HOSTS (or a subdomain of one); anything else gets DEFAULT_BASE_URL.
    """
    if settings.base_url:
        return settings.base_url
    host = (request.headers.get("x-forwarded-host") or request.headers.get("host") or "").strip().lower()
    if host:
        hostname = host.split(":", 1)[0]
        for domain in settings.allowed_hosts_list():
            if hostname == domain or hostname.endswith("." + domain):
                proto = (request.headers.get("x-forwarded-proto") or "https").split(",")[0].strip()
                return f"{proto}://{host}"
    return settings.default_base_url.rstrip("/")
