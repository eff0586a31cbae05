from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings

# .env at the project root: palmjob/core/config.py -> palmjob/core -> palmjob -> root
_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _ROOT / ".env"

DEFAULT_PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"

RESULT_TTL_SECONDS = 30 * 24 * 60 * 60  # 30 days


class Settings(BaseSettings):
    openai_api_key: str = ""
    openai_timeout_seconds: float = 30.0
    vision_model: str = "gpt-4o-mini"
    image_model: str = "dall-e-3"
    redis_url: str = "redis://localhost:6379"
    # Records, image blobs and prompt logs all share this expiry
    result_ttl_seconds: int = RESULT_TTL_SECONDS
    upload_max_mb: int = 10            # per palm photo
    # Keep a copy of generated card images in Redis; provider URLs expire after ~1h
    store_card_images: bool = False
    prompt_log_enabled: bool = True
    prompts_dir: Path = DEFAULT_PROMPTS_DIR
    # Public URL used in generated links. Empty: derived from the request host.
    base_url: str = ""
    default_base_url: str = "https://palm.gary-world.app"
    allowed_hosts: str = "palm.gary-world.app,gary-world.app,www.gary-world.app,palmjob.fly.dev"
    cors_origins: str = "*"
    rate_limit_per_minute: int = 60
    shutdown_grace_seconds: float = 10.0
    log_level: str = "INFO"
    environment: str = "development"

    model_config = {
        "env_file": _ENV_FILE if _ENV_FILE.is_file() else ".env",
        "extra": "ignore",
    }

    @field_validator("openai_api_key", mode="before")
    @classmethod
    def strip_openai_key(cls, v: str | None) -> str:
        """Trims whitespace picked up when the key is pasted into .env."""
        return (v or "").strip()

    @field_validator("base_url", mode="before")
    @classmethod
    def strip_base_url(cls, v: str | None) -> str:
        return (v or "").strip().rstrip("/")

    @property
    def upload_max_bytes(self) -> int:
        return self.upload_max_mb * 1024 * 1024

    def allowed_hosts_list(self) -> list[str]:
        return [h.strip().lower() for h in self.allowed_hosts.split(",") if h.strip()]

    def cors_origins_list(self) -> list[str]:
        if not self.cors_origins or self.cors_origins.strip() == "*":
            return ["*"]
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    def is_openai_configured(self) -> bool:
        return bool(self.openai_api_key)


settings = Settings()
