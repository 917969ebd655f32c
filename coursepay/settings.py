import os
from typing import Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from .errors import ConfigError


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    stripe_secret_key: str
    stripe_publishable_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    app_env: str = "development"
    host: str = "0.0.0.0"
    port: int = 3000
    allowed_origins: Tuple[str, ...] = ("*",)
    tax_rate: float = 0.10
    success_url: Optional[str] = None
    cancel_url: Optional[str] = None
    stripe_api_base: str = "https://api.stripe.com"
    provider_timeout_seconds: float = 10.0
    webhook_tolerance_seconds: int = 300
    database_url: Optional[str] = None
    log_level: str = "INFO"

    @property
    def is_live(self) -> bool:
        return self.stripe_secret_key.startswith("sk_live")

    @property
    def mode(self) -> str:
        return "LIVE" if self.is_live else "TEST"

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Read configuration once at startup.
        STRIPE_SECRET_KEY is mandatory; everything else has a default.
        """
        env = os.environ if environ is None else environ

        secret_key = (env.get("STRIPE_SECRET_KEY") or "").strip()
        if not secret_key:
            raise ConfigError("STRIPE_SECRET_KEY is not set")

        origins = [o.strip() for o in env.get("FRONTEND_URL", "*").split(",") if o.strip()]

        try:
            return cls(
                stripe_secret_key=secret_key,
                stripe_publishable_key=env.get("STRIPE_PUBLISHABLE_KEY") or None,
                stripe_webhook_secret=env.get("STRIPE_WEBHOOK_SECRET") or None,
                app_env=env.get("APP_ENV", "development").lower(),
                host=env.get("HOST", "0.0.0.0"),
                port=int(env.get("PORT", "3000")),
                allowed_origins=tuple(origins or ["*"]),
                tax_rate=float(env.get("TAX_RATE", "0.10")),
                success_url=env.get("SUCCESS_URL") or None,
                cancel_url=env.get("CANCEL_URL") or None,
                stripe_api_base=env.get("STRIPE_API_BASE", "https://api.stripe.com").rstrip("/"),
                provider_timeout_seconds=float(env.get("PROVIDER_TIMEOUT_SECONDS", "10")),
                webhook_tolerance_seconds=int(env.get("WEBHOOK_TOLERANCE_SECONDS", "300")),
                database_url=env.get("DATABASE_URL") or None,
                log_level=env.get("LOG_LEVEL", "INFO").upper(),
            )
        except ValueError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e
