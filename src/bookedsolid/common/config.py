"""BookedSolid configuration via pydantic-settings."""

import json
import warnings
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

_INSECURE_DEFAULTS = {
    "secret_key": "insecure-dev-key-change-me",
    "audit_hmac_key": "insecure-audit-key-change-me",
}


class BookedSolidSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="BOOKEDSOLID_")

    environment: str = "development"
    log_level: str = "INFO"
    secret_key: str = "insecure-dev-key-change-me"

    # Audit chain keyring, JSON dict mapping version (int) to key string.
    # e.g. '{"0": "old-key", "1": "new-key"}'
    # When set, audit_hmac_key is ignored.  When empty, audit_hmac_key is version 0.
    audit_hmac_key: str = "insecure-audit-key-change-me"
    audit_hmac_keys: str = ""

    # Database
    db_url: str = "sqlite+aiosqlite:///./data/bookedsolid.db"

    # API
    api_title: str = "BookedSolid"
    api_version: str = "0.1.0"
    host: str = "0.0.0.0"
    port: int = 8080
    api_prefix: str = ""
    cors_origins: list[str] = ["http://localhost:3000"]
    public_base_url: str = "http://localhost:3000"
    session_max_age: int = 8 * 3600

    # Stripe
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    stripe_webhook_tolerance: int = 300
    stripe_price_missed_monthly: str = ""
    stripe_price_missed_annual: str = ""
    stripe_price_complete_monthly: str = ""
    stripe_price_complete_annual: str = ""
    stripe_price_unlimited_monthly: str = ""
    stripe_price_unlimited_annual: str = ""
    # Skip subscription events older than the last applied one (off = last write wins)
    reject_stale_events: bool = False

    # Voice provider call webhook
    voice_webhook_secret: str = ""

    # Analytics
    value_per_booking: float = 50.0
    default_usage_range_days: int = 30

    # Admin flows
    invitation_ttl_days: int = 7
    password_reset_ttl_seconds: int = 3600

    # Email delivery ("sendgrid", "resend" or empty to log only)
    email_provider: str = ""
    email_api_key: str = ""
    email_from: str = "noreply@bookedsolid.ai"
    email_from_name: str = "BookedSolid AI"

    # Pagination
    default_page_size: int = 50
    max_page_size: int = 200

    @property
    def audit_keyring(self) -> dict[int, str]:
        """Return the audit HMAC keyring as {version_int: key_str}.

        If audit_hmac_keys is set, parse it as JSON.
        Otherwise, fall back to scalar audit_hmac_key as version 0.
        """
        if self.audit_hmac_keys:
            try:
                raw = json.loads(self.audit_hmac_keys)
            except (json.JSONDecodeError, TypeError) as exc:
                raise ValueError(
                    "BOOKEDSOLID_AUDIT_HMAC_KEYS must be valid JSON "
                    f"(e.g. '{{\"0\": \"key\"}}'), got: {self.audit_hmac_keys!r}"
                ) from exc
            return {int(k): v for k, v in raw.items()}
        return {0: self.audit_hmac_key}

    @property
    def current_audit_key(self) -> str:
        """Return the audit HMAC key for the current (highest) version."""
        ring = self.audit_keyring
        return ring[max(ring.keys())]

    @property
    def stripe_configured(self) -> bool:
        return bool(self.stripe_secret_key) and "REPLACE_WITH" not in self.stripe_secret_key

    def validate_for_production(self) -> None:
        """Raise if insecure defaults are used in non-development environments."""
        insecure_fields = [
            field
            for field, default in _INSECURE_DEFAULTS.items()
            if getattr(self, field) == default
        ]

        if self.environment != "development" and insecure_fields:
            env_vars = ", ".join(f"BOOKEDSOLID_{f.upper()}" for f in insecure_fields)
            raise RuntimeError(
                f"Insecure default values detected in '{self.environment}' environment. "
                f"Set these environment variables to secure values: {env_vars}. "
                "Generate secrets with: python -c \"import secrets; print(secrets.token_urlsafe(48))\""
            )

        if insecure_fields:
            warnings.warn(
                "Using insecure default keys, set BOOKEDSOLID_SECRET_KEY and "
                "BOOKEDSOLID_AUDIT_HMAC_KEY for production",
                UserWarning,
                stacklevel=2,
            )


@lru_cache
def get_settings() -> BookedSolidSettings:
    settings = BookedSolidSettings()
    settings.validate_for_production()
    return settings
