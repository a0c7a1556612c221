import os
from dataclasses import dataclass
from typing import Optional

# Optional: load a local .env file if present.
try:
    from dotenv import load_dotenv

    load_dotenv()
except Exception:
    # If python-dotenv isn't installed or .env isn't present, that's fine.
    pass


class ConfigError(RuntimeError):
    """Raised when required configuration is missing or malformed."""


def _env_bool(name: str, default: Optional[bool] = None) -> Optional[bool]:
    """Parse a boolean environment variable.

    Returns:
      - True/False if the env var is set to a recognizable value
      - default if unset or unrecognized

    Accepted truthy: 1, true, yes, y, on
    Accepted falsy:  0, false, no, n, off
    """

    raw = os.environ.get(name)
    if raw is None:
        return default
    v = raw.strip().lower()
    if v in ("1", "true", "yes", "y", "on"):
        return True
    if v in ("0", "false", "no", "n", "off"):
        return False
    return default


_APP_ENV = os.environ.get("APP_ENV", "development").strip().lower()


@dataclass(frozen=True)
class Config:
    """Runtime configuration.

    IMPORTANT: Provide API keys via environment variables or a .env file.
    Do not hardcode secrets in source code.
    """

    # -----------------
    # Core
    # -----------------
    APP_ENV: str = _APP_ENV
    # Controls the cookie Secure attribute and the log format.
    IS_PRODUCTION: bool = _env_bool("IS_PRODUCTION", _APP_ENV == "production") is True

    PUBLIC_APP_URL: str = os.environ.get("PUBLIC_APP_URL", "http://localhost:4321")

    # -----------------
    # Identity backend (Supabase)
    # -----------------
    # Both are required at boot; see validate_config().
    SUPABASE_URL: str | None = os.environ.get("SUPABASE_URL") or os.environ.get("PUBLIC_SUPABASE_URL")
    SUPABASE_ANON_KEY: str | None = (
        os.environ.get("SUPABASE_ANON_KEY") or os.environ.get("PUBLIC_SUPABASE_ANON_KEY")
    )
    PROFILES_TABLE: str = os.environ.get("PROFILES_TABLE", "profiles")

    # The identity backend has its own timeout policy; we add ours on top.
    IDENTITY_TIMEOUT_SECONDS: float = float(os.environ.get("IDENTITY_TIMEOUT_SECONDS", "5"))

    # -----------------
    # Request hardening
    # -----------------
    MAX_REQUEST_BYTES: int = int(os.environ.get("MAX_REQUEST_BYTES", str(1024 * 1024)))
    RATE_LIMIT_SWEEP_SECONDS: float = float(os.environ.get("RATE_LIMIT_SWEEP_SECONDS", "900"))  # 15 min
    # Rate limits key on X-Forwarded-For / X-Real-IP / CF-Connecting-IP when
    # set. Turn off when clients connect directly, so they cannot pick their own key.
    TRUST_PROXY_HEADERS: bool = _env_bool("TRUST_PROXY_HEADERS", True) is True

    # -----------------
    # Logging
    # -----------------
    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO")
    # JSON lines in production, pretty console output in development.
    LOG_JSON: bool = (
        _env_bool("LOG_JSON", None)
        if _env_bool("LOG_JSON", None) is not None
        else _APP_ENV == "production"
    )

    # -----------------
    # CORS (development)
    # -----------------
    CORS_ALLOW_ORIGINS: str = os.environ.get(
        "CORS_ALLOW_ORIGINS",
        "http://localhost:4321,http://127.0.0.1:4321",
    )

    # -----------------
    # Billing (Stripe)
    # -----------------
    # Only required for the billing routes.
    STRIPE_SECRET_KEY: str | None = os.environ.get("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET: str | None = os.environ.get("STRIPE_WEBHOOK_SECRET")
    STRIPE_PRICE_ID_PREMIUM: str | None = os.environ.get("STRIPE_PRICE_ID_PREMIUM")


def load_config() -> Config:
    return Config()


def validate_config(cfg: Config) -> None:
    """Fail fast when the identity backend is not configured."""
    missing = []
    if not (cfg.SUPABASE_URL or "").strip():
        missing.append("SUPABASE_URL")
    if not (cfg.SUPABASE_ANON_KEY or "").strip():
        missing.append("SUPABASE_ANON_KEY")
    if missing:
        raise ConfigError(f"Environment validation failed: missing {', '.join(missing)}")


def validate_billing_config(cfg: Config) -> None:
    """Check the Stripe keys. Called lazily by billing routes only."""
    key = (cfg.STRIPE_SECRET_KEY or "").strip()
    if not key:
        raise ConfigError("STRIPE_SECRET_KEY is required")
    if not key.startswith("sk_"):
        raise ConfigError("STRIPE_SECRET_KEY must start with 'sk_'")

    secret = (cfg.STRIPE_WEBHOOK_SECRET or "").strip()
    if not secret:
        raise ConfigError("STRIPE_WEBHOOK_SECRET is required")
    if not secret.startswith("whsec_"):
        raise ConfigError("STRIPE_WEBHOOK_SECRET must start with 'whsec_'")
