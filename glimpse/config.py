import os
from functools import lru_cache
from pathlib import Path as _Path
from typing import Dict, Optional

from dotenv import load_dotenv as _load_dotenv
from pydantic import BaseModel, Field

from .models.quota import DailyReset, Tier, TierLimits

# Load .env early so settings see env vars before anything caches them
_load_dotenv(dotenv_path=_Path(__file__).resolve().parent.parent / ".env", override=False)

_UNLIMITED = ("", "none", "unlimited", "-1")

_TIER_DEFAULTS: Dict[Tier, TierLimits] = {
    Tier.BASIC: TierLimits(
        max_registrations=5,
        super_likes_per_day=0,
        likes_per_day=10,
        daily_reset=DailyReset.CALENDAR,
        sees_received_likes=False,
    ),
    Tier.ADVANCED: TierLimits(
        max_registrations=10,
        super_likes_per_day=3,
        likes_per_day=50,
        daily_reset=DailyReset.CALENDAR,
        sees_received_likes=True,
    ),
    Tier.PREMIUM: TierLimits(
        max_registrations=None,
        super_likes_per_day=10,
        likes_per_day=None,
        daily_reset=DailyReset.ROLLING,
        sees_received_likes=True,
    ),
}


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


def _env_cap(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None:
        return default
    text = raw.strip().lower()
    if text in _UNLIMITED:
        return None
    return max(0, int(text))


def _tier_limits_from_env(tier: Tier) -> TierLimits:
    """Defaults for ``tier``, each overridable through ``QUOTA_<TIER>_*`` env vars."""
    base = _TIER_DEFAULTS[tier]
    prefix = f"QUOTA_{tier.value}_"
    reset_raw = os.getenv(prefix + "DAILY_RESET")
    return TierLimits(
        max_registrations=_env_cap(prefix + "MAX_REGISTRATIONS", base.max_registrations),
        super_likes_per_day=_env_cap(prefix + "SUPER_LIKES_PER_DAY", base.super_likes_per_day),
        likes_per_day=_env_cap(prefix + "LIKES_PER_DAY", base.likes_per_day),
        daily_reset=DailyReset(reset_raw.strip().lower()) if reset_raw else base.daily_reset,
        sees_received_likes=_env_bool(
            prefix + "SEES_RECEIVED_LIKES",
            "true" if base.sees_received_likes else "false",
        ),
    )


def _redis_pubsub_enabled_default() -> bool:
    explicit = os.getenv("REDIS_PUBSUB_ENABLED")
    if explicit is not None:
        return explicit.lower() in ("1", "true", "yes")
    return bool(os.getenv("REDIS_URL"))


class Settings(BaseModel):
    # Support multiple common env var names for Mongo connection string
    mongo_uri: str = Field(
        default_factory=lambda: (
            os.getenv("MONGO_URI")
            or os.getenv("MONGODB_URI")
            or os.getenv("MONGO_URL")
            or ""
        )
    )
    mongo_db: str = Field(default_factory=lambda: os.getenv("MONGO_DB_NAME", "glimpse"))
    # Optional: provide a non-SRV fallback URI (e.g., mongodb://127.0.0.1:27017)
    mongo_alt_uri: str = Field(default_factory=lambda: os.getenv("MONGO_ALT_URI", ""))
    mongo_direct: bool = Field(default_factory=lambda: _env_bool("MONGO_DIRECT"))
    cors_origins: str = Field(
        default_factory=lambda: os.getenv("CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173")
    )
    slow_request_ms: int = Field(default_factory=lambda: int(os.getenv("SLOW_REQUEST_MS", "800")))

    # Redis (post-commit notifications)
    redis_url: str = Field(default_factory=lambda: os.getenv("REDIS_URL", ""))
    redis_pubsub_enabled: bool = Field(default_factory=_redis_pubsub_enabled_default)
    redis_pubsub_prefix: str = Field(default_factory=lambda: os.getenv("REDIS_PUBSUB_PREFIX", "glimpse"))

    # Auth strategy, chosen once at startup
    auth_provider: str = Field(default_factory=lambda: os.getenv("AUTH_PROVIDER", "jwt").strip().lower())
    jwt_secret: str = Field(default_factory=lambda: os.getenv("JWT_SECRET", ""))
    jwt_algorithm: str = Field(default_factory=lambda: os.getenv("JWT_ALGORITHM", "HS256"))

    # Likes
    like_cooldown_hours: float = Field(default_factory=lambda: float(os.getenv("LIKE_COOLDOWN_HOURS", "24")))
    like_ttl_hours: float = Field(default_factory=lambda: float(os.getenv("LIKE_TTL_HOURS", "168")))

    # Profiles
    instant_profile_ttl_hours: float = Field(
        default_factory=lambda: float(os.getenv("INSTANT_PROFILE_TTL_HOURS", "3"))
    )
    profile_retention_days: float = Field(default_factory=lambda: float(os.getenv("PROFILE_RETENTION_DAYS", "30")))
    reveal_clock_skew_ms: int = Field(default_factory=lambda: int(os.getenv("REVEAL_CLOCK_SKEW_MS", "1000")))

    # Interest registrations
    interest_ttl_days: float = Field(default_factory=lambda: float(os.getenv("INTEREST_TTL_DAYS", "7")))
    interest_cooldown_hours: float = Field(
        default_factory=lambda: float(os.getenv("INTEREST_COOLDOWN_HOURS", "24"))
    )
    interest_hash_pepper: str = Field(default_factory=lambda: os.getenv("INTEREST_HASH_PEPPER", ""))

    # Quota
    quota_timezone: str = Field(default_factory=lambda: os.getenv("QUOTA_TIMEZONE", "Asia/Seoul"))
    tier_limits: Dict[Tier, TierLimits] = Field(
        default_factory=lambda: {tier: _tier_limits_from_env(tier) for tier in Tier}
    )

    sweep_interval_seconds: float = Field(
        default_factory=lambda: float(os.getenv("SWEEP_INTERVAL_SECONDS", "60"))
    )

    def limits_for(self, tier: Tier) -> TierLimits:
        return self.tier_limits.get(tier) or _TIER_DEFAULTS[tier]

    def get_cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


@lru_cache()
def get_settings() -> Settings:
    return Settings()
