import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from pydantic import ValidationError as PydanticValidationError
from typing import Optional

from backend.core.errors import ConfigError

STORE_BACKENDS = ("auto", "postgres", "supabase", "memory")
MINUTES_PER_DAY = 24 * 60


class Settings(BaseSettings):
    # Environment
    ENV: str = "development"

    # Database
    DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL: Optional[str] = None

    # Supabase (PostgREST)
    SUPABASE_URL: Optional[str] = None
    NEXT_PUBLIC_SUPABASE_URL: Optional[str] = None
    SUPABASE_SERVICE_ROLE_KEY: Optional[str] = None
    SUPABASE_ANON_KEY: Optional[str] = None

    # Streak engine
    STREAK_STORE: str = "auto"  # auto | postgres | supabase | memory
    STREAK_DAY_OFFSET_MINUTES: int = 0  # one global day boundary, 0 = UTC midnight
    STREAK_MAX_WORKERS: int = 1
    STREAK_STORE_TIMEOUT_SECONDS: float = 10.0
    STREAK_DRY_RUN: bool = False

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def supabase_url(self) -> Optional[str]:
        return self.SUPABASE_URL or self.NEXT_PUBLIC_SUPABASE_URL

    @property
    def supabase_key(self) -> Optional[str]:
        return self.SUPABASE_SERVICE_ROLE_KEY or self.SUPABASE_ANON_KEY


try:
    settings = Settings()
except PydanticValidationError:
    # Entry points re-read the environment with load_settings() and fail with ConfigError
    settings = Settings.model_construct()


def resolve_store_backend(settings_obj: Optional[Settings] = None) -> str:
    """Pick the concrete store backend for the configured STREAK_STORE.

    Raises ConfigError when the chosen backend has no credentials.
    """
    cfg = settings_obj or settings
    backend = (cfg.STREAK_STORE or "auto").strip().lower()
    if backend not in STORE_BACKENDS:
        raise ConfigError(f"STREAK_STORE must be one of {', '.join(STORE_BACKENDS)}; got {backend!r}")

    has_supabase = bool(cfg.supabase_url and cfg.supabase_key)
    if backend == "auto":
        if has_supabase:
            return "supabase"
        if cfg.DATABASE_URL:
            return "postgres"
        raise ConfigError(
            "Missing store credentials: set SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY, or DATABASE_URL"
        )
    if backend == "supabase" and not has_supabase:
        missing = [
            name
            for name, value in (("SUPABASE_URL", cfg.supabase_url), ("SUPABASE_SERVICE_ROLE_KEY", cfg.supabase_key))
            if not value
        ]
        raise ConfigError(f"Missing required configuration: {', '.join(missing)}")
    if backend == "postgres" and not cfg.DATABASE_URL:
        raise ConfigError("Missing required configuration: DATABASE_URL")
    return backend


def load_settings(**overrides) -> Settings:
    """Build Settings, reporting unparseable env values as ConfigError."""
    try:
        return Settings(**overrides)
    except PydanticValidationError as exc:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in exc.errors())
        raise ConfigError(f"Invalid configuration value for: {fields}") from exc


def check_streak_settings(settings_obj: Optional[Settings] = None) -> None:
    """Range checks for the streak job settings that do not depend on the store."""
    cfg = settings_obj or settings
    if cfg.STREAK_MAX_WORKERS < 1:
        raise ConfigError("STREAK_MAX_WORKERS must be at least 1")
    if abs(cfg.STREAK_DAY_OFFSET_MINUTES) >= MINUTES_PER_DAY:
        raise ConfigError(
            f"STREAK_DAY_OFFSET_MINUTES must be within one day (|offset| < {MINUTES_PER_DAY}); "
            f"got {cfg.STREAK_DAY_OFFSET_MINUTES}"
        )


def validate_config(settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> str:
    """Validate store configuration before a run starts.

    Returns the resolved backend name. Secrets are not logged, only which
    backend was selected.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("healthlog")

    backend = resolve_store_backend(cfg)
    check_streak_settings(cfg)
    if cfg.ENV.lower() == "production" and backend == "memory":
        raise ConfigError("STREAK_STORE=memory is not allowed in production")
    if cfg.ENV.lower() != "test" and cfg.TEST_DATABASE_URL:
        log.warning("TEST_DATABASE_URL is set outside test mode and will be ignored")

    log.info("config.validated", extra={"store_backend": backend, "env": cfg.ENV})
    return backend
