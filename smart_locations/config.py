"""
Process-wide settings for SmartLocations, read from the environment once at import.

Each settings group is a dataclass that knows its own environment variables
(`from_env`) and its own bounds (`check`). Unparseable or out-of-range values
raise ValueError at startup rather than surfacing on the first request.
"""

import os
import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

DEFAULT_OVERPASS_ENDPOINTS = [
    "https://overpass.kumi.systems/api/interpreter",  # usually fastest
    "https://overpass-api.de/api/interpreter",  # official
    "https://maps.mail.ru/osm/tools/overpass/api/interpreter",  # backup
]
DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger(__name__)


def _env(key: str, default: Any, cast: Callable[[str], Any]) -> Any:
    raw = os.getenv(key)
    if raw is None:
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ValueError(f"{key} has an invalid value: {raw!r}")


def env_str(key: str, default: Optional[str] = None) -> Optional[str]:
    return os.getenv(key, default)


def env_int(key: str, default: int) -> int:
    return _env(key, default, int)


def env_float(key: str, default: float) -> float:
    return _env(key, default, float)


def env_bool(key: str, default: bool) -> bool:
    return _env(key, default, lambda raw: raw.strip().lower() in ("1", "true", "yes", "on"))


def env_list(key: str, default: List[str]) -> List[str]:
    """Comma separated list; blank items are dropped."""
    return _env(key, default, lambda raw: [part.strip() for part in raw.split(",") if part.strip()])


class Environment(Enum):
    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


@dataclass
class TimeoutConfig:
    """Upstream timeouts in seconds."""
    overpass: float = 50.0
    nominatim: float = 10.0
    tracking: float = 30.0
    ai: float = 30.0

    @classmethod
    def from_env(cls) -> "TimeoutConfig":
        return cls(
            overpass=env_float("TIMEOUT_OVERPASS", cls.overpass),
            nominatim=env_float("TIMEOUT_NOMINATIM", cls.nominatim),
            tracking=env_float("TIMEOUT_TRACKING", cls.tracking),
            ai=env_float("TIMEOUT_AI", cls.ai),
        )

    def check(self):
        for name, seconds in asdict(self).items():
            if seconds <= 0:
                raise ValueError(f"timeout '{name}' must be positive, got {seconds}")


@dataclass
class CacheConfig:
    ttl_search: int = 600  # 10 minutes
    sweep_interval: int = 600

    @classmethod
    def from_env(cls) -> "CacheConfig":
        return cls(
            ttl_search=env_int("CACHE_TTL_SEARCH", cls.ttl_search),
            sweep_interval=env_int("CACHE_SWEEP_INTERVAL", cls.sweep_interval),
        )

    def check(self):
        if self.ttl_search <= 0 or self.sweep_interval <= 0:
            raise ValueError(f"cache TTL and sweep interval must be positive: {self}")


@dataclass
class ProviderConfig:
    """Upstream map data sources and request defaults."""
    overpass_endpoints: List[str] = field(default_factory=lambda: list(DEFAULT_OVERPASS_ENDPOINTS))
    nominatim_url: str = "https://nominatim.openstreetmap.org"
    user_agent: str = "SmartLocations/1.0"
    default_limit: int = 20
    default_radius_km: float = 5.0
    max_tags: int = 30

    @classmethod
    def from_env(cls) -> "ProviderConfig":
        return cls(
            overpass_endpoints=env_list("OVERPASS_ENDPOINTS", list(DEFAULT_OVERPASS_ENDPOINTS)),
            nominatim_url=env_str("NOMINATIM_URL", cls.nominatim_url).rstrip("/"),
            user_agent=env_str("NOMINATIM_USER_AGENT", cls.user_agent),
            default_limit=env_int("DEFAULT_LIMIT", cls.default_limit),
            default_radius_km=env_float("DEFAULT_RADIUS_KM", cls.default_radius_km),
            max_tags=env_int("MAX_TAGS", cls.max_tags),
        )

    def check(self):
        if not self.overpass_endpoints:
            raise ValueError("OVERPASS_ENDPOINTS must list at least one endpoint")
        if self.default_limit <= 0 or self.default_radius_km <= 0 or self.max_tags <= 0:
            raise ValueError(f"provider defaults must be positive: {self}")


@dataclass
class AuthConfig:
    enabled: bool = True
    jwt_secret: Optional[str] = None
    jwt_algorithm: str = "HS256"
    allowed_email: Optional[str] = None

    @classmethod
    def from_env(cls) -> "AuthConfig":
        return cls(
            enabled=env_bool("AUTH_ENABLED", True),
            jwt_secret=env_str("AUTH_JWT_SECRET"),
            jwt_algorithm=env_str("AUTH_JWT_ALGORITHM", "HS256"),
            allowed_email=env_str("AUTH_ALLOWED_EMAIL"),
        )

    def check(self):
        if self.enabled and not self.jwt_secret:
            logger.warning("AUTH_JWT_SECRET not set - all authenticated routes will deny")


@dataclass
class LoggingConfig:
    level: str = "INFO"
    format: str = DEFAULT_LOG_FORMAT
    file: Optional[str] = None
    max_bytes: int = 10 * 1024 * 1024
    backup_count: int = 5

    @classmethod
    def from_env(cls) -> "LoggingConfig":
        return cls(
            level=env_str("LOG_LEVEL", "INFO").upper(),
            format=env_str("LOG_FORMAT", DEFAULT_LOG_FORMAT),
            file=env_str("LOG_FILE"),
            max_bytes=env_int("LOG_MAX_BYTES", cls.max_bytes),
            backup_count=env_int("LOG_BACKUP_COUNT", cls.backup_count),
        )

    def check(self):
        if not isinstance(logging.getLevelName(self.level), int):
            raise ValueError(f"LOG_LEVEL is not a logging level: {self.level}")


class Config:
    """All settings groups plus the few top-level values."""

    def __init__(self):
        raw_env = env_str("ENVIRONMENT", "development").strip().lower()
        try:
            self.environment = Environment(raw_env)
        except ValueError:
            raise ValueError(f"ENVIRONMENT must be one of {[e.value for e in Environment]}, got {raw_env!r}")
        self.debug = env_bool("DEBUG", False)

        self.groq_api_key = env_str("GROQ_API_KEY")
        self.groq_model = env_str("GROQ_MODEL", "llama-3.1-8b-instant")
        # empty: in-memory result cache and preferences
        self.redis_url = env_str("REDIS_URL", "")
        self.cors_origins = env_list("CORS_ORIGINS", ["*"])

        self.timeout_config = TimeoutConfig.from_env()
        self.cache_config = CacheConfig.from_env()
        self.provider_config = ProviderConfig.from_env()
        self.auth_config = AuthConfig.from_env()
        self.logging_config = LoggingConfig.from_env()

        for group in (self.timeout_config, self.cache_config, self.provider_config,
                      self.auth_config, self.logging_config):
            group.check()
        if self.redis_url and not self.redis_url.startswith(("redis://", "rediss://")):
            raise ValueError(f"REDIS_URL must use redis:// or rediss://, got {self.redis_url!r}")
        if not self.groq_api_key:
            logger.warning("GROQ_API_KEY not set - AI narrative features will be disabled")

    def is_development(self) -> bool:
        return self.environment is Environment.DEVELOPMENT

    def to_dict(self) -> Dict[str, Any]:
        """Settings summary reported by /healthz; secrets are left out."""
        return {
            "environment": self.environment.value,
            "debug": self.debug,
            "redis": bool(self.redis_url),
            "groq": bool(self.groq_api_key),
            "timeouts": asdict(self.timeout_config),
            "cache": asdict(self.cache_config),
            "overpass_endpoints": list(self.provider_config.overpass_endpoints),
            "auth_enabled": self.auth_config.enabled,
        }


config = Config()


def get_config() -> Config:
    return config


def setup_logging():
    """Configure the root logger from `LoggingConfig`.

    Development forces DEBUG; every other environment uses LOG_LEVEL.
    """
    from logging.handlers import RotatingFileHandler

    cfg = get_config().logging_config
    root = logging.getLogger()
    logging.basicConfig(level=cfg.level, format=cfg.format)

    if cfg.file:
        handler = RotatingFileHandler(cfg.file, maxBytes=cfg.max_bytes, backupCount=cfg.backup_count)
        handler.setFormatter(logging.Formatter(cfg.format))
        root.addHandler(handler)

    for noisy in ("aiohttp", "asyncio"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    root.setLevel(logging.DEBUG if get_config().is_development() else cfg.level)
