import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv


class ConfigLoader:
    _instance = None
    _config = None

    def __new__(cls):
        """
        Create a singleton instance of ConfigLoader.
        Loads configuration from YAML file on first instantiation.
        """
        if cls._instance is None:
            cls._instance = super(ConfigLoader, cls).__new__(cls)
            cls._load_config()
        return cls._instance

    @classmethod
    def _load_config(cls):
        """
        Load the configuration from the YAML file into the class variable _config.
        """
        config_path = os.path.join(os.path.dirname(__file__), "..", "config.yaml")
        config_path = os.path.abspath(config_path)
        with open(config_path, "r") as f:
            cls._config = yaml.safe_load(f) or {}

    @classmethod
    def reset(cls):
        """Drop the cached instance so the next access re-reads config.yaml."""
        cls._instance = None
        cls._config = None

    def get_config(self):
        """
        Return the loaded configuration dictionary.
        """
        return self._config


def get_config():
    """
    Helper function to get the singleton configuration instance's config dictionary.
    """
    return ConfigLoader().get_config()


@dataclass(frozen=True)
class ApiSettings:
    api_key: Optional[str] = None
    base_url: str = "https://a.klaviyo.com"
    revision: str = "2025-01-15"
    timeout_ms: int = 30000
    api_key_prefix: str = "pk_"
    auth_header: str = "Authorization"
    auth_scheme: str = "Klaviyo-API-Key"
    revision_header: str = "revision"
    content_type: str = "application/vnd.api+json"


@dataclass(frozen=True)
class CacheSettings:
    enabled: bool = True
    max_size: int = 100
    sweep_interval_seconds: float = 60.0
    ttl_seconds: Dict[str, int] = field(default_factory=dict)
    routes: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class PaginationSettings:
    max_results: int = 500
    page_size: int = 100


@dataclass(frozen=True)
class LogSettings:
    level: str = "INFO"
    mask_sensitive_data: bool = True
    log_requests: bool = False
    log_responses: bool = False


@dataclass(frozen=True)
class Settings:
    api: ApiSettings
    cache: CacheSettings
    pagination: PaginationSettings
    logging: LogSettings


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() not in ("0", "false", "no", "off")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def load_settings(config: Optional[Dict[str, Any]] = None, use_dotenv: bool = True) -> Settings:
    """Build typed settings from config.yaml, then apply KLAVIYO_* environment overrides.

    A `.env` file in the working directory is loaded first (without overriding
    variables that are already set).
    """
    if use_dotenv:
        load_dotenv()
    cfg = config if config is not None else (get_config() or {})

    api_cfg = cfg.get("klaviyo", {}) or {}
    cache_cfg = cfg.get("cache", {}) or {}
    page_cfg = cfg.get("pagination", {}) or {}
    log_cfg = cfg.get("logging", {}) or {}

    api = ApiSettings(
        api_key=os.getenv("KLAVIYO_API_KEY") or api_cfg.get("api_key"),
        base_url=str(api_cfg.get("base_url", ApiSettings.base_url)).rstrip("/"),
        revision=os.getenv("KLAVIYO_API_REVISION") or api_cfg.get("revision", ApiSettings.revision),
        timeout_ms=_env_int("KLAVIYO_TIMEOUT_MS", int(api_cfg.get("timeout_ms", ApiSettings.timeout_ms))),
        api_key_prefix=api_cfg.get("api_key_prefix", ApiSettings.api_key_prefix),
        auth_header=api_cfg.get("auth_header", ApiSettings.auth_header),
        auth_scheme=api_cfg.get("auth_scheme", ApiSettings.auth_scheme),
        revision_header=api_cfg.get("revision_header", ApiSettings.revision_header),
        content_type=api_cfg.get("content_type", ApiSettings.content_type),
    )
    cache = CacheSettings(
        enabled=_env_flag("KLAVIYO_CACHE_ENABLED", bool(cache_cfg.get("enabled", True))),
        max_size=int(cache_cfg.get("max_size", CacheSettings.max_size)),
        sweep_interval_seconds=float(cache_cfg.get("sweep_interval_seconds", CacheSettings.sweep_interval_seconds)),
        ttl_seconds=dict(cache_cfg.get("ttl_seconds") or {}),
        routes=dict(cache_cfg.get("routes") or {}),
    )
    pagination = PaginationSettings(
        max_results=int(page_cfg.get("max_results", PaginationSettings.max_results)),
        page_size=int(page_cfg.get("page_size", PaginationSettings.page_size)),
    )
    logging_settings = LogSettings(
        level=(os.getenv("KLAVIYO_LOG_LEVEL") or log_cfg.get("level", LogSettings.level)).upper(),
        mask_sensitive_data=bool(log_cfg.get("mask_sensitive_data", True)),
        log_requests=_env_flag("KLAVIYO_LOG_REQUESTS", bool(log_cfg.get("log_requests", False))),
        log_responses=_env_flag("KLAVIYO_LOG_RESPONSES", bool(log_cfg.get("log_responses", False))),
    )
    return Settings(api=api, cache=cache, pagination=pagination, logging=logging_settings)
