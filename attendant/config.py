"""Process configuration.

Loads an optional ``attendant.toml`` (or an explicit path), then overlays
the environment variables the attendant has always honoured. Environment
wins over the file.
"""

from __future__ import annotations

import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Final, Literal

from attendant.exceptions import ConfigurationError
from attendant.logging import LOG_LEVELS

type RawConfig = dict[str, Any]
type CacheBackend = Literal["memory", "disk", "redis"]

PROJECT_CONFIG_NAME: Final[str] = "attendant.toml"
DEFAULT_REFRESH_MINUTES: Final[int] = 15
CACHE_BACKENDS: Final[tuple[str, ...]] = ("memory", "disk", "redis")

ENV_CACHE_REFRESH_INTERVAL: Final[str] = "ULTRON_ATTENDANT_CACHE_REFRESH_INTERVAL"
ENV_CACHE_BACKEND: Final[str] = "ULTRON_ATTENDANT_CACHE_BACKEND"
ENV_CACHE_DIR: Final[str] = "ULTRON_ATTENDANT_CACHE_DIR"
ENV_LOG_LEVEL: Final[str] = "ULTRON_ATTENDANT_LOG_LEVEL"
ENV_KUBERNETES_CONFIG: Final[str] = "KUBECONFIG"
ENV_EMMA_CLIENT_ID: Final[str] = "EMMA_CLIENT_ID"
ENV_EMMA_CLIENT_SECRET: Final[str] = "EMMA_CLIENT_SECRET"
ENV_REDIS_SERVER_ADDRESS: Final[str] = "REDIS_SERVER_ADDRESS"
ENV_REDIS_SERVER_DATABASE: Final[str] = "REDIS_SERVER_DATABASE"
ENV_REDIS_SERVER_PASSWORD: Final[str] = "REDIS_SERVER_PASSWORD"


@dataclass(frozen=True, slots=True)
class EmmaSettings:
    client_id: str = ""
    client_secret: str = field(default="", repr=False)
    base_url: str = "https://api.emma.ms/external"


@dataclass(frozen=True, slots=True)
class KubernetesSettings:
    kubeconfig: str | None = None
    server: str | None = None
    kubectl: str = "kubectl"
    timeout: float = 60


@dataclass(frozen=True, slots=True)
class CacheSettings:
    backend: CacheBackend = "memory"
    directory: Path = Path.home() / ".attendant" / "cache"
    redis_address: str = "localhost:6379"
    redis_database: int = 0
    redis_password: str | None = field(default=None, repr=False)


@dataclass(frozen=True, slots=True)
class AuthSettings:
    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 30.0


@dataclass(frozen=True, slots=True)
class RateSettings:
    durable_interruption: float = 0.0
    ephemeral_interruption: float = 0.05
    durable_latency: float = 0.0
    ephemeral_latency: float = 0.0


@dataclass(frozen=True, slots=True)
class LoggingSettings:
    level: str = "INFO"
    file: str | None = None
    console: bool = True


@dataclass(frozen=True, slots=True)
class AttendantConfig:
    refresh_interval: timedelta = timedelta(minutes=DEFAULT_REFRESH_MINUTES)
    http_timeout: float = 30
    emma: EmmaSettings = field(default_factory=EmmaSettings)
    kubernetes: KubernetesSettings = field(default_factory=KubernetesSettings)
    cache: CacheSettings = field(default_factory=CacheSettings)
    auth: AuthSettings = field(default_factory=AuthSettings)
    rates: RateSettings = field(default_factory=RateSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    def require_emma_credentials(self) -> None:
        if not self.emma.client_id or not self.emma.client_secret:
            raise ConfigurationError(
                f"Emma credentials not found. Set {ENV_EMMA_CLIENT_ID} and "
                f"{ENV_EMMA_CLIENT_SECRET} or the [emma] section of {PROJECT_CONFIG_NAME}."
            )


# =============================================================================
# Loading
# =============================================================================


def _read_toml(path: Path) -> RawConfig:
    if not path.is_file():
        return {}
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid configuration file {path}: {e}") from e


def parse_interval(value: Any) -> timedelta:
    """Minutes to timedelta; unset, non-integer or non-positive gives the default."""
    try:
        minutes = int(value)
    except (TypeError, ValueError):
        return timedelta(minutes=DEFAULT_REFRESH_MINUTES)
    if minutes <= 0:
        return timedelta(minutes=DEFAULT_REFRESH_MINUTES)
    return timedelta(minutes=minutes)


def _section(raw: RawConfig, name: str) -> RawConfig:
    section = raw.get(name, {})
    if not isinstance(section, dict):
        raise ConfigurationError(f"[{name}] must be a table")
    return section


def _build[T](cls: type[T], raw: RawConfig, name: str) -> T:
    try:
        return cls(**_section(raw, name))
    except TypeError as e:
        raise ConfigurationError(f"Invalid [{name}] section: {e}") from e


def _number(value: Any, name: str) -> float:
    if isinstance(value, bool):
        raise ConfigurationError(f"{name} must be a number, got {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from e


def _database(value: Any) -> int:
    """Redis database index; anything unparsable selects database 0."""
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _cache_settings(raw: RawConfig, env: Mapping[str, str]) -> CacheSettings:
    cache_raw = dict(_section(raw, "cache"))
    if address := env.get(ENV_REDIS_SERVER_ADDRESS):
        cache_raw["redis_address"] = address
        cache_raw.setdefault("backend", "redis")
    if database := env.get(ENV_REDIS_SERVER_DATABASE):
        cache_raw["redis_database"] = database
    if password := env.get(ENV_REDIS_SERVER_PASSWORD):
        cache_raw["redis_password"] = password
    if backend := env.get(ENV_CACHE_BACKEND):
        cache_raw["backend"] = backend
    if directory := env.get(ENV_CACHE_DIR):
        cache_raw["directory"] = directory

    if cache_raw.get("backend", "memory") not in CACHE_BACKENDS:
        raise ConfigurationError(f"Unknown cache backend {cache_raw['backend']!r}")
    if "directory" in cache_raw:
        cache_raw["directory"] = Path(cache_raw["directory"]).expanduser()
    if "redis_database" in cache_raw:
        cache_raw["redis_database"] = _database(cache_raw["redis_database"])
    return _build(CacheSettings, {"cache": cache_raw}, "cache")


def _logging_settings(raw: RawConfig, env: Mapping[str, str]) -> LoggingSettings:
    settings = _build(LoggingSettings, raw, "logging")
    level = str(env.get(ENV_LOG_LEVEL) or settings.level).upper()
    if level not in LOG_LEVELS:
        raise ConfigurationError(
            f"Unknown log level {level!r}; expected one of {', '.join(LOG_LEVELS)}"
        )
    return LoggingSettings(level=level, file=settings.file, console=settings.console)


def load_config(
    path: Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> AttendantConfig:
    env = os.environ if environ is None else environ
    if path is not None and not path.is_file():
        raise ConfigurationError(f"Configuration file {path} not found")
    raw = _read_toml(path or Path.cwd() / PROJECT_CONFIG_NAME)

    refresh = _section(raw, "refresh")
    interval_source = env.get(ENV_CACHE_REFRESH_INTERVAL, refresh.get("interval_minutes"))

    emma = _build(EmmaSettings, raw, "emma")
    emma = EmmaSettings(
        client_id=env.get(ENV_EMMA_CLIENT_ID) or emma.client_id,
        client_secret=env.get(ENV_EMMA_CLIENT_SECRET) or emma.client_secret,
        base_url=emma.base_url,
    )

    # In-cluster service env is left to kubectl, which pairs it with the
    # mounted service-account token and CA.
    kubernetes = _build(KubernetesSettings, raw, "kubernetes")
    kubernetes = KubernetesSettings(
        kubeconfig=env.get(ENV_KUBERNETES_CONFIG) or kubernetes.kubeconfig,
        server=kubernetes.server,
        kubectl=kubernetes.kubectl,
        timeout=kubernetes.timeout,
    )

    return AttendantConfig(
        refresh_interval=parse_interval(interval_source),
        http_timeout=_number(_section(raw, "http").get("timeout", 30), "[http] timeout"),
        emma=emma,
        kubernetes=kubernetes,
        cache=_cache_settings(raw, env),
        auth=_build(AuthSettings, raw, "auth"),
        rates=_build(RateSettings, raw, "rates"),
        logging=_logging_settings(raw, env),
    )
