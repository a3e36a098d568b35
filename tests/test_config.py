from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest

from attendant.config import DEFAULT_REFRESH_MINUTES, load_config, parse_interval
from attendant.exceptions import ConfigurationError
from attendant.inventory import resolve_target

pytestmark = [pytest.mark.unit, pytest.mark.xdist_group("unit")]

CREDENTIALS = {"EMMA_CLIENT_ID": "id", "EMMA_CLIENT_SECRET": "secret"}


@pytest.fixture(autouse=True)
def isolated_cwd(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(tmp_path)
    return tmp_path


def write_toml(directory: Path, content: str) -> Path:
    path = directory / "attendant.toml"
    path.write_text(content)
    return path


@pytest.mark.parametrize(
    ("raw", "minutes"),
    [(None, 15), ("", 15), ("abc", 15), ("0", 15), ("-5", 15), ("30", 30), (5, 5)],
)
def test_parse_interval(raw: object, minutes: int):
    assert parse_interval(raw) == timedelta(minutes=minutes)


def test_defaults_without_file_or_env():
    config = load_config(environ={})
    assert config.refresh_interval == timedelta(minutes=DEFAULT_REFRESH_MINUTES)
    assert config.cache.backend == "memory"
    assert config.emma.base_url == "https://api.emma.ms/external"
    assert config.kubernetes.server is None


def test_env_overrides(tmp_path: Path):
    config = load_config(environ={
        **CREDENTIALS,
        "ULTRON_ATTENDANT_CACHE_REFRESH_INTERVAL": "5",
        "ULTRON_ATTENDANT_CACHE_BACKEND": "disk",
        "ULTRON_ATTENDANT_CACHE_DIR": str(tmp_path / "c"),
        "ULTRON_ATTENDANT_LOG_LEVEL": "debug",
        "KUBECONFIG": "/k/config",
    })
    assert config.refresh_interval == timedelta(minutes=5)
    assert config.emma.client_id == "id"
    assert config.cache.backend == "disk"
    assert config.cache.directory == tmp_path / "c"
    assert config.logging.level == "DEBUG"
    assert config.kubernetes.kubeconfig == "/k/config"
    config.require_emma_credentials()


def test_in_cluster_service_env_defers_to_kubectl(tmp_path: Path):
    env = {"KUBERNETES_SERVICE_HOST": "10.0.0.1", "KUBERNETES_SERVICE_PORT": "443"}
    settings = load_config(environ=env).kubernetes
    assert settings.server is None

    target = resolve_target(
        kubectl=settings.kubectl, kubeconfig=settings.kubeconfig, server=settings.server,
        environ=env, home=tmp_path,
    )
    assert target.flags() == []


def test_project_file_is_read(isolated_cwd: Path):
    write_toml(isolated_cwd, """
[refresh]
interval_minutes = 7

[emma]
client_id = "file-id"
client_secret = "file-secret"

[auth]
base_delay = 0.5
multiplier = 3.0

[rates]
ephemeral_interruption = 0.2

[http]
timeout = 10
""")
    config = load_config(environ={})
    assert config.refresh_interval == timedelta(minutes=7)
    assert config.emma.client_id == "file-id"
    assert config.auth.base_delay == 0.5
    assert config.auth.multiplier == 3.0
    assert config.rates.ephemeral_interruption == 0.2
    assert config.http_timeout == 10


def test_env_wins_over_file(isolated_cwd: Path):
    write_toml(isolated_cwd, '[refresh]\ninterval_minutes = 7\n[emma]\nclient_id = "file-id"\n')
    config = load_config(environ={"ULTRON_ATTENDANT_CACHE_REFRESH_INTERVAL": "3", "EMMA_CLIENT_ID": "env-id"})
    assert config.refresh_interval == timedelta(minutes=3)
    assert config.emma.client_id == "env-id"


def test_explicit_path(tmp_path: Path):
    other = tmp_path / "elsewhere"
    other.mkdir()
    path = write_toml(other, "[cache]\nbackend = \"disk\"\ndirectory = \"~/attendant-cache\"\n")
    config = load_config(path, environ={})
    assert config.cache.backend == "disk"
    assert config.cache.directory == Path("~/attendant-cache").expanduser()


def test_missing_explicit_path_raises(tmp_path: Path):
    with pytest.raises(ConfigurationError):
        load_config(tmp_path / "nope.toml", environ={})


def test_invalid_toml_raises(isolated_cwd: Path):
    write_toml(isolated_cwd, "[refresh\n")
    with pytest.raises(ConfigurationError):
        load_config(environ={})


def test_unknown_key_raises(isolated_cwd: Path):
    write_toml(isolated_cwd, "[auth]\nattempts = 5\n")
    with pytest.raises(ConfigurationError):
        load_config(environ={})


def test_unknown_cache_backend_raises():
    with pytest.raises(ConfigurationError):
        load_config(environ={"ULTRON_ATTENDANT_CACHE_BACKEND": "memcached"})


def test_missing_credentials_raise():
    config = load_config(environ={"EMMA_CLIENT_ID": "only-id"})
    with pytest.raises(ConfigurationError, match="EMMA_CLIENT_SECRET"):
        config.require_emma_credentials()


def test_redis_address_selects_redis_backend():
    config = load_config(environ={
        "REDIS_SERVER_ADDRESS": "redis.internal:6380",
        "REDIS_SERVER_DATABASE": "2",
        "REDIS_SERVER_PASSWORD": "hunter2",
    })
    assert config.cache.backend == "redis"
    assert config.cache.redis_address == "redis.internal:6380"
    assert config.cache.redis_database == 2
    assert config.cache.redis_password == "hunter2"
    assert "hunter2" not in repr(config)


def test_redis_database_falls_back_to_zero():
    config = load_config(environ={"REDIS_SERVER_ADDRESS": "r:6379", "REDIS_SERVER_DATABASE": "x"})
    assert config.cache.redis_database == 0


def test_explicit_backend_wins_over_redis_address():
    config = load_config(environ={
        "REDIS_SERVER_ADDRESS": "r:6379", "ULTRON_ATTENDANT_CACHE_BACKEND": "memory",
    })
    assert config.cache.backend == "memory"


def test_non_numeric_http_timeout_raises(isolated_cwd: Path):
    write_toml(isolated_cwd, '[http]\ntimeout = "soon"\n')
    with pytest.raises(ConfigurationError, match="timeout"):
        load_config(environ={})


def test_unknown_log_level_raises(isolated_cwd: Path):
    write_toml(isolated_cwd, '[logging]\nlevel = "chatty"\n')
    with pytest.raises(ConfigurationError, match="log level"):
        load_config(environ={})


def test_log_level_from_file_is_normalised(isolated_cwd: Path):
    write_toml(isolated_cwd, '[logging]\nlevel = "warning"\n')
    assert load_config(environ={}).logging.level == "WARNING"
