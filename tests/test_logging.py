from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest
from loguru import logger

from attendant.cache import MemoryCache
from attendant.config import LoggingSettings
from attendant.logging import LogConfig, setup_logging, teardown_logging
from attendant.orchestrator import RefreshOrchestrator, RefreshTask

pytestmark = [pytest.mark.unit, pytest.mark.xdist_group("unit")]


async def broken() -> list[str]:
    raise RuntimeError("upstream down")


def test_from_settings_prefers_explicit_level():
    settings = LoggingSettings(level="WARNING", file="a.log", console=False)
    assert LogConfig.from_settings(settings) == LogConfig(level="WARNING", file="a.log", console=False)
    assert LogConfig.from_settings(settings, "DEBUG").level == "DEBUG"


@pytest.mark.asyncio
async def test_file_sink_carries_cycle_and_key(tmp_path: Path):
    log_file = tmp_path / "logs" / "attendant.log"
    handlers = setup_logging(LogConfig(file=str(log_file), console=False))
    try:
        orchestrator = RefreshOrchestrator(
            MemoryCache(), [RefreshTask("durable-configs", broken)], interval=timedelta(minutes=1),
        )
        await orchestrator.run_cycle()
    finally:
        teardown_logging(handlers)

    failure = next(line for line in log_file.read_text().splitlines() if "failed" in line)
    assert "WARNING" in failure
    assert "cycle=1" in failure
    assert "component=orchestrator" in failure
    assert "key=durable-configs" in failure


def test_file_sink_drops_foreign_debug_records(tmp_path: Path):
    log_file = tmp_path / "attendant.log"
    handlers = setup_logging(LogConfig(file=str(log_file), console=False))
    try:
        logger.debug("chatty library detail")
        logger.warning("library warning")
    finally:
        teardown_logging(handlers)

    content = log_file.read_text()
    assert "chatty library detail" not in content
    assert "library warning" in content
