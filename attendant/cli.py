"""Command line entry point.

    attendant run                      refresh the cache until SIGINT/SIGTERM
    attendant once                     run a single refresh cycle
    attendant costs aws --instance-type m5.large --location "US East (N. Virginia)"
    attendant costs azure --filter "serviceName eq 'Virtual Machines'"
    attendant costs emma --compute-type ephemeral
"""

from __future__ import annotations

import argparse
import asyncio
import json
import signal
import sys
from collections.abc import Sequence
from contextlib import suppress
from pathlib import Path

from injector import Injector
from loguru import logger

from attendant.app import app_context
from attendant.cache import CacheService, RedisCache
from attendant.config import AttendantConfig, load_config
from attendant.exceptions import AttendantError
from attendant.logging import LOG_LEVELS, LogConfig, setup_logging, teardown_logging
from attendant.orchestrator import RefreshOrchestrator
from attendant.providers import (
    UNSUPPORTED_PROVIDERS,
    AwsPricingAdapter,
    AzurePricingAdapter,
    ComputeTypeCriteria,
    EmmaAdapter,
    InstanceCriteria,
    ODataCriteria,
    unsupported_adapter,
)
from attendant.types import ComputeType, CostRecord, to_payload


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="attendant", description="Keeps compute prices and cluster nodes cached",
    )
    parser.add_argument("--config", type=Path, default=None, help="Path to attendant.toml")
    parser.add_argument(
        "--log-level", type=str.upper, default=None,
        choices=LOG_LEVELS,
    )
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("run", help="Refresh the cache periodically until interrupted")
    commands.add_parser("once", help="Run one refresh cycle and exit")

    costs = commands.add_parser("costs", help="Print the costs one provider reports")
    providers = costs.add_subparsers(dest="provider", required=True)

    aws = providers.add_parser("aws")
    aws.add_argument("--instance-type", required=True)
    aws.add_argument("--location", required=True, help='e.g. "US East (N. Virginia)"')

    azure = providers.add_parser("azure")
    azure.add_argument("--filter", default="", help="OData $filter expression")

    emma = providers.add_parser("emma")
    emma.add_argument(
        "--compute-type", type=ComputeType, default=None, choices=list(ComputeType),
    )

    for name in UNSUPPORTED_PROVIDERS:
        providers.add_parser(name, help="Not supported yet")

    return parser


# =============================================================================
# Commands
# =============================================================================


async def _check_cache(injector: Injector) -> None:
    cache = injector.get(CacheService)
    if isinstance(cache, RedisCache):
        await cache.ping()


def _install_signal_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)


async def _run(config: AttendantConfig) -> int:
    config.require_emma_credentials()
    async with app_context(config) as injector:
        await _check_cache(injector)
        stop = asyncio.Event()
        _install_signal_handlers(stop)
        await injector.get(RefreshOrchestrator).run(stop)
    return 0


async def _once(config: AttendantConfig) -> int:
    config.require_emma_credentials()
    async with app_context(config) as injector:
        await _check_cache(injector)
        report = await injector.get(RefreshOrchestrator).run_cycle()
    print(json.dumps(
        {o.key: {"count": o.count, "error": None if o.ok else str(o.error)} for o in report.outcomes},
        indent=2,
    ))
    return 0 if report.ok else 1


async def _costs(config: AttendantConfig, args: argparse.Namespace) -> int:
    async with app_context(config) as injector:
        records: list[CostRecord]
        match args.provider:
            case "aws":
                criteria = InstanceCriteria(instance_type=args.instance_type, location=args.location)
                records = await injector.get(AwsPricingAdapter).fetch_costs(criteria)
            case "azure":
                records = await injector.get(AzurePricingAdapter).fetch_costs(ODataCriteria(args.filter))
            case "emma":
                records = await injector.get(EmmaAdapter).fetch_costs(
                    ComputeTypeCriteria(args.compute_type)
                )
            case name:
                records = await unsupported_adapter(name).fetch_costs(None)
    print(json.dumps(to_payload(records), indent=2))
    return 0


async def _dispatch(config: AttendantConfig, args: argparse.Namespace) -> int:
    match args.command:
        case "run":
            return await _run(config)
        case "once":
            return await _once(config)
        case "costs":
            return await _costs(config, args)
    raise ValueError(f"Unknown command {args.command!r}")


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = load_config(args.config)
    except AttendantError as e:
        print(f"attendant: {e}", file=sys.stderr)
        return 2

    handlers = setup_logging(LogConfig.from_settings(config.logging, args.log_level))
    try:
        return asyncio.run(_dispatch(config, args))
    except AttendantError as e:
        logger.bind(component="cli").error("{error}", error=e)
        return 1
    except KeyboardInterrupt:
        return 130
    finally:
        teardown_logging(handlers)


__all__ = ["build_parser", "main"]
