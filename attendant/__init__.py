"""Ultron attendant: keeps compute prices and weighted cluster nodes cached.

Example:
    import asyncio
    from attendant import RefreshOrchestrator, app_context, load_config

    async def main() -> None:
        async with app_context(load_config()) as injector:
            await injector.get(RefreshOrchestrator).run(asyncio.Event())
"""

from __future__ import annotations

from attendant.app import AttendantModule, app_context, build_tasks
from attendant.auth import BackoffPolicy, Credentials, TokenBroker
from attendant.cache import CacheService, DiskCache, MemoryCache, RedisCache
from attendant.config import AttendantConfig, load_config
from attendant.enrichment import EnrichmentResult, enrich_node, enrich_nodes
from attendant.exceptions import (
    AttendantError,
    AuthError,
    ConfigurationError,
    DecodeError,
    EnrichmentError,
    ProviderNotSupportedError,
    TransportError,
    UpstreamStatusError,
)
from attendant.orchestrator import CycleReport, RefreshOrchestrator, RefreshTask, TaskOutcome
from attendant.types import (
    ComputeConfiguration,
    ComputeCost,
    ComputeType,
    Node,
    NodeIdentity,
    WeightedNode,
)

__version__ = "0.1.0"

__all__ = [
    "AttendantConfig",
    "AttendantError",
    "AttendantModule",
    "AuthError",
    "BackoffPolicy",
    "CacheService",
    "ComputeConfiguration",
    "ComputeCost",
    "ComputeType",
    "ConfigurationError",
    "Credentials",
    "CycleReport",
    "DecodeError",
    "DiskCache",
    "EnrichmentError",
    "EnrichmentResult",
    "MemoryCache",
    "Node",
    "NodeIdentity",
    "ProviderNotSupportedError",
    "RedisCache",
    "RefreshOrchestrator",
    "RefreshTask",
    "TaskOutcome",
    "TokenBroker",
    "TransportError",
    "UpstreamStatusError",
    "WeightedNode",
    "app_context",
    "build_tasks",
    "enrich_node",
    "enrich_nodes",
    "load_config",
]
