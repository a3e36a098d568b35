"""Application wiring.

``AttendantModule`` binds the configuration and provides every collaborator
the refresh loop needs. ``app_context`` builds the injector and closes the
HTTP sessions on the way out.

Example:
    async with app_context(load_config()) as injector:
        orchestrator = injector.get(RefreshOrchestrator)
        await orchestrator.run(stop)
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from injector import Binder, Injector, Module, provider, singleton

from attendant.auth import BackoffPolicy, Credentials, TokenBroker
from attendant.cache import CacheService, DiskCache, MemoryCache, RedisCache
from attendant.compute import (
    CatalogComputeService,
    ComputeService,
    LabelMapper,
    NodeMapper,
    RateDefaults,
)
from attendant.config import AttendantConfig
from attendant.enrichment import enrich_nodes
from attendant.exceptions import AttendantError
from attendant.infra import HttpClient
from attendant.inventory import KubectlInventory, NodeInventory, resolve_target
from attendant.orchestrator import RefreshOrchestrator, RefreshTask
from attendant.providers import AwsPricingAdapter, AzurePricingAdapter, EmmaAdapter, EmmaTokenIssuer
from attendant.types import (
    CACHE_KEY_DURABLE_CONFIGS,
    CACHE_KEY_EPHEMERAL_CONFIGS,
    CACHE_KEY_WEIGHTED_NODES,
    ComputeType,
    WeightedNode,
)

# =============================================================================
# Wrapper Classes for DI (each HTTP upstream needs a unique type)
# =============================================================================


class EmmaHttp(HttpClient):
    """Session for the Emma public API."""


class AzureHttp(HttpClient):
    """Session for the Azure retail prices API."""


# =============================================================================
# Refresh tasks
# =============================================================================


@dataclass(frozen=True, slots=True)
class WeightedNodesFetch:
    """Inventory listing followed by enrichment of every node.

    Individual node failures are dropped. When the cluster has nodes but
    none of them could be enriched the whole task fails, so the previously
    published list is kept.
    """

    inventory: NodeInventory
    mapper: NodeMapper
    compute: ComputeService

    async def __call__(self) -> list[WeightedNode]:
        nodes = await self.inventory.list_nodes()
        result = await enrich_nodes(nodes, self.mapper, self.compute)
        if nodes and not result.nodes:
            raise AttendantError(
                f"All {len(nodes)} nodes failed enrichment; first error: {result.failures[0]}"
            )
        return result.nodes


def build_tasks(
    emma: EmmaAdapter,
    inventory: NodeInventory,
    mapper: NodeMapper,
    compute: ComputeService,
) -> list[RefreshTask]:
    return [
        RefreshTask(CACHE_KEY_DURABLE_CONFIGS, emma.durable_configurations),
        RefreshTask(CACHE_KEY_EPHEMERAL_CONFIGS, emma.ephemeral_configurations),
        RefreshTask(CACHE_KEY_WEIGHTED_NODES, WeightedNodesFetch(inventory, mapper, compute)),
    ]


# =============================================================================
# Module
# =============================================================================


class AttendantModule(Module):
    """DI module that provides the refresh loop and its collaborators.

    Usage:
        >>> injector = Injector([AttendantModule(config)])
        >>> orchestrator = injector.get(RefreshOrchestrator)
    """

    def __init__(self, config: AttendantConfig) -> None:
        self._config = config

    def configure(self, binder: Binder) -> None:
        binder.bind(AttendantConfig, to=self._config)

    @singleton
    @provider
    def provide_emma_http(self, config: AttendantConfig) -> EmmaHttp:
        return EmmaHttp(config.emma.base_url, timeout=config.http_timeout)

    @singleton
    @provider
    def provide_azure_http(self, config: AttendantConfig) -> AzureHttp:
        return AzureHttp(timeout=config.http_timeout)

    @singleton
    @provider
    def provide_token_broker(self, http: EmmaHttp, config: AttendantConfig) -> TokenBroker:
        policy = BackoffPolicy(
            base_delay=config.auth.base_delay,
            multiplier=config.auth.multiplier,
            max_delay=config.auth.max_delay,
        )
        return TokenBroker(EmmaTokenIssuer(http), policy)

    @singleton
    @provider
    def provide_emma(
        self, http: EmmaHttp, broker: TokenBroker, config: AttendantConfig
    ) -> EmmaAdapter:
        config.require_emma_credentials()
        credentials = Credentials(config.emma.client_id, config.emma.client_secret)
        return EmmaAdapter(http, broker, credentials)

    @singleton
    @provider
    def provide_azure(self, http: AzureHttp) -> AzurePricingAdapter:
        return AzurePricingAdapter(http)

    @singleton
    @provider
    def provide_aws(self) -> AwsPricingAdapter:
        return AwsPricingAdapter()

    @singleton
    @provider
    def provide_cache(self, config: AttendantConfig) -> CacheService:
        settings = config.cache
        match settings.backend:
            case "disk":
                return DiskCache(settings.directory)
            case "redis":
                return RedisCache.connect(
                    settings.redis_address,
                    database=settings.redis_database,
                    password=settings.redis_password,
                )
        return MemoryCache()

    @singleton
    @provider
    def provide_inventory(self, config: AttendantConfig) -> NodeInventory:
        settings = config.kubernetes
        target = resolve_target(
            kubectl=settings.kubectl,
            kubeconfig=settings.kubeconfig,
            server=settings.server,
        )
        return KubectlInventory(target, timeout=settings.timeout)

    @singleton
    @provider
    def provide_mapper(self) -> NodeMapper:
        return LabelMapper()

    @singleton
    @provider
    def provide_compute(self, cache: CacheService, config: AttendantConfig) -> ComputeService:
        rates = config.rates
        return CatalogComputeService(
            cache,
            RateDefaults(
                interruption={
                    ComputeType.DURABLE: rates.durable_interruption,
                    ComputeType.EPHEMERAL: rates.ephemeral_interruption,
                },
                latency={
                    ComputeType.DURABLE: rates.durable_latency,
                    ComputeType.EPHEMERAL: rates.ephemeral_latency,
                },
            ),
        )

    @singleton
    @provider
    def provide_orchestrator(
        self,
        cache: CacheService,
        emma: EmmaAdapter,
        inventory: NodeInventory,
        mapper: NodeMapper,
        compute: ComputeService,
        config: AttendantConfig,
    ) -> RefreshOrchestrator:
        return RefreshOrchestrator(
            cache,
            build_tasks(emma, inventory, mapper, compute),
            interval=config.refresh_interval,
        )


@asynccontextmanager
async def app_context(config: AttendantConfig) -> AsyncIterator[Injector]:
    injector = Injector([AttendantModule(config)])
    try:
        yield injector
    finally:
        for http_type in (EmmaHttp, AzureHttp):
            await injector.get(http_type).close()
        cache = injector.get(CacheService)
        if isinstance(cache, RedisCache):
            await cache.close()
