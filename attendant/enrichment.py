"""Turn inventory nodes into fully populated weighted nodes.

Steps run in a fixed order: map, match configuration, price, median price,
interruption rate, latency rate. A missing configuration or cost leaves the
price at zero; a missing interruption or latency rate, or any step raising,
discards that node only.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, replace

from loguru import logger

from attendant.compute import ComputeService, NodeMapper
from attendant.exceptions import EnrichmentError
from attendant.types import Node, WeightedNode


@dataclass(frozen=True, slots=True)
class EnrichmentResult:
    nodes: list[WeightedNode]
    failures: list[EnrichmentError]


async def _step[T](node: str, step: str, call: Callable[[], Awaitable[T]]) -> T:
    try:
        return await call()
    except EnrichmentError:
        raise
    except Exception as e:
        raise EnrichmentError(node=node, step=step, reason=str(e) or type(e).__name__) from e


async def _required_rate(
    node: str, step: str, call: Callable[[], Awaitable[float | None]]
) -> float:
    rate = await _step(node, step, call)
    if rate is None:
        raise EnrichmentError(node=node, step=step, reason="no rate available")
    return rate


async def enrich_node(node: Node, mapper: NodeMapper, compute: ComputeService) -> WeightedNode:
    """Build one WeightedNode or raise EnrichmentError naming the failed step."""
    try:
        weighted = mapper.map_node_to_weighted_node(node)
    except Exception as e:
        raise EnrichmentError(node=node.name, step="map", reason=str(e)) from e

    configuration = await _step(node.name, "match_configuration", lambda: compute.match_configuration(weighted))
    if configuration is not None and configuration.cost is not None:
        weighted = replace(weighted, price=configuration.cost.price_per_unit)

    median = await _step(node.name, "median_price", lambda: compute.median_price(weighted))
    weighted = replace(weighted, median_price=median)

    interruption = await _required_rate(
        node.name, "interruption_rate", lambda: compute.interruption_rate(weighted)
    )
    weighted = replace(weighted, interruption_rate=interruption)

    latency = await _required_rate(node.name, "latency_rate", lambda: compute.latency_rate(weighted))
    return replace(weighted, latency_rate=latency)


async def enrich_nodes(
    nodes: Sequence[Node], mapper: NodeMapper, compute: ComputeService
) -> EnrichmentResult:
    """Enrich every node; a failing node is reported and skipped."""
    log = logger.bind(component="enrichment")
    enriched: list[WeightedNode] = []
    failures: list[EnrichmentError] = []

    for node in nodes:
        try:
            enriched.append(await enrich_node(node, mapper, compute))
        except EnrichmentError as e:
            log.bind(node=node.name).warning("Discarding node: {error}", error=e)
            failures.append(e)

    return EnrichmentResult(nodes=enriched, failures=failures)
