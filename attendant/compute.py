"""Node mapping and compute matching collaborators.

The enrichment pipeline only depends on the ``NodeMapper`` and
``ComputeService`` protocols. ``LabelMapper`` and ``CatalogComputeService``
are the default implementations: they read well-known Kubernetes labels and
the configurations already published to the cache.
"""

from __future__ import annotations

import re
import statistics
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Final, Protocol

from attendant.cache import CacheService
from attendant.types import (
    CACHE_KEY_DURABLE_CONFIGS,
    CACHE_KEY_EPHEMERAL_CONFIGS,
    ComputeConfiguration,
    ComputeType,
    Node,
    NodeIdentity,
    WeightedNode,
)

LABEL_COMPUTE_TYPE: Final[str] = "attendant.io/compute-type"
LABEL_INTERRUPTION_RATE: Final[str] = "attendant.io/interruption-rate"
LABEL_LATENCY_RATE: Final[str] = "attendant.io/latency-rate"

_INSTANCE_TYPE_LABELS = ("node.kubernetes.io/instance-type", "beta.kubernetes.io/instance-type")
_REGION_LABELS = ("topology.kubernetes.io/region", "failure-domain.beta.kubernetes.io/region")
_ZONE_LABELS = ("topology.kubernetes.io/zone", "failure-domain.beta.kubernetes.io/zone")

# label -> value (lowercased) marking spot/preemptible capacity
_EPHEMERAL_MARKERS: Final[dict[str, str]] = {
    "karpenter.sh/capacity-type": "spot",
    "eks.amazonaws.com/capacitytype": "spot",
    "cloud.google.com/gke-spot": "true",
    "cloud.google.com/gke-preemptible": "true",
    "kubernetes.azure.com/scalesetpriority": "spot",
}

_CONFIG_KEYS: Final[dict[ComputeType, str]] = {
    ComputeType.DURABLE: CACHE_KEY_DURABLE_CONFIGS,
    ComputeType.EPHEMERAL: CACHE_KEY_EPHEMERAL_CONFIGS,
}


class NodeMapper(Protocol):
    def map_node_to_weighted_node(self, node: Node) -> WeightedNode: ...


class ComputeService(Protocol):
    async def match_configuration(self, node: WeightedNode) -> ComputeConfiguration | None: ...

    async def median_price(self, node: WeightedNode) -> float: ...

    async def interruption_rate(self, node: WeightedNode) -> float | None: ...

    async def latency_rate(self, node: WeightedNode) -> float | None: ...


# =============================================================================
# Quantities
# =============================================================================

_QUANTITY = re.compile(r"^([0-9]+(?:\.[0-9]+)?)([a-zA-Z]*)$")

_BINARY_SUFFIXES: Final[dict[str, int]] = {
    "Ki": 2**10, "Mi": 2**20, "Gi": 2**30, "Ti": 2**40, "Pi": 2**50,
}
_DECIMAL_SUFFIXES: Final[dict[str, int]] = {
    "": 1, "k": 10**3, "M": 10**6, "G": 10**9, "T": 10**12, "P": 10**15,
}


def parse_cpu(value: str) -> int:
    """``"4"`` -> 4, ``"3500m"`` -> 3 (whole cores, rounded down)."""
    match = _QUANTITY.match(value.strip())
    if not match:
        raise ValueError(f"Invalid CPU quantity {value!r}")
    number, suffix = float(match.group(1)), match.group(2)
    if suffix == "m":
        return int(number // 1000)
    if suffix:
        raise ValueError(f"Invalid CPU quantity {value!r}")
    return int(number)


def parse_memory_gb(value: str) -> int:
    """Kubernetes memory quantity to GiB, rounded to the nearest integer."""
    match = _QUANTITY.match(value.strip())
    if not match:
        raise ValueError(f"Invalid memory quantity {value!r}")
    number, suffix = float(match.group(1)), match.group(2)
    multiplier = _BINARY_SUFFIXES.get(suffix) or _DECIMAL_SUFFIXES.get(suffix)
    if multiplier is None:
        raise ValueError(f"Invalid memory quantity {value!r}")
    return round(number * multiplier / 2**30)


# =============================================================================
# Mapper
# =============================================================================


def _first_label(labels: Mapping[str, str], names: tuple[str, ...]) -> str:
    return next((labels[n] for n in names if labels.get(n)), "")


def compute_type_of(labels: Mapping[str, str]) -> ComputeType:
    explicit = labels.get(LABEL_COMPUTE_TYPE)
    if explicit:
        return ComputeType(explicit.lower())
    lowered = {k.lower(): v.lower() for k, v in labels.items()}
    for label, marker in _EPHEMERAL_MARKERS.items():
        if lowered.get(label) == marker:
            return ComputeType.EPHEMERAL
    return ComputeType.DURABLE


class LabelMapper:
    def map_node_to_weighted_node(self, node: Node) -> WeightedNode:
        labels = node.labels
        capacity = node.capacity
        identity = NodeIdentity(
            name=node.name,
            instance_type=_first_label(labels, _INSTANCE_TYPE_LABELS),
            region=_first_label(labels, _REGION_LABELS),
            zone=_first_label(labels, _ZONE_LABELS),
            architecture=labels.get("kubernetes.io/arch", ""),
            os_type=labels.get("kubernetes.io/os", ""),
            compute_type=compute_type_of(labels),
            vcpu_count=parse_cpu(capacity["cpu"]) if "cpu" in capacity else 0,
            ram_gb=parse_memory_gb(capacity["memory"]) if "memory" in capacity else 0,
            labels=dict(labels),
        )
        return WeightedNode(identity=identity)


# =============================================================================
# Compute service
# =============================================================================


@dataclass(frozen=True, slots=True)
class RateDefaults:
    """Fallback rates per compute type when a node carries no rate label.

    A missing entry means the rate is unknown for that compute type.
    """

    interruption: Mapping[ComputeType, float] = field(
        default_factory=lambda: {ComputeType.DURABLE: 0.0, ComputeType.EPHEMERAL: 0.05}
    )
    latency: Mapping[ComputeType, float] = field(
        default_factory=lambda: {ComputeType.DURABLE: 0.0, ComputeType.EPHEMERAL: 0.0}
    )


def _label_rate(node: WeightedNode, label: str) -> float | None:
    raw = node.identity.labels.get(label)
    if raw is None:
        return None
    rate = float(raw)
    if not 0.0 <= rate <= 1.0:
        raise ValueError(f"{label}={raw!r} is outside [0, 1]")
    return rate


class CatalogComputeService:
    """Matches nodes against the configurations currently in the cache."""

    def __init__(self, cache: CacheService, rates: RateDefaults | None = None) -> None:
        self._cache = cache
        self._rates = rates or RateDefaults()

    async def _configurations(self, compute_type: ComputeType) -> list[ComputeConfiguration]:
        payload = await self._cache.get_cache_item(_CONFIG_KEYS[compute_type])
        if not payload:
            return []
        return [ComputeConfiguration.from_dict(item) for item in payload]

    async def _same_shape(self, node: WeightedNode) -> list[ComputeConfiguration]:
        identity = node.identity
        return [
            config
            for config in await self._configurations(identity.compute_type)
            if config.vcpu_count == identity.vcpu_count and config.ram_gb == identity.ram_gb
        ]

    async def match_configuration(self, node: WeightedNode) -> ComputeConfiguration | None:
        candidates = await self._same_shape(node)
        region = node.identity.region.lower()
        if region:
            local = [c for c in candidates if region in c.location.lower()]
            candidates = local or candidates
        priced = [c for c in candidates if c.price is not None]
        if priced:
            return min(priced, key=lambda c: c.price or 0.0)
        return candidates[0] if candidates else None

    async def median_price(self, node: WeightedNode) -> float:
        prices = [c.price for c in await self._same_shape(node) if c.price is not None]
        if not prices:
            return node.price
        return float(statistics.median(prices))

    async def interruption_rate(self, node: WeightedNode) -> float | None:
        rate = _label_rate(node, LABEL_INTERRUPTION_RATE)
        if rate is not None:
            return rate
        return self._rates.interruption.get(node.identity.compute_type)

    async def latency_rate(self, node: WeightedNode) -> float | None:
        rate = _label_rate(node, LABEL_LATENCY_RATE)
        if rate is not None:
            return rate
        return self._rates.latency.get(node.identity.compute_type)
