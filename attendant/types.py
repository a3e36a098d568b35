"""Canonical data model shared by adapters, enrichment and the orchestrator."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Final

# =============================================================================
# Cache keys
# =============================================================================

CACHE_KEY_DURABLE_CONFIGS: Final[str] = "durable-configs"
CACHE_KEY_EPHEMERAL_CONFIGS: Final[str] = "ephemeral-configs"
CACHE_KEY_WEIGHTED_NODES: Final[str] = "weighted-nodes"


class ComputeType(StrEnum):
    """Durable (reserved/on-demand) or ephemeral (spot/preemptible) compute."""

    DURABLE = "durable"
    EPHEMERAL = "ephemeral"


# =============================================================================
# Pricing
# =============================================================================


@dataclass(frozen=True, slots=True)
class ComputeCost:
    unit: str
    currency: str
    price_per_unit: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "unit": self.unit,
            "currency": self.currency,
            "price_per_unit": self.price_per_unit,
        }


@dataclass(frozen=True, slots=True)
class ComputeConfiguration:
    """Provider-agnostic description of a purchasable machine shape."""

    identifier: str
    provider: str
    location: str
    data_center: str
    os_type: str
    os_version: str
    cpu_type: str
    vcpu_count: int
    ram_gb: int
    volume_gb: int
    volume_type: str
    compute_type: ComputeType
    cost: ComputeCost | None = None
    provider_id: str = ""
    location_id: str = ""
    data_center_id: str = ""
    os_id: str = ""
    cloud_network_types: tuple[str, ...] = ()

    @property
    def price(self) -> float | None:
        return self.cost.price_per_unit if self.cost is not None else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "identifier": self.identifier,
            "provider": self.provider,
            "provider_id": self.provider_id,
            "location": self.location,
            "location_id": self.location_id,
            "data_center": self.data_center,
            "data_center_id": self.data_center_id,
            "os_id": self.os_id,
            "os_type": self.os_type,
            "os_version": self.os_version,
            "cloud_network_types": list(self.cloud_network_types),
            "cpu_type": self.cpu_type,
            "vcpu_count": self.vcpu_count,
            "ram_gb": self.ram_gb,
            "volume_gb": self.volume_gb,
            "volume_type": self.volume_type,
            "compute_type": self.compute_type.value,
            "cost": self.cost.to_dict() if self.cost is not None else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ComputeConfiguration:
        cost = data.get("cost")
        return cls(
            identifier=str(data["identifier"]),
            provider=data.get("provider", ""),
            provider_id=data.get("provider_id", ""),
            location=data.get("location", ""),
            location_id=data.get("location_id", ""),
            data_center=data.get("data_center", ""),
            data_center_id=data.get("data_center_id", ""),
            os_id=data.get("os_id", ""),
            os_type=data.get("os_type", ""),
            os_version=data.get("os_version", ""),
            cloud_network_types=tuple(data.get("cloud_network_types", ())),
            cpu_type=data.get("cpu_type", ""),
            vcpu_count=int(data.get("vcpu_count", 0)),
            ram_gb=int(data.get("ram_gb", 0)),
            volume_gb=int(data.get("volume_gb", 0)),
            volume_type=data.get("volume_type", ""),
            compute_type=ComputeType(data["compute_type"]),
            cost=ComputeCost(**cost) if cost else None,
        )


# =============================================================================
# Cluster nodes
# =============================================================================


@dataclass(frozen=True, slots=True)
class Node:
    """Inventory record for one cluster node, consumed read-only."""

    name: str
    labels: Mapping[str, str] = field(default_factory=dict)
    annotations: Mapping[str, str] = field(default_factory=dict)
    capacity: Mapping[str, str] = field(default_factory=dict)
    allocatable: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class NodeIdentity:
    name: str
    instance_type: str = ""
    region: str = ""
    zone: str = ""
    architecture: str = ""
    os_type: str = ""
    compute_type: ComputeType = ComputeType.DURABLE
    vcpu_count: int = 0
    ram_gb: int = 0
    labels: Mapping[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "instance_type": self.instance_type,
            "region": self.region,
            "zone": self.zone,
            "architecture": self.architecture,
            "os_type": self.os_type,
            "compute_type": self.compute_type.value,
            "vcpu_count": self.vcpu_count,
            "ram_gb": self.ram_gb,
        }


@dataclass(frozen=True, slots=True)
class WeightedNode:
    """A cluster node annotated with scheduling metrics.

    Built step by step by the enrichment pipeline; only fully populated
    values are ever published.
    """

    identity: NodeIdentity
    price: float = 0.0
    median_price: float = 0.0
    interruption_rate: float = 0.0
    latency_rate: float = 0.0

    @property
    def name(self) -> str:
        return self.identity.name

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.identity.to_dict(),
            "price": self.price,
            "median_price": self.median_price,
            "interruption_rate": self.interruption_rate,
            "latency_rate": self.latency_rate,
        }


type CostRecord = ComputeCost | ComputeConfiguration


def to_payload(records: list[Any]) -> list[dict[str, Any]]:
    """Serialize canonical records into the JSON-compatible cache value."""
    return [record.to_dict() for record in records]


__all__ = [
    "CACHE_KEY_DURABLE_CONFIGS",
    "CACHE_KEY_EPHEMERAL_CONFIGS",
    "CACHE_KEY_WEIGHTED_NODES",
    "ComputeCost",
    "ComputeConfiguration",
    "ComputeType",
    "CostRecord",
    "Node",
    "NodeIdentity",
    "WeightedNode",
    "to_payload",
]
