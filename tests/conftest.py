from __future__ import annotations

from collections.abc import Iterator

import pytest
from loguru import logger

from attendant.cache import MemoryCache
from attendant.types import (
    ComputeConfiguration,
    ComputeCost,
    ComputeType,
    Node,
)


@pytest.fixture
def log_records() -> Iterator[list[str]]:
    """Formatted loguru records at WARNING and above emitted during the test."""
    records: list[str] = []
    logger.enable("attendant")
    hid = logger.add(lambda m: records.append(str(m)), level="WARNING", format="{message}")
    yield records
    logger.remove(hid)


@pytest.fixture
def cache() -> MemoryCache:
    return MemoryCache()


def make_config(
    identifier: str,
    *,
    vcpu: int = 2,
    ram: int = 4,
    price: float | None = 0.1,
    location: str = "eu-west-1",
    compute_type: ComputeType = ComputeType.DURABLE,
) -> ComputeConfiguration:
    return ComputeConfiguration(
        identifier=identifier,
        provider="Amazon EC2",
        location=location,
        data_center=f"{location}a",
        os_type="Linux",
        os_version="22.04",
        cpu_type="x86",
        vcpu_count=vcpu,
        ram_gb=ram,
        volume_gb=32,
        volume_type="ssd",
        compute_type=compute_type,
        cost=None if price is None else ComputeCost(unit="HOURS", currency="USD", price_per_unit=price),
    )


def make_node(name: str, *, labels: dict[str, str] | None = None, cpu: str = "2", memory: str = "4Gi") -> Node:
    return Node(
        name=name,
        labels={
            "node.kubernetes.io/instance-type": "m5.large",
            "topology.kubernetes.io/region": "eu-west-1",
            "topology.kubernetes.io/zone": "eu-west-1a",
            "kubernetes.io/arch": "amd64",
            "kubernetes.io/os": "linux",
            **(labels or {}),
        },
        annotations={},
        capacity={"cpu": cpu, "memory": memory},
        allocatable={"cpu": cpu, "memory": memory},
    )
