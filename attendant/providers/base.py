"""Provider adapter capability shared by every pricing source."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from attendant.exceptions import DecodeError
from attendant.types import ComputeType, CostRecord


@dataclass(frozen=True, slots=True)
class InstanceCriteria:
    """Instance type plus location name, e.g. ("t2.micro", "US East (N. Virginia)")."""

    instance_type: str
    location: str


@dataclass(frozen=True, slots=True)
class ODataCriteria:
    """OData ``$filter`` expression passed through verbatim."""

    filter: str = ""


@dataclass(frozen=True, slots=True)
class ComputeTypeCriteria:
    """Select durable or ephemeral configurations; None selects both."""

    compute_type: ComputeType | None = None


@dataclass(frozen=True, slots=True)
class ProjectCriteria:
    """Project id plus free-form query."""

    project_id: str
    query: str = ""


type FilterCriteria = InstanceCriteria | ODataCriteria | ComputeTypeCriteria | ProjectCriteria


@runtime_checkable
class ProviderAdapter[C](Protocol):
    """Fetches records from one pricing source and normalizes them.

    Implementations hold no mutable state after construction, so one
    instance may serve concurrent refresh tasks.
    """

    @property
    def name(self) -> str: ...

    async def fetch_costs(self, criteria: C) -> list[CostRecord]: ...


# =============================================================================
# Strict decode helpers
# =============================================================================


def require_mapping(value: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise DecodeError(f"Expected object for {what}, got {type(value).__name__}")
    return value


def require_list(value: Any, what: str) -> list[Any]:
    if not isinstance(value, list):
        raise DecodeError(f"Expected array for {what}, got {type(value).__name__}")
    return value


def optional_mapping(value: Any, key: str) -> Mapping[str, Any] | None:
    if not isinstance(value, Mapping):
        return None
    child = value.get(key)
    return child if isinstance(child, Mapping) else None


def optional_str(value: Mapping[str, Any], key: str) -> str | None:
    child = value.get(key)
    return child if isinstance(child, str) else None


def optional_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None
