"""Pricing sources that are known but have no adapter yet."""

from __future__ import annotations

from typing import Any

from attendant.exceptions import ProviderNotSupportedError
from attendant.types import CostRecord


class UnsupportedAdapter:
    """Adapter variant that always refuses, so callers fail loudly."""

    name = "unsupported"

    async def fetch_costs(self, criteria: Any) -> list[CostRecord]:
        raise ProviderNotSupportedError(self.name)


class GcpAdapter(UnsupportedAdapter):
    name = "gcp"


class WispAdapter(UnsupportedAdapter):
    name = "wisp"
