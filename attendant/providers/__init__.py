"""Provider adapters and the registry that names them."""

from __future__ import annotations

from .aws import AwsPricingAdapter, AwsPriceRecord, parse_price_item
from .azure import AzurePricingAdapter
from .base import (
    ComputeTypeCriteria,
    FilterCriteria,
    InstanceCriteria,
    ODataCriteria,
    ProjectCriteria,
    ProviderAdapter,
)
from .emma import EmmaAdapter, EmmaTokenIssuer
from .unsupported import GcpAdapter, UnsupportedAdapter, WispAdapter

SUPPORTED_PROVIDERS = ("aws", "azure", "emma")
UNSUPPORTED_PROVIDERS: dict[str, type[UnsupportedAdapter]] = {
    "gcp": GcpAdapter,
    "wisp": WispAdapter,
}


def unsupported_adapter(name: str) -> UnsupportedAdapter:
    """Return the explicit placeholder for a known provider without an adapter."""
    cls = UNSUPPORTED_PROVIDERS.get(name)
    if cls is None:
        raise ValueError(
            f"Unknown provider '{name}'. "
            f"Valid: {', '.join((*SUPPORTED_PROVIDERS, *UNSUPPORTED_PROVIDERS))}"
        )
    return cls()


__all__ = [
    "AwsPriceRecord",
    "AwsPricingAdapter",
    "AzurePricingAdapter",
    "ComputeTypeCriteria",
    "EmmaAdapter",
    "EmmaTokenIssuer",
    "FilterCriteria",
    "GcpAdapter",
    "InstanceCriteria",
    "ODataCriteria",
    "ProjectCriteria",
    "ProviderAdapter",
    "SUPPORTED_PROVIDERS",
    "UNSUPPORTED_PROVIDERS",
    "UnsupportedAdapter",
    "WispAdapter",
    "parse_price_item",
    "unsupported_adapter",
]
