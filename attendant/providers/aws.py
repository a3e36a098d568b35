"""AWS Pricing adapter.

GetProducts returns every product as a JSON document nested three levels
deep (product -> attributes, terms -> OnDemand -> term -> priceDimensions ->
pricePerUnit). Each document is decoded into an ``AwsPriceRecord`` first;
documents missing any of those keys are skipped, every other record is kept.
"""

from __future__ import annotations

import json as json_mod
from collections.abc import Callable, Mapping
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from typing import Any, Final

import aioboto3
from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

from attendant.exceptions import DecodeError, TransportError, UpstreamStatusError
from attendant.types import ComputeCost, CostRecord

from .base import (
    InstanceCriteria,
    optional_float,
    optional_mapping,
    optional_str,
    require_list,
)

# The Pricing API is only served from a handful of regions.
PRICING_REGION: Final[str] = "us-east-1"
SERVICE_CODE: Final[str] = "AmazonEC2"
DEFAULT_UNIT: Final[str] = "Hrs"
CURRENCY: Final[str] = "USD"

type PricingClientFactory = Callable[[], AbstractAsyncContextManager[Any]]


@dataclass(frozen=True, slots=True)
class AwsPriceRecord:
    instance_type: str
    location: str
    costs: tuple[ComputeCost, ...]


def build_filters(criteria: InstanceCriteria) -> list[dict[str, str]]:
    def term(field: str, value: str) -> dict[str, str]:
        return {"Type": "TERM_MATCH", "Field": field, "Value": value}

    return [
        term("instanceType", criteria.instance_type),
        term("location", criteria.location),
        term("operatingSystem", "Linux"),
        term("preInstalledSw", "NA"),
        term("tenancy", "Shared"),
    ]


def _dimension_cost(dimension: Any) -> ComputeCost | None:
    if not isinstance(dimension, Mapping):
        return None
    price_per_unit = optional_mapping(dimension, "pricePerUnit")
    if price_per_unit is None:
        return None
    price = optional_float(price_per_unit.get(CURRENCY))
    if price is None:
        return None
    unit = optional_str(dimension, "unit") or DEFAULT_UNIT
    return ComputeCost(unit=unit, currency=CURRENCY, price_per_unit=price)


def parse_price_item(raw: str | Mapping[str, Any]) -> AwsPriceRecord | None:
    """Decode one PriceList entry.

    Returns None when the document lacks the expected nesting.

    Raises:
        DecodeError: The entry is not a JSON object at all.
    """
    if isinstance(raw, str):
        try:
            document = json_mod.loads(raw)
        except ValueError as e:
            raise DecodeError(f"Invalid price list entry: {e}") from e
    else:
        document = raw
    if not isinstance(document, Mapping):
        raise DecodeError(f"Price list entry is {type(document).__name__}, expected object")

    attributes = optional_mapping(optional_mapping(document, "product"), "attributes")
    on_demand = optional_mapping(optional_mapping(document, "terms"), "OnDemand")
    if attributes is None or on_demand is None:
        return None

    costs: list[ComputeCost] = []
    for term in on_demand.values():
        dimensions = optional_mapping(term, "priceDimensions")
        if dimensions is None:
            continue
        for dimension in dimensions.values():
            if (cost := _dimension_cost(dimension)) is not None:
                costs.append(cost)

    if not costs:
        return None
    return AwsPriceRecord(
        instance_type=optional_str(attributes, "instanceType") or "",
        location=optional_str(attributes, "location") or "",
        costs=tuple(costs),
    )


def default_client_factory(session: aioboto3.Session | None = None) -> PricingClientFactory:
    aws_session = session or aioboto3.Session()

    def factory() -> AbstractAsyncContextManager[Any]:
        return aws_session.client("pricing", region_name=PRICING_REGION)

    return factory


class AwsPricingAdapter:
    """On-demand Linux prices for one instance type in one location."""

    name = "aws"

    def __init__(self, client_factory: PricingClientFactory | None = None) -> None:
        self._client_factory = client_factory or default_client_factory()
        self._log = logger.bind(component="provider", provider=self.name)

    async def fetch_costs(self, criteria: InstanceCriteria) -> list[CostRecord]:
        costs: list[CostRecord] = []
        skipped = 0

        try:
            async with self._client_factory() as client:
                paginator = client.get_paginator("get_products")
                async for page in paginator.paginate(
                    ServiceCode=SERVICE_CODE, Filters=build_filters(criteria)
                ):
                    for raw in require_list(page.get("PriceList", []), "PriceList"):
                        record = parse_price_item(raw)
                        if record is None:
                            skipped += 1
                            continue
                        costs.extend(record.costs)
        except ClientError as e:
            metadata = e.response.get("ResponseMetadata", {})
            error = e.response.get("Error", {})
            raise UpstreamStatusError(
                status=int(metadata.get("HTTPStatusCode", 0)),
                body=str(error.get("Message") or e),
            ) from e
        except BotoCoreError as e:
            raise TransportError(f"AWS Pricing request failed: {e}") from e

        if skipped:
            self._log.debug("Skipped {n} malformed price entries", n=skipped)
        self._log.debug(
            "Fetched {n} prices for {instance_type} in {location}",
            n=len(costs), instance_type=criteria.instance_type, location=criteria.location,
        )
        return costs
