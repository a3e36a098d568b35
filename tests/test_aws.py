from __future__ import annotations

import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from attendant.exceptions import DecodeError, TransportError, UpstreamStatusError
from attendant.providers import AwsPricingAdapter, InstanceCriteria, parse_price_item
from attendant.providers.aws import build_filters
from attendant.types import ComputeCost

pytestmark = [pytest.mark.unit, pytest.mark.xdist_group("unit")]

CRITERIA = InstanceCriteria(instance_type="m5.large", location="US East (N. Virginia)")


def price_item(usd: str = "0.0960000000", unit: str = "Hrs") -> str:
    return json.dumps({
        "product": {
            "attributes": {"instanceType": "m5.large", "location": "US East (N. Virginia)"},
        },
        "terms": {
            "OnDemand": {
                "JRTCKXETXF.6YS6EN2CT7": {
                    "priceDimensions": {
                        "JRTCKXETXF.6YS6EN2CT7.6YS6EN2CT7": {
                            "unit": unit,
                            "pricePerUnit": {"USD": usd},
                        },
                    },
                },
            },
        },
    })


class FakePaginator:
    def __init__(self, pages: list[dict[str, Any]], error: Exception | None = None) -> None:
        self._pages = pages
        self._error = error
        self.kwargs: dict[str, Any] = {}

    async def _iterate(self) -> AsyncIterator[dict[str, Any]]:
        for page in self._pages:
            yield page
        if self._error is not None:
            raise self._error

    def paginate(self, **kwargs: Any) -> AsyncIterator[dict[str, Any]]:
        self.kwargs = kwargs
        return self._iterate()


class FakePricingClient:
    def __init__(self, paginator: FakePaginator) -> None:
        self.paginator = paginator

    def get_paginator(self, name: str) -> FakePaginator:
        assert name == "get_products"
        return self.paginator


def factory_for(paginator: FakePaginator):
    @asynccontextmanager
    async def factory() -> AsyncIterator[FakePricingClient]:
        yield FakePricingClient(paginator)
    return factory


# ─── Parsing ─────────────────────────────────────────────────────────


def test_parse_price_item_reads_nested_terms():
    record = parse_price_item(price_item())
    assert record is not None
    assert record.instance_type == "m5.large"
    assert record.costs == (ComputeCost(unit="Hrs", currency="USD", price_per_unit=0.096),)


def test_parse_price_item_without_terms_is_skipped():
    assert parse_price_item({"product": {"attributes": {}}}) is None


def test_parse_price_item_without_usd_price_is_skipped():
    assert parse_price_item(price_item(usd="not-a-number")) is None


def test_parse_price_item_rejects_non_object():
    with pytest.raises(DecodeError):
        parse_price_item("[1, 2, 3]")
    with pytest.raises(DecodeError):
        parse_price_item("{not json")


def test_build_filters_pins_linux_shared_tenancy():
    filters = {f["Field"]: f["Value"] for f in build_filters(CRITERIA)}
    assert filters == {
        "instanceType": "m5.large",
        "location": "US East (N. Virginia)",
        "operatingSystem": "Linux",
        "preInstalledSw": "NA",
        "tenancy": "Shared",
    }


# ─── Adapter ─────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_fetch_costs_walks_every_page():
    paginator = FakePaginator([
        {"PriceList": [price_item("0.1")]},
        {"PriceList": [price_item("0.2"), json.dumps({"product": {}})]},
    ])
    adapter = AwsPricingAdapter(factory_for(paginator))

    costs = await adapter.fetch_costs(CRITERIA)

    assert [c.price_per_unit for c in costs] == [0.1, 0.2]
    assert paginator.kwargs["ServiceCode"] == "AmazonEC2"
    assert adapter.name == "aws"


@pytest.mark.asyncio
async def test_fetch_costs_empty_price_list():
    adapter = AwsPricingAdapter(factory_for(FakePaginator([{"PriceList": []}])))
    assert await adapter.fetch_costs(CRITERIA) == []


@pytest.mark.asyncio
async def test_client_error_maps_to_upstream_status():
    error = ClientError(
        {
            "Error": {"Code": "AccessDeniedException", "Message": "not allowed"},
            "ResponseMetadata": {"HTTPStatusCode": 403},
        },
        "GetProducts",
    )
    adapter = AwsPricingAdapter(factory_for(FakePaginator([], error)))

    with pytest.raises(UpstreamStatusError) as exc_info:
        await adapter.fetch_costs(CRITERIA)

    assert exc_info.value.status == 403
    assert exc_info.value.body == "not allowed"


@pytest.mark.asyncio
async def test_connection_error_maps_to_transport_error():
    error = EndpointConnectionError(endpoint_url="https://api.pricing.us-east-1.amazonaws.com")
    adapter = AwsPricingAdapter(factory_for(FakePaginator([{"PriceList": [price_item()]}], error)))

    with pytest.raises(TransportError):
        await adapter.fetch_costs(CRITERIA)
