"""Azure Retail Prices adapter.

The API pages through results with an absolute ``NextPageLink``; each item
maps 1:1 onto a ComputeCost.
"""

from __future__ import annotations

from typing import Any, Final, NotRequired, TypedDict

from loguru import logger

from attendant.exceptions import DecodeError
from attendant.infra import HttpClient, Page, fetch_all_pages
from attendant.types import ComputeCost, CostRecord

from .base import ODataCriteria, optional_float, require_list, require_mapping

AZURE_PRICES_URL: Final[str] = "https://prices.azure.com/api/retail/prices"


class AzureComputePrice(TypedDict):
    currencyCode: str
    unitOfMeasure: str
    unitPrice: float
    retailPrice: NotRequired[float]
    armRegionName: NotRequired[str]
    location: NotRequired[str]
    meterName: NotRequired[str]
    productName: NotRequired[str]
    skuName: NotRequired[str]
    serviceName: NotRequired[str]
    serviceFamily: NotRequired[str]
    armSkuName: NotRequired[str]
    type: NotRequired[str]


class AzureComputePricesResponse(TypedDict):
    Items: list[AzureComputePrice]
    NextPageLink: str | None
    Count: NotRequired[int]


def to_compute_cost(item: Any) -> ComputeCost:
    entry = require_mapping(item, "price item")
    currency = entry.get("currencyCode")
    unit = entry.get("unitOfMeasure")
    price = optional_float(entry.get("unitPrice"))
    if not isinstance(currency, str) or not isinstance(unit, str) or price is None:
        raise DecodeError(f"Price item missing currencyCode/unitOfMeasure/unitPrice: {entry!r}")
    return ComputeCost(unit=unit, currency=currency, price_per_unit=price)


def decode_page(payload: Any) -> Page[ComputeCost]:
    body = require_mapping(payload, "prices response")
    items = require_list(body.get("Items", []), "Items")
    return Page(
        items=[to_compute_cost(item) for item in items],
        next_page_link=body.get("NextPageLink"),
    )


class AzurePricingAdapter:
    name = "azure"

    def __init__(self, http: HttpClient, url: str = AZURE_PRICES_URL) -> None:
        self._http = http
        self._url = url
        self._log = logger.bind(component="provider", provider=self.name)

    async def fetch_costs(self, criteria: ODataCriteria) -> list[CostRecord]:
        params = {"$filter": criteria.filter} if criteria.filter else None
        costs: list[CostRecord] = list(
            await fetch_all_pages(self._http, self._url, decode_page, params=params)
        )
        self._log.debug("Fetched {n} prices", n=len(costs))
        return costs
