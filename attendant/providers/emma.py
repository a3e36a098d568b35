"""Emma multi-cloud configuration adapter.

Emma requires a client-credentials token exchange before every listing;
the token is requested through the TokenBroker so transient auth failures
are retried with backoff.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Final, NotRequired, TypedDict

from loguru import logger

from attendant.auth import Credentials, TokenBroker
from attendant.exceptions import DecodeError
from attendant.infra import HttpClient
from attendant.types import ComputeConfiguration, ComputeCost, ComputeType, CostRecord

from .base import ComputeTypeCriteria, optional_float, require_list, require_mapping

EMMA_API_BASE: Final[str] = "https://api.emma.ms/external"
MAX_PAGE_SIZE: Final[int] = 2**31 - 1

_CONFIG_PATHS: Final[dict[ComputeType, str]] = {
    ComputeType.DURABLE: "/v1/vms-configurations",
    ComputeType.EPHEMERAL: "/v1/spots-configurations",
}


class EmmaCost(TypedDict):
    unit: str
    currency: str
    pricePerUnit: float


class EmmaVmConfiguration(TypedDict):
    id: int
    providerId: NotRequired[int]
    providerName: NotRequired[str]
    locationId: NotRequired[int]
    locationName: NotRequired[str]
    dataCenterId: NotRequired[str]
    dataCenterName: NotRequired[str]
    osId: NotRequired[int]
    osType: NotRequired[str]
    osVersion: NotRequired[str]
    cloudNetworkTypes: NotRequired[list[str]]
    vCpuType: NotRequired[str]
    vCpu: NotRequired[int]
    ramGb: NotRequired[int]
    volumeGb: NotRequired[int]
    volumeType: NotRequired[str]
    cost: NotRequired[EmmaCost | None]


# =============================================================================
# Token issuing
# =============================================================================


class EmmaTokenIssuer:
    """Single POST /v1/issue-token call; retries belong to the TokenBroker."""

    def __init__(self, http: HttpClient) -> None:
        self._http = http

    async def issue_token(self, credentials: Credentials) -> str:
        result = await self._http.request(
            "POST",
            "/v1/issue-token",
            json={"clientId": credentials.client_id, "clientSecret": credentials.client_secret},
        )
        body = require_mapping(result, "token response")
        token = body.get("accessToken")
        if not isinstance(token, str) or not token:
            raise DecodeError("Token response has no accessToken")
        return token


# =============================================================================
# Mapping
# =============================================================================


def _text(entry: Mapping[str, Any], key: str) -> str:
    value = entry.get(key)
    return "" if value is None else str(value)


def _integer(entry: Mapping[str, Any], key: str) -> int:
    value = entry.get(key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise DecodeError(f"Configuration field {key} must be a number, got {value!r}")
    return int(value)


def _cost(value: Any) -> ComputeCost | None:
    if not isinstance(value, Mapping):
        return None
    price = optional_float(value.get("pricePerUnit"))
    if price is None:
        return None
    return ComputeCost(
        unit=_text(value, "unit"),
        currency=_text(value, "currency"),
        price_per_unit=price,
    )


def map_configuration(raw: Any, compute_type: ComputeType) -> ComputeConfiguration:
    entry = require_mapping(raw, "configuration")
    if entry.get("id") is None:
        raise DecodeError("Configuration without id")

    networks = entry.get("cloudNetworkTypes") or []
    return ComputeConfiguration(
        identifier=str(entry["id"]),
        provider=_text(entry, "providerName"),
        provider_id=_text(entry, "providerId"),
        location=_text(entry, "locationName"),
        location_id=_text(entry, "locationId"),
        data_center=_text(entry, "dataCenterName"),
        data_center_id=_text(entry, "dataCenterId"),
        os_id=_text(entry, "osId"),
        os_type=_text(entry, "osType"),
        os_version=_text(entry, "osVersion"),
        cloud_network_types=tuple(str(n) for n in require_list(networks, "cloudNetworkTypes")),
        cpu_type=_text(entry, "vCpuType"),
        vcpu_count=_integer(entry, "vCpu"),
        ram_gb=_integer(entry, "ramGb"),
        volume_gb=_integer(entry, "volumeGb"),
        volume_type=_text(entry, "volumeType"),
        compute_type=compute_type,
        cost=_cost(entry.get("cost")),
    )


# =============================================================================
# Adapter
# =============================================================================


class EmmaAdapter:
    name = "emma"

    def __init__(self, http: HttpClient, broker: TokenBroker, credentials: Credentials) -> None:
        self._http = http
        self._broker = broker
        self._credentials = credentials
        self._log = logger.bind(component="provider", provider=self.name)

    async def configurations(self, compute_type: ComputeType) -> list[ComputeConfiguration]:
        """List every durable or every ephemeral configuration."""
        token = await self._broker.get_token(self._credentials)
        result = await self._http.request(
            "GET",
            _CONFIG_PATHS[compute_type],
            params={"size": MAX_PAGE_SIZE},
            headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
        )
        content = require_list(require_mapping(result, "configurations response").get("content", []), "content")
        configs = [map_configuration(raw, compute_type) for raw in content]
        self._log.debug(
            "Fetched {n} {kind} configurations", n=len(configs), kind=compute_type.value,
        )
        return configs

    async def durable_configurations(self) -> list[ComputeConfiguration]:
        return await self.configurations(ComputeType.DURABLE)

    async def ephemeral_configurations(self) -> list[ComputeConfiguration]:
        return await self.configurations(ComputeType.EPHEMERAL)

    async def fetch_costs(self, criteria: ComputeTypeCriteria) -> list[CostRecord]:
        kinds = (
            [criteria.compute_type]
            if criteria.compute_type is not None
            else [ComputeType.DURABLE, ComputeType.EPHEMERAL]
        )
        records: list[CostRecord] = []
        for kind in kinds:
            records.extend(await self.configurations(kind))
        return records
