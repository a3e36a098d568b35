from __future__ import annotations

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from attendant.auth import BackoffPolicy, Credentials, TokenBroker
from attendant.exceptions import AuthError, DecodeError, UpstreamStatusError
from attendant.infra import HttpClient
from attendant.providers import ComputeTypeCriteria, EmmaAdapter, EmmaTokenIssuer
from attendant.providers.emma import MAX_PAGE_SIZE, map_configuration
from attendant.types import ComputeCost, ComputeType

pytestmark = [pytest.mark.unit, pytest.mark.xdist_group("unit")]

NO_WAIT = BackoffPolicy(base_delay=0, max_delay=0)


def vm(identifier: int, price: float | None = 0.05) -> dict:
    return {
        "id": identifier,
        "providerId": 3,
        "providerName": "Amazon EC2",
        "locationId": 12,
        "locationName": "Europe (Ireland)",
        "dataCenterId": "aws-eu-west-1",
        "dataCenterName": "eu-west-1",
        "osId": 5,
        "osType": "Linux",
        "osVersion": "Ubuntu 22.04",
        "cloudNetworkTypes": ["isolated", "multi-cloud"],
        "vCpuType": "shared",
        "vCpu": 2,
        "ramGb": 4,
        "volumeGb": 16,
        "volumeType": "ssd",
        "cost": None if price is None else {"unit": "HOURS", "currency": "EUR", "pricePerUnit": price},
    }


class EmmaState:
    def __init__(self) -> None:
        self.token_requests: list[dict] = []
        self.token_failures = 0
        self.sizes: list[str | None] = []


def make_app(state: EmmaState) -> web.Application:
    app = web.Application()

    async def issue_token(request: web.Request) -> web.Response:
        state.token_requests.append(await request.json())
        if state.token_failures:
            state.token_failures -= 1
            return web.Response(status=503, text="unavailable")
        return web.json_response({"accessToken": "emma-token", "refreshToken": "r", "expiresIn": 300})

    def configurations(*items: dict):
        async def handler(request: web.Request) -> web.Response:
            if request.headers.get("Authorization") != "Bearer emma-token":
                return web.Response(status=401, text="unauthorized")
            state.sizes.append(request.query.get("size"))
            return web.json_response({"content": list(items), "totalElements": len(items)})
        return handler

    app.router.add_post("/v1/issue-token", issue_token)
    app.router.add_get("/v1/vms-configurations", configurations(vm(1), vm(2, price=None)))
    app.router.add_get("/v1/spots-configurations", configurations(vm(3, price=0.01)))
    return app


@pytest.fixture
def state() -> EmmaState:
    return EmmaState()


@pytest.fixture
async def http(state: EmmaState):
    srv = TestServer(make_app(state))
    await srv.start_server()
    async with HttpClient(f"http://{srv.host}:{srv.port}") as client:
        yield client
    await srv.close()


@pytest.fixture
def adapter(http: HttpClient) -> EmmaAdapter:
    broker = TokenBroker(EmmaTokenIssuer(http), NO_WAIT)
    return EmmaAdapter(http, broker, Credentials("client-id", "client-secret"))


# ─── Mapping ─────────────────────────────────────────────────────────


def test_map_configuration_copies_every_field():
    config = map_configuration(vm(7), ComputeType.EPHEMERAL)
    assert config.identifier == "7"
    assert config.provider == "Amazon EC2"
    assert config.provider_id == "3"
    assert config.location == "Europe (Ireland)"
    assert config.data_center_id == "aws-eu-west-1"
    assert config.cloud_network_types == ("isolated", "multi-cloud")
    assert (config.vcpu_count, config.ram_gb, config.volume_gb) == (2, 4, 16)
    assert config.compute_type is ComputeType.EPHEMERAL
    assert config.cost == ComputeCost(unit="HOURS", currency="EUR", price_per_unit=0.05)


def test_map_configuration_without_cost():
    assert map_configuration(vm(1, price=None), ComputeType.DURABLE).cost is None


def test_map_configuration_requires_id():
    with pytest.raises(DecodeError):
        map_configuration({"providerName": "x"}, ComputeType.DURABLE)


def test_map_configuration_rejects_non_numeric_shape():
    with pytest.raises(DecodeError):
        map_configuration({**vm(1), "vCpu": "two"}, ComputeType.DURABLE)


# ─── Adapter ─────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_durable_configurations(adapter: EmmaAdapter, state: EmmaState):
    configs = await adapter.durable_configurations()

    assert [c.identifier for c in configs] == ["1", "2"]
    assert all(c.compute_type is ComputeType.DURABLE for c in configs)
    assert state.token_requests == [{"clientId": "client-id", "clientSecret": "client-secret"}]
    assert state.sizes == [str(MAX_PAGE_SIZE)]


@pytest.mark.asyncio
async def test_ephemeral_configurations(adapter: EmmaAdapter):
    configs = await adapter.ephemeral_configurations()
    assert [c.identifier for c in configs] == ["3"]
    assert configs[0].compute_type is ComputeType.EPHEMERAL


@pytest.mark.asyncio
async def test_fetch_costs_without_compute_type_lists_both(adapter: EmmaAdapter, state: EmmaState):
    records = await adapter.fetch_costs(ComputeTypeCriteria())
    assert [r.identifier for r in records] == ["1", "2", "3"]
    assert len(state.token_requests) == 2


@pytest.mark.asyncio
async def test_token_issued_after_transient_failures(adapter: EmmaAdapter, state: EmmaState):
    state.token_failures = 2
    configs = await adapter.ephemeral_configurations()
    assert len(configs) == 1
    assert len(state.token_requests) == 3


@pytest.mark.asyncio
async def test_token_failure_aborts_listing(adapter: EmmaAdapter, state: EmmaState):
    state.token_failures = 3
    with pytest.raises(AuthError) as exc_info:
        await adapter.durable_configurations()
    assert isinstance(exc_info.value.__cause__, UpstreamStatusError)
    assert state.sizes == []
