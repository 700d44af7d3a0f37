from uuid import UUID

import httpx
import pytest

from fireplan.core.errors import EntitlementError
from fireplan.services.entitlement_service import (
    EntitlementService,
    HttpBillingClient,
    StaticBillingClient,
    get_entitlements
)

from tests.conftest import OWNER_ID

PRO_OWNER = UUID("0190f3a4-7c1e-7d2a-9b1c-000000000001")


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_tiers():
    free = get_entitlements(True, False)
    pro = get_entitlements(True, True)
    anonymous_pro = get_entitlements(False, True)

    assert free.scenarioLimit == 3
    assert not free.has("exportEnabled")
    assert pro.scenarioLimit is None
    assert pro.has("advancedAnalytics")
    assert not anonymous_pro.isPro


async def test_cached_within_ttl_and_refetched_after():
    billing = StaticBillingClient()
    clock = FakeClock()
    service = EntitlementService(billing, ttl_seconds=60, clock=clock)

    await service.get(OWNER_ID)
    await service.get(OWNER_ID)
    assert billing.calls == 1

    clock.now += 61
    await service.get(OWNER_ID)
    assert billing.calls == 2

    await service.get(OWNER_ID, refresh=True)
    assert billing.calls == 3


async def test_upgrade_is_seen_after_ttl():
    billing = StaticBillingClient()
    clock = FakeClock()
    service = EntitlementService(billing, ttl_seconds=60, clock=clock)

    assert await service.scenario_limit(OWNER_ID) == 3
    billing.pro_owners.add(OWNER_ID)
    assert await service.scenario_limit(OWNER_ID) == 3

    clock.now += 60
    assert await service.scenario_limit(OWNER_ID) is None


async def test_require_raises_for_missing_capability():
    service = EntitlementService(StaticBillingClient(pro_owners={PRO_OWNER}))

    with pytest.raises(EntitlementError) as exc_info:
        await service.require(OWNER_ID, "exportEnabled")
    assert exc_info.value.capability == "exportEnabled"

    await service.require(PRO_OWNER, "exportEnabled")


async def test_http_billing_client_reads_tier():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path.endswith(str(PRO_OWNER)):
            return httpx.Response(200, json={"isPro": True, "scenarioLimit": None})
        return httpx.Response(200, json={"isPro": False, "scenarioLimit": 5})

    client = HttpBillingClient("https://billing.test", "key-123", transport=httpx.MockTransport(handler))

    pro = await client.fetch(PRO_OWNER)
    free = await client.fetch(OWNER_ID)

    assert pro.isPro and pro.scenarioLimit is None
    assert not free.isPro and free.scenarioLimit == 5
    assert seen[0].headers["Authorization"] == "Bearer key-123"
    assert seen[1].url.path == f"/entitlements/{OWNER_ID}"


async def test_billing_outage_reuses_cache_then_falls_back_to_free():
    state = {"down": False}

    def handler(request: httpx.Request) -> httpx.Response:
        if state["down"]:
            return httpx.Response(503)
        return httpx.Response(200, json={"isPro": True})

    clock = FakeClock()
    client = HttpBillingClient("https://billing.test", transport=httpx.MockTransport(handler))
    service = EntitlementService(client, ttl_seconds=60, clock=clock)

    assert (await service.get(OWNER_ID)).isPro

    state["down"] = True
    clock.now += 120
    assert (await service.get(OWNER_ID)).isPro

    fresh = EntitlementService(client, ttl_seconds=60, clock=clock)
    fallback = await fresh.get(OWNER_ID)
    assert not fallback.isPro
    assert fallback.scenarioLimit == 3


@pytest.mark.parametrize("payload", [
    [{"isPro": True}],
    "pro",
    None,
    {"isPro": False, "scenarioLimit": ["5"]},
])
async def test_malformed_billing_payload_falls_back_to_free(payload):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=payload)

    client = HttpBillingClient("https://billing.test", transport=httpx.MockTransport(handler))
    with pytest.raises(ValueError):
        await client.fetch(OWNER_ID)

    service = EntitlementService(client, ttl_seconds=60, clock=FakeClock())
    fallback = await service.get(OWNER_ID)
    assert not fallback.isPro
    assert fallback.scenarioLimit == 3
