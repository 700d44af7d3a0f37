import logging
import time
from typing import Dict, Optional, Tuple, Callable
from uuid import UUID

import httpx

from fireplan.core.config import settings
from fireplan.core.errors import EntitlementError
from fireplan.models.entitlement import Capabilities, Entitlements

logger = logging.getLogger(__name__)


def get_entitlements(is_authenticated: bool, is_pro: bool, free_limit: Optional[int] = None) -> Entitlements:
    """Maps a billing tier to the scenario cap and capability set."""
    pro = bool(is_authenticated and is_pro)
    limit = settings.DEFAULT_FREE_SCENARIO_LIMIT if free_limit is None else free_limit
    return Entitlements(
        isAuthenticated=bool(is_authenticated),
        isPro=pro,
        scenarioLimit=None if pro else limit,
        capabilities=Capabilities(
            exportEnabled=pro,
            unlimitedScenarios=pro,
            scenarioCompare=pro,
            advancedAnalytics=pro,
            aiInsights=pro
        )
    )


class BillingClient:
    """Read-only view of the billing collaborator."""

    async def fetch(self, owner_id: UUID) -> Entitlements:
        raise NotImplementedError


class StaticBillingClient(BillingClient):
    """Fixed tier per owner. Used for local development and tests."""

    def __init__(self, pro_owners: Optional[set] = None, free_limit: Optional[int] = None):
        self.pro_owners = set(pro_owners or [])
        self.free_limit = free_limit
        self.calls = 0

    async def fetch(self, owner_id: UUID) -> Entitlements:
        self.calls += 1
        return get_entitlements(True, owner_id in self.pro_owners, self.free_limit)


class HttpBillingClient(BillingClient):
    """
    Fetches the subscription state from the billing API.

    Expected response: {"isPro": bool, "scenarioLimit": int | null}
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = (base_url or settings.BILLING_API_URL or "").rstrip("/")
        self.api_key = api_key or settings.BILLING_API_KEY
        self.transport = transport

    async def fetch(self, owner_id: UUID) -> Entitlements:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        async with httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=settings.BILLING_TIMEOUT_SECONDS,
            transport=self.transport
        ) as client:
            response = await client.get(f"/entitlements/{owner_id}")
            response.raise_for_status()
            data = response.json()

        if not isinstance(data, dict):
            raise ValueError(f"billing returned {type(data).__name__}, expected an object")

        entitlements = get_entitlements(True, bool(data.get("isPro")))
        limit = data.get("scenarioLimit")
        if not entitlements.isPro and limit is not None:
            if isinstance(limit, bool) or not isinstance(limit, (int, float, str)):
                raise ValueError(f"billing returned an unusable scenarioLimit: {limit!r}")
            entitlements.scenarioLimit = int(limit)
        return entitlements


class EntitlementService:
    """
    Caches the billing collaborator's answer for a short TTL.

    The scenario cap is always re-validated against billing once the TTL
    expires; the cached copy is never treated as ground truth beyond that.
    If billing is unreachable the last known answer is reused, or the free
    tier when nothing is known yet.
    """

    def __init__(
        self,
        client: BillingClient,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.client = client
        self.ttl = settings.ENTITLEMENT_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self.clock = clock
        self._cache: Dict[UUID, Tuple[float, Entitlements]] = {}

    async def get(self, owner_id: UUID, refresh: bool = False) -> Entitlements:
        cached = self._cache.get(owner_id)
        now = self.clock()
        if cached and not refresh and now - cached[0] < self.ttl:
            return cached[1]

        try:
            entitlements = await self.client.fetch(owner_id)
        except (httpx.HTTPError, ValueError) as e:
            if cached:
                logger.warning(f"Billing unreachable for {owner_id}, reusing last known entitlements: {e}")
                return cached[1]
            logger.warning(f"Billing unreachable for {owner_id}, assuming free tier: {e}")
            return get_entitlements(True, False)

        self._cache[owner_id] = (now, entitlements)
        return entitlements

    async def scenario_limit(self, owner_id: UUID) -> Optional[int]:
        return (await self.get(owner_id)).scenarioLimit

    async def require(self, owner_id: UUID, capability: str) -> None:
        if not (await self.get(owner_id)).has(capability):
            raise EntitlementError(capability)
