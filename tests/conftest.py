import copy
from datetime import date
from uuid import UUID

import pytest

from fireplan.core.errors import SyncError
from fireplan.services.entitlement_service import EntitlementService, StaticBillingClient
from fireplan.services.persistence import ScenarioRepository, LocalScenarioStore
from fireplan.services.scenario_store import ScenarioStore

OWNER_ID = UUID("0190f3a4-7c1e-7d2a-9b1c-3e5f6a7b8c9d")
AS_OF = date(2026, 1, 1)


class FakeScenarioRepository(ScenarioRepository):
    """In-memory remote that records every call and can be switched off."""

    def __init__(self):
        self.rows = {}
        self.upserts = []
        self.deletes = []
        self.failing = False

    async def list(self, owner_id):
        if self.failing:
            raise SyncError("remote unreachable")
        return [copy.deepcopy(r) for r in self.rows.values() if r["ownerId"] == str(owner_id)]

    async def upsert(self, record):
        if self.failing:
            raise SyncError("remote unreachable")
        self.upserts.append(copy.deepcopy(record))
        self.rows[record["id"]] = copy.deepcopy(record)
        return record

    async def delete(self, scenario_id):
        if self.failing:
            raise SyncError("remote unreachable")
        self.deletes.append(str(scenario_id))
        self.rows.pop(str(scenario_id), None)


@pytest.fixture
def remote():
    return FakeScenarioRepository()


@pytest.fixture
def local():
    return LocalScenarioStore()


@pytest.fixture
def billing():
    return StaticBillingClient()


@pytest.fixture
def entitlements(billing):
    return EntitlementService(billing, ttl_seconds=300)


@pytest.fixture
def make_store(remote, local, entitlements):
    """Builds loaded stores with a short debounce window."""

    async def _make(**kwargs):
        kwargs.setdefault("debounce_seconds", 0.05)
        kwargs.setdefault("as_of", AS_OF)
        store = ScenarioStore(
            kwargs.pop("owner_id", OWNER_ID),
            kwargs.pop("remote", remote),
            kwargs.pop("local", local),
            kwargs.pop("entitlements", entitlements),
            **kwargs
        )
        await store.load()
        return store

    return _make
