import asyncio
import json
import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Set
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError
from uuid6 import uuid7

from fireplan.core.config import settings
from fireplan.core.errors import (
    ValidationError,
    ConfigurationError,
    LimitExceededError,
    ScenarioNotFoundError,
    SyncError
)
from fireplan.models.profiles import ContributionProfile, PensionProfile, Goal
from fireplan.models.scenario import Scenario, ScenarioCollection, SyncState, SCENARIO_SCHEMA_VERSION
from fireplan.models.results import OptimizationResult
from fireplan.services.entitlement_service import EntitlementService
from fireplan.services.persistence import ScenarioRepository, LocalScenarioStore
from fireplan.services.projection_service import ProjectionService
from fireplan.services.optimization_service import OptimizationService
from fireplan.services import scenario_defaults

logger = logging.getLogger(__name__)

EDITABLE_SECTIONS = {
    "contributionProfile": ContributionProfile,
    "pensionProfile": PensionProfile,
    "goal": Goal,
}


def _from_pydantic_error(e: PydanticValidationError, prefix: str) -> ValidationError:
    err = e.errors()[0]
    field = ".".join([prefix] + [str(p) for p in err["loc"]]) if prefix else ".".join(str(p) for p in err["loc"])
    return ValidationError(field, err["msg"])


class ScenarioStore:
    """
    Named what-if scenarios for one owner, kept in sync with the remote store.

    Per-scenario sync state machine:

        Clean -> (edit) -> Dirty -> (sync attempt) -> Syncing -> (ack) -> Clean
                                                      Syncing -> (failure) -> Dirty

    Edits inside the debounce window collapse into one upsert carrying the latest
    snapshot (last write wins). A sync already in flight is never cancelled; a
    newer one waits for it and then sends whatever is current.

    When the remote fails the store drops to local-only mode and keeps every
    change in the LocalScenarioStore. The next successful contact pushes all
    local scenarios up as authoritative and replays deletes made while offline.
    """

    def __init__(
        self,
        owner_id: UUID,
        remote: Optional[ScenarioRepository],
        local: LocalScenarioStore,
        entitlements: EntitlementService,
        debounce_seconds: Optional[float] = None,
        failure_threshold: Optional[int] = None,
        as_of: Optional[date] = None
    ):
        self.owner_id = owner_id
        self.remote = remote
        self.local = local
        self.entitlements = entitlements
        self.debounce_seconds = settings.SYNC_DEBOUNCE_SECONDS if debounce_seconds is None else debounce_seconds
        self.failure_threshold = settings.SYNC_FAILURE_SURFACE_THRESHOLD if failure_threshold is None else failure_threshold
        self.as_of = as_of

        self.offline = remote is None
        self.consecutive_failures = 0
        self.sync_error: Optional[str] = None

        self._scenarios: Dict[UUID, Scenario] = {}
        self._pending_deletes: List[UUID] = []
        self._pending: Dict[UUID, asyncio.Task] = {}
        self._inflight: Set[asyncio.Task] = set()
        self._locks: Dict[UUID, asyncio.Lock] = {}
        self._reconnect_lock = asyncio.Lock()

    # --- Loading ---

    async def load(self) -> ScenarioCollection:
        """Initial load: remote when reachable (reconciled with local edits), local otherwise."""
        local_records, pending_deletes = self.local.load(self.owner_id)
        self._pending_deletes = [UUID(str(i)) for i in pending_deletes]

        local_scenarios = []
        for record in local_records:
            scenario = self._scenario_from_record(record, source="local")
            if scenario:
                scenario.dirty = bool(record.get("dirty", False))
                scenario.syncState = SyncState.DIRTY if scenario.dirty else SyncState.CLEAN
                local_scenarios.append(scenario)

        self._scenarios = {s.id: s for s in local_scenarios}

        if self.remote is not None:
            # Startup is a reconnect where only scenarios left dirty locally win
            await self._reconnect(push_all=False)

        for scenario in self._scenarios.values():
            self._recompute_quietly(scenario)

        self._save_local()
        return await self.list()

    def _scenario_from_record(self, record: Dict[str, Any], source: str) -> Optional[Scenario]:
        try:
            normalized = scenario_defaults.normalize_record(record)
            normalized["ownerId"] = str(self.owner_id)
            return Scenario.from_record(normalized)
        except PydanticValidationError as e:
            logger.warning(f"Skipping unreadable {source} scenario {record.get('id')}: {e}")
            return None

    # --- Operations ---

    async def list(self) -> ScenarioCollection:
        limit = await self.entitlements.scenario_limit(self.owner_id)
        return ScenarioCollection(
            ownerId=self.owner_id,
            scenarios=sorted(self._scenarios.values(), key=lambda s: s.createdAt),
            scenarioLimit=limit,
            offline=self.offline,
            syncError=self.sync_error
        )

    def get(self, scenario_id: UUID) -> Scenario:
        scenario = self._scenarios.get(scenario_id)
        if scenario is None:
            raise ScenarioNotFoundError(scenario_id)
        return scenario

    async def create(self, name: str, template_id: Optional[str] = None) -> Scenario:
        name = self._clean_name(name)
        await self._check_limit()

        scenario = scenario_defaults.build_scenario(self.owner_id, name, template_id)
        ProjectionService.recompute(scenario, as_of=self.as_of)
        self._scenarios[scenario.id] = scenario
        self._touch(scenario)
        logger.info(f"Created scenario {scenario.id} for {self.owner_id}")
        return scenario

    async def update(self, scenario_id: UUID, profile_delta: Dict[str, Any]) -> Scenario:
        """
        Applies a partial edit, e.g. {"contributionProfile": {"retirementAge": 60}}.

        The edit is kept even when the new inputs are invalid; the results then
        become unavailable (None) and the ValidationError/ConfigurationError is
        raised to the caller.
        """
        scenario = self.get(scenario_id)

        updated = {}
        for section, delta in profile_delta.items():
            model = EDITABLE_SECTIONS.get(section)
            if model is None:
                raise ValidationError(section, f"not editable; expected one of {', '.join(EDITABLE_SECTIONS)}")
            if not isinstance(delta, dict):
                raise ValidationError(section, "expected an object of field updates")
            current = getattr(scenario, section).model_dump(mode="json")
            try:
                updated[section] = model.model_validate(scenario_defaults.deep_merge(current, delta))
            except PydanticValidationError as e:
                raise _from_pydantic_error(e, section) from e

        for section, value in updated.items():
            setattr(scenario, section, value)

        self._touch(scenario)
        ProjectionService.recompute(scenario, as_of=self.as_of)
        return scenario

    async def rename(self, scenario_id: UUID, name: str) -> Scenario:
        scenario = self.get(scenario_id)
        scenario.name = self._clean_name(name)
        self._touch(scenario)
        return scenario

    async def duplicate(self, scenario_id: UUID) -> Scenario:
        source = self.get(scenario_id)
        await self._check_limit()

        now = datetime.utcnow()
        copy = source.model_copy(deep=True, update={
            "id": uuid7(),
            "name": f"{source.name} (Copy)",
            "createdAt": now,
            "updatedAt": now,
            "meta": {**source.meta, "duplicatedFromId": str(source.id)},
            "revision": 0,
            "dirty": True,
            "syncState": SyncState.DIRTY
        })
        self._scenarios[copy.id] = copy
        self._touch(copy)
        return copy

    async def delete(self, scenario_id: UUID) -> ScenarioCollection:
        self.get(scenario_id)
        self._cancel_pending(scenario_id)

        # An upsert already in flight must land before the delete goes out
        lock = self._locks.setdefault(scenario_id, asyncio.Lock())
        async with lock:
            async with self._reconnect_lock:
                if self._scenarios.pop(scenario_id, None) is None:
                    raise ScenarioNotFoundError(scenario_id)

                if self.remote is None:
                    pass
                elif self.offline:
                    self._pending_deletes.append(scenario_id)
                else:
                    try:
                        await self.remote.delete(scenario_id)
                        self._on_sync_success()
                    except SyncError as e:
                        self._pending_deletes.append(scenario_id)
                        self._on_sync_failure(e)
                self._save_local()
        self._locks.pop(scenario_id, None)

        logger.info(f"Deleted scenario {scenario_id} for {self.owner_id}")
        return await self.list()

    # --- Templates, diff, import/export ---

    def templates(self) -> List[Dict[str, str]]:
        return [
            {"id": t["id"], "name": t["name"], "description": t["description"]}
            for t in scenario_defaults.SCENARIO_TEMPLATES
        ]

    def diff(self, from_id: UUID, to_id: UUID) -> List[Dict[str, Any]]:
        return scenario_defaults.scenario_diff(self.get(from_id), self.get(to_id))

    async def optimize(self, scenario_id: UUID) -> OptimizationResult:
        """Plan changes that would meet the scenario's goal sooner. Pro plans only."""
        scenario = self.get(scenario_id)
        await self.entitlements.require(self.owner_id, "advancedAnalytics")
        return OptimizationService.suggest(
            scenario.contributionProfile,
            scenario.pensionProfile,
            scenario.goal,
            as_of=self.as_of
        )

    async def export_bundle(self) -> Dict[str, Any]:
        await self.entitlements.require(self.owner_id, "exportEnabled")
        return {
            "app": "FirePlan",
            "type": "scenarios_export",
            "schemaVersion": SCENARIO_SCHEMA_VERSION,
            "exportedAt": datetime.utcnow().isoformat(),
            "scenarios": [s.to_record() for s in (await self.list()).scenarios]
        }

    async def import_bundle(self, json_text: str, mode: str = "merge") -> Dict[str, int]:
        """
        Imports scenarios from an export bundle (or a bare list of records).

        The scenario cap is enforced: records beyond it are skipped and counted.
        Imported ids that collide with existing ones are given a new id, so the
        existing scenario is kept alongside the imported copy.
        """
        if mode not in ("merge", "replace"):
            raise ValidationError("mode", "expected 'merge' or 'replace'")
        try:
            parsed = json.loads(json_text)
        except json.JSONDecodeError as e:
            raise ValidationError("bundle", f"invalid JSON: {e.msg}") from e

        if isinstance(parsed, list):
            incoming = parsed
        elif isinstance(parsed, dict) and isinstance(parsed.get("scenarios"), list):
            incoming = parsed["scenarios"]
        else:
            raise ValidationError("bundle", "expected an array of scenarios or { scenarios: [...] }")

        candidates = []
        for record in filter(None, incoming):
            if not isinstance(record, dict):
                raise ValidationError("bundle", "every scenario must be an object")
            scenario = self._scenario_from_record({**record, "name": record.get("name") or "Imported Scenario"}, source="imported")
            if scenario is None:
                raise ValidationError("bundle", f"scenario {record.get('id')} could not be read")
            candidates.append(scenario)

        existing_count = 0 if mode == "replace" else len(self._scenarios)
        limit = await self.entitlements.scenario_limit(self.owner_id)
        can_add = len(candidates) if limit is None else max(0, limit - existing_count)
        to_import = candidates[:can_add]
        skipped = len(candidates) - len(to_import)

        if mode == "replace":
            for scenario_id in list(self._scenarios):
                await self.delete(scenario_id)

        now = datetime.utcnow()
        for scenario in to_import:
            if scenario.id in self._scenarios:
                scenario.id = uuid7()
            scenario.meta = {**scenario.meta, "importedAt": now.isoformat()}
            self._recompute_quietly(scenario)
            self._scenarios[scenario.id] = scenario
            self._touch(scenario)

        if skipped:
            logger.info(f"Import for {self.owner_id} skipped {skipped} scenario(s) over the limit of {limit}")
        return {"importedCount": len(to_import), "skippedCount": skipped}

    # --- Sync machinery ---

    async def flush(self) -> None:
        """Syncs every dirty scenario now instead of waiting for the debounce timers."""
        for scenario_id in list(self._pending):
            self._cancel_pending(scenario_id)
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

        if self.remote is None:
            return
        if self.offline:
            await self._reconnect()
            return
        for scenario in list(self._scenarios.values()):
            if scenario.dirty:
                await self._sync_scenario(scenario.id)

    async def close(self) -> None:
        await self.flush()

    def _touch(self, scenario: Scenario) -> None:
        scenario.updatedAt = datetime.utcnow()
        scenario.revision += 1
        scenario.dirty = True
        if scenario.syncState != SyncState.SYNCING:
            scenario.syncState = SyncState.DIRTY
        self._save_local()
        self._schedule_sync(scenario.id)

    def _schedule_sync(self, scenario_id: UUID) -> None:
        if self.remote is None:
            return
        self._cancel_pending(scenario_id)
        self._pending[scenario_id] = asyncio.create_task(self._debounced_sync(scenario_id))

    def _cancel_pending(self, scenario_id: UUID) -> None:
        task = self._pending.pop(scenario_id, None)
        if task:
            task.cancel()

    async def _debounced_sync(self, scenario_id: UUID) -> None:
        await asyncio.sleep(self.debounce_seconds)
        # Past the window: from here on this sync can no longer be cancelled by an edit
        current = asyncio.current_task()
        if self._pending.get(scenario_id) is current:
            del self._pending[scenario_id]
        self._inflight.add(current)
        try:
            await self._sync_scenario(scenario_id)
        finally:
            self._inflight.discard(current)

    async def _sync_scenario(self, scenario_id: UUID) -> None:
        lock = self._locks.setdefault(scenario_id, asyncio.Lock())
        async with lock:
            scenario = self._scenarios.get(scenario_id)
            if scenario is None or not scenario.dirty:
                return
            if self.offline:
                if not await self._reconnect():
                    return
                # Edits made while another reconnect was replaying are still dirty
                scenario = self._scenarios.get(scenario_id)
                if scenario is None or not scenario.dirty:
                    return

            revision = scenario.revision
            scenario.syncState = SyncState.SYNCING
            try:
                await self.remote.upsert(scenario.to_record())
            except SyncError as e:
                scenario.syncState = SyncState.DIRTY
                self._on_sync_failure(e)
                return

            self._on_sync_success()
            self._ack(scenario, revision)

    def _ack(self, scenario: Scenario, revision: int) -> None:
        # Only the acknowledged revision clears the flag; newer edits keep it dirty
        if scenario.revision == revision:
            scenario.dirty = False
            scenario.syncState = SyncState.CLEAN
        else:
            scenario.syncState = SyncState.DIRTY
        self._save_local()

    async def _reconnect(self, push_all: bool = True) -> bool:
        """
        Re-establishes contact with the remote after local-only mode.

        Deletes made while offline are replayed, local scenarios are pushed as
        authoritative (all of them, or only dirty ones on startup), and remote
        scenarios this device does not hold are adopted. On startup a clean
        local copy that the remote no longer has was deleted elsewhere and is
        dropped.

        Only one reconnect runs at a time. Callers that queued behind one which
        already brought the store back online return without replaying again.
        """
        async with self._reconnect_lock:
            if push_all and not self.offline:
                return True
            return await self._replay_and_reconcile(push_all)

    async def _replay_and_reconcile(self, push_all: bool) -> bool:
        deleted = set(self._pending_deletes)
        try:
            remote_records = await self.remote.list(self.owner_id)

            for scenario_id in list(self._pending_deletes):
                await self.remote.delete(scenario_id)
                if scenario_id in self._pending_deletes:
                    self._pending_deletes.remove(scenario_id)

            pushed = []
            for scenario in list(self._scenarios.values()):
                if push_all or scenario.dirty:
                    revision = scenario.revision
                    await self.remote.upsert(scenario.to_record())
                    pushed.append((scenario, revision))
        except SyncError as e:
            self._on_sync_failure(e)
            self._save_local()
            return False

        was_offline = self.offline
        self.offline = False
        self._on_sync_success()
        for scenario, revision in pushed:
            self._ack(scenario, revision)

        pushed_ids = {scenario.id for scenario, _ in pushed}
        remote_ids = set()
        for record in remote_records:
            scenario = self._scenario_from_record(record, source="remote")
            if scenario is None or scenario.id in deleted:
                continue
            remote_ids.add(scenario.id)
            if scenario.id in pushed_ids:
                continue
            local = self._scenarios.get(scenario.id)
            if local is not None:
                scenario.revision = local.revision
            self._recompute_quietly(scenario)
            self._scenarios[scenario.id] = scenario

        if not push_all:
            for scenario_id, scenario in list(self._scenarios.items()):
                if not scenario.dirty and scenario_id not in remote_ids:
                    del self._scenarios[scenario_id]

        if was_offline:
            logger.info(f"Scenario sync for {self.owner_id} is back online; pushed {len(pushed)} scenario(s)")
        self._save_local()
        return True

    def _on_sync_failure(self, error: SyncError) -> None:
        self.consecutive_failures += 1
        if not self.offline:
            logger.warning(f"Scenario sync failed for {self.owner_id}, switching to local-only mode: {error}")
            self.offline = True
        if self.consecutive_failures >= self.failure_threshold:
            self.sync_error = str(error)
            logger.error(f"Scenario sync for {self.owner_id} failed {self.consecutive_failures} times in a row: {error}")

    def _on_sync_success(self) -> None:
        self.consecutive_failures = 0
        self.sync_error = None

    # --- Helpers ---

    async def _check_limit(self) -> None:
        limit = await self.entitlements.scenario_limit(self.owner_id)
        if limit is not None and len(self._scenarios) >= limit:
            raise LimitExceededError(limit, len(self._scenarios))

    @staticmethod
    def _clean_name(name: str) -> str:
        name = (name or "").strip()
        if not name:
            raise ValidationError("name", "must not be empty")
        return name

    def _recompute_quietly(self, scenario: Scenario) -> None:
        try:
            ProjectionService.recompute(scenario, as_of=self.as_of)
        except (ValidationError, ConfigurationError):
            # Results stay unavailable until the user fixes the inputs
            pass

    def _save_local(self) -> None:
        records = [
            s.model_dump(mode="json", exclude={"syncState", "revision"})
            for s in self._scenarios.values()
        ]
        self.local.save(self.owner_id, records, [str(i) for i in self._pending_deletes])


class ScenarioStoreRegistry:
    """One loaded ScenarioStore per owner for the life of the process."""

    def __init__(
        self,
        remote: Optional[ScenarioRepository],
        local: LocalScenarioStore,
        entitlements: EntitlementService,
        **store_kwargs
    ):
        self.remote = remote
        self.local = local
        self.entitlements = entitlements
        self.store_kwargs = store_kwargs
        self._stores: Dict[UUID, ScenarioStore] = {}
        self._lock = asyncio.Lock()

    async def get(self, owner_id: UUID) -> ScenarioStore:
        async with self._lock:
            store = self._stores.get(owner_id)
            if store is None:
                store = ScenarioStore(owner_id, self.remote, self.local, self.entitlements, **self.store_kwargs)
                await store.load()
                self._stores[owner_id] = store
            return store

    async def close(self) -> None:
        for store in self._stores.values():
            await store.close()
