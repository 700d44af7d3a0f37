from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from fireplan.api import deps
from fireplan.models.scenario import Scenario, ScenarioCollection
from fireplan.models.results import OptimizationResult
from fireplan.services.scenario_store import ScenarioStore

router = APIRouter()


class ScenarioCreate(BaseModel):
    name: str
    templateId: Optional[str] = None


class ScenarioRename(BaseModel):
    name: str


class ScenarioImport(BaseModel):
    bundle: str  # raw JSON text of an export bundle or a bare list of records
    mode: str = "merge"  # merge or replace


class ImportResult(BaseModel):
    importedCount: int
    skippedCount: int


@router.get("", response_model=ScenarioCollection)
async def list_scenarios(
    store: ScenarioStore = Depends(deps.get_scenario_store),
):
    """
    List all scenarios for the authenticated owner, with the current cap and sync status.
    """
    return await store.list()


@router.post("", response_model=Scenario)
async def create_scenario(
    scenario_in: ScenarioCreate,
    store: ScenarioStore = Depends(deps.get_scenario_store),
):
    # Check limit happens inside the store, before anything is created
    return await store.create(scenario_in.name, scenario_in.templateId)


@router.get("/templates")
async def get_templates(
    store: ScenarioStore = Depends(deps.get_scenario_store),
) -> List[Dict[str, str]]:
    return store.templates()


@router.get("/export")
async def export_scenarios(
    store: ScenarioStore = Depends(deps.get_scenario_store),
) -> Dict[str, Any]:
    return await store.export_bundle()


@router.post("/import", response_model=ImportResult)
async def import_scenarios(
    import_in: ScenarioImport,
    store: ScenarioStore = Depends(deps.get_scenario_store),
):
    return await store.import_bundle(import_in.bundle, import_in.mode)


@router.get("/diff")
async def diff_scenarios(
    from_id: UUID,
    to_id: UUID,
    store: ScenarioStore = Depends(deps.get_scenario_store),
) -> List[Dict[str, Any]]:
    """
    Field-by-field comparison of two scenarios' inputs.
    """
    return store.diff(from_id, to_id)


@router.post("/flush", response_model=ScenarioCollection)
async def flush_scenarios(
    store: ScenarioStore = Depends(deps.get_scenario_store),
):
    await store.flush()
    return await store.list()


@router.get("/{scenario_id}", response_model=Scenario)
async def get_scenario(
    scenario_id: UUID,
    store: ScenarioStore = Depends(deps.get_scenario_store),
):
    return store.get(scenario_id)


@router.patch("/{scenario_id}", response_model=Scenario)
async def update_scenario(
    scenario_id: UUID,
    profile_delta: Dict[str, Any],
    store: ScenarioStore = Depends(deps.get_scenario_store),
):
    """
    Partial edit of one or more input sections, e.g.
    {"contributionProfile": {"retirementAge": 60}}. Results are recomputed.
    """
    return await store.update(scenario_id, profile_delta)


@router.get("/{scenario_id}/optimizations", response_model=OptimizationResult)
async def optimize_scenario(
    scenario_id: UUID,
    store: ScenarioStore = Depends(deps.get_scenario_store),
):
    """
    Up to three plan changes (later retirement, higher contributions, lower
    target) that meet the goal sooner than the scenario as saved.
    """
    return await store.optimize(scenario_id)


@router.post("/{scenario_id}/rename", response_model=Scenario)
async def rename_scenario(
    scenario_id: UUID,
    rename_in: ScenarioRename,
    store: ScenarioStore = Depends(deps.get_scenario_store),
):
    return await store.rename(scenario_id, rename_in.name)


@router.post("/{scenario_id}/duplicate", response_model=Scenario)
async def duplicate_scenario(
    scenario_id: UUID,
    store: ScenarioStore = Depends(deps.get_scenario_store),
):
    return await store.duplicate(scenario_id)


@router.delete("/{scenario_id}", response_model=ScenarioCollection)
async def delete_scenario(
    scenario_id: UUID,
    store: ScenarioStore = Depends(deps.get_scenario_store),
):
    return await store.delete(scenario_id)
