import copy
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from fireplan.models.scenario import Scenario, SCENARIO_SCHEMA_VERSION

# Starting point for every new scenario; loaded records are merged over it.
DEFAULT_SCENARIO_INPUTS: Dict[str, Dict[str, Any]] = {
    "contributionProfile": {
        "startingBalance": 50000,
        "currentAge": 35,
        "retirementAge": 62,
        "annualSalary": 80000,
        "salaryGrowthRate": 0.03,
        "employeeContributionRate": 0.10,
        "employerMatchSchedule": [
            {"upToRate": 0.03, "matchRate": 1.0},
            {"upToRate": 0.05, "matchRate": 0.5}
        ],
        "assumedAnnualReturn": 0.06,
        "withdrawalRate": 0.04,
        "lifeExpectancyAge": 95,
        "annualDeferralLimit": 23500,
        "catchUpContributionLimit": 7500,
        "catchUpAge": 50
    },
    "pensionProfile": {
        "highAverageSalary": 85000,
        "yearsOfService": 20,
        "retirementAge": 62,
        "survivorElection": "none",
        "colaSchedule": {"inflationRate": 0.025, "startAge": 62}
    },
    "goal": {
        "targetAnnualIncome": 72000,
        "inflationRate": 0.025
    }
}

SCENARIO_TEMPLATES: List[Dict[str, Any]] = [
    {
        "id": "template_20s",
        "name": "Starter (20s)",
        "description": "Early career baseline with modest savings and a long growth runway.",
        "overrides": {
            "contributionProfile": {"currentAge": 27, "retirementAge": 62, "startingBalance": 15000, "annualSalary": 70000, "employeeContributionRate": 0.10},
            "pensionProfile": {"retirementAge": 62, "yearsOfService": 2, "highAverageSalary": 70000},
            "goal": {"targetAnnualIncome": 66000}
        }
    },
    {
        "id": "template_30s",
        "name": "Starter (30s)",
        "description": "Mid-career baseline: stronger salary, meaningful savings base, realistic FIRE target.",
        "overrides": {
            "contributionProfile": {"currentAge": 35, "retirementAge": 62, "startingBalance": 50000, "annualSalary": 90000, "employeeContributionRate": 0.12},
            "pensionProfile": {"retirementAge": 62, "yearsOfService": 8, "highAverageSalary": 90000},
            "goal": {"targetAnnualIncome": 72000}
        }
    },
    {
        "id": "template_40s",
        "name": "Starter (40s)",
        "description": "Late mid-career: prioritize eligibility timing and bridge planning.",
        "overrides": {
            "contributionProfile": {"currentAge": 45, "retirementAge": 62, "startingBalance": 160000, "annualSalary": 115000, "employeeContributionRate": 0.15},
            "pensionProfile": {"retirementAge": 62, "yearsOfService": 15, "highAverageSalary": 115000},
            "goal": {"targetAnnualIncome": 84000}
        }
    },
    {
        "id": "template_50s",
        "name": "Starter (50s)",
        "description": "Pre-retirement: focus on earliest eligibility and near-term cash flow.",
        "overrides": {
            "contributionProfile": {"currentAge": 55, "retirementAge": 62, "startingBalance": 350000, "annualSalary": 140000, "employeeContributionRate": 0.15},
            "pensionProfile": {"retirementAge": 62, "yearsOfService": 25, "highAverageSalary": 140000},
            "goal": {"targetAnnualIncome": 96000}
        }
    }
]

# (path, label) pairs compared by the scenario diff
DIFF_FIELDS = [
    ("contributionProfile.currentAge", "DC: current age"),
    ("contributionProfile.retirementAge", "DC: retirement age"),
    ("contributionProfile.startingBalance", "DC: starting balance"),
    ("contributionProfile.employeeContributionRate", "DC: contribution rate"),
    ("contributionProfile.annualSalary", "DC: salary"),
    ("contributionProfile.assumedAnnualReturn", "DC: assumed return"),
    ("contributionProfile.withdrawalRate", "DC: withdrawal rate"),
    ("pensionProfile.retirementAge", "Pension: retirement age"),
    ("pensionProfile.yearsOfService", "Pension: years of service"),
    ("pensionProfile.highAverageSalary", "Pension: high-average salary"),
    ("pensionProfile.survivorElection", "Pension: survivor election"),
    ("goal.targetAnnualIncome", "Goal: annual income"),
    ("goal.targetNetWorth", "Goal: net worth"),
    ("goal.targetDate", "Goal: target date"),
    ("goal.inflationRate", "Goal: inflation"),
]


def deep_merge(base: Dict[str, Any], updates: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Recursively merges `updates` into a copy of `base`. Lists are replaced, not merged."""
    merged = copy.deepcopy(base)
    for key, value in (updates or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def migrate_record(record: Dict[str, Any]) -> Dict[str, Any]:
    """Brings an older record up to SCENARIO_SCHEMA_VERSION."""
    migrated = dict(record)
    version = migrated.get("schemaVersion") or 0

    # v0 -> v1: schemaVersion missing
    if version < 1:
        version = 1

    # v1 -> v2: updatedAt moved out of meta onto the record
    if version < 2:
        meta = dict(migrated.get("meta") or {})
        if not migrated.get("updatedAt"):
            migrated["updatedAt"] = meta.pop("updatedAt", None) or migrated.get("createdAt") or datetime.utcnow().isoformat()
        migrated["meta"] = meta
        version = 2

    migrated["schemaVersion"] = SCENARIO_SCHEMA_VERSION
    return migrated


def normalize_record(record: Dict[str, Any]) -> Dict[str, Any]:
    """Migrates a record and fills any missing inputs from the defaults."""
    migrated = migrate_record(record)
    for section, defaults in DEFAULT_SCENARIO_INPUTS.items():
        migrated[section] = deep_merge(defaults, migrated.get(section))
    migrated["meta"] = migrated.get("meta") or {}
    return migrated


def build_scenario(owner_id: UUID, name: str, template_id: Optional[str] = None) -> Scenario:
    inputs = copy.deepcopy(DEFAULT_SCENARIO_INPUTS)
    meta: Dict[str, Any] = {}

    template = next((t for t in SCENARIO_TEMPLATES if t["id"] == template_id), None)
    if template:
        inputs = deep_merge(inputs, template["overrides"])
        meta["templateId"] = template["id"]

    return Scenario(name=name, ownerId=owner_id, meta=meta, **inputs)


def get_value_by_path(data: Dict[str, Any], path: str) -> Any:
    value: Any = data
    for key in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


def scenario_diff(from_scenario: Scenario, to_scenario: Scenario) -> List[Dict[str, Any]]:
    from_data = from_scenario.model_dump(mode="json")
    to_data = to_scenario.model_dump(mode="json")
    diffs = []
    for path, label in DIFF_FIELDS:
        from_value = get_value_by_path(from_data, path)
        to_value = get_value_by_path(to_data, path)
        if from_value != to_value:
            diffs.append({"path": path, "label": label, "from": from_value, "to": to_value})
    return diffs
