from .profiles import (
    MatchTier,
    ContributionProfile,
    MultiplierBand,
    ColaSchedule,
    PensionProfile,
    Goal
)
from .results import (
    GrowthYear,
    GrowthProjection,
    PensionEligibility,
    AnnuityYear,
    PensionResult,
    GapResult,
    BridgeStrategy,
    ScenarioResults,
    MonteCarloResult
)
from .scenario import ScenarioRecord, Scenario, ScenarioCollection, SyncState, SCENARIO_SCHEMA_VERSION
from .entitlement import Capabilities, Entitlements
