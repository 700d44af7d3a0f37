from typing import Optional


class FirePlanError(Exception):
    """Base class for every error raised by the projection engine and scenario store."""


class ValidationError(FirePlanError):
    """Bad calculator input. Carries the offending field and the reason."""

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"{field}: {reason}")


class ConfigurationError(FirePlanError):
    """Unknown enum value or table key (e.g. a survivor election nobody defined)."""


class MissingDependencyError(FirePlanError):
    """The gap analyzer was invoked without one of its prerequisite results."""

    def __init__(self, dependency: str):
        self.dependency = dependency
        super().__init__(f"Missing required input: {dependency}")


class LimitExceededError(FirePlanError):
    def __init__(self, limit: int, size: int):
        self.limit = limit
        self.size = size
        super().__init__(f"Scenario limit reached ({size}/{limit})")


class SyncError(FirePlanError):
    """Transient failure talking to the remote persistence collaborator."""


class ScenarioNotFoundError(FirePlanError):
    def __init__(self, scenario_id):
        self.scenario_id = scenario_id
        super().__init__(f"Scenario {scenario_id} not found")


class EntitlementError(FirePlanError):
    def __init__(self, capability: str, detail: Optional[str] = None):
        self.capability = capability
        super().__init__(detail or f"Capability '{capability}' is not included in the current plan")
