import logging
from datetime import date
from typing import Optional

from fireplan.core.errors import ValidationError, ConfigurationError
from fireplan.models.scenario import Scenario
from fireplan.models.results import ScenarioResults
from fireplan.services.growth_simulator import ContributionGrowthSimulator
from fireplan.services.pension_calculator import PensionCalculator
from fireplan.services.gap_analyzer import GapAnalyzer

logger = logging.getLogger(__name__)


class ProjectionService:
    """
    Runs the three calculators for a scenario.

    Called synchronously on every profile mutation. On bad input the cached
    results are cleared (rendered as "unavailable") before the error propagates,
    so a stale number is never shown next to the edited inputs.
    """

    @staticmethod
    def compute(scenario: Scenario, as_of: Optional[date] = None) -> ScenarioResults:
        growth = ContributionGrowthSimulator.project(scenario.contributionProfile)
        pension = PensionCalculator.calculate(
            scenario.pensionProfile,
            through_age=scenario.contributionProfile.lifeExpectancyAge
        )
        gap = GapAnalyzer.analyze(growth, pension, scenario.goal, as_of=as_of)
        return ScenarioResults(growth=growth, pension=pension, gap=gap)

    @staticmethod
    def recompute(scenario: Scenario, as_of: Optional[date] = None) -> Scenario:
        try:
            scenario.cachedResults = ProjectionService.compute(scenario, as_of=as_of)
        except (ValidationError, ConfigurationError) as e:
            scenario.cachedResults = None
            logger.info(f"Results unavailable for scenario {scenario.id}: {e}")
            raise
        return scenario
