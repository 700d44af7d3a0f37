import logging
from datetime import date
from itertools import product
from typing import List, Optional

from fireplan.core.errors import ValidationError, ConfigurationError
from fireplan.models.profiles import ContributionProfile, PensionProfile, Goal
from fireplan.models.results import OptimizationCandidate, OptimizationResult
from fireplan.services.growth_simulator import ContributionGrowthSimulator
from fireplan.services.pension_calculator import PensionCalculator
from fireplan.services.gap_analyzer import GapAnalyzer

logger = logging.getLogger(__name__)

RETIREMENT_AGE_STEPS = (0, 1, 2, 3, 5)
CONTRIBUTION_RATE_STEPS = (0.0, 0.02, 0.05, 0.10)
TARGET_SCALES = (1.0, 0.95, 0.90)

MAX_RETIREMENT_AGE = 80
MAX_CONTRIBUTION_RATE = 0.5
MAX_SUGGESTIONS = 3


class OptimizationService:
    """
    Searches a small grid of plan changes for ones that reach the goal sooner.

    Each candidate combines a later retirement age, a higher contribution rate
    and a lower goal target. Candidates are ranked by

        score = earliestAge * 100
              + |retirement age change| * 10
              + |contribution change in percentage points| * 2
              + |monthly target change| / 100

    so the earliest goal age dominates and smaller lifestyle changes break
    ties. Only candidates that meet the goal strictly earlier than the current
    plan are suggested.
    """

    @staticmethod
    def suggest(
        contribution: ContributionProfile,
        pension: PensionProfile,
        goal: Goal,
        as_of: Optional[date] = None,
        max_suggestions: int = MAX_SUGGESTIONS
    ) -> OptimizationResult:
        mode = "income" if goal.targetAnnualIncome is not None else "netWorth"
        base_target = goal.targetAnnualIncome if mode == "income" else goal.targetNetWorth

        # Errors in the current plan propagate; only modified candidates are skipped
        baseline_age = OptimizationService.earliest_age(contribution, pension, goal, as_of)
        baseline = OptimizationCandidate(
            retirementAge=contribution.retirementAge,
            employeeContributionRate=contribution.employeeContributionRate,
            target=base_target,
            earliestAgeGoalIsMet=baseline_age,
            score=OptimizationService.score(baseline_age, 0, 0.0, 0.0) if baseline_age is not None else None
        )

        evaluated = 0
        candidates = []
        grid = product(
            OptimizationService.retirement_ages(contribution),
            OptimizationService.contribution_rates(contribution.employeeContributionRate),
            TARGET_SCALES
        )
        for retirement_age, rate, scale in grid:
            age_delta = retirement_age - contribution.retirementAge
            rate_delta = rate - contribution.employeeContributionRate
            target = base_target * scale
            if age_delta == 0 and rate_delta == 0 and scale == 1.0:
                continue

            candidate_contribution = contribution.model_copy(update={
                "retirementAge": retirement_age,
                "employeeContributionRate": rate
            })
            candidate_pension = pension.model_copy(update={
                "retirementAge": pension.retirementAge + age_delta,
                "yearsOfService": pension.yearsOfService + age_delta
            })
            target_field = "targetAnnualIncome" if mode == "income" else "targetNetWorth"
            candidate_goal = goal.model_copy(update={target_field: target})

            evaluated += 1
            try:
                earliest = OptimizationService.earliest_age(candidate_contribution, candidate_pension, candidate_goal, as_of)
            except (ValidationError, ConfigurationError) as e:
                logger.debug(f"Skipping candidate retirementAge={retirement_age} rate={rate:.2f} target={target:.0f}: {e}")
                continue

            if earliest is None:
                continue
            if baseline_age is not None and earliest >= baseline_age:
                continue

            candidates.append(OptimizationCandidate(
                retirementAge=retirement_age,
                employeeContributionRate=rate,
                target=target,
                earliestAgeGoalIsMet=earliest,
                improvementYears=(baseline_age - earliest) if baseline_age is not None else None,
                score=OptimizationService.score(earliest, age_delta, rate_delta, target - base_target)
            ))

        candidates.sort(key=lambda c: c.score)
        logger.info(
            f"Optimization evaluated {evaluated} candidate(s); "
            f"{len(candidates)} improve on earliest age {baseline_age}"
        )
        return OptimizationResult(
            mode=mode,
            baseline=baseline,
            suggestions=candidates[:max_suggestions],
            candidatesEvaluated=evaluated
        )

    @staticmethod
    def earliest_age(
        contribution: ContributionProfile,
        pension: PensionProfile,
        goal: Goal,
        as_of: Optional[date] = None
    ) -> Optional[int]:
        growth = ContributionGrowthSimulator.project(contribution)
        pension_result = PensionCalculator.calculate(pension, through_age=contribution.lifeExpectancyAge)
        return GapAnalyzer.analyze(growth, pension_result, goal, as_of=as_of).earliestAgeGoalIsMet

    @staticmethod
    def retirement_ages(contribution: ContributionProfile) -> List[int]:
        cap = min(MAX_RETIREMENT_AGE, contribution.lifeExpectancyAge)
        base = contribution.retirementAge
        ages = {base}
        for step in RETIREMENT_AGE_STEPS:
            age = base + step
            if contribution.currentAge < age <= cap:
                ages.add(age)
        return sorted(ages)

    @staticmethod
    def contribution_rates(base: float) -> List[float]:
        rates = {base}
        if base < MAX_CONTRIBUTION_RATE:
            rates.update(round(min(MAX_CONTRIBUTION_RATE, base + step), 6) for step in CONTRIBUTION_RATE_STEPS)
        return sorted(rates)

    @staticmethod
    def score(earliest_age: int, age_delta: int, rate_delta: float, annual_target_delta: float) -> float:
        return (
            earliest_age * 100
            + abs(age_delta) * 10
            + abs(rate_delta) * 100 * 2
            + abs(annual_target_delta) / 12 / 100
        )
