from datetime import date
from typing import Optional, Dict

from fireplan.core.errors import ValidationError, MissingDependencyError
from fireplan.models.profiles import Goal
from fireplan.models.results import GrowthProjection, PensionResult, GapResult, BridgeStrategy


class GapAnalyzer:
    """
    Compares combined DC + DB income against an inflating FIRE goal.

    Income mode:     combined_t = balance_t * withdrawalRate + pension_t
    Net-worth mode:  combined_t = balance_t + pension_t / withdrawalRate

    The goal only counts as met from an age where the shortfall is <= 0 and
    stays <= 0 through the end of the horizon.
    """

    @staticmethod
    def analyze(
        projection: Optional[GrowthProjection],
        pension: Optional[PensionResult],
        goal: Optional[Goal],
        as_of: Optional[date] = None
    ) -> GapResult:
        if projection is None:
            raise MissingDependencyError("growth projection")
        if pension is None:
            raise MissingDependencyError("pension result")
        if goal is None:
            raise MissingDependencyError("goal")

        has_income = goal.targetAnnualIncome is not None
        has_net_worth = goal.targetNetWorth is not None
        if has_income == has_net_worth:
            raise ValidationError("goal", "exactly one of targetAnnualIncome or targetNetWorth is required")
        if goal.inflationRate < -1:
            raise ValidationError("inflationRate", "cannot deflate by more than 100% in a year")

        mode = "income" if has_income else "netWorth"
        base_target = goal.targetAnnualIncome if has_income else goal.targetNetWorth
        if base_target < 0:
            raise ValidationError("targetAnnualIncome" if has_income else "targetNetWorth", "must not be negative")

        swr = projection.withdrawalRate
        if mode == "netWorth" and swr <= 0:
            raise ValidationError("withdrawalRate", "must be greater than 0 to value a pension as net worth")

        pension_by_age = {row.age: row.annuity for row in pension.projectedAnnuityByYear}
        first_age = projection.years[0].age

        combined: Dict[int, float] = {}
        targets: Dict[int, float] = {}
        shortfalls: Dict[int, float] = {}
        dc_only: Dict[int, float] = {}

        target = base_target
        for i, row in enumerate(projection.years):
            if i > 0:
                target *= (1 + goal.inflationRate)

            pension_income = pension_by_age.get(row.age, 0.0) if row.age >= pension.startAge else 0.0
            if mode == "income":
                dc_value = row.endingBalance * swr
                value = dc_value + pension_income
            else:
                dc_value = row.endingBalance
                value = dc_value + pension_income / swr

            combined[row.age] = value
            targets[row.age] = target
            shortfalls[row.age] = target - value
            dc_only[row.age] = dc_value

        earliest = GapAnalyzer.earliest_durable_age(shortfalls)

        result = GapResult(
            mode=mode,
            projectedCombinedIncomeByYear=combined,
            shortfallOrSurplusByYear=shortfalls,
            targetByYear=targets,
            earliestAgeGoalIsMet=earliest,
            pensionAssetEquivalent=(pension.survivorAdjustedAnnuity / swr) if swr > 0 else 0.0
        )

        if goal.targetDate is not None:
            as_of = as_of or date.today()
            target_age = first_age + (goal.targetDate.year - as_of.year)
            result.targetAge = target_age
            result.metByTargetDate = earliest is not None and earliest <= target_age

            if target_age in shortfalls:
                result.confidenceLevel = GapAnalyzer.confidence_level(targets[target_age], shortfalls[target_age])
                result.bridge = GapAnalyzer.bridge_strategy(
                    target_age, pension.startAge, targets[target_age], dc_only[target_age]
                )

        return result

    @staticmethod
    def earliest_durable_age(shortfalls: Dict[int, float]) -> Optional[int]:
        """First age from which every remaining year has shortfall <= 0."""
        earliest = None
        for age in sorted(shortfalls, reverse=True):
            if shortfalls[age] > 0:
                break
            earliest = age
        return earliest

    @staticmethod
    def confidence_level(target: float, shortfall: float) -> str:
        if shortfall > 0:
            return "low"
        surplus_pct = (-shortfall / (target if target > 0 else 1)) * 100
        if surplus_pct >= 25:
            return "high"
        if surplus_pct >= 10:
            return "medium"
        return "low"

    @staticmethod
    def bridge_strategy(target_age: int, pension_start_age: int, target: float, dc_value: float) -> BridgeStrategy:
        """
        Level-dollar estimate of the assets needed to cover the years between the
        goal age and the pension start, ignoring growth.
        """
        years_to_bridge = max(0, pension_start_age - target_age)
        annual_shortfall = max(0.0, target - dc_value)
        return BridgeStrategy(
            yearsToBridge=years_to_bridge,
            annualShortfall=annual_shortfall,
            requiredBridgeAssets=annual_shortfall * years_to_bridge
        )
