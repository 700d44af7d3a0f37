from datetime import date

import pytest

from fireplan.core.errors import MissingDependencyError, ValidationError
from fireplan.models.profiles import ContributionProfile, PensionProfile, Goal, MultiplierBand, ColaSchedule
from fireplan.models.results import GrowthProjection, GrowthYear, PensionResult, AnnuityYear
from fireplan.services.gap_analyzer import GapAnalyzer
from fireplan.services.growth_simulator import ContributionGrowthSimulator
from fireplan.services.pension_calculator import PensionCalculator


def flat_projection(balances, start_age=60, withdrawal_rate=0.04):
    years = [GrowthYear(age=start_age + i, endingBalance=b) for i, b in enumerate(balances)]
    return GrowthProjection(years=years, withdrawalRate=withdrawal_rate, retirementAge=start_age)


def no_pension(start_age=200):
    return PensionResult(
        baseAnnualAnnuity=0,
        survivorAdjustedAnnuity=0,
        projectedAnnuityByYear=[],
        multiplier=0,
        startAge=start_age,
        monthlyAnnuity=0,
    )


def test_single_good_year_is_not_reported():
    # 4% of 1M = 40k meets the goal only at 61
    projection = flat_projection([500000, 1000000, 500000, 500000])
    result = GapAnalyzer.analyze(projection, no_pension(), Goal(targetAnnualIncome=40000))

    assert result.shortfallOrSurplusByYear[61] <= 0
    assert result.earliestAgeGoalIsMet is None


def test_earliest_age_is_durable():
    projection = flat_projection([500000, 1000000, 500000, 1000000, 1200000])
    result = GapAnalyzer.analyze(projection, no_pension(), Goal(targetAnnualIncome=40000))

    assert result.earliestAgeGoalIsMet == 63
    assert result.mode == "income"
    assert result.projectedCombinedIncomeByYear[64] == pytest.approx(48000)
    assert result.shortfallOrSurplusByYear[64] == pytest.approx(-8000)


def test_pension_income_counts_from_its_start_age():
    projection = flat_projection([0, 0, 0, 0])
    pension = PensionResult(
        baseAnnualAnnuity=30000,
        survivorAdjustedAnnuity=30000,
        projectedAnnuityByYear=[AnnuityYear(age=a, annuity=30000) for a in range(62, 64)],
        multiplier=0.01,
        startAge=62,
        monthlyAnnuity=2500,
    )
    result = GapAnalyzer.analyze(projection, pension, Goal(targetAnnualIncome=30000))

    assert result.projectedCombinedIncomeByYear[61] == 0
    assert result.projectedCombinedIncomeByYear[62] == pytest.approx(30000)
    assert result.earliestAgeGoalIsMet == 62
    assert result.pensionAssetEquivalent == pytest.approx(750000)


def test_target_is_inflated_after_first_year():
    projection = flat_projection([1000000, 1000000, 1000000])
    result = GapAnalyzer.analyze(projection, no_pension(), Goal(targetAnnualIncome=40000, inflationRate=0.10))

    assert result.targetByYear[60] == pytest.approx(40000)
    assert result.targetByYear[61] == pytest.approx(44000)
    assert result.targetByYear[62] == pytest.approx(48400)
    assert result.earliestAgeGoalIsMet is None


def test_net_worth_mode_values_pension_as_assets():
    projection = flat_projection([400000, 500000])
    pension = PensionResult(
        baseAnnualAnnuity=20000,
        survivorAdjustedAnnuity=20000,
        projectedAnnuityByYear=[AnnuityYear(age=60, annuity=20000), AnnuityYear(age=61, annuity=20000)],
        multiplier=0.01,
        startAge=60,
        monthlyAnnuity=20000 / 12,
    )
    result = GapAnalyzer.analyze(projection, pension, Goal(targetNetWorth=1000000))

    assert result.mode == "netWorth"
    assert result.projectedCombinedIncomeByYear[60] == pytest.approx(900000)
    assert result.projectedCombinedIncomeByYear[61] == pytest.approx(1000000)
    assert result.earliestAgeGoalIsMet == 61


@pytest.mark.parametrize("missing", ["projection", "pension", "goal"])
def test_missing_input_is_reported(missing):
    args = {"projection": flat_projection([0]), "pension": no_pension(), "goal": Goal(targetAnnualIncome=1)}
    args[missing] = None
    with pytest.raises(MissingDependencyError):
        GapAnalyzer.analyze(**args)


def test_goal_needs_exactly_one_target():
    with pytest.raises(ValidationError):
        GapAnalyzer.analyze(flat_projection([0]), no_pension(), Goal())
    with pytest.raises(ValidationError):
        GapAnalyzer.analyze(flat_projection([0]), no_pension(), Goal(targetAnnualIncome=1, targetNetWorth=1))


def test_target_date_drives_confidence_and_bridge():
    contribution = ContributionProfile(
        startingBalance=800000,
        currentAge=55,
        retirementAge=57,
        assumedAnnualReturn=0.0,
        withdrawalRate=0.04,
        lifeExpectancyAge=70,
    )
    pension = PensionProfile(
        highAverageSalary=100000,
        yearsOfService=20,
        retirementAge=62,
        multiplierTable=[MultiplierBand(multiplier=0.01)],
        colaSchedule=ColaSchedule(rate=0.0),
    )
    projection = ContributionGrowthSimulator.project(contribution)
    pension_result = PensionCalculator.calculate(pension, through_age=70)

    goal = Goal(targetAnnualIncome=40000, targetDate=date(2028, 6, 1))
    result = GapAnalyzer.analyze(projection, pension_result, goal, as_of=date(2026, 1, 1))

    assert result.targetAge == 57
    assert result.bridge.yearsToBridge == 5
    # 4% of 800k is 32k against a 40k goal
    assert result.bridge.annualShortfall == pytest.approx(8000)
    assert result.bridge.requiredBridgeAssets == pytest.approx(40000)
    assert result.confidenceLevel == "low"


def test_confidence_levels():
    assert GapAnalyzer.confidence_level(100, 10) == "low"
    assert GapAnalyzer.confidence_level(100, -5) == "low"
    assert GapAnalyzer.confidence_level(100, -10) == "medium"
    assert GapAnalyzer.confidence_level(100, -30) == "high"
