import pytest

from fireplan.core.errors import ValidationError
from fireplan.models.profiles import ContributionProfile, PensionProfile, Goal, MultiplierBand, ColaSchedule
from fireplan.services.optimization_service import OptimizationService


def retiree(**overrides):
    # 4% draws from a 5% return: the balance grows 0.8% a year once retired
    data = dict(
        startingBalance=1000000,
        currentAge=60,
        retirementAge=60,
        employeeContributionRate=0.10,
        assumedAnnualReturn=0.05,
        withdrawalRate=0.04,
        lifeExpectancyAge=70,
    )
    data.update(overrides)
    return ContributionProfile(**data)


def token_pension():
    return PensionProfile(
        highAverageSalary=1,
        yearsOfService=1,
        retirementAge=60,
        multiplierTable=[MultiplierBand(multiplier=0.01)],
        colaSchedule=ColaSchedule(rate=0.0),
    )


def test_suggestions_rank_smallest_change_first():
    result = OptimizationService.suggest(retiree(), token_pension(), Goal(targetAnnualIncome=41500))

    assert result.mode == "income"
    assert result.baseline.earliestAgeGoalIsMet == 65
    assert result.candidatesEvaluated == 5 * 4 * 3 - 1

    first, second, third = result.suggestions
    assert (first.retirementAge, first.employeeContributionRate) == (60, 0.10)
    assert first.target == pytest.approx(41500 * 0.95)
    assert first.earliestAgeGoalIsMet == 60
    assert first.improvementYears == 5
    assert first.score == pytest.approx(6000 + 41500 * 0.05 / 1200)

    assert second.target == pytest.approx(41500 * 0.90)
    assert third.employeeContributionRate == pytest.approx(0.12)
    assert third.target == pytest.approx(41500 * 0.95)


def test_every_suggestion_beats_the_baseline():
    result = OptimizationService.suggest(retiree(), token_pension(), Goal(targetAnnualIncome=41500))

    scores = [s.score for s in result.suggestions]
    assert scores == sorted(scores)
    assert all(s.earliestAgeGoalIsMet < result.baseline.earliestAgeGoalIsMet for s in result.suggestions)


def test_nothing_to_suggest_when_goal_is_met_immediately():
    result = OptimizationService.suggest(retiree(), token_pension(), Goal(targetAnnualIncome=40000))

    assert result.baseline.earliestAgeGoalIsMet == 60
    assert result.suggestions == []


def test_unreachable_baseline_still_gets_suggestions():
    # Retiring at 65 instead grows the balance to about 1.28M before draws start
    result = OptimizationService.suggest(retiree(), token_pension(), Goal(targetAnnualIncome=50000))

    assert result.baseline.earliestAgeGoalIsMet is None
    assert result.suggestions
    assert all(s.improvementYears is None for s in result.suggestions)
    assert all(s.retirementAge > 60 for s in result.suggestions)


def test_retirement_ages_stay_within_horizon():
    assert OptimizationService.retirement_ages(retiree(retirementAge=67)) == [67, 68, 69, 70]
    assert OptimizationService.retirement_ages(retiree(retirementAge=78, lifeExpectancyAge=95)) == [78, 79, 80]


def test_contribution_rates_are_capped():
    assert OptimizationService.contribution_rates(0.45) == [0.45, 0.47, 0.5]
    assert OptimizationService.contribution_rates(0.6) == [0.6]


def test_invalid_plan_is_reported():
    with pytest.raises(ValidationError):
        OptimizationService.suggest(retiree(), token_pension(), Goal())
