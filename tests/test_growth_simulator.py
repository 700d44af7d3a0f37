import pytest

from fireplan.core.errors import ValidationError
from fireplan.models.profiles import ContributionProfile, MatchTier
from fireplan.services.growth_simulator import ContributionGrowthSimulator


def golden_profile(**overrides):
    data = dict(
        startingBalance=100000,
        currentAge=40,
        retirementAge=60,
        annualSalary=80000,
        salaryGrowthRate=0.0,
        employeeContributionRate=0.10,
        employerMatchSchedule=[MatchTier(upToRate=0.05, matchRate=1.0)],
        assumedAnnualReturn=0.06,
        withdrawalRate=0.04,
        lifeExpectancyAge=95,
    )
    data.update(overrides)
    return ContributionProfile(**data)


def test_golden_balance_at_retirement():
    """
    100k at 40, 80k salary, 10% in with 100% match on the first 5%, 6% return:
    100000 * 1.06^20 + 12000 * (1.06^20 - 1) / 0.06 at age 60.
    """
    projection = ContributionGrowthSimulator.project(golden_profile())

    assert projection.balance_at(60) == pytest.approx(762140.64, abs=0.01)
    assert projection.years[1].contributions == pytest.approx(8000)
    assert projection.years[1].employerMatch == pytest.approx(4000)


def test_first_row_is_opening_snapshot():
    projection = ContributionGrowthSimulator.project(golden_profile())
    first = projection.years[0]

    assert first.age == 40
    assert first.endingBalance == 100000
    assert first.contributions == 0
    assert first.employerMatch == 0
    assert first.withdrawal == 0
    assert first.growth == 0
    assert [row.age for row in projection.years] == list(range(40, 96))


def test_projection_is_deterministic():
    first = ContributionGrowthSimulator.project(golden_profile(salaryGrowthRate=0.03))
    second = ContributionGrowthSimulator.project(golden_profile(salaryGrowthRate=0.03))
    assert first.model_dump() == second.model_dump()


def test_withdrawal_taken_at_start_of_year():
    projection = ContributionGrowthSimulator.project(golden_profile())
    at_retirement = projection.balance_at(60)
    first_retired_year = projection.years[21]

    assert first_retired_year.age == 61
    assert first_retired_year.withdrawal == pytest.approx(at_retirement * 0.04)
    assert first_retired_year.endingBalance == pytest.approx(at_retirement * 0.96 * 1.06)
    assert first_retired_year.contributions == 0


def test_depletion_is_absorbing_and_never_negative():
    profile = golden_profile(
        startingBalance=50000,
        annualSalary=0,
        employerMatchSchedule=[],
        retirementAge=41,
        withdrawalRate=1.0,
        assumedAnnualReturn=0.05,
    )
    projection = ContributionGrowthSimulator.project(profile)

    assert projection.depleted is True
    assert projection.depletionAge == 42
    for row in projection.years:
        assert row.endingBalance >= 0
        if row.age >= projection.depletionAge:
            assert row.endingBalance == 0


def test_negative_returns_do_not_go_below_zero():
    profile = golden_profile(assumedAnnualReturn=-1.0, withdrawalRate=0.5)
    projection = ContributionGrowthSimulator.project(profile)
    assert all(row.endingBalance >= 0 for row in projection.years)
    assert projection.depleted is True


def test_match_bands_are_not_double_counted():
    schedule = [MatchTier(upToRate=0.05, matchRate=0.5), MatchTier(upToRate=0.03, matchRate=1.0)]

    assert ContributionGrowthSimulator.employer_match_rate(0.10, schedule) == pytest.approx(0.04)
    assert ContributionGrowthSimulator.employer_match_rate(0.02, schedule) == pytest.approx(0.02)
    assert ContributionGrowthSimulator.employer_match_rate(0.04, schedule) == pytest.approx(0.035)
    assert ContributionGrowthSimulator.employer_match_rate(0.10, []) == 0


def test_deferral_limit_with_catch_up():
    profile = golden_profile(
        annualSalary=400000,
        annualDeferralLimit=23500,
        catchUpContributionLimit=7500,
        catchUpAge=50,
    )
    employee, _ = ContributionGrowthSimulator.annual_contribution(profile, 400000, 45)
    assert employee == 23500

    employee, _ = ContributionGrowthSimulator.annual_contribution(profile, 400000, 50)
    assert employee == 31000


def test_salary_grows_after_first_year():
    projection = ContributionGrowthSimulator.project(golden_profile(salaryGrowthRate=0.03))
    assert projection.years[1].salary == pytest.approx(80000)
    assert projection.years[2].salary == pytest.approx(82400)


@pytest.mark.parametrize("overrides, field", [
    ({"retirementAge": 100}, "retirementAge"),
    ({"employeeContributionRate": 1.5}, "employeeContributionRate"),
    ({"withdrawalRate": -0.1}, "withdrawalRate"),
    ({"startingBalance": -1}, "startingBalance"),
    ({"employerMatchSchedule": [MatchTier(upToRate=2, matchRate=1)]}, "employerMatchSchedule[0].upToRate"),
])
def test_validation_names_the_field(overrides, field):
    with pytest.raises(ValidationError) as exc_info:
        ContributionGrowthSimulator.project(golden_profile(**overrides))
    assert exc_info.value.field == field
