from typing import List, Tuple

from fireplan.core.errors import ValidationError
from fireplan.models.profiles import ContributionProfile, MatchTier
from fireplan.models.results import GrowthProjection, GrowthYear


class ContributionGrowthSimulator:
    """
    Year-by-year simulation of a defined-contribution account.

    Accumulation phase (every year that ends at or before `retirementAge`):
        balance = balance * (1 + return) + employee contribution + employer match
    Salary grows geometrically by `salaryGrowthRate`.

    Withdrawal phase (after `retirementAge`):
        withdrawal = withdrawalRate * balance, taken at the start of the year,
        the remainder compounds at `assumedAnnualReturn`.

    Once the balance hits zero in the withdrawal phase it is clamped there for
    good and `depleted` records the age at which it happened.

    Pure function of its input: no I/O, no clock, no randomness.
    """

    @staticmethod
    def validate(profile: ContributionProfile) -> None:
        """Raises ValidationError naming the first offending field."""
        for field in ("currentAge", "retirementAge", "lifeExpectancyAge"):
            if getattr(profile, field) < 0:
                raise ValidationError(field, "must not be negative")
        if profile.retirementAge > profile.lifeExpectancyAge:
            raise ValidationError("retirementAge", "must not exceed lifeExpectancyAge")
        if profile.currentAge > profile.lifeExpectancyAge:
            raise ValidationError("currentAge", "must not exceed lifeExpectancyAge")

        if not 0 <= profile.employeeContributionRate <= 1:
            raise ValidationError("employeeContributionRate", "must be between 0 and 1")
        if not 0 <= profile.withdrawalRate <= 1:
            raise ValidationError("withdrawalRate", "must be between 0 and 1")
        if profile.startingBalance < 0:
            raise ValidationError("startingBalance", "must not be negative")
        if profile.annualSalary < 0:
            raise ValidationError("annualSalary", "must not be negative")
        if profile.assumedAnnualReturn < -1:
            raise ValidationError("assumedAnnualReturn", "cannot lose more than 100% in a year")
        if profile.salaryGrowthRate < -1:
            raise ValidationError("salaryGrowthRate", "cannot shrink by more than 100% in a year")

        for i, tier in enumerate(profile.employerMatchSchedule):
            if not 0 <= tier.upToRate <= 1:
                raise ValidationError(f"employerMatchSchedule[{i}].upToRate", "must be between 0 and 1")
            if tier.matchRate < 0:
                raise ValidationError(f"employerMatchSchedule[{i}].matchRate", "must not be negative")

        for field in ("annualDeferralLimit", "catchUpContributionLimit"):
            limit = getattr(profile, field)
            if limit is not None and limit < 0:
                raise ValidationError(field, "must not be negative")

    @staticmethod
    def employer_match_rate(contribution_rate: float, schedule: List[MatchTier]) -> float:
        """
        Effective match as a fraction of salary.

        Tiers are walked in ascending `upToRate` order; each tier only matches the
        band of the contribution rate between the previous tier's cap and its own,
        so an already-matched band is never matched twice.

        e.g. [{upTo: 0.03, rate: 1.0}, {upTo: 0.05, rate: 0.5}] at 10% -> 0.03 + 0.01 = 0.04
        """
        matched = 0.0
        previous_cap = 0.0
        for tier in sorted(schedule, key=lambda t: t.upToRate):
            band_top = min(contribution_rate, tier.upToRate)
            band = band_top - previous_cap
            if band > 0:
                matched += tier.matchRate * band
            previous_cap = max(previous_cap, tier.upToRate)
            if contribution_rate <= previous_cap:
                break
        return matched

    @staticmethod
    def annual_contribution(profile: ContributionProfile, salary: float, age: int) -> Tuple[float, float]:
        """Returns (employee contribution, employer match) in dollars for one working year."""
        employee = salary * profile.employeeContributionRate

        if profile.annualDeferralLimit is not None:
            limit = profile.annualDeferralLimit
            if profile.catchUpContributionLimit is not None and age >= profile.catchUpAge:
                limit += profile.catchUpContributionLimit
            employee = min(employee, limit)

        match = salary * ContributionGrowthSimulator.employer_match_rate(
            profile.employeeContributionRate, profile.employerMatchSchedule
        )
        return employee, match

    @staticmethod
    def project(profile: ContributionProfile) -> GrowthProjection:
        ContributionGrowthSimulator.validate(profile)

        r = profile.assumedAnnualReturn
        balance = profile.startingBalance
        salary = profile.annualSalary

        # Year 0: opening snapshot, no flows
        years = [GrowthYear(age=profile.currentAge, salary=salary, endingBalance=balance)]
        depleted = False
        depletion_age = None

        for age in range(profile.currentAge + 1, profile.lifeExpectancyAge + 1):
            working_year = age <= profile.retirementAge

            if working_year:
                # Salary for the first simulated year is the current salary
                if age > profile.currentAge + 1:
                    salary *= (1 + profile.salaryGrowthRate)
                contribution, match = ContributionGrowthSimulator.annual_contribution(profile, salary, age - 1)
                growth = balance * r
                balance = balance + growth + contribution + match
                years.append(GrowthYear(
                    age=age,
                    salary=salary,
                    contributions=contribution,
                    employerMatch=match,
                    growth=growth,
                    endingBalance=max(0.0, balance)
                ))
                balance = max(0.0, balance)
                continue

            if depleted:
                years.append(GrowthYear(age=age, endingBalance=0.0))
                continue

            withdrawal = balance * profile.withdrawalRate
            remaining = balance - withdrawal
            growth = remaining * r
            balance = remaining + growth

            if balance <= 0:
                balance = 0.0
                depleted = True
                depletion_age = age

            years.append(GrowthYear(
                age=age,
                withdrawal=withdrawal,
                growth=growth,
                endingBalance=balance
            ))

        return GrowthProjection(
            years=years,
            depleted=depleted,
            depletionAge=depletion_age,
            withdrawalRate=profile.withdrawalRate,
            retirementAge=profile.retirementAge
        )
