import math
from typing import List, Optional

from fireplan.core.errors import ValidationError, ConfigurationError
from fireplan.models.profiles import PensionProfile, MultiplierBand, ColaSchedule
from fireplan.models.results import PensionResult, PensionEligibility, AnnuityYear

DEFAULT_MRA = 57
MRA10_REDUCTION_PER_YEAR = 0.05


class PensionCalculator:
    """
    Defined-benefit annuity from high-average salary, service and retirement age.

        base      = highAverageSalary * yearsOfService * multiplier
        survivor  = base * (1 - reductionFactor[survivorElection])

    The multiplier table is banded by age and by service. When more than one
    band applies the higher multiplier wins.
    """

    @staticmethod
    def validate(profile: PensionProfile) -> None:
        if profile.highAverageSalary <= 0:
            raise ValidationError("highAverageSalary", "must be greater than 0")
        if profile.yearsOfService <= 0:
            raise ValidationError("yearsOfService", "must be greater than 0")
        if profile.retirementAge < 0:
            raise ValidationError("retirementAge", "must not be negative")
        for i, band in enumerate(profile.multiplierTable):
            if band.multiplier < 0:
                raise ValidationError(f"multiplierTable[{i}].multiplier", "must not be negative")

    @staticmethod
    def multiplier_for_band(table: List[MultiplierBand], retirement_age: float, years_of_service: float) -> float:
        applicable = [
            band.multiplier for band in table
            if (band.minAge is None or retirement_age >= band.minAge)
            and (band.minYearsOfService is None or years_of_service >= band.minYearsOfService)
        ]
        if not applicable:
            raise ConfigurationError(
                f"No multiplier band applies to retirement age {retirement_age} "
                f"with {years_of_service} years of service"
            )
        return max(applicable)

    @staticmethod
    def survivor_reduction(profile: PensionProfile) -> float:
        election = profile.survivorElection
        if election not in profile.survivorReductions:
            raise ConfigurationError(
                f"Unknown survivorElection '{election}'. "
                f"Expected one of: {', '.join(sorted(profile.survivorReductions))}"
            )
        factor = profile.survivorReductions[election]
        if not 0 <= factor <= 1:
            raise ConfigurationError(f"Survivor reduction for '{election}' must be between 0 and 1, got {factor}")
        return factor

    @staticmethod
    def cola_for_year(schedule: ColaSchedule, year_index: int) -> float:
        """
        COLA granted for one year, decided from that year's inflation only.
        Suppression thresholds are evaluated per year, never averaged.
        """
        if year_index < len(schedule.inflationPath):
            inflation = schedule.inflationPath[year_index]
        else:
            inflation = schedule.inflationRate

        if schedule.suppressAboveInflation is not None and inflation > schedule.suppressAboveInflation:
            return 0.0
        if schedule.suppressBelowInflation is not None and inflation < schedule.suppressBelowInflation:
            return 0.0

        return inflation if schedule.rate is None else schedule.rate

    @staticmethod
    def calculate(profile: PensionProfile, through_age: Optional[int] = None) -> PensionResult:
        PensionCalculator.validate(profile)

        multiplier = PensionCalculator.multiplier_for_band(
            profile.multiplierTable, profile.retirementAge, profile.yearsOfService
        )
        base = profile.highAverageSalary * profile.yearsOfService * multiplier
        reduction = PensionCalculator.survivor_reduction(profile)
        survivor_adjusted = base * (1 - reduction)

        end_age = max(profile.projectionEndAge, through_age or 0)
        schedule = profile.colaSchedule
        cola_start = schedule.startAge if schedule.startAge is not None else profile.retirementAge

        by_year = []
        annuity = survivor_adjusted
        for i, age in enumerate(range(profile.retirementAge, end_age + 1)):
            cola = 0.0
            # First year pays the starting annuity; COLA compounds from the next year on
            if i > 0 and age >= cola_start:
                cola = PensionCalculator.cola_for_year(schedule, i)
                annuity *= (1 + cola)
            by_year.append(AnnuityYear(age=age, annuity=annuity, colaApplied=cola))

        return PensionResult(
            baseAnnualAnnuity=base,
            survivorAdjustedAnnuity=survivor_adjusted,
            projectedAnnuityByYear=by_year,
            multiplier=multiplier,
            startAge=profile.retirementAge,
            monthlyAnnuity=survivor_adjusted / 12,
            eligibility=PensionCalculator.evaluate_eligibility(
                profile.retirementAge, profile.yearsOfService, profile.minimumRetirementAge
            )
        )

    # Eligibility (informational, does not alter the annuity)

    @staticmethod
    def mra10_reduction_rate(annuity_start_age: float, mra: float = DEFAULT_MRA) -> float:
        """Simplified MRA+10 reduction: 5% per year under 62."""
        if annuity_start_age <= 0 or annuity_start_age >= 62 or annuity_start_age < mra:
            return 0.0
        return max(0.0, (62 - annuity_start_age) * MRA10_REDUCTION_PER_YEAR)

    @staticmethod
    def evaluate_eligibility(age: float, years_of_service: float, mra: float = DEFAULT_MRA) -> PensionEligibility:
        immediate_full = (
            (age >= 62 and years_of_service >= 5)
            or (age >= 60 and years_of_service >= 20)
            or (age >= mra and years_of_service >= 30)
        )
        immediate_mra10 = not immediate_full and age >= mra and years_of_service >= 10
        deferred = years_of_service >= 5

        reduction = 0.0
        messages = []
        if immediate_full:
            messages.append("Eligible for immediate retirement (unreduced annuity)")
        elif immediate_mra10:
            reduction = PensionCalculator.mra10_reduction_rate(age, mra)
            messages.append(f"Eligible for immediate retirement under MRA+10 (reduction: ~{reduction * 100:.1f}%)")
        elif deferred:
            messages.append("Not eligible for immediate retirement; may be eligible for deferred retirement")
        else:
            messages.append("Not eligible yet (needs at least 5 years of service for deferred options)")

        return PensionEligibility(
            age=age,
            yearsOfService=years_of_service,
            mra=mra,
            isEligibleImmediate=immediate_full or immediate_mra10,
            isEligibleImmediateUnreduced=immediate_full,
            isEligibleImmediateMra10=immediate_mra10,
            isEligibleDeferred=deferred,
            mra10ReductionRate=reduction,
            messages=messages
        )

    @staticmethod
    def find_earliest_immediate_retirement_age(
        current_age: float,
        years_of_service: float,
        mra: float = DEFAULT_MRA,
        max_age_to_check: int = 70
    ) -> Optional[int]:
        if current_age <= 0 or max_age_to_check < current_age:
            return None

        for age in range(math.ceil(current_age), max_age_to_check + 1):
            projected_years = years_of_service + max(0, age - current_age)
            if PensionCalculator.evaluate_eligibility(age, projected_years, mra).isEligibleImmediate:
                return age
        return None
