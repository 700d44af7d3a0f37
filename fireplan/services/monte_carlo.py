import numpy as np
from datetime import date
from typing import Optional

from fireplan.core.errors import ValidationError
from fireplan.models.profiles import ContributionProfile, Goal
from fireplan.models.results import MonteCarloResult, PensionResult
from fireplan.services.growth_simulator import ContributionGrowthSimulator

# Annual return volatility by risk profile
RISK_PROFILE_VOLATILITY = {
    "none": 0.0,
    "conservative": 0.06,
    "moderate": 0.12,
    "aggressive": 0.18
}

# Clamp draws to avoid extreme tails
RETURN_FLOOR = -0.65
RETURN_CAP = 0.65


class MonteCarloService:
    @staticmethod
    def run_simulation(
        profile: ContributionProfile,
        risk_profile: str = "moderate",
        num_simulations: int = 1000,
        seed: Optional[int] = None,
        goal: Optional[Goal] = None,
        pension: Optional[PensionResult] = None,
        as_of: Optional[date] = None
    ) -> MonteCarloResult:
        """
        Runs a Monte Carlo simulation around the deterministic DC projection.

        The mean return is the profile's `assumedAnnualReturn`; volatility comes
        from `risk_profile`. Contributions and employer match follow the same
        rules as `ContributionGrowthSimulator`.

        Withdrawals depend on the goal:

        * With an income goal, every retired year draws what the pension does not
          cover: max(0, inflated target - pension annuity at that age). A path
          whose balance cannot cover the draw has failed and stays at zero.
        * Otherwise the profile's `withdrawalRate` is taken from the balance, so
          with risk_profile "none" every path equals the deterministic projection.
          A fractional draw can never run out, so no success rate is reported.

        Passing `seed` makes the run reproducible.

        Returns:
            MonteCarloResult: 10th/50th/90th percentile balances by age, the share
            of paths whose funds last to life expectancy and the share that reach
            the goal by the target age.
        """
        ContributionGrowthSimulator.validate(profile)
        if num_simulations < 1:
            raise ValidationError("numSimulations", "must be at least 1")
        sigma = RISK_PROFILE_VOLATILITY.get(risk_profile.lower(), RISK_PROFILE_VOLATILITY["moderate"])
        mu = profile.assumedAnnualReturn
        rng = np.random.default_rng(seed)

        ages = list(range(profile.currentAge, profile.lifeExpectancyAge + 1))
        total_years = len(ages) - 1

        income_mode = goal is not None and goal.targetAnnualIncome is not None
        targets = MonteCarloService.targets_by_year(goal, len(ages))

        sim_balances = np.zeros((num_simulations, total_years + 1))
        sim_balances[:, 0] = profile.startingBalance
        depleted = np.zeros(num_simulations, dtype=bool)

        salary = profile.annualSalary
        for t in range(1, total_years + 1):
            age = ages[t]
            returns = np.clip(rng.normal(mu, sigma, num_simulations), RETURN_FLOOR, RETURN_CAP)
            prev = sim_balances[:, t - 1]

            if age <= profile.retirementAge:
                if t > 1:
                    salary *= (1 + profile.salaryGrowthRate)
                contribution, match = ContributionGrowthSimulator.annual_contribution(profile, salary, age - 1)
                sim_balances[:, t] = prev * (1 + returns) + contribution + match
            elif income_mode:
                need = max(0.0, targets[t] - MonteCarloService.pension_income(pension, age))
                remaining = prev - need
                depleted |= remaining < 0
                sim_balances[:, t] = np.maximum(remaining, 0) * (1 + returns)
            else:
                remaining = prev * (1 - profile.withdrawalRate)
                sim_balances[:, t] = remaining * (1 + returns)
                depleted |= sim_balances[:, t] <= 0

            # Depletion is absorbing
            sim_balances[:, t] = np.where(depleted, 0.0, np.maximum(sim_balances[:, t], 0))

        percentiles = {}
        for p in [10, 50, 90]:
            ts = np.percentile(sim_balances, p, axis=0)
            percentiles[f"{p}th"] = ts.tolist()

        success_rate = None
        if income_mode:
            success_rate = round(float(np.mean(~depleted) * 100.0), 1)

        target_age = None
        fire_probability = None
        if goal is not None and targets:
            target_age = MonteCarloService.target_age(profile, goal, as_of)
            if target_age in ages:
                fire_probability = MonteCarloService.fire_probability(
                    sim_balances[:, ages.index(target_age)],
                    targets[ages.index(target_age)],
                    MonteCarloService.pension_income(pension, target_age),
                    profile.withdrawalRate,
                    income_mode
                )

        return MonteCarloResult(
            percentiles=percentiles,
            success_rate=success_rate,
            fire_probability=fire_probability,
            target_age=target_age,
            withdrawal_mode="need" if income_mode else "rate",
            median_ending_balance=float(np.median(sim_balances[:, -1])),
            ages=ages
        )

    @staticmethod
    def targets_by_year(goal: Optional[Goal], years: int) -> list:
        """Goal target per projection year, inflated from the first year like the gap analysis."""
        if goal is None:
            return []
        base = goal.targetAnnualIncome if goal.targetAnnualIncome is not None else goal.targetNetWorth
        if base is None:
            return []
        targets = []
        target = base
        for i in range(years):
            if i > 0:
                target *= (1 + goal.inflationRate)
            targets.append(target)
        return targets

    @staticmethod
    def pension_income(pension: Optional[PensionResult], age: int) -> float:
        if pension is None or age < pension.startAge:
            return 0.0
        return pension.annuity_at(age)

    @staticmethod
    def target_age(profile: ContributionProfile, goal: Goal, as_of: Optional[date] = None) -> int:
        if goal.targetDate is None:
            return profile.retirementAge
        as_of = as_of or date.today()
        return profile.currentAge + (goal.targetDate.year - as_of.year)

    @staticmethod
    def fire_probability(
        balances: np.ndarray,
        target: float,
        pension_income: float,
        withdrawal_rate: float,
        income_mode: bool
    ) -> float:
        if income_mode:
            values = balances * withdrawal_rate + pension_income
        elif withdrawal_rate > 0:
            values = balances + pension_income / withdrawal_rate
        else:
            values = balances
        return round(float(np.mean(values >= target) * 100.0), 1)
