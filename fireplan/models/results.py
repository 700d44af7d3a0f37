from typing import Optional, List, Dict
from pydantic import BaseModel

# Derived results. Plain data records for the presentation/export layer.

class GrowthYear(BaseModel):
    age: int
    salary: float = 0.0
    contributions: float = 0.0
    employerMatch: float = 0.0
    withdrawal: float = 0.0
    growth: float = 0.0
    endingBalance: float


class GrowthProjection(BaseModel):
    years: List[GrowthYear]
    depleted: bool = False
    depletionAge: Optional[int] = None
    withdrawalRate: float
    retirementAge: int

    def balance_at(self, age: int) -> Optional[float]:
        for row in self.years:
            if row.age == age:
                return row.endingBalance
        return None


class PensionEligibility(BaseModel):
    age: float
    yearsOfService: float
    mra: float
    isEligibleImmediate: bool
    isEligibleImmediateUnreduced: bool
    isEligibleImmediateMra10: bool
    isEligibleDeferred: bool
    mra10ReductionRate: float = 0.0
    messages: List[str] = []


class AnnuityYear(BaseModel):
    age: int
    annuity: float
    colaApplied: float = 0.0


class PensionResult(BaseModel):
    baseAnnualAnnuity: float
    survivorAdjustedAnnuity: float
    projectedAnnuityByYear: List[AnnuityYear]
    multiplier: float
    startAge: int
    monthlyAnnuity: float
    eligibility: Optional[PensionEligibility] = None

    def annuity_at(self, age: int) -> float:
        for row in self.projectedAnnuityByYear:
            if row.age == age:
                return row.annuity
        return 0.0


class BridgeStrategy(BaseModel):
    yearsToBridge: int
    annualShortfall: float
    requiredBridgeAssets: float


class GapResult(BaseModel):
    mode: str  # "income" | "netWorth"
    projectedCombinedIncomeByYear: Dict[int, float]
    shortfallOrSurplusByYear: Dict[int, float]
    targetByYear: Dict[int, float]
    earliestAgeGoalIsMet: Optional[int] = None
    targetAge: Optional[int] = None
    metByTargetDate: Optional[bool] = None
    confidenceLevel: Optional[str] = None
    bridge: Optional[BridgeStrategy] = None
    pensionAssetEquivalent: float = 0.0


class ScenarioResults(BaseModel):
    growth: GrowthProjection
    pension: PensionResult
    gap: GapResult


class MonteCarloResult(BaseModel):
    percentiles: Dict[str, List[float]]  # "10th", "50th", "90th" -> balances by year
    # Share of paths whose funds last to life expectancy; income goals only
    success_rate: Optional[float] = None
    # Share of paths where the goal is met at target_age
    fire_probability: Optional[float] = None
    target_age: Optional[int] = None
    withdrawal_mode: str = "rate"  # "need" | "rate"
    median_ending_balance: float
    ages: List[int]


class OptimizationCandidate(BaseModel):
    retirementAge: int
    employeeContributionRate: float
    target: float  # targetAnnualIncome or targetNetWorth, depending on the goal
    earliestAgeGoalIsMet: Optional[int] = None
    improvementYears: Optional[int] = None
    score: Optional[float] = None


class OptimizationResult(BaseModel):
    mode: str  # "income" | "netWorth"
    baseline: OptimizationCandidate
    suggestions: List[OptimizationCandidate] = []
    candidatesEvaluated: int = 0
