from datetime import date
from typing import Optional, List, Dict
from pydantic import BaseModel, Field

# Input profiles. All rates are plain 0-1 fractions.
# Range checks live in the calculators so they can report the field by name.

class MatchTier(BaseModel):
    upToRate: float
    matchRate: float


class ContributionProfile(BaseModel):
    startingBalance: float = 0.0
    currentAge: int
    retirementAge: int
    annualSalary: float = 0.0
    salaryGrowthRate: float = 0.0
    employeeContributionRate: float = 0.0
    employerMatchSchedule: List[MatchTier] = []
    assumedAnnualReturn: float = 0.0
    withdrawalRate: float = 0.04
    lifeExpectancyAge: int = 95

    # Optional IRS-style caps on the employee's dollar deferral
    annualDeferralLimit: Optional[float] = None
    catchUpContributionLimit: Optional[float] = None
    catchUpAge: int = 50


class MultiplierBand(BaseModel):
    # A band applies when every condition it sets is met; no conditions = always applies
    minAge: Optional[float] = None
    minYearsOfService: Optional[float] = None
    multiplier: float


class ColaSchedule(BaseModel):
    rate: Optional[float] = None  # None -> COLA tracks that year's inflation
    inflationRate: float = 0.025
    inflationPath: List[float] = []  # per-year inflation starting at the retirement year
    suppressAboveInflation: Optional[float] = None
    suppressBelowInflation: Optional[float] = None
    startAge: Optional[int] = None


DEFAULT_MULTIPLIER_TABLE = [
    {"multiplier": 0.01},
    {"minAge": 62, "minYearsOfService": 20, "multiplier": 0.011},
]

DEFAULT_SURVIVOR_REDUCTIONS = {"none": 0.0, "partial": 0.05, "full": 0.10}


class PensionProfile(BaseModel):
    highAverageSalary: float
    yearsOfService: float
    retirementAge: int
    survivorElection: str = "none"
    multiplierTable: List[MultiplierBand] = Field(
        default_factory=lambda: [MultiplierBand(**b) for b in DEFAULT_MULTIPLIER_TABLE]
    )
    survivorReductions: Dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_SURVIVOR_REDUCTIONS))
    colaSchedule: ColaSchedule = Field(default_factory=ColaSchedule)
    projectionEndAge: int = 85
    minimumRetirementAge: int = 57


class Goal(BaseModel):
    targetAnnualIncome: Optional[float] = None
    targetNetWorth: Optional[float] = None
    targetDate: Optional[date] = None
    inflationRate: float = 0.0
