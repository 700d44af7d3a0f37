from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from fireplan.api import deps
from fireplan.models.entitlement import Entitlements
from fireplan.models.profiles import ContributionProfile, PensionProfile, Goal
from fireplan.models.results import (
    GrowthProjection,
    PensionResult,
    PensionEligibility,
    ScenarioResults,
    MonteCarloResult,
    OptimizationResult
)
from fireplan.core.errors import EntitlementError
from fireplan.services.growth_simulator import ContributionGrowthSimulator
from fireplan.services.pension_calculator import PensionCalculator, DEFAULT_MRA
from fireplan.services.gap_analyzer import GapAnalyzer
from fireplan.services.monte_carlo import MonteCarloService
from fireplan.services.optimization_service import OptimizationService

router = APIRouter()


class GapRequest(BaseModel):
    contributionProfile: ContributionProfile
    pensionProfile: PensionProfile
    goal: Goal
    asOf: Optional[date] = None


class MonteCarloRequest(BaseModel):
    contributionProfile: ContributionProfile
    pensionProfile: Optional[PensionProfile] = None
    goal: Optional[Goal] = None
    asOf: Optional[date] = None
    riskProfile: str = "moderate"
    numSimulations: int = 1000
    seed: Optional[int] = None


class EligibilityRequest(BaseModel):
    currentAge: float
    yearsOfService: float
    mra: float = DEFAULT_MRA


class EligibilityResponse(BaseModel):
    current: PensionEligibility
    earliestImmediateRetirementAge: Optional[int] = None


@router.post("/growth", response_model=GrowthProjection)
async def project_growth(
    profile: ContributionProfile,
    owner_id: UUID = Depends(deps.get_owner_id),
):
    return ContributionGrowthSimulator.project(profile)


@router.post("/pension", response_model=PensionResult)
async def calculate_pension(
    profile: PensionProfile,
    owner_id: UUID = Depends(deps.get_owner_id),
):
    return PensionCalculator.calculate(profile)


@router.post("/pension/eligibility", response_model=EligibilityResponse)
async def pension_eligibility(
    request_in: EligibilityRequest,
    owner_id: UUID = Depends(deps.get_owner_id),
):
    return EligibilityResponse(
        current=PensionCalculator.evaluate_eligibility(request_in.currentAge, request_in.yearsOfService, request_in.mra),
        earliestImmediateRetirementAge=PensionCalculator.find_earliest_immediate_retirement_age(
            request_in.currentAge, request_in.yearsOfService, request_in.mra
        )
    )


@router.post("/gap", response_model=ScenarioResults)
async def analyze_gap(
    request_in: GapRequest,
    owner_id: UUID = Depends(deps.get_owner_id),
):
    """
    Runs growth, pension and gap analysis on unsaved inputs in one call.
    """
    growth = ContributionGrowthSimulator.project(request_in.contributionProfile)
    pension = PensionCalculator.calculate(
        request_in.pensionProfile,
        through_age=request_in.contributionProfile.lifeExpectancyAge
    )
    gap = GapAnalyzer.analyze(growth, pension, request_in.goal, as_of=request_in.asOf)
    return ScenarioResults(growth=growth, pension=pension, gap=gap)


@router.post("/monte-carlo", response_model=MonteCarloResult)
async def run_monte_carlo(
    request_in: MonteCarloRequest,
    entitlements: Entitlements = Depends(deps.get_entitlements),
):
    """
    Market-variability simulation around the DC projection. Pro plans only.

    With an income goal, retired years draw what the pension leaves uncovered
    and the result reports how often the money lasts.
    """
    if not entitlements.has("advancedAnalytics"):
        raise EntitlementError("advancedAnalytics")
    pension = None
    if request_in.pensionProfile is not None:
        pension = PensionCalculator.calculate(
            request_in.pensionProfile,
            through_age=request_in.contributionProfile.lifeExpectancyAge
        )
    return MonteCarloService.run_simulation(
        request_in.contributionProfile,
        risk_profile=request_in.riskProfile,
        num_simulations=min(max(request_in.numSimulations, 1), 10000),
        seed=request_in.seed,
        goal=request_in.goal,
        pension=pension,
        as_of=request_in.asOf
    )


@router.post("/optimize", response_model=OptimizationResult)
async def optimize_plan(
    request_in: GapRequest,
    entitlements: Entitlements = Depends(deps.get_entitlements),
):
    """
    Searches later retirement ages, higher contribution rates and lower targets
    for plans that meet the goal sooner. Pro plans only.
    """
    if not entitlements.has("advancedAnalytics"):
        raise EntitlementError("advancedAnalytics")
    return OptimizationService.suggest(
        request_in.contributionProfile,
        request_in.pensionProfile,
        request_in.goal,
        as_of=request_in.asOf
    )
