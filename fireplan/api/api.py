from fastapi import APIRouter
from . import scenarios, calculations, entitlements

api_router = APIRouter()
api_router.include_router(scenarios.router, prefix="/scenarios", tags=["scenarios"])
api_router.include_router(calculations.router, prefix="/calculations", tags=["calculations"])
api_router.include_router(entitlements.router, prefix="/entitlements", tags=["entitlements"])
