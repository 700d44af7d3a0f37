from fastapi import APIRouter, Depends

from fireplan.api import deps
from fireplan.models.entitlement import Entitlements

router = APIRouter()


@router.get("", response_model=Entitlements)
async def get_entitlements(
    entitlements: Entitlements = Depends(deps.get_entitlements),
):
    """
    Current plan tier, scenario cap and capability set for the authenticated owner.
    """
    return entitlements
