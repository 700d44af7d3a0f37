from uuid import UUID

from fastapi import Depends, HTTPException, status, Request
from fastapi.security import OAuth2PasswordBearer
import jwt

from fireplan.core.config import settings
from fireplan.models.entitlement import Entitlements
from fireplan.services.scenario_store import ScenarioStore

reusable_oauth2 = OAuth2PasswordBearer(
    tokenUrl=f"{settings.API_V1_STR}/auth/login",
    auto_error=False
)


async def get_owner_id(
    request: Request,
    token: str = Depends(reusable_oauth2)
) -> UUID:
    # Try to get token from cookie if not in header
    if not token:
        token = request.cookies.get("access_token")
        if token and token.startswith("Bearer "):
            token = token.split(" ")[1]

    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    try:
        payload = jwt.decode(
            token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM]
        )
        # In 'sub' the identity provider stores the owner id
        return UUID(str(payload.get("sub")))
    except (jwt.InvalidTokenError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Could not validate credentials",
        )


async def get_scenario_store(
    request: Request,
    owner_id: UUID = Depends(get_owner_id)
) -> ScenarioStore:
    return await request.app.state.registry.get(owner_id)


async def get_entitlements(
    request: Request,
    owner_id: UUID = Depends(get_owner_id)
) -> Entitlements:
    return await request.app.state.entitlements.get(owner_id)
