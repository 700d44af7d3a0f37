import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from fireplan.core.config import settings
from fireplan.core.errors import (
    FirePlanError,
    ValidationError,
    ConfigurationError,
    MissingDependencyError,
    LimitExceededError,
    ScenarioNotFoundError,
    EntitlementError
)
from fireplan.api.api import api_router
from fireplan.database import async_session_maker, init_db
from fireplan.services.entitlement_service import EntitlementService, HttpBillingClient, StaticBillingClient
from fireplan.services.persistence import SQLScenarioRepository, LocalScenarioStore
from fireplan.services.scenario_store import ScenarioStoreRegistry

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Tests may install their own collaborators before startup
    if getattr(app.state, "registry", None) is None:
        await init_db()
        if settings.BILLING_API_URL:
            billing = HttpBillingClient()
        else:
            logger.warning("BILLING_API_URL not set; every owner gets the free tier")
            billing = StaticBillingClient()
        app.state.entitlements = EntitlementService(billing)
        app.state.registry = ScenarioStoreRegistry(
            SQLScenarioRepository(async_session_maker),
            LocalScenarioStore(settings.LOCAL_STORE_DIR),
            app.state.entitlements
        )
    yield
    await app.state.registry.close()


app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    lifespan=lifespan
)

ERROR_STATUS = [
    (ValidationError, 422),
    (ConfigurationError, 422),
    (MissingDependencyError, 422),
    (LimitExceededError, 409),
    (ScenarioNotFoundError, 404),
    (EntitlementError, 403),
]


@app.exception_handler(FirePlanError)
async def fireplan_exception_handler(request: Request, exc: FirePlanError):
    status_code = next((code for cls, code in ERROR_STATUS if isinstance(exc, cls)), 500)
    content = {"detail": str(exc), "error": type(exc).__name__}
    if isinstance(exc, ValidationError):
        content["field"] = exc.field
    elif isinstance(exc, LimitExceededError):
        content["limit"] = exc.limit
    elif isinstance(exc, EntitlementError):
        content["capability"] = exc.capability
    if status_code == 500:
        logger.error(f"Unhandled {type(exc).__name__} on {request.url.path}: {exc}")
    return JSONResponse(status_code=status_code, content=content)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.error(f"Validation error: {exc.errors()}")
    return JSONResponse(
        status_code=422,
        content={"detail": jsonable_encoder(exc.errors())},
    )


# Set all CORS enabled origins
if settings.CORS_ORIGIN_URLS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGIN_URLS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.include_router(api_router, prefix=settings.API_V1_STR)


@app.get("/health")
def health_check():
    return {"status": "ok"}


@app.get("/")
def root():
    return {"message": "Welcome to FirePlan API (FastAPI)"}
