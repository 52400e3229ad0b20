from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from timing_asgi import TimingMiddleware, TimingClient  # type: ignore
from timing_asgi.integrations import StarletteScopeToName  # type: ignore

from bizrole.core import config
from bizrole.core.database.engine import init_db
from bizrole.core.exceptions import ConflictError, CycleError, RoleCreationError, ValidationError
from bizrole.features.authorization.dependencies import get_principal_key
from bizrole.features.authorization.routes import router as authorization_router
from bizrole.features.data_permissions.routes import router as data_permission_router
from bizrole.features.roles.routes import router as role_router
from bizrole.utils import get_logger


log = get_logger(__name__)
log.info("Initializing server")
app = FastAPI(
    title="BizRole",
    description="Role based access control with row level data permissions",
    version="0.1.0",
    docs_url="/docs" if config.ENABLE_DOCS else None,
    redoc_url="/redoc" if config.ENABLE_DOCS else None,
    openapi_url="/openapi.json" if config.ENABLE_DOCS else None
)
limiter = Limiter(key_func=get_principal_key, default_limits=[config.RATE_LIMIT])
app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)


class PrintTimings(TimingClient):
    def timing(self, metric_name, timing, tags):
        log.debug(dict(route=metric_name.removeprefix("main.bizrole.features."), timing=timing, tags=tags))


app.add_middleware(TimingMiddleware, client=PrintTimings(), metric_namer=StarletteScopeToName("main", app))

if config.ENABLE_DOCS:
    log.warning("Docs enabled")
if config.ALLOW_ORIGIN:
    log.warning("Setting allow origin to %s", config.ALLOW_ORIGIN)
    origins = [config.ALLOW_ORIGIN]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_request: Request, exc: RequestValidationError):
    errors = dict()
    for error in exc.errors():
        if "loc" not in error or "msg" not in error:
            continue
        key = error["loc"][-1]
        if key == "__root__":
            key = "root"
        errors[key] = error["msg"]
    log.info("Request validation error %s", errors)
    return JSONResponse(status_code=400, content=jsonable_encoder(errors))


@app.exception_handler(ValidationError)
async def field_validation_handler(_request: Request, exc: ValidationError):
    log.info("Field validation error %s: %s", exc.field, exc.message)
    return JSONResponse(status_code=400, content={exc.field: exc.message})


@app.exception_handler(CycleError)
async def cycle_handler(_request: Request, exc: CycleError):
    return JSONResponse(status_code=400, content={"hierarchical_roles": exc.message})


@app.exception_handler(ConflictError)
async def conflict_handler(_request: Request, exc: ConflictError):
    return JSONResponse(status_code=409, content={"error": exc.message})


@app.exception_handler(RoleCreationError)
async def role_creation_handler(_request: Request, exc: RoleCreationError):
    log.error("Role creation failed: %s", exc.message)
    return JSONResponse(status_code=500, content={"error": exc.message})


@app.exception_handler(RateLimitExceeded)
def rate_limit_exceeded_handler(_request: Request, _exc: RateLimitExceeded) -> Response:
    return JSONResponse({"error": "You are going too fast"}, status_code=429)


@app.on_event("startup")
async def startup():
    """Initialize database on application startup."""
    log.info("Initializing database...")
    await init_db()
    log.info("Database initialized successfully")


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


# Role routes
app.include_router(role_router, prefix="/roles", tags=["roles"])

# Data permission rule routes
app.include_router(data_permission_router, prefix="/data-permissions", tags=["data-permissions"])

# Authorization checks for the current principal
app.include_router(authorization_router, prefix="/authorization", tags=["authorization"])
