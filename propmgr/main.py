import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import text
from starlette.exceptions import HTTPException as StarletteHTTPException

from propmgr.core.config import settings
from propmgr.core.database import Base, SessionLocal, engine
from propmgr.core.errors import AppError, InternalError, ValidationError
from propmgr.api.routes.audit_logs import router as audit_logs_router
from propmgr.api.routes.comments import router as comments_router
from propmgr.api.routes.leases import router as leases_router
from propmgr.api.routes.maintenance import router as maintenance_router
from propmgr.api.routes.messages import router as messages_router
from propmgr.api.routes.notifications import router as notifications_router
from propmgr.api.routes.onboarding import router as onboarding_router
from propmgr.api.routes.properties import router as properties_router
from propmgr.api.routes.rent_schedules import router as rent_schedules_router
from propmgr.api.routes.rents import router as rents_router
from propmgr.api.routes.units import router as units_router
from propmgr.api.routes.users import router as users_router
import propmgr.models  # noqa: F401  (register every table on Base.metadata)

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.AUTO_CREATE_TABLES:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables ensured")
    yield


# 1) Create the app FIRST
app = FastAPI(title="Property Management Backend", lifespan=lifespan)

# 2) Add CORS Middleware BEFORE routes
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# 3) Error rendering: every failure is {"error", "message", "details"?}
@app.exception_handler(AppError)
def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


@app.exception_handler(RequestValidationError)
def request_validation_handler(request: Request, exc: RequestValidationError):
    err = ValidationError("Invalid request", details=exc.errors())
    return JSONResponse(status_code=err.status_code, content=jsonable_encoder(err.to_dict()))


@app.exception_handler(PydanticValidationError)
def pydantic_validation_handler(request: Request, exc: PydanticValidationError):
    # form payloads are validated inside the handler, not by FastAPI
    err = ValidationError("Invalid request", details=exc.errors(include_url=False, include_context=False))
    return JSONResponse(status_code=err.status_code, content=jsonable_encoder(err.to_dict()))


@app.exception_handler(StarletteHTTPException)
def http_exception_handler(request: Request, exc: StarletteHTTPException):
    kinds = {401: "authentication_error", 403: "authorization_error", 404: "not_found"}
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": kinds.get(exc.status_code, "http_error"), "message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    err = InternalError("Internal server error")
    return JSONResponse(status_code=err.status_code, content=err.to_dict())


# 4) Include routers AFTER app is created
app.include_router(users_router)
app.include_router(properties_router)
app.include_router(units_router)
app.include_router(leases_router)
app.include_router(rents_router)
app.include_router(rent_schedules_router)
app.include_router(messages_router)
app.include_router(onboarding_router)
app.include_router(comments_router)
app.include_router(maintenance_router)
app.include_router(notifications_router)
app.include_router(audit_logs_router)


# 5) Health check endpoints
@app.get("/health")
def health():
    return {"ok": True, "service": "propmgr"}


@app.get("/db-health")
def db_health():
    db = SessionLocal()
    try:
        db.execute(text("select 1"))
        return {"ok": True, "db": "connected"}
    finally:
        db.close()
