from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from hr_overtime.api.routes import health, overtime
from hr_overtime.config import get_settings
from hr_overtime.errors import (
    ConfirmationRequired,
    InvalidTransition,
    OvertimeError,
    PermissionDenied,
    PersistenceError,
    RecordNotFound,
    ValidationError,
)
from hr_overtime.logging import configure_logging, get_logger
from hr_overtime.monitoring import configure_error_monitoring

settings = get_settings()

configure_logging(settings.log_level)
configure_error_monitoring(settings)
logger = get_logger(__name__)

app = FastAPI(title=settings.app_name)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[str(origin) for origin in settings.cors_origins] or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(overtime.router)


def status_for(exc: OvertimeError) -> int:
    # Order matters: InvalidTransition is a ValidationError.
    if isinstance(exc, (InvalidTransition, ConfirmationRequired)):
        return 409
    if isinstance(exc, ValidationError):
        return 422
    if isinstance(exc, PermissionDenied):
        return 403
    if isinstance(exc, RecordNotFound):
        return 404
    if isinstance(exc, PersistenceError):
        return 503
    return 400


@app.exception_handler(OvertimeError)
def overtime_error_handler(request: Request, exc: OvertimeError) -> JSONResponse:
    status_code = status_for(exc)
    logger.info("request_rejected", path=request.url.path, status=status_code, error=str(exc))
    content = {"detail": str(exc)}
    if isinstance(exc, ConfirmationRequired):
        content["warnings"] = [{"code": w.code, "message": w.message} for w in exc.warnings]
    return JSONResponse(status_code=status_code, content=content)


@app.on_event("startup")
def startup_event() -> None:
    logger.info("startup_complete", env=settings.env)


@app.get("/")
def root() -> dict[str, str]:
    return {"message": "HR overtime API running", "environment": settings.env}
