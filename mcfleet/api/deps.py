from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from mcfleet.domain.errors import (
    ConfigError,
    InstanceNotFoundError,
    InvalidTransitionError,
    ProvisioningError,
)
from mcfleet.services.context import ServiceContext


def get_context(request: Request) -> ServiceContext:
    return request.app.state.context


def register_error_handlers(app: FastAPI) -> None:
    """Map domain errors onto HTTP status codes."""

    @app.exception_handler(InstanceNotFoundError)
    async def not_found(request: Request, exc: InstanceNotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(InvalidTransitionError)
    async def invalid_transition(request: Request, exc: InvalidTransitionError):
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(ProvisioningError)
    async def provisioning_failed(request: Request, exc: ProvisioningError):
        return JSONResponse(status_code=500, content={"detail": str(exc)})

    @app.exception_handler(ConfigError)
    async def invalid_config(request: Request, exc: ConfigError):
        return JSONResponse(status_code=422, content={"detail": str(exc)})
