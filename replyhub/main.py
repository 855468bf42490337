"""FastAPI application for the reply pipeline."""

import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from replyhub.api.routers import health, messages
from replyhub.factory import build_services
from replyhub.infra.database import get_engine, init_schema
from replyhub.infra.error_handler import TenantNotFoundError
from replyhub.infra.logging import app_logger
from replyhub.infra.timeout import REQUEST_TIMEOUT, TimeoutMiddleware


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown."""
    # Startup
    app_logger.info("Application starting up")
    init_schema()
    # Tests install their own services before startup
    if getattr(app.state, "services", None) is None:
        app.state.services = build_services()

    yield

    # Shutdown
    app_logger.info("Application shutting down")
    get_engine().dispose()


app = FastAPI(
    title="ReplyHub API",
    description="""
    ReplyHub classifies inbound customer messages for each tenant and answers them,
    either from tone-adjusted templates or through a bounded, read-only tool-using agent.

    ## Features

    - **Classification**: Structured category, sentiment and extracted fields per message
    - **Replies**: Tenant templates restyled to the tenant's tone, with the fixed signature
    - **Agent**: Record lookup, availability and price tools, at most three model calls per turn
    - **Resilience**: A circuit breaker guards the model endpoint; every stage has a fallback
    """,
    version="1.0.0",
    lifespan=lifespan,
    tags_metadata=[
        {
            "name": "Messages",
            "description": "Handle and classify inbound messages",
        },
        {
            "name": "Health",
            "description": "Health check and monitoring endpoints",
        },
    ],
)

app.add_middleware(TimeoutMiddleware, timeout=REQUEST_TIMEOUT)

app.include_router(messages.router)
app.include_router(health.router)


# Error handlers
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle request validation errors."""
    return JSONResponse(
        status_code=422,
        content={"detail": exc.errors()},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
    )


@app.exception_handler(TenantNotFoundError)
async def tenant_not_found_handler(request: Request, exc: TenantNotFoundError):
    return JSONResponse(status_code=404, content={"detail": exc.message})


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle all other exceptions."""
    error_id = str(uuid.uuid4())
    app_logger.error(f"Unhandled exception: {exc}", exc_info=True, extra={"error_id": error_id})
    return JSONResponse(
        status_code=500,
        content={"detail": f"Internal server error. Error ID: {error_id}"},
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=8000,
        timeout_keep_alive=30,
        timeout_graceful_shutdown=30,
    )
