from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .core.config import get_settings, Settings
from .core.logging import get_logger, init_logging, request_context_middleware
from .core import errors
from .routers import rates
from .services.client import ExchangeRateClient, build_client
from .services.errors import ExchangeRateError


def create_app(
    settings_override: Settings | None = None,
    client_override: ExchangeRateClient | None = None,
) -> FastAPI:
    """Application factory.

    settings_override: pass an already constructed Settings instance for tests.
    client_override: a prebuilt client (fake transport, shared cache); when
    omitted the client is built from settings, which requires an API key.
    """
    settings = settings_override or get_settings()
    init_logging(debug=settings.debug)

    client = client_override or build_client(settings)
    get_logger("app").info(
        "rates client ready (cache=%s)",
        client.cache.backend_id if client.cache is not None else "disabled",
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        yield
        client.close()

    app = FastAPI(
        title=settings.app_name,
        debug=settings.debug,
        version=settings.version,
        lifespan=lifespan,
    )
    app.state.client = client

    # Middleware (request id / structured logging)
    app.middleware("http")(request_context_middleware)

    # Error handlers
    app.add_exception_handler(StarletteHTTPException, errors.http_error_handler)
    app.add_exception_handler(RequestValidationError, errors.validation_error_handler)
    app.add_exception_handler(ExchangeRateError, errors.upstream_error_handler)
    app.add_exception_handler(Exception, errors.server_error_handler)

    app.include_router(rates.router)

    @app.get("/")
    async def root():
        return {"message": settings.app_name, "version": settings.version}

    return app
