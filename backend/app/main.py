from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from app.middleware.logging_middleware import RequestLoggingMiddleware
from app.routers import router as api_router
from app.service_container import Services
from app.utils.fastapi_utils import install_exception_handlers
from common.core.config_service import settings
from common.core.request_context import RequestContext
from common.logging import setup_logging
from common.utils.utils import get_logger

# The env file is already loaded by the config import above
setup_logging(log_level=settings.LOG_LEVEL)

logger = get_logger()


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncGenerator[None, None]:
    services = Services.instance()
    await services.start()
    config = services.config_service
    logger.info(
        "Storefront ready",
        environment=config.get_environment(),
        checkout_enabled=config.store.checkout_enabled,
        card_enabled=config.stripe.enabled,
        crypto_enabled=config.chain.enabled,
        ascension_enabled=config.store.ascension_enabled,
    )
    try:
        yield
    finally:
        logger.info("Storefront stopping")
        await services.stop()


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Opens a fresh RequestContext around each request so logs and fulfillment claims share its id."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        with RequestContext.context() as request_context:
            request_context.endpoint = request.url.path
            request_context.method = request.method
            return await call_next(request)


app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Game store checkout and fulfillment",
    version="1.0.0",
    lifespan=lifespan,
)

# Added last runs first: the context must exist before the request is logged
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)
app.add_middleware(RequestContextMiddleware)

install_exception_handlers(app)
app.include_router(api_router)


@app.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "healthy"}
