import logging
from contextlib import asynccontextmanager
from typing import Optional

import google.genai as genai
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from qcm.api.proxy.rate_limiter import (
    CounterStore,
    FixedWindowRateLimiter,
    InMemoryCounterStore,
)
from qcm.api.proxy.router import router as proxy_router
from qcm.config import Settings, settings
from qcm.shared.constants import CORS_HEADERS
from qcm.shared.exceptions import EdgeError
from qcm.shared.prompts import MESSAGE_INTERNAL_ERROR
from qcm.shared.schemas import ErrorResponse, HealthResponse
from qcm.shared.utils.functions import configure_logging

log_level = configure_logging(settings.LOG_LEVEL)

logger = logging.getLogger(__name__)


def create_app(
    app_settings: Settings = settings,
    genai_client: Optional[genai.Client] = None,
    counter_store: Optional[CounterStore] = None,
) -> FastAPI:
    """
    Builds the edge proxy application. The model client and the rate-limit
    counter store are injectable; by default the Gemini client is created on
    startup from GEMINI_API_KEY and counters are kept in memory.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        if app.state.genai_client is None and app_settings.GEMINI_API_KEY:
            app.state.genai_client = genai.Client(api_key=app_settings.GEMINI_API_KEY)
            logger.debug("Gemini client created.")
        if app.state.genai_client is None:
            logger.warning("GEMINI_API_KEY is not set, model requests will fail.")

        yield
        # Shutdown
        logger.info("Shutting down edge proxy...")

    app = FastAPI(title=app_settings.PROJECT_NAME, lifespan=lifespan)
    app.state.settings = app_settings
    app.state.genai_client = genai_client
    app.state.rate_limiter = FixedWindowRateLimiter(
        counter_store or InMemoryCounterStore(),
        requests_per_minute=app_settings.RATE_LIMIT_PER_MINUTE,
        requests_per_hour=app_settings.RATE_LIMIT_PER_HOUR,
    )

    @app.exception_handler(EdgeError)
    async def edge_error_handler(request: Request, exc: EdgeError):
        body = ErrorResponse(error=exc.error, message=exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content=body.model_dump(exclude_none=True),
            headers=CORS_HEADERS,
        )

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.error(f"An unexpected error occurred: {exc}", exc_info=True)
        body = ErrorResponse(
            error="Internal server error",
            message=MESSAGE_INTERNAL_ERROR,
        )
        return JSONResponse(
            status_code=500,
            content=body.model_dump(exclude_none=True),
            headers=CORS_HEADERS,
        )

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check(request: Request):
        """
        Checks the health of the proxy and whether a model client is available.
        """
        return HealthResponse(
            status="ok",
            upstream="ok" if request.app.state.genai_client is not None else "missing",
        )

    app.include_router(proxy_router, tags=["Proxy"])
    return app


app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run("qcm.main:app", host="0.0.0.0", port=8787, log_level=log_level.lower())
