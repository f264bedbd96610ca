import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException

# Load env from backend/.env
backend_dir = os.path.dirname(os.path.abspath(__file__))
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv(dotenv_path=os.path.join(backend_dir, ".env"))

# Import after dotenv is loaded
from backend.core.config import check_streak_settings, load_settings, settings
from backend.core.logging import configure_logging
from backend.core.middleware.request_context import RequestContextMiddleware
from backend.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    request_validation_handler,
    unhandled_exception_handler,
)
from backend.api import health, metrics, streaks

configure_logging(settings.ENV)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("healthlog")
    logger.info("Starting healthlog streak API...")
    check_streak_settings(load_settings())
    try:
        yield
    finally:
        logger.info("Stopping healthlog streak API...")


app = FastAPI(title="Healthlog - Streaks API", lifespan=lifespan)

app.add_middleware(RequestContextMiddleware)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(HTTPException, http_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.include_router(health.root_router, tags=["health"])
app.include_router(metrics.router, tags=["metrics"])
app.include_router(streaks.router, tags=["streaks"])
