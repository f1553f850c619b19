"""
Main FastAPI application bootstrap.
Configures middleware and includes routers.
"""
import logging

from fastapi import FastAPI

from costengine.core.config import config
from costengine.api.estimates import router as estimates_router
from costengine.middleware.request_size_limiter import RequestSizeLimiterMiddleware


logger = logging.getLogger(__name__)

# Validate configuration on startup
try:
    config.validate()
except ValueError as error:
    raise RuntimeError(f"Configuration error: {error}") from error

logger.info(
    "Cost engine %s serving region=%s (max batch size %d, strict validation %s)",
    config.SERVICE_VERSION,
    config.PRICING_REGION,
    config.MAX_BATCH_SIZE,
    config.STRICT_VALIDATION,
)


app = FastAPI(
    title="AWS Cost Engine",
    description="Monthly cost and carbon estimates for AWS resources from embedded public pricing",
    version=config.SERVICE_VERSION,
)

app.add_middleware(RequestSizeLimiterMiddleware)

app.include_router(estimates_router)


@app.get("/healthz")
def healthz():
    """Liveness probe."""
    return {"status": "ok"}
