import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from supervision.api.routes import health, notifications, pre_thesis, statistics, thesis
from supervision.core.config import get_settings
from supervision.core.exceptions import AppError

logger = logging.getLogger(__name__)

settings = get_settings()


async def app_error_handler(request: Request, exc: AppError):
    if exc.retryable:
        logger.warning("%s %s failed with retryable %s", request.method, request.url.path, exc.code)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


app = FastAPI(title=settings.project_name)
app.add_exception_handler(AppError, app_error_handler)

app.include_router(health.router, prefix=settings.api_prefix, tags=["health"])
app.include_router(pre_thesis.router, prefix=settings.api_prefix, tags=["pre-thesis"])
app.include_router(thesis.router, prefix=settings.api_prefix, tags=["thesis"])
app.include_router(statistics.router, prefix=settings.api_prefix, tags=["statistics"])
app.include_router(notifications.router, prefix=settings.api_prefix, tags=["notifications"])
