# social_publisher/main.py
import logging
import os

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from social_publisher.errors import StorageError
from social_publisher.infrastructure.database import init_db
from social_publisher.middleware.logging import RequestIdMiddleware
from social_publisher.routers.accounts_router import router as accounts_router
from social_publisher.routers.media_router import router as media_router
from social_publisher.routers.post_router import router as post_router
from social_publisher.routers.queue_router import router as queue_router
from social_publisher.routers.scheduler_router import router as scheduler_router


def configure_structlog():
    level = logging.getLevelName(os.getenv("LOG_LEVEL", "INFO").upper())
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level if isinstance(level, int) else logging.INFO),
        context_class=dict,
    )


configure_structlog()
logger = structlog.get_logger()

app = FastAPI(title="Social Publisher")

app.add_middleware(RequestIdMiddleware)

app.include_router(accounts_router)
app.include_router(post_router)
app.include_router(media_router)
app.include_router(queue_router)
app.include_router(scheduler_router)


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    logger.error("storage_error", error=str(exc))
    return JSONResponse(status_code=500, content={"detail": "storage unavailable"})


@app.on_event("startup")
async def on_startup():
    await init_db()
    logger.info("app_startup")


if __name__ == "__main__":
    uvicorn.run("social_publisher.main:app", host="0.0.0.0", port=int(os.getenv("PORT", 8000)), reload=True)
