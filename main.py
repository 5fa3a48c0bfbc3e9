"""FastAPI entry point for the knowledge review service."""

import asyncio
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config.settings import get_settings
from errors.exceptions import AppError
from models.errors import format_error
from services.ai_factory import close_http_client, get_http_client
from services.cache import periodic_cleanup
from services.knowledge_store import get_knowledge_store
from services.middleware import RequestLogMiddleware

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle — start/stop shared resources."""
    get_knowledge_store()
    settings.upload_path.mkdir(parents=True, exist_ok=True)
    get_http_client()
    cleanup_task = asyncio.create_task(
        periodic_cleanup(interval_seconds=settings.cache_cleanup_interval)
    )

    yield

    cleanup_task.cancel()
    try:
        await cleanup_task
    except asyncio.CancelledError:
        pass
    await close_http_client()


app = FastAPI(
    title="Knowledge Review",
    description="Personal knowledge bases with AI-generated review questions",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Middleware stack (outermost first) ─────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLogMiddleware)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(format_error(exc.code, exc.message))
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# ── Register routers ────────────────────────────────────────
from api.ai_config import router as ai_config_router  # noqa: E402
from api.documents import router as documents_router  # noqa: E402
from api.health import router as health_router  # noqa: E402
from api.knowledge_bases import router as knowledge_bases_router  # noqa: E402
from api.quiz import router as quiz_router  # noqa: E402
from api.review import router as review_router  # noqa: E402

app.include_router(health_router)
app.include_router(knowledge_bases_router)
app.include_router(documents_router)
app.include_router(quiz_router)
app.include_router(review_router)
app.include_router(ai_config_router)


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.service_port,
        reload=settings.debug,
    )
