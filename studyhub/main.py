import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from studyhub.api import router
from studyhub.api.progression import status_code_for
from studyhub.core.config import settings
from studyhub.core.database import async_session_maker, init_db
from studyhub.core.exceptions import ProgressionError
from studyhub.services.badges import BadgeCatalog
from studyhub.services.store import SqlAlchemyProgressionStore

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create database tables on startup."""
    await init_db()
    logger.info("%s %s started (%d badges)", settings.app_name, settings.version, len(app.state.catalog))
    yield


app = FastAPI(
    lifespan=lifespan,
    title=settings.app_name,
    description="XP, levels, streaks and badges for StudyHub",
    version=settings.version,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Catalog is built exactly once per process and shared by every request
app.state.catalog = BadgeCatalog()
app.state.store = SqlAlchemyProgressionStore(async_session_maker)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,  # Must be False when using allow_origins=["*"]
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ProgressionError)
async def progression_error_handler(request: Request, exc: ProgressionError) -> JSONResponse:
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content={"error": exc.to_dict()})


@app.exception_handler(TimeoutError)
async def timeout_handler(request: Request, exc: TimeoutError) -> JSONResponse:
    logger.warning("%s %s timed out", request.method, request.url.path)
    return JSONResponse(
        status_code=504,
        content={"error": {"error_type": "TimeoutError", "message": "Progression update timed out", "is_retryable": True}},
    )


app.include_router(router, prefix="/api/v1")
