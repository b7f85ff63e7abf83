"""
Offline sale unlock codes - service entry point
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from app.core.config import get_settings
from app.core.database import init_db
from app.api import api_router
from app.services.scheduler import start_scheduler, stop_scheduler
from app.core.security import SlidingWindowRateLimiter, get_current_admin
from fastapi import Depends
from fastapi.openapi.docs import get_swagger_ui_html, get_redoc_html
import logging

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle"""
    logger.info("Starting unlock code service...")

    await init_db()
    logger.info("Database initialized")

    start_scheduler()
    logger.info("Scheduled jobs started")

    yield

    stop_scheduler()
    logger.info("Service stopped")


app = FastAPI(
    title="Offline Sale Unlock Codes",
    description="Offline course sales and single-use unlock codes",
    version="1.0.0",
    lifespan=lifespan,
    # Default doc routes are replaced by the password protected ones below
    docs_url=None,
    redoc_url=None,
    openapi_url=None
)

app.state.rate_limiter = SlidingWindowRateLimiter(
    window=settings.redeem_rate_limit_window,
    max_attempts=settings.redeem_rate_limit_attempts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)


# --- Docs, admin only ---

if settings.enable_docs:
    @app.get("/docs", include_in_schema=False)
    async def get_swagger_documentation(admin=Depends(get_current_admin)):
        """Protected Swagger UI"""
        return get_swagger_ui_html(openapi_url="/openapi.json", title="API docs - Unlock codes")

    @app.get("/redoc", include_in_schema=False)
    async def get_redoc_documentation(admin=Depends(get_current_admin)):
        """Protected ReDoc"""
        return get_redoc_html(openapi_url="/openapi.json", title="API docs - Unlock codes")

    @app.get("/openapi.json", include_in_schema=False)
    async def get_open_api_endpoint(admin=Depends(get_current_admin)):
        """Protected OpenAPI schema"""
        return app.openapi()


@app.get("/")
async def root():
    """Service info"""
    return {
        "service": "Offline Sale Unlock Codes",
        "status": "running",
        "version": "1.0.0"
    }


@app.get("/health")
async def health_check():
    """Health check"""
    return {"status": "healthy"}
