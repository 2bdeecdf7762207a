"""
Compliance Reading Engine - Main FastAPI Application
Version: 1.1.0

Changelog:
v1.1.0 (2026-10-12): Jobs router; optional demo seed on startup
v1.0.0 (2026-10-05): Initial FastAPI application with forms and meters routers
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from config import settings, init_directories
from api import forms, meters, jobs

# Create necessary directories before the file handler opens its log
init_directories()

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(f'{settings.LOGS_DIR}/api.log'),
        logging.StreamHandler()
    ]
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    init_directories()

    # Initialize database
    from models import init_db
    await init_db()

    if settings.SEED_DEMO_DATA:
        from database import get_db
        from seed import seed_if_empty
        async with get_db() as db:
            await seed_if_empty(db)

    yield

    logger.info("Shutdown complete")


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Compliance reading and submission engine for field inspections",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure properly in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(forms.router, prefix="/api", tags=["Forms"])
app.include_router(meters.router, prefix="/api", tags=["Meters"])
app.include_router(jobs.router, prefix="/api", tags=["Jobs"])


@app.get("/api/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "app": settings.APP_NAME
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.DEBUG,
        workers=settings.API_WORKERS
    )
