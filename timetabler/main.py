from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from timetabler.api.routes import router as api_router
from timetabler.config.settings import get_settings
from timetabler.storage.cache import TimetableCache, get_cache
from timetabler.storage.database import init_db
from timetabler.utils.logging_config import setup_logging


# Setup logging
logger = setup_logging()
settings = get_settings()

app = FastAPI(
    title=settings.app_name,
    debug=settings.debug,
    description="School timetable generation: greedy construction with seeded local-search optimization",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Initialize database on startup
@app.on_event("startup")
async def startup_event():
    logger.info(f"Starting {settings.app_name}...")
    init_db()
    logger.info("Database initialized")
    logger.info(f"Default optimizer budget: {settings.default_optimize_iterations} iterations, seed {settings.default_seed}")

@app.on_event("shutdown")
async def shutdown_event():
    logger.info(f"Shutting down {settings.app_name}...")

app.include_router(api_router, prefix="/api/v1", tags=["timetabling"])


@app.get("/health", tags=["health"])
def health_check(cache: TimetableCache = Depends(get_cache)):
    """Health check endpoint for monitoring and load balancers."""
    return {
        "status": "ok",
        "app": settings.app_name,
        "version": "1.0.0",
        "cache": "ok" if cache.health_check() else "unavailable",
    }
