"""
ASGI entry point: logging, rate limiting, middleware and routers.
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from app.config import settings
from app.middleware.error_handler import ErrorHandlerMiddleware
from app.api.v1.routers import evaluations

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

# Rate limiter
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[f"{settings.rate_limit_requests}/minute"],
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log the effective settings on startup and release the analysis client on shutdown."""
    # Startup
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"Log level: {settings.log_level}")
    logger.info(f"Sampling round: {settings.tree_count} trees, "
                f"caps fruits={settings.max_fruit_count} leaves={settings.max_leaf_count}")
    logger.info(f"Storage: {settings.storage_path}")
    logger.info(f"Rate limit: {settings.rate_limit_requests} requests/minute")

    yield

    # Shutdown
    from app.infrastructure.analysis_client import get_analysis_client
    logger.info("Shutting down application...")
    client = get_analysis_client()
    await client.close()
    logger.info("Shutdown complete")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    Phytosanitary Sampling API for Coffee Plots

    This API records per-tree field samples of coffee berry borer damage and
    leaf rust, and turns them into plot-level rates and risk levels.

    ## Features

    - **Tree Sampling**: Record bore and rust counts for a fixed round of trees
    - **Aggregation**: Infestation and rust incidence rates with traffic-light risk
    - **Projection**: Fill un-sampled trees from the distribution of sampled ones
    - **History**: Rate trend across completed visits to the same plot
    - **Agronomic Analysis**: Recommendation text from an external service
    - **Rate Limiting**: Protects the API from abuse

    ## Risk Levels

    | Rate | Low | Moderate | Severe |
    |------|-----|----------|--------|
    | Bore infestation | < 2% | 2% to < 5% | >= 5% |
    | Rust incidence | < 5% | 5% to < 10% | >= 10% |
    """,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# Add rate limiter to app state
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

# Add CORS middleware with configurable origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add global error handling middleware
app.add_middleware(ErrorHandlerMiddleware)

# Include routers
app.include_router(evaluations.router, prefix="/api/v1")


@app.get("/", tags=["health"])
async def root():
    """Service identity and liveness."""
    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": settings.app_version,
    }


@app.get("/health", tags=["health"])
async def health_check():
    """Liveness probe; also reports whether the analysis service is configured."""
    return {
        "status": "healthy",
        "service": settings.app_name,
        "analysis_configured": bool(settings.analysis_api_key),
    }
