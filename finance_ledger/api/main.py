"""Main FastAPI application."""
import logging
from contextlib import asynccontextmanager
from fastapi import Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from finance_ledger.core.config import settings
from finance_ledger.core.telemetry import configure_telemetry, instrument_app
from finance_ledger.api.routes import balances, cron, exchange_rates, transfers
from finance_ledger.db.session import get_db
from finance_ledger.services.result_objects import ErrorCode

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

SERVICE_NAME = "Finance Ledger Core"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle manager for startup and shutdown events."""
    # Startup
    logger.info(f"Starting {SERVICE_NAME}...")
    logger.info(f"Environment: {'Development' if settings.debug else 'Production'}")
    logger.info(
        f"Exchange rates: provider base {settings.exchange_rate_provider_base}, "
        f"TTL {settings.exchange_rate_cache_ttl_hours}h"
    )
    if not settings.is_cron_secret_configured:
        logger.warning("EXCHANGE_RATE_CRON_SECRET is not set; scheduled refresh endpoint is disabled")
    yield
    # Shutdown
    logger.info(f"Shutting down {SERVICE_NAME}...")


# Create FastAPI app
app = FastAPI(
    title=SERVICE_NAME,
    description="Multi-currency ledger: exchange rates, transfers and aggregation",
    version=settings.otel_service_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

if settings.otel_enabled:
    configure_telemetry()
    instrument_app(app)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "message": "Internal server error",
            "errorCode": ErrorCode.INTERNAL_ERROR.value
        }
    )

# Include routers
app.include_router(exchange_rates.router)
app.include_router(cron.router)
app.include_router(transfers.router)
app.include_router(balances.router)


@app.get("/", tags=["Health"])
async def root():
    """Root endpoint - basic service info."""
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": settings.otel_service_version
    }


@app.get("/health", tags=["Health"])
async def health_check(db: AsyncSession = Depends(get_db)):
    """
    Health check endpoint.
    
    Verifies database connectivity (executes SELECT 1) and reports whether
    the scheduled refresh is configured.
    
    Returns 200 if the database is reachable, 503 otherwise.
    """
    health_status = {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": settings.otel_service_version,
        "checks": {}
    }
    
    # Check database connectivity
    try:
        await db.execute(text("SELECT 1"))
        health_status["checks"]["database"] = {
            "status": "healthy",
            "message": "Connected"
        }
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = {
            "status": "unhealthy",
            "message": f"Connection failed: {str(e)}"
        }
    
    health_status["checks"]["rate_refresh"] = {
        "status": "configured" if settings.is_cron_secret_configured else "not_configured",
        "provider": settings.exchange_rate_api_provider
    }
    
    status_code = status.HTTP_200_OK if health_status["status"] == "healthy" else status.HTTP_503_SERVICE_UNAVAILABLE
    
    return JSONResponse(content=health_status, status_code=status_code)


if __name__ == "__main__":
    import uvicorn
    
    uvicorn.run(
        "finance_ledger.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
        log_level=settings.log_level.lower()
    )
