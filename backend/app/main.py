"""
Finance Tracker Billing - FastAPI Application

Main entry point for the billing backend.
Provides checkout, Stripe webhooks, preferences and plan/feature endpoints.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config.settings import settings
from app.infrastructure.container import build_services
from app.infrastructure.exceptions import FinanceTrackerError

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    logger.info(f"Finance Tracker billing starting in {settings.environment} mode...")

    owned = getattr(app.state, "services", None) is None
    if owned:
        app.state.services = build_services(settings)

        if settings.database_url or settings.supabase_password:
            try:
                await app.state.services.db.ping()
                logger.info("SQLModel database connection pool initialized")
            except Exception as e:
                logger.warning(f"Database not reachable at startup: {e}")

    yield

    if owned:
        await app.state.services.close()
        app.state.services = None
        logger.info("Database connection pool closed")

    logger.info("Finance Tracker billing shutting down...")


app = FastAPI(
    title="Finance Tracker Billing",
    description="Stripe subscriptions and plan entitlements for Finance Tracker",
    version="1.0.0",
    lifespan=lifespan,
    debug=settings.debug,
)

# CORS configuration from Settings
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Exception Handlers
# ============================================================================

@app.exception_handler(FinanceTrackerError)
async def application_error_handler(request: Request, exc: FinanceTrackerError):
    """Render application errors with the status their class carries."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
    )


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "finance-tracker-billing"}


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Finance Tracker Billing API",
        "version": "1.0.0",
        "docs": "/docs",
    }


# ============================================================================
# Import and register routers
# ============================================================================

from app.api.routes import billing, preferences, webhooks

app.include_router(billing.router, prefix="/api", tags=["Billing"])
app.include_router(preferences.router, prefix="/api", tags=["Preferences"])
app.include_router(webhooks.router, prefix="/api", tags=["Webhooks"])
