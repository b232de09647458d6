"""
FastAPI application entry point for the permit approval service.

This is the main app that:
- Initializes FastAPI with CORS
- Registers the approval link, permit and recipient routers
- Provides health check endpoint
- Sets up database connection lifecycle
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from permit_approvals.config import settings
from permit_approvals import database
# Register every model with Base.metadata
import permit_approvals.models  # noqa: F401
from permit_approvals.api import approval_links, permits, recipients

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    
    On shutdown: Close database connections gracefully
    """
    logger.info("Starting Permit Approvals API...")
    logger.info(f"Database: {settings.database_url.split('@')[1] if '@' in settings.database_url else 'configured'}")
    logger.info(f"Approval links: {settings.get_frontend_url()}{settings.approval_page_path} (TTL {settings.approval_link_ttl_days} days)")
    
    yield
    
    logger.info("Shutting down Permit Approvals API...")
    await database.engine.dispose()


# Initialize FastAPI app
app = FastAPI(
    title="Permit Approvals API",
    description="Emailed single-use approval links and decisions for permits",
    version="1.0.0",
    debug=settings.debug,
    lifespan=lifespan,
)

# Set ALLOWED_ORIGINS environment variable with comma-separated domains
allowed_origins = [
    "http://localhost:3000",  # Local development
]
if settings.allowed_origins:
    allowed_origins.extend(o.strip() for o in settings.allowed_origins.split(',') if o.strip())

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Health check endpoint
@app.get("/health")
async def health_check():
    """Simple health check endpoint."""
    return {
        "status": "healthy",
        "service": "Permit Approvals API",
        "version": "1.0.0",
    }


# Root endpoint
@app.get("/")
async def root():
    """API root with basic info."""
    return {
        "message": "Permit Approvals API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
    }


# Register API routers
app.include_router(approval_links.router, prefix="/api/approval-links", tags=["approval-links"])
app.include_router(permits.router, prefix="/api/permits", tags=["permits"])
app.include_router(recipients.router, prefix="/api/approval-recipients", tags=["recipients"])
