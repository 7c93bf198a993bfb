"""
Channel gateway - FastAPI application entry point.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from gateway.api.routes import channels as channels_routes
from gateway.api.routes import conversations as conversations_routes
from gateway.api.routes import webhooks as webhooks_routes
from gateway.core.config import settings
from gateway.models.database import check_health, init_db

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables on startup."""
    try:
        init_db()
        logger.info("Database initialized")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise

    yield

    logger.info("Channel gateway shutting down")


# Create FastAPI app
app = FastAPI(
    title="Channel Gateway",
    description="Multi-channel message gateway: WhatsApp, Slack, web chat, REST and webhook channels",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ═══════════════════════════════════════════════════════════
# REGISTER ROUTERS
# ═══════════════════════════════════════════════════════════

app.include_router(channels_routes.router, prefix=settings.API_PREFIX)
app.include_router(conversations_routes.router, prefix=settings.API_PREFIX)
app.include_router(webhooks_routes.router, prefix=settings.API_PREFIX)


# ==================== Health Check ====================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    db_status = check_health()

    return {
        "status": "healthy" if db_status["status"] == "healthy" else "unhealthy",
        "database": db_status,
        "timestamp": datetime.utcnow().isoformat()
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("gateway.main:app", host="0.0.0.0", port=8000)
