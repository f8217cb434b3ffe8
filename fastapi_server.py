#!/usr/bin/env python3
"""
FastAPI Order Gateway - HTTP entry point for the website order checkout
Serves the backend functions under /functions/v1 and the quote/checkout API under /api
"""

import logging
import time
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import get_config

# Configure logging early to capture all startup logs including lifespan
import json as _json
from datetime import datetime as _dt, timezone as _tz


class _JsonLogFormatter(logging.Formatter):
    """Single structured JSON log format for production"""
    def format(self, record):
        log_data = {
            'timestamp': _dt.fromtimestamp(record.created, _tz.utc).isoformat(),
            'level': record.levelname,
            'component': record.name,
            'message': record.getMessage(),
        }
        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)
        return _json.dumps(log_data, default=str)


_handler = logging.StreamHandler()
_handler.setFormatter(_JsonLogFormatter())
logging.root.handlers = [_handler]
logging.root.setLevel(logging.INFO)

# SECURITY: Prevent API keys in query strings / auth headers from reaching request logs
logging.getLogger("httpx").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

import database
from api.routes import order


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log configuration on startup, release the database pool on shutdown"""
    config = get_config()
    logger.info("🚀 Starting order checkout gateway")
    if not config.database.url:
        logger.warning("⚠️ DATABASE_URL is not set - backend functions will answer 500")
    if not config.server.public_base_url:
        logger.warning("⚠️ PUBLIC_BASE_URL is not set - invoice redirect URLs use the local default")

    yield

    database.close_connection_pool()
    logger.info("👋 Order checkout gateway stopped")


app = FastAPI(
    title="Website Order Checkout API",
    description="Domain availability, payment provider readiness and website order checkout",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_config().server.cors_allow_origins,
    allow_credentials=False,
    allow_methods=["POST", "GET", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(order.functions_router, prefix="/functions/v1", tags=["Functions"])
app.include_router(order.router, prefix="/api", tags=["Order"])


# Health check endpoint - ALWAYS RETURNS 200
@app.get("/health", include_in_schema=False)
@app.get("/api/health", include_in_schema=False)
async def health_check():
    """HTTP server is healthy if this endpoint responds; database only reports configuration"""
    return {
        "status": "healthy",
        "http_server": "operational",
        "timestamp": int(time.time()),
        "services": {
            "database": "configured" if database.is_database_configured() else "not_configured",
        },
    }


# Error handlers
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions"""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail, "timestamp": int(time.time())}
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions"""
    logger.error(f"❌ Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "timestamp": int(time.time())}
    )


# Development server
if __name__ == "__main__":
    server_config = get_config().server
    uvicorn.run(
        "fastapi_server:app",
        host=server_config.host,
        port=server_config.port,
        reload=False,
        log_level="info"
    )
