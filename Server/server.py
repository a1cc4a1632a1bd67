"""
SafawiNet Server - Main FastAPI Application

This module contains the main FastAPI application for the SafawiNet server.
It serves the REST API for user management, role templates, authentication,
two-factor enrollment and audit logs.
"""

import logging
from logging.handlers import RotatingFileHandler
from datetime import datetime
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException
import uvicorn

from config import GetSettings
from managers.database_manager import DatabaseManager
from rate_limit import limiter, rate_limit_exceeded_handler

settings = GetSettings()

# Configure logging to write to both console and file
# Create logs directory if it doesn't exist
logs_dir = Path(settings.log_dir)
logs_dir.mkdir(parents=True, exist_ok=True)

# Create log filename with date
log_filename = logs_dir / f"safawinet-server-{datetime.now().strftime('%Y-%m-%d')}.log"

# Configure logging with both console and file handlers
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        # Console handler
        logging.StreamHandler(),
        # File handler with rotation (max 10MB per file, keep 10 backup files)
        RotatingFileHandler(
            log_filename,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=10,
            encoding='utf-8'
        )
    ]
)
logger = logging.getLogger(__name__)

# Import database module for shared db_manager instance
import database


# ==================== Lifespan Events ====================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    FastAPI lifespan event handler for startup and shutdown
    Manages database initialization
    """
    logger.info("SafawiNet Server starting up...")

    # Initialize database manager in database module
    database.db_manager = DatabaseManager(settings.database_path, settings.bcrypt_rounds)

    # Initialize database (creates tables if needed, but won't recreate admin if exists)
    admin_password = database.db_manager.InitializeDatabase()
    if admin_password:
        logger.warning("=" * 60)
        logger.warning("NEW ADMIN USER CREATED")
        logger.warning("Username: admin")
        logger.warning(f"Password: {admin_password}")
        logger.warning("SAVE THIS PASSWORD - IT WILL NOT BE SHOWN AGAIN!")
        logger.warning("=" * 60)

    logger.info("Database initialized successfully")
    logger.info("Server startup complete")

    yield

    logger.info("SafawiNet Server shutting down...")
    database.db_manager.engine.dispose()
    logger.info("Shutdown complete")


# ==================== FastAPI Application ====================

app = FastAPI(
    title="SafawiNet Server",
    description="Role-based user management API",
    version="1.0.0",
    lifespan=lifespan
)

# ==================== Rate Limiting ====================

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

# ==================== CORS Middleware ====================

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ==================== Error Responses ====================

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """
    Render every HTTPException as {"success": false, "message": ...}
    A dict detail is merged into the body (e.g. requiresTwoFactor, errors)
    """
    body = {"success": False}
    if isinstance(exc.detail, dict):
        body.update(exc.detail)
    else:
        body["message"] = str(exc.detail)

    return JSONResponse(status_code=exc.status_code, content=body, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Request body/query validation failures become 400 responses
    """
    errors = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path"))
        errors.append({"field": field, "message": error.get("msg", "Invalid value")})

    first = errors[0] if errors else {"field": "", "message": "Invalid request"}
    message = f"{first['field']}: {first['message']}" if first["field"] else first["message"]

    return JSONResponse(
        status_code=400,
        content={"success": False, "message": message, "errors": errors}
    )


# ==================== Import Routers ====================

from routes import status, auth, two_factor, audit_logs, users, role_templates


# ==================== Include Routers ====================

app.include_router(status.router)
app.include_router(auth.router)
app.include_router(two_factor.router)
app.include_router(audit_logs.router)
app.include_router(users.router)
app.include_router(role_templates.router)


# ==================== Main Entry Point ====================

if __name__ == "__main__":
    """
    Run the server using uvicorn
    """
    logger.info("Starting SafawiNet Server...")

    # reload=False: restart manually after code changes
    uvicorn.run(
        "server:app",
        host=settings.host,
        port=settings.port,
        reload=False,
        log_level="info"
    )
