"""
Academy Batch Assessments - FastAPI Application Entry Point.

This is the main application module that:
1. Initializes the FastAPI app with CORS middleware
2. Sets up structured JSON logging
3. Implements request ID middleware (X-Request-ID header)
4. Registers all API route handlers
5. Provides health check endpoint

The application follows a modular architecture:
- routes/: API endpoint handlers
- models/: SQLAlchemy ORM models
- services/: Batch logic (grouping, loading, editing, committing, deleting, exporting)
- store.py: Record store adapter over the skill_assessments table
- logging_config.py: Structured logging configuration
- database.py: Database connection management
"""

import time
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from assessment_batches.logging_config import (
    setup_logging, get_logger, log_with_context,
    request_id_var, generate_request_id
)
from assessment_batches.routes import batches, coaches, sessions, skills
from assessment_batches.database import create_tables
from assessment_batches.config import DATABASE_URL

# Import all models so they are registered with Base.metadata
from assessment_batches.models import Coach, Student, DefinedSkill, SkillAssessment  # noqa: F401

# ──────────────────────────────────────────────────────────────
# Initialize structured logging BEFORE anything else
# ──────────────────────────────────────────────────────────────
setup_logging()
logger = get_logger("http")

# Auto-create tables for SQLite local development
if DATABASE_URL.startswith("sqlite"):
    logger.info("Using SQLite — creating tables directly")
    create_tables()

# ──────────────────────────────────────────────────────────────
# Create FastAPI application
# ──────────────────────────────────────────────────────────────
app = FastAPI(
    title="Academy Batch Assessments",
    description=(
        "Groups per-student skill assessments into batches, edits batch skill "
        "columns and scores, commits edits with per-record outcomes, deletes "
        "batches and exports them as CSV or PDF."
    ),
    version="1.0.0",
    docs_url="/docs",        # Swagger UI at /docs
    redoc_url="/redoc"       # ReDoc at /redoc
)

# ──────────────────────────────────────────────────────────────
# CORS Middleware
#
# Allows the admin frontend to call the backend from another origin.
# Export downloads need Content-Disposition and X-Page-Orientation exposed.
# In production, restrict origins to the actual frontend domain.
# ──────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],                # Allow all origins for development
    allow_credentials=True,
    allow_methods=["*"],                # Allow all HTTP methods
    allow_headers=["*"],                # Allow all headers (X-User-Role included)
    expose_headers=["X-Request-ID", "Content-Disposition", "X-Page-Orientation"]
)


# ──────────────────────────────────────────────────────────────
# Request ID Middleware
#
# Generates a unique UUID per incoming request and:
# 1. Stores it in a context variable (available to all log entries)
# 2. Returns it in the X-Request-ID response header
# 3. Logs request start/end with latency measurement
# ──────────────────────────────────────────────────────────────
@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """
    Middleware that generates a unique request ID for every HTTP request.

    This enables end-to-end request tracing across all log entries.
    The request ID is:
    - Generated as a UUID v4
    - Stored in a context variable (accessible from any log call)
    - Included in the X-Request-ID response header
    - Logged at request start and completion
    """
    # Generate and set request ID
    req_id = generate_request_id()
    request_id_var.set(req_id)

    # Record request start time for latency calculation
    start_time = time.time()

    # Log incoming request
    log_with_context(logger, "INFO",
        f"Request started: {request.method} {request.url.path}",
        context={"request_id": req_id},
        extra_data={
            "ip": request.client.host if request.client else "unknown",
            "user_agent": request.headers.get("user-agent", ""),
            "query_params": dict(request.query_params)
        })

    # Process the request
    response = await call_next(request)

    # Calculate request duration
    duration_ms = (time.time() - start_time) * 1000

    # Add request ID to response headers
    response.headers["X-Request-ID"] = req_id

    # Log request completion with latency
    log_with_context(logger, "INFO",
        f"Request completed: {request.method} {request.url.path} → {response.status_code}",
        context={"request_id": req_id},
        extra_data={
            "duration_ms": round(duration_ms, 2),
            "status_code": response.status_code
        })

    return response


# ──────────────────────────────────────────────────────────────
# Register API routes
# ──────────────────────────────────────────────────────────────
app.include_router(batches.router, tags=["Batches"])
app.include_router(sessions.router, tags=["Edit sessions"])
app.include_router(skills.router, tags=["Skills"])
app.include_router(coaches.router, tags=["Coaches"])


# ──────────────────────────────────────────────────────────────
# Health check endpoint
# ──────────────────────────────────────────────────────────────
@app.get("/health", tags=["Health"])
def health_check():
    """
    Health check endpoint for Docker health checks and monitoring.

    Returns a simple status response to verify the application is running.
    """
    return {"status": "healthy", "service": "batch-assessments-backend", "version": "1.0.0"}


@app.get("/", tags=["Root"])
def root():
    """Root endpoint with API information."""
    return {
        "service": "Academy Batch Assessments",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "batches": "GET /api/batches",
            "batch_detail": "GET /api/batches/detail?title=&date=",
            "delete_batch": "DELETE /api/batches?title=&date=",
            "bulk_delete": "POST /api/batches/bulk-delete",
            "export_csv": "GET /api/batches/export.csv?title=&date=",
            "export_pdf": "GET /api/batches/export.pdf?title=&date=[&session_id=]",
            "open_session": "POST /api/sessions",
            "set_score": "PUT /api/sessions/{id}/scores",
            "add_skill": "POST /api/sessions/{id}/skills",
            "remove_skill": "DELETE /api/sessions/{id}/skills/{name}",
            "discard": "POST /api/sessions/{id}/discard",
            "commit": "POST /api/sessions/{id}/commit",
            "skills": "GET /api/skills",
            "coaches": "GET /api/coaches"
        }
    }
