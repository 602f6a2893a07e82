"""
AccelFlow - FastAPI Application Entry Point.

Workflow execution engine: validate, store and run workflow graphs of
LLM prompts, HTTP calls, conditions and transforms.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from accelflow.config import settings
from accelflow.api.routes import node_types, workflows
from accelflow.errors import DefinitionError
from accelflow.workflows.templates import register_workflow_templates

# Import builtin handlers to register them
import accelflow.handlers.builtin  # noqa: F401


# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    await register_workflow_templates()

    yield

    # Shutdown
    logger.info("Shutting down...")


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description="""
## Workflow Execution API

Run user-authored workflow graphs with per-node results and token/cost accounting.

### Node types
- **input** / **output**: where the run input enters and the result leaves
- **prompt**: templated LLM call
- **http_request**: call an external HTTP endpoint
- **condition**: pick the outgoing branch to follow
- **transform**: template, extract_json, combine or split
- **rag_query**: search the user's documents

### Quick Start
1. List node types: `GET /node-types`
2. Create a workflow: `POST /workflows`
3. Run it: `POST /workflows/{workflow_id}/execute`
4. Read the stored record: `GET /workflows/executions/{execution_id}`

### Templates
Built-in templates are listed at `GET /workflows/templates`.
    """,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)


# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Include routers
app.include_router(workflows.router)
app.include_router(node_types.router)


# ============================================================
# Root Endpoints
# ============================================================

@app.get("/", tags=["Root"])
async def root():
    """API root - returns basic info and links."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "description": "Workflow execution engine for LLM pipelines",
        "docs": "/docs",
        "redoc": "/redoc",
        "endpoints": {
            "workflows": "/workflows",
            "templates": "/workflows/templates",
            "execute": "/workflows/{workflow_id}/execute",
            "node_types": "/node-types",
        },
    }


@app.get("/health", tags=["Root"])
async def health():
    """Health check endpoint."""
    from accelflow.storage.memory import execution_storage, workflow_storage

    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "workflows_count": len(workflow_storage),
        "executions_count": len(execution_storage),
    }


# ============================================================
# Error Handlers
# ============================================================

@app.exception_handler(DefinitionError)
async def definition_error_handler(request: Request, exc: DefinitionError):
    """Invalid workflow definitions are rejected before any node runs."""
    logger.warning(f"Rejected workflow definition ({exc.code}): {exc.message}")
    return JSONResponse(
        status_code=400,
        content={
            "error": "Invalid workflow definition",
            "code": exc.code,
            "detail": exc.message,
            "node_ids": exc.node_ids,
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler for unhandled errors."""
    logger.exception(f"Unhandled error: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal Server Error",
            "detail": str(exc) if settings.DEBUG else "An unexpected error occurred",
        },
    )
