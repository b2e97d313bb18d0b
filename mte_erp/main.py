"""
FastAPI application for ordered task boards and outbound communications.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mte_erp.config import settings
from mte_erp.core.errors import ERPError
from mte_erp.core.logging import bind_request, configure_logging, get_logger
from mte_erp.routers.attachments import router as attachments_router
from mte_erp.routers.check_lists import router as check_lists_router
from mte_erp.routers.checklist_items import router as checklist_items_router
from mte_erp.routers.communications import router as communications_router
from mte_erp.routers.deps import get_database
from mte_erp.routers.task_lists import router as task_lists_router
from mte_erp.routers.tasks import router as tasks_router
from mte_erp.routers.teams import router as teams_router

log = get_logger(__name__)

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    # Startup
    configure_logging(settings.log_level, settings.log_json)
    log.info("application_starting")

    # Initialize database schema
    get_database().init_schema()

    yield

    # Shutdown
    log.info("application_stopped")


app = FastAPI(
    title="MTE ERP",
    description="Ordered task boards and supplier/customer communications",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context(request: Request, call_next):
    """Tag every log line of a request and echo the id back to the caller."""
    request_id = bind_request(
        request.url.path,
        actor=request.headers.get("x-user-id"),
        request_id=request.headers.get("x-request-id"),
    )
    response = await call_next(request)
    response.headers["X-Request-Id"] = request_id
    return response


@app.exception_handler(ERPError)
async def erp_error_handler(request: Request, exc: ERPError) -> JSONResponse:
    """Map domain errors to HTTP status codes."""
    level = log.error if exc.status_code >= 500 else log.info
    level(
        "request_failed",
        path=request.url.path,
        error_type=type(exc).__name__,
        error=exc.message,
        status=exc.status_code,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": type(exc).__name__, "detail": exc.message, "context": exc.context},
    )


app.include_router(teams_router)
app.include_router(task_lists_router)
app.include_router(attachments_router)
app.include_router(tasks_router)
app.include_router(check_lists_router)
app.include_router(checklist_items_router)
app.include_router(communications_router)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "version": VERSION}
