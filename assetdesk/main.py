import asyncio
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from assetdesk.core.config import settings
from assetdesk.core.logging import (
    current_actor_ctx,
    get_logger,
    loan_request_id_ctx,
    request_id_ctx,
    setup_logging,
)
from assetdesk.db.models import Base
from assetdesk.db.session import AsyncSessionLocal, engine
from assetdesk.services.overdue import overdue_checker_loop
from assetdesk.stores.registry import Stores

logger = get_logger("assetdesk.main")

# Background task reference
_overdue_task: asyncio.Task | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    global _overdue_task

    # Startup
    setup_logging()
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    # Collections table
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    stores = Stores.build(AsyncSessionLocal)
    await stores.fetch_all()
    app.state.stores = stores

    if settings.OVERDUE_CHECK_ENABLED:
        _overdue_task = asyncio.create_task(overdue_checker_loop(stores))
        logger.info("Background overdue checker started")

    yield

    # Shutdown
    if _overdue_task:
        _overdue_task.cancel()
        try:
            await _overdue_task
        except asyncio.CancelledError:
            pass
        _overdue_task = None
    logger.info("Application shutdown complete")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=(
        "## Asset Loan Management API\n\n"
        "Internal API for lending IT and network assets:\n\n"
        "- **Assets** – Register and track serialized assets\n"
        "- **Loan Requests** – Request, review and assign, approve or reject\n"
        "- **Handovers** – Record the physical transfer of assigned assets\n"
        "- **Returns** – Confirm returned assets, fully or in part\n\n"
        "### Authentication\n"
        "Every endpoint except `/health` requires a **Bearer JWT** issued by the identity service. "
        "Claims: `sub` (display name), `role`, optional `division` and `permissions`.\n\n"
        "### Roles\n"
        "| Role | Description |\n"
        "|------|-------------|\n"
        "| `Staff` / `Leader` | Request loans and follow their own requests |\n"
        "| `Admin Logistik` | Review, assign, hand over and take back assets |\n"
        "| `Admin Purchase` | Read-only view of loans and assets |\n"
        "| `Super Admin` | Full access |\n"
    ),
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {
            "name": "Health",
            "description": "Application health checks",
        },
        {
            "name": "Assets",
            "description": "Asset registry",
        },
        {
            "name": "Loan Requests",
            "description": "Loan lifecycle – request, assign, approve, hand over, return",
        },
        {
            "name": "Handovers",
            "description": "Handover documents",
        },
        {
            "name": "Returns",
            "description": "Return documents filed by borrowers",
        },
    ],
    servers=[
        {"url": "http://localhost:8000", "description": "Local development"},
    ],
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request id, log context reset and timing
@app.middleware("http")
async def request_middleware(request: Request, call_next):
    # Reuse an inbound id when the caller sends one
    req_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())[:8]
    request_id_ctx.set(req_id)
    current_actor_ctx.set(None)
    loan_request_id_ctx.set(None)

    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time

    logger.info(
        f"{request.method} {request.url.path} -> {response.status_code} "
        f"({duration:.3f}s)"
    )

    response.headers["X-Request-ID"] = req_id
    return response


# Health check
@app.get("/health", tags=["Health"], summary="Health check", description="Returns the current health status and API version.")
async def health_check():
    return {"status": "healthy", "version": settings.APP_VERSION}


@app.get(
    "/openapi.json",
    tags=["Health"],
    summary="Download OpenAPI spec",
    include_in_schema=False,
)
async def get_openapi_spec():
    return JSONResponse(content=app.openapi())


# Include routers
from assetdesk.api.v1.endpoints.assets import router as assets_router
from assetdesk.api.v1.endpoints.loan_requests import router as loan_requests_router
from assetdesk.api.v1.endpoints.handovers import router as handovers_router
from assetdesk.api.v1.endpoints.returns import router as returns_router

app.include_router(assets_router, prefix="/api/v1")
app.include_router(loan_requests_router, prefix="/api/v1")
app.include_router(handovers_router, prefix="/api/v1")
app.include_router(returns_router, prefix="/api/v1")
