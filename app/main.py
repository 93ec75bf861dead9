"""
Renewal Decision Engine: FastAPI Application Entry Point

POST  /v1/renewals/assessments   → public assessment intake
PATCH /v1/renewals/decisions/{id} → role-gated review lifecycle
GET   /v1/renewals/health         → health check
GET   /docs                       → OpenAPI / Swagger UI
"""
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from app.api.admin_endpoint import router as admin_router
from app.api.assessment_endpoint import router as assessment_router
from app.api.decision_endpoint import router as decision_router
from app.core.config import get_settings
from app.core.errors import RenewalError
from app.services.background import get_dispatcher
from app.services.notifier import close_producer

structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.dev.ConsoleRenderer() if get_settings().app_env == "development"
        else structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(get_settings().log_level),
)
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("renewal_engine_starting", env=get_settings().app_env)
    yield
    await get_dispatcher().drain()
    await close_producer()
    logger.info("renewal_engine_shutting_down")


app = FastAPI(
    title="Renewal Decision Engine",
    description="Aggregates staff renewal assessments and drives the subscription review workflow",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# ── CORS (dashboard front-end) ──
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # tighten in production
    allow_methods=["POST", "GET", "PATCH", "DELETE"],
    allow_headers=["*"],
)


@app.exception_handler(RenewalError)
async def handle_renewal_error(request: Request, exc: RenewalError) -> JSONResponse:
    log = logger.warning if exc.http_status < 500 else logger.error
    log("request_failed", path=request.url.path, status=exc.http_status, **exc.to_dict())
    return JSONResponse(status_code=exc.http_status, content={"error": exc.to_dict()})


# ── Prometheus metrics ──
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

# ── Routes ──
app.include_router(assessment_router)
app.include_router(decision_router)
app.include_router(admin_router)


@app.get("/v1/renewals/health", tags=["health"])
async def health():
    return {"status": "ok", "service": get_settings().app_name}


@app.get("/", include_in_schema=False)
async def root():
    return {
        "service": get_settings().app_name,
        "version": "1.0.0",
        "docs": "/docs",
        "submit": "POST /v1/renewals/assessments",
    }
