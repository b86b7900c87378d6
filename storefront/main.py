"""
Storefront Order API.
FastAPI async backend; catalog browsing, checkout with transactional stock control, admin order management.
"""
from __future__ import annotations

import time
import uuid as uuid_lib

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import Counter, Histogram, generate_latest
from starlette.responses import Response

from storefront.api import admin, catalog, orders
from storefront.config import get_settings
from storefront.core.logging import get_logger, request_id_ctx

logger = get_logger("storefront")
settings = get_settings()

# Sentry (configurable via SENTRY_DSN)
if settings.sentry_dsn:
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.app_env,
        traces_sample_rate=0.1,
        integrations=[FastApiIntegration()],
    )

app = FastAPI(
    title="Storefront Order API",
    description="Catalog, checkout and order management for the storefront.",
    version="1.0.0",
    openapi_tags=[
        {"name": "catalog", "description": "Active products and variants"},
        {"name": "orders", "description": "Checkout and order lookup"},
        {"name": "admin", "description": "Order management (admin only)"},
    ],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Prometheus metrics
REQUEST_COUNT = Counter("http_requests_total", "Total requests", ["method", "path", "status"])
REQUEST_LATENCY = Histogram("http_request_duration_seconds", "Request latency", ["method", "path"])


@app.middleware("http")
async def request_id_and_metrics(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid_lib.uuid4())
    token = request_id_ctx.set(request_id)
    start = time.perf_counter()
    method = request.scope.get("method", "")
    try:
        response = await call_next(request)
    finally:
        request_id_ctx.reset(token)
    # Route template keeps label cardinality bounded (no raw order ids or scanned urls)
    route = request.scope.get("route")
    path = getattr(route, "path", "unmatched")
    duration = time.perf_counter() - start
    REQUEST_COUNT.labels(method=method, path=path, status=response.status_code).inc()
    REQUEST_LATENCY.labels(method=method, path=path).observe(duration)
    response.headers["X-Request-ID"] = request_id
    return response


prefix = settings.api_prefix
app.include_router(catalog.router, prefix=prefix)
app.include_router(orders.router, prefix=prefix)
app.include_router(admin.router, prefix=prefix)


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/metrics")
async def metrics():
    return Response(generate_latest(), media_type="text/plain")


@app.get("/")
async def root():
    return {"message": "Storefront Order API", "docs": "/docs"}


def run() -> None:
    """Console entry point: serve the app with uvicorn on the configured host and port."""
    import uvicorn

    uvicorn.run(
        "storefront.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
