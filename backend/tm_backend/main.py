"""FastAPI app: uploads storage gateway, CORS, security headers, request logging, metrics."""
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from tm_backend.core.config import get_settings
from tm_backend.core.deps import get_gateway, require_metrics_access
from tm_backend.core.metrics import get_metrics
from tm_backend.core.request_logging import RequestLoggingMiddleware
from tm_backend.api.uploads import router as uploads_router
from tm_backend.services.storage.base import StorageConfig
from tm_backend.services.uploads import StorageGateway, build_gateway

settings = get_settings()
if settings.log_json:
    for h in logging.getLogger("tm_backend.request").handlers[:]:
        logging.getLogger("tm_backend.request").removeHandler(h)
    h = logging.StreamHandler()
    h.setFormatter(logging.Formatter("%(message)s"))
    logging.getLogger("tm_backend.request").addHandler(h)
    logging.getLogger("tm_backend.request").setLevel(logging.INFO)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Storage mode is decided exactly once per process
    app.state.gateway = build_gateway(StorageConfig.from_settings(settings))
    yield


app = FastAPI(title=settings.app_name, debug=settings.debug, lifespan=lifespan)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins.split(","),
    allow_credentials=True,
    allow_methods=["GET", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


@app.middleware("http")
async def security_headers(request, call_next):
    response = await call_next(request)
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    # Attachments keep the caller's MIME type and are served inline: never let them run script
    response.headers["Content-Security-Policy"] = "default-src 'self'; frame-ancestors 'none'; sandbox"
    return response


app.include_router(uploads_router)


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/healthz")
async def healthz():
    """Liveness: no storage access. Used by ALB/ECS."""
    return {"status": "ok"}


@app.get("/readyz")
async def readyz(gateway: StorageGateway = Depends(get_gateway)):
    """Readiness: gateway initialised; reports which backend is active."""
    return {"status": "ok", "storage": gateway.mode}


@app.get("/metrics", response_class=Response)
async def metrics(_: None = Depends(require_metrics_access)):
    """Prometheus metrics. Guard with METRICS_SECRET + X-Metrics-Secret header outside local dev."""
    body, content_type = get_metrics()
    return Response(content=body, media_type=content_type)
