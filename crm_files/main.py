import logging
import uuid
from time import monotonic

from fastapi import Depends, FastAPI, Request
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from crm_files.api.deps import get_current_actor
from crm_files.api.files import router as files_router
from crm_files.errors import register_error_handlers
from crm_files.logging import configure_logging
from crm_files.metrics import REQUEST_COUNT, REQUEST_LATENCY
from crm_files.services.object_storage import ensure_storage_bucket

app = FastAPI(title="crm_files API")
logger = logging.getLogger(__name__)
configure_logging()
register_error_handlers(app)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    request.state.request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
    started = monotonic()
    response = await call_next(request)
    route = request.scope.get("route")
    path = getattr(route, "path", request.url.path)
    labels = {"method": request.method, "path": path, "status": str(response.status_code)}
    REQUEST_COUNT.labels(**labels).inc()
    REQUEST_LATENCY.labels(**labels).observe(monotonic() - started)
    response.headers["x-request-id"] = request.state.request_id
    return response


def _include_api_router(router, dependencies=None):
    app.include_router(router, prefix="/api/v1", dependencies=dependencies)


_include_api_router(files_router, dependencies=[Depends(get_current_actor)])


@app.get("/health")
def health_check():
    return {"status": "ok"}


@app.get("/metrics")
def metrics():
    data = generate_latest()
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)


@app.on_event("startup")
def _ensure_storage():
    try:
        ensure_storage_bucket()
    except Exception:
        logger.exception("Failed to ensure storage bucket during startup")
