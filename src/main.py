from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from src.domain.errors import IntegrationSyncError, StorageError, error_body, error_http_status
from src.observability import incr_metric, log_event
from src.routers import (
    access,
    client_invites,
    dropbox,
    plugins,
    review_links,
)

app = FastAPI(title="Studio HQ", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def attach_request_id(request: Request, call_next):
    request_id = (
        request.headers.get("X-Request-ID")
        or request.headers.get("X-Correlation-ID")
        or str(uuid4())
    )
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


@app.exception_handler(IntegrationSyncError)
async def integration_sync_error_handler(request: Request, exc: IntegrationSyncError):
    incr_metric("integration.errors", code=exc.code)
    return JSONResponse(status_code=error_http_status(exc), content=error_body(exc))


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    log_event(
        "storage_unavailable",
        request_id=getattr(request.state, "request_id", None),
        operation=exc.operation,
        path=request.url.path,
    )
    return JSONResponse(status_code=error_http_status(exc), content=error_body(exc))


app.include_router(access.router)
app.include_router(review_links.router)
app.include_router(client_invites.router)
app.include_router(dropbox.router)
app.include_router(plugins.router)


@app.get("/")
async def root():
    return {"status": "ok", "service": "studio-hq"}


@app.get("/health")
async def health():
    return {"status": "healthy"}
