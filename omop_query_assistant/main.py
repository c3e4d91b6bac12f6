from __future__ import annotations

from contextlib import asynccontextmanager
import time

from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from omop_query_assistant.api.errors import install_error_handlers
from omop_query_assistant.api.routes import (
    chat,
    health,
    history,
    query,
    schema,
    settings,
)
from omop_query_assistant.core.config import get_settings
from omop_query_assistant.services.database.executor import close_connections
from omop_query_assistant.utils.logging import log_event, request_scope


@asynccontextmanager
async def lifespan(_: FastAPI):
    log_event("app.startup", {"environment": get_settings().app_env})
    yield
    close_connections()


app = FastAPI(title="OMOP Query Assistant API", version="0.1.0", lifespan=lifespan)

origins = list(get_settings().cors_allow_origins)
if origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.middleware("http")
async def log_requests(request: Request, call_next):
    with request_scope(request.headers.get("x-request-id")) as request_id:
        start = time.perf_counter()
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        log_event(
            "http.request",
            {
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "duration_ms": round((time.perf_counter() - start) * 1000, 2),
            },
        )
        return response


install_error_handlers(app)

api = APIRouter(prefix="/api")
api.include_router(health.router, prefix="/health", tags=["health"])
api.include_router(query.router, prefix="/query", tags=["query"])
api.include_router(chat.router, prefix="/chat", tags=["chat"])
api.include_router(history.router, prefix="/history", tags=["history"])
api.include_router(settings.router, prefix="/settings", tags=["settings"])
api.include_router(schema.router, prefix="/schema", tags=["schema"])
app.include_router(api)
