# pixelforge/main.py
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pixelforge.config import settings
from pixelforge.core.db import close_db, init_db

from pixelforge.api.v1.routers import admin, auth, dev, projects, tasks

from pixelforge.core.bootstrap import ensure_default_admin
from pixelforge.services.audit import build_audit_sink
from pixelforge.services.directory import StorageUnavailableError, build_directory_store
from pixelforge.services.projects import ProjectService
from pixelforge.services.sessions import SessionService
from pixelforge.services.tasks import TaskService
from pixelforge.services.workspace import build_workspace_store

logger = logging.getLogger("uvicorn.error")

app = FastAPI(title=settings.APP_NAME)

# CORS (with Cookie)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StorageUnavailableError)
async def storage_unavailable_handler(request: Request, exc: StorageUnavailableError):
    logger.error("[storage] %s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=503,
        content={
            "success": False,
            "error": {
                "code": "STORAGE_UNAVAILABLE",
                "message": "Service temporarily unavailable. Please try again later.",
            },
        },
    )


@app.on_event("startup")
async def on_startup():
    # Services already placed on app.state (tests) are left alone
    if getattr(app.state, "sessions", None) is None:
        backend = settings.directory_backend
        if backend == "db":
            await init_db()
            app.state.db_ready = True
        store = build_directory_store(backend, settings.directory_json_path)
        audit = build_audit_sink(backend, settings.audit_log_path)
        workspace = build_workspace_store(backend, settings.workspace_json_path)
        app.state.audit = audit
        app.state.sessions = SessionService(store, audit)
        app.state.projects = ProjectService(store, audit, workspace)
        app.state.tasks = TaskService(store, audit, workspace)
        app.state.sessions.add_dependent(app.state.projects)
        app.state.sessions.add_dependent(app.state.tasks)
        logger.info("[startup] directory backend: %s", backend)
    # Ensure there's a default admin account on first run
    await ensure_default_admin(app.state.sessions)


@app.on_event("shutdown")
async def on_shutdown():
    if getattr(app.state, "db_ready", False):
        await close_db()


# REST
app.include_router(auth.router, prefix="/api/v1")
app.include_router(admin.router, prefix="/api/v1")
app.include_router(projects.router, prefix="/api/v1")
app.include_router(tasks.router, prefix="/api/v1")
app.include_router(dev.router, prefix="/api/v1")


@app.get("/healthz")
def healthz():
    return {"ok": True}
