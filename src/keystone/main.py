"""Keystone FastAPI application entrypoint."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from keystone import __version__
from keystone.config import settings

# ── Logging ───────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.DEBUG if settings.keystone_debug else logging.INFO,
    format="%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
)
# Quiet down noisy third-party loggers
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("apscheduler").setLevel(logging.WARNING)
logging.getLogger("aiosqlite").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown lifecycle."""
    from keystone.db.session import close_db, init_db
    from keystone.tasks.workers import start_scheduler, stop_scheduler

    # SQLite sandboxes have no migrations to run, so the schema is created here.
    await init_db(create_tables=settings.is_sqlite)
    if settings.keystone_scheduler_enabled:
        start_scheduler()

    yield

    stop_scheduler()
    await close_db()


app = FastAPI(
    title="Keystone",
    description="Project management platform: risks, tasks, stakeholders, requirements and reports",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# Register API routes
from keystone.api.routes import projects, reports, requirements, rfcs, risks  # noqa: E402
from keystone.api.routes import stakeholders, tasks, users, workspaces  # noqa: E402

app.include_router(users.router, prefix="/api", tags=["Users"])
app.include_router(workspaces.router, prefix="/api", tags=["Workspaces"])
app.include_router(projects.router, prefix="/api", tags=["Projects"])
app.include_router(risks.router, prefix="/api", tags=["Risks"])
app.include_router(tasks.router, prefix="/api", tags=["Tasks"])
app.include_router(stakeholders.router, prefix="/api", tags=["Stakeholders"])
app.include_router(requirements.router, prefix="/api", tags=["Requirements"])
app.include_router(rfcs.router, prefix="/api", tags=["RFCs"])
app.include_router(reports.router, prefix="/api", tags=["Reports"])


@app.get("/health")
async def health_check():
    return {"status": "healthy", "version": __version__, "env": settings.keystone_env}
