from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from loguru import logger

from recharge_api.core.settings import settings
from recharge_api.db.session import async_session
from .api.routes import api_router
from .core.logging import configure_logging
from .scheduling import JobScheduler
from .workers import ExpiryReminderWorker


APP_VERSION = "0.1.0"


def _session_factory():
    return async_session()


def _resolve_schedule_path() -> Path:
    schedule_path = Path(settings.job_schedule_path)
    if not schedule_path.is_absolute():
        schedule_path = Path(__file__).resolve().parent.parent.parent / schedule_path
    return schedule_path


@asynccontextmanager
async def lifespan(app: FastAPI):
    reminder_worker = ExpiryReminderWorker(
        session_factory=_session_factory,
        interval_seconds=settings.expiry_reminder_interval_seconds,
        initial_delay_seconds=settings.expiry_reminder_initial_delay_seconds,
        trigger_label=settings.expiry_reminder_trigger_label,
    )
    schedule_path = _resolve_schedule_path()
    job_scheduler = JobScheduler(session_factory=_session_factory, config_path=schedule_path)

    app.state.expiry_reminder_worker = reminder_worker
    app.state.job_scheduler = job_scheduler

    scheduler_enabled = settings.job_scheduler_enabled
    if scheduler_enabled:
        try:
            job_scheduler.start()
        except FileNotFoundError as exc:
            logger.exception("Job scheduler failed to start", error=str(exc))
        else:
            logger.info("Job scheduler enabled", schedule_path=str(schedule_path))
    else:
        logger.info("Job scheduler disabled", reason="job_scheduler_enabled is false")

    worker_enabled = settings.expiry_reminder_worker_enabled
    if worker_enabled and not scheduler_enabled:
        reminder_worker.start()
    elif worker_enabled and scheduler_enabled:
        logger.info("Expiry reminder worker managed via scheduler", schedule_path=str(schedule_path))
    else:
        logger.info("Expiry reminder worker disabled", reason="expiry_reminder_worker_enabled is false")

    try:
        yield
    finally:
        if reminder_worker.is_running:
            await reminder_worker.stop()
        if job_scheduler.is_running:
            await job_scheduler.stop()


def create_app() -> FastAPI:
    """Application factory for the recharge code service."""
    configure_logging(
        service_name="recharge-api",
        environment=settings.environment,
        version=APP_VERSION,
    )

    app = FastAPI(
        title="Recharge Code API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": APP_VERSION,
        }

    return app
