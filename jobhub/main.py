from contextlib import asynccontextmanager
import asyncio
import logging
import time

from fastapi import FastAPI
from starlette.requests import Request

from jobhub.api.router import api_router
from jobhub.core.config import get_settings
from jobhub.core.telemetry import TelemetryRuntime, configure_logging, setup_telemetry, shutdown_telemetry
from jobhub.services.runtime import get_runtime
from jobhub.worker import Worker

settings = get_settings()
_telemetry_runtime: TelemetryRuntime | None = None
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    runtime = get_runtime()
    await runtime.start()
    stop = asyncio.Event()
    worker_task: asyncio.Task | None = None
    if settings.embedded_worker:
        worker = Worker(runtime)
        await worker.setup()
        worker_task = asyncio.create_task(worker.run(stop))
        logger.info("embedded worker started")
    try:
        yield
    finally:
        stop.set()
        if worker_task is not None:
            await worker_task
        if _telemetry_runtime is not None:
            shutdown_telemetry(_telemetry_runtime)
        # Pool, push client and bus shut down with the runtime.
        await runtime.close()
        get_runtime.cache_clear()


configure_logging()
app = FastAPI(title=settings.app_name, lifespan=lifespan)
_telemetry_runtime = setup_telemetry(settings, service_name=f"{settings.otel_service_name}-api", app=app)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    started_at = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started_at) * 1000.0
    logger.info(
        "http request method=%s path=%s status=%s duration_ms=%.2f",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
    )
    return response


app.include_router(api_router)
