import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from mcfleet.api import alerts, instances, metrics, monitoring
from mcfleet.api.deps import register_error_handlers
from mcfleet.core.config import Settings
from mcfleet.core.database import create_tables, database

from mcfleet.repositories.alert_repository import SQLAlertRepository
from mcfleet.repositories.instance_repository import SQLInstanceRepository
from mcfleet.repositories.metric_repository import SQLMetricSampleRepository
from mcfleet.repositories.monitoring_repository import SQLMonitoringConfigRepository

from mcfleet.services.context import ServiceContext
from mcfleet.services.docker_runtime import DockerSDKRuntime

settings = Settings()

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


app = FastAPI(title="mcfleet – Game Server Control Plane")

origins = [
    "http://localhost:5173"
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

app.include_router(instances.router)
app.include_router(monitoring.router)
app.include_router(metrics.router)
app.include_router(alerts.router)


# ---------- Startup / Shutdown ----------

@app.on_event("startup")
async def startup_event():
    create_tables()
    await database.connect()

    app.state.context = ServiceContext(
        instance_repo=SQLInstanceRepository(),
        metric_repo=SQLMetricSampleRepository(),
        alert_repo=SQLAlertRepository(),
        monitoring_repo=SQLMonitoringConfigRepository(),
        docker_runtime=DockerSDKRuntime(),
        settings=settings,
    )
    await app.state.context.start()
    logger.info("[STARTUP] Service context started")


@app.on_event("shutdown")
async def shutdown_event():
    context = getattr(app.state, "context", None)
    if context is not None:
        await context.stop()
    await database.disconnect()
    logger.info("[SHUTDOWN] Database disconnected")
