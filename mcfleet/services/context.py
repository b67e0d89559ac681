import asyncio
import logging
from collections import defaultdict
from typing import DefaultDict
from uuid import UUID

from mcfleet.core.config import Settings
from mcfleet.domain.instance import Instance, InstanceStatus
from mcfleet.domain.ports import (
    AlertRepository,
    DockerRuntime,
    FilesystemMutator,
    InstanceRepository,
    MetricSampleRepository,
    MonitoringConfigRepository,
)
from mcfleet.schemas.monitoring import MonitoringConfig
from mcfleet.services.alert_evaluator import AlertEvaluator
from mcfleet.services.console import ClientFactory, ConsoleClient, ConsoleSessions
from mcfleet.services.filesystem import HelperContainerMutator
from mcfleet.services.instance_service import InstanceService
from mcfleet.services.metrics_collector import MetricsCollector
from mcfleet.services.metrics_service import MetricsService
from mcfleet.services.plugin_service import PluginService

logger = logging.getLogger(__name__)


class ServiceContext:
    """
    Long-lived process state: console sessions, background loops and
    per-instance lifecycle locks. Started once on application startup and
    stopped once on shutdown.
    """

    def __init__(
        self,
        *,
        instance_repo: InstanceRepository,
        metric_repo: MetricSampleRepository,
        alert_repo: AlertRepository,
        monitoring_repo: MonitoringConfigRepository,
        docker_runtime: DockerRuntime,
        filesystem: FilesystemMutator | None = None,
        settings: Settings | None = None,
        console_factory: ClientFactory = ConsoleClient,
    ):
        self.settings = settings or Settings()
        self.runtime = docker_runtime
        self.instance_repo = instance_repo
        self.metric_repo = metric_repo
        self.alert_repo = alert_repo
        self.monitoring_repo = monitoring_repo

        self.sessions = ConsoleSessions(
            timeout=self.settings.CONSOLE_TIMEOUT_SECONDS,
            client_factory=console_factory,
        )
        self.instances = InstanceService(
            instance_repo,
            docker_runtime,
            filesystem or HelperContainerMutator(docker_runtime, self.settings.HELPER_IMAGE),
            self.settings,
        )
        self.plugins = PluginService(self.instances)
        self.collector = MetricsCollector(
            instance_repo, metric_repo, monitoring_repo, docker_runtime, self.sessions, self.settings
        )
        self.metrics = MetricsService(instance_repo, metric_repo)
        self.alerts = AlertEvaluator(alert_repo, instance_repo, metric_repo, self.settings)

        self._locks: DefaultDict[UUID, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._reconcile_task: asyncio.Task | None = None
        self.started = False

    def instance_lock(self, instance_id: UUID) -> asyncio.Lock:
        return self._locks[instance_id]

    # -------------------------------
    # Startup / Shutdown
    # -------------------------------
    async def start(self) -> None:
        if self.started:
            return
        self.collector.start()
        self.alerts.start()
        self._reconcile_task = asyncio.create_task(
            self._reconcile_loop(self.settings.RECONCILE_INTERVAL_SECONDS)
        )
        self.started = True
        logger.info("Service context started")

    async def stop(self) -> None:
        if self._reconcile_task is not None and not self._reconcile_task.done():
            self._reconcile_task.cancel()
            try:
                await self._reconcile_task
            except asyncio.CancelledError:
                pass
        self._reconcile_task = None
        await self.collector.stop()
        await self.alerts.stop()
        await self.sessions.disconnect_all()
        self.started = False
        logger.info("Service context stopped")

    # -------------------------------
    # Console
    # -------------------------------
    async def console_for(self, instance: Instance) -> ConsoleClient | None:
        """Authenticated session for a running instance, connecting if needed."""
        if instance.status != InstanceStatus.RUNNING:
            return None
        config = await self.monitoring_repo.get(instance.id) or MonitoringConfig()
        password = config.console_password or instance.console_password
        port = config.console_port or instance.console_port
        if not config.console_enabled or not password or not port:
            return None
        return await self.sessions.ensure(instance.id, self.settings.CONSOLE_HOST, port, password)

    async def release(self, instance_id: UUID) -> None:
        """Drop per-instance runtime state after a stop or delete."""
        await self.sessions.disconnect(instance_id)
        self.collector.forget(instance_id)

    async def forget(self, instance_id: UUID) -> None:
        await self.release(instance_id)
        self.alerts.forget(instance_id)
        self._locks.pop(instance_id, None)

    # -------------------------------
    # Reconciliation
    # -------------------------------
    async def reconcile_once(self) -> None:
        for instance in await self.instance_repo.list():
            if instance.status != InstanceStatus.RUNNING:
                continue
            lock = self.instance_lock(instance.id)
            if lock.locked():
                # A lifecycle call is in progress; check again next round
                continue
            async with lock:
                updated = await self.instances.reconcile_instance(instance.id)
            if updated is not None and updated.status == InstanceStatus.ERROR:
                await self.release(instance.id)

    async def _reconcile_loop(self, interval: float):
        while True:
            try:
                await self.reconcile_once()
            except Exception:
                logger.exception("[RECONCILE ERROR]")
            await asyncio.sleep(interval)
