import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List
from uuid import UUID

from mcfleet.core.config import Settings
from mcfleet.domain.errors import TransientRuntimeError
from mcfleet.domain.instance import Instance, InstanceStatus
from mcfleet.domain.metrics import GameStats, MetricSample, RuntimeCounters
from mcfleet.domain.ports import (
    DockerRuntime,
    InstanceRepository,
    MetricSampleRepository,
    MonitoringConfigRepository,
)
from mcfleet.schemas.monitoring import MonitoringConfig
from mcfleet.services.console import ConsoleSessions
from mcfleet.services.game_stats import ConsoleStatsSource, LogHeuristicSource

logger = logging.getLogger(__name__)


def cpu_percent(previous: RuntimeCounters, current: RuntimeCounters) -> float:
    cpu_delta = current.cpu_total_usage - previous.cpu_total_usage
    system_delta = current.system_cpu_usage - previous.system_cpu_usage
    if system_delta <= 0 or cpu_delta < 0:
        return 0.0
    return round(cpu_delta / system_delta * 100, 2)


class CpuTracker:
    """Keeps the previous cumulative counters of every instance."""

    def __init__(self):
        self._previous: Dict[UUID, RuntimeCounters] = {}

    def update(self, instance_id: UUID, counters: RuntimeCounters) -> float:
        previous = self._previous.get(instance_id)
        self._previous[instance_id] = counters
        if previous is None:
            return 0.0
        return cpu_percent(previous, counters)

    def forget(self, instance_id: UUID) -> None:
        self._previous.pop(instance_id, None)


class MetricsCollector:
    def __init__(
        self,
        instance_repo: InstanceRepository,
        metric_repo: MetricSampleRepository,
        monitoring_repo: MonitoringConfigRepository,
        docker_runtime: DockerRuntime,
        sessions: ConsoleSessions,
        settings: Settings | None = None,
    ):
        self.settings = settings or Settings()
        self.instance_repo = instance_repo
        self.metric_repo = metric_repo
        self.monitoring_repo = monitoring_repo
        self.runtime = docker_runtime
        self.sessions = sessions
        self.console_source = ConsoleStatsSource(sessions)
        self.log_source = LogHeuristicSource(docker_runtime, tail=self.settings.LOG_TAIL_LINES)
        self.cpu = CpuTracker()
        self._loop_task: asyncio.Task | None = None
        self._tick_task: asyncio.Task | None = None

    # -------------------------------
    # Loop control
    # -------------------------------
    def start(self) -> None:
        if self._loop_task is None or self._loop_task.done():
            self._loop_task = asyncio.create_task(self._loop(self.settings.METRICS_INTERVAL_SECONDS))

    async def stop(self) -> None:
        for task in (self._loop_task, self._tick_task):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._loop_task = None
        self._tick_task = None

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def tick(self) -> bool:
        """
        Launch one collection pass in the background.

        Returns False, without launching anything, while the previous pass
        is still in flight.
        """
        if self._tick_task is not None and not self._tick_task.done():
            logger.warning("Previous metrics tick still running, skipping this one")
            return False
        self._tick_task = asyncio.create_task(self._run_tick())
        return True

    async def _loop(self, interval: float):
        while True:
            self.tick()
            await asyncio.sleep(interval)

    async def _run_tick(self) -> None:
        try:
            await self.collect_once()
        except Exception:
            logger.exception("Metrics tick failed")

    # -------------------------------
    # Collection
    # -------------------------------
    async def collect_once(self) -> List[MetricSample]:
        instances = [
            i for i in await self.instance_repo.list()
            if i.status == InstanceStatus.RUNNING and i.container_id
        ]
        results = await asyncio.gather(*(self._collect_guarded(i) for i in instances))
        samples = []
        for sample in results:
            if sample is None:
                continue
            try:
                await self.metric_repo.append(sample)
            except Exception:
                logger.exception("Failed to store metric sample for instance %s", sample.instance_id)
                continue
            samples.append(sample)

        cutoff = datetime.now(timezone.utc) - timedelta(days=self.settings.METRICS_RETENTION_DAYS)
        await self.metric_repo.prune(cutoff)

        logger.debug("Collected %d metric samples", len(samples))
        return samples

    async def _collect_guarded(self, instance: Instance) -> MetricSample | None:
        try:
            return await self.collect_instance(instance)
        except TransientRuntimeError as exc:
            logger.warning("Skipping metrics for instance %s: %s", instance.id, exc)
        except Exception:
            logger.exception("Unexpected error collecting metrics for instance %s", instance.id)
        return None

    async def collect_instance(self, instance: Instance) -> MetricSample:
        try:
            counters = await asyncio.wait_for(
                self.runtime.stats(instance.container_id),
                timeout=self.settings.STATS_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError as exc:
            raise TransientRuntimeError(f"Stats for {instance.container_id} timed out") from exc

        game = await self.game_stats(instance)

        return MetricSample(
            instance_id=instance.id,
            source=game.source,
            cpu_percent=self.cpu.update(instance.id, counters),
            memory_used_bytes=counters.memory_usage_bytes,
            memory_limit_bytes=counters.memory_limit_bytes,
            network_rx_bytes=counters.network_rx_bytes,
            network_tx_bytes=counters.network_tx_bytes,
            block_read_bytes=counters.block_read_bytes,
            block_write_bytes=counters.block_write_bytes,
            player_count=game.player_count,
            max_players=game.max_players,
            tps=game.tps,
            entities=game.entities,
            chunks_loaded=game.chunks_loaded,
            game_memory_used_mb=game.memory_used_mb,
            game_memory_max_mb=game.memory_max_mb,
            extensions=dict(game.extensions),
        )

    async def game_stats(self, instance: Instance) -> GameStats:
        """Console when a session can be had, container logs otherwise."""
        config = await self.monitoring_repo.get(instance.id) or MonitoringConfig()
        password = config.console_password or instance.console_password
        port = config.console_port or instance.console_port

        if config.console_enabled and password and port:
            client = await self.sessions.ensure(instance.id, self.settings.CONSOLE_HOST, port, password)
            if client is not None:
                try:
                    return await self.console_source.fetch(instance)
                except TransientRuntimeError as exc:
                    logger.info("Console stats unavailable for %s, using logs: %s", instance.id, exc)

        return await self.log_source.fetch(instance)

    def forget(self, instance_id: UUID) -> None:
        self.cpu.forget(instance_id)
