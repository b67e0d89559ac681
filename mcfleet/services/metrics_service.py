from datetime import datetime, timedelta, timezone
from typing import List
from uuid import UUID

from mcfleet.domain.errors import InstanceNotFoundError
from mcfleet.domain.metrics import MetricSample
from mcfleet.domain.ports import InstanceRepository, MetricSampleRepository
from mcfleet.schemas.metrics import MetricsSummary

SAMPLES_PER_HOUR = 120
MAX_HISTORY_SAMPLES = 10000


def _average(values: List[float]) -> float:
    return round(sum(values) / len(values), 2) if values else 0.0


class MetricsService:
    """Read side of the collected samples."""

    def __init__(self, instance_repo: InstanceRepository, metric_repo: MetricSampleRepository):
        self.instance_repo = instance_repo
        self.metric_repo = metric_repo

    async def _require(self, instance_id: UUID) -> None:
        if not await self.instance_repo.get(instance_id):
            raise InstanceNotFoundError(instance_id)

    async def current(self, instance_id: UUID) -> MetricSample | None:
        await self._require(instance_id)
        return await self.metric_repo.latest(instance_id)

    async def history(self, instance_id: UUID, hours: int = 24) -> List[MetricSample]:
        await self._require(instance_id)
        since = datetime.now(timezone.utc) - timedelta(hours=hours)
        limit = min(hours * SAMPLES_PER_HOUR, MAX_HISTORY_SAMPLES)
        return await self.metric_repo.range(instance_id, since=since, limit=limit)

    async def summary(self, instance_id: UUID) -> MetricsSummary:
        await self._require(instance_id)
        now = datetime.now(timezone.utc)

        last_hour = await self.metric_repo.range(
            instance_id, since=now - timedelta(hours=1), limit=SAMPLES_PER_HOUR * 2
        )
        last_day = await self.metric_repo.range(
            instance_id, since=now - timedelta(hours=24), limit=MAX_HISTORY_SAMPLES
        )

        return MetricsSummary(
            avg_cpu_percent=_average([s.cpu_percent for s in last_hour]),
            avg_memory_used_bytes=_average([s.memory_used_bytes for s in last_hour]),
            avg_tps=_average([s.tps for s in last_hour if s.tps is not None]),
            max_players_24h=max((s.player_count for s in last_day), default=0),
            samples_last_hour=len(last_hour),
        )
