import pytest
from datetime import datetime, timedelta, timezone
from uuid import uuid4

from mcfleet.domain.errors import InstanceNotFoundError
from mcfleet.domain.instance import Instance
from mcfleet.domain.metrics import MetricSample, StatsSource
from mcfleet.services.metrics_service import MetricsService


async def seeded(instance_repo, metric_repo):
    instance = Instance(id=uuid4(), name="a", server_type="VANILLA", version="1.20")
    await instance_repo.create(instance)
    now = datetime.now(timezone.utc)

    def at(minutes_ago, **values):
        return MetricSample(
            instance_id=instance.id, source=StatsSource.CONSOLE,
            timestamp=now - timedelta(minutes=minutes_ago), **values,
        )

    for sample in [
        at(5, cpu_percent=10.0, memory_used_bytes=100, tps=20.0, player_count=2),
        at(30, cpu_percent=20.0, memory_used_bytes=300, tps=None, player_count=4),
        at(600, cpu_percent=90.0, memory_used_bytes=900, tps=5.0, player_count=9),
        at(60 * 30, cpu_percent=99.0, player_count=50),
    ]:
        await metric_repo.append(sample)
    return instance


@pytest.mark.asyncio
async def test_current_returns_latest(instance_repo, metric_repo):
    instance = await seeded(instance_repo, metric_repo)
    service = MetricsService(instance_repo, metric_repo)

    current = await service.current(instance.id)
    assert current.cpu_percent == 10.0


@pytest.mark.asyncio
async def test_history_is_bounded_by_hours(instance_repo, metric_repo):
    instance = await seeded(instance_repo, metric_repo)
    service = MetricsService(instance_repo, metric_repo)

    assert len(await service.history(instance.id, hours=1)) == 2
    assert len(await service.history(instance.id, hours=24)) == 3


@pytest.mark.asyncio
async def test_summary(instance_repo, metric_repo):
    instance = await seeded(instance_repo, metric_repo)
    service = MetricsService(instance_repo, metric_repo)

    summary = await service.summary(instance.id)

    assert summary.avg_cpu_percent == 15.0
    assert summary.avg_memory_used_bytes == 200.0
    assert summary.avg_tps == 20.0
    assert summary.max_players_24h == 9
    assert summary.samples_last_hour == 2


@pytest.mark.asyncio
async def test_summary_without_data_is_zero(instance_repo, metric_repo):
    instance = Instance(id=uuid4(), name="a", server_type="VANILLA", version="1.20")
    await instance_repo.create(instance)

    summary = await MetricsService(instance_repo, metric_repo).summary(instance.id)
    assert (summary.avg_cpu_percent, summary.avg_tps, summary.max_players_24h) == (0.0, 0.0, 0)


@pytest.mark.asyncio
async def test_unknown_instance(instance_repo, metric_repo):
    with pytest.raises(InstanceNotFoundError):
        await MetricsService(instance_repo, metric_repo).current(uuid4())
