from uuid import UUID, uuid4
from datetime import datetime, timezone
from sqlalchemy import select, insert, delete

from mcfleet.core.database import database
from mcfleet.models.db import MetricSampleDB
from mcfleet.domain.metrics import MetricSample, StatsSource
from mcfleet.domain.ports import MetricSampleRepository


def _row_to_sample(row) -> MetricSample:
    timestamp = row["timestamp"]
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return MetricSample(
        instance_id=UUID(row["instance_id"]),
        source=StatsSource(row["source"]),
        cpu_percent=row["cpu_percent"],
        memory_used_bytes=row["memory_used_bytes"],
        memory_limit_bytes=row["memory_limit_bytes"],
        network_rx_bytes=row["network_rx_bytes"],
        network_tx_bytes=row["network_tx_bytes"],
        block_read_bytes=row["block_read_bytes"],
        block_write_bytes=row["block_write_bytes"],
        player_count=row["player_count"],
        max_players=row["max_players"],
        tps=row["tps"],
        entities=row["entities"],
        chunks_loaded=row["chunks_loaded"],
        game_memory_used_mb=row["game_memory_used_mb"],
        game_memory_max_mb=row["game_memory_max_mb"],
        extensions=row["extensions"] or {},
        timestamp=timestamp,
    )


class SQLMetricSampleRepository(MetricSampleRepository):
    """Samples are append-only; rows are never updated."""

    async def append(self, sample: MetricSample) -> None:
        await database.execute(
            insert(MetricSampleDB).values(
                id=str(uuid4()),
                instance_id=str(sample.instance_id),
                source=sample.source.value,
                timestamp=sample.timestamp,
                cpu_percent=sample.cpu_percent,
                memory_used_bytes=sample.memory_used_bytes,
                memory_limit_bytes=sample.memory_limit_bytes,
                network_rx_bytes=sample.network_rx_bytes,
                network_tx_bytes=sample.network_tx_bytes,
                block_read_bytes=sample.block_read_bytes,
                block_write_bytes=sample.block_write_bytes,
                player_count=sample.player_count,
                max_players=sample.max_players,
                tps=sample.tps,
                entities=sample.entities,
                chunks_loaded=sample.chunks_loaded,
                game_memory_used_mb=sample.game_memory_used_mb,
                game_memory_max_mb=sample.game_memory_max_mb,
                extensions=sample.extensions,
            )
        )

    async def latest(self, instance_id: UUID) -> MetricSample | None:
        row = await database.fetch_one(
            select(MetricSampleDB)
            .where(MetricSampleDB.instance_id == str(instance_id))
            .order_by(MetricSampleDB.timestamp.desc())
            .limit(1)
        )
        if not row:
            return None
        return _row_to_sample(row)

    async def range(
        self,
        instance_id: UUID,
        *,
        since: datetime | None = None,
        limit: int = 1000,
    ) -> list[MetricSample]:
        query = select(MetricSampleDB).where(MetricSampleDB.instance_id == str(instance_id))
        if since is not None:
            query = query.where(MetricSampleDB.timestamp >= since)
        rows = await database.fetch_all(
            query.order_by(MetricSampleDB.timestamp.desc()).limit(limit)
        )
        return [_row_to_sample(r) for r in rows]

    async def prune(self, before: datetime) -> None:
        await database.execute(
            delete(MetricSampleDB).where(MetricSampleDB.timestamp < before)
        )
