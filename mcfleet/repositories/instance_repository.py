from uuid import UUID
from datetime import timezone
from sqlalchemy import select, insert, update, delete

from mcfleet.core.database import database
from mcfleet.models.db import AlertDB, InstanceDB, MetricSampleDB, MonitoringConfigDB
from mcfleet.domain.instance import Instance, InstanceStatus
from mcfleet.domain.ports import InstanceRepository


def _row_to_instance(row) -> Instance:
    created_at = row["created_at"]
    if created_at is not None and created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    instance = Instance(
        id=UUID(row["id"]),
        name=row["name"],
        server_type=row["server_type"],
        version=row["version"],
        status=InstanceStatus(row["status"]),
        owner_id=row["owner_id"],
        memory_limit=row["memory_limit"],
        cpu_limit=row["cpu_limit"],
        game_port=row["game_port"],
        console_port=row["console_port"],
        query_port=row["query_port"],
        container_id=row["container_id"],
        console_password=row["console_password"],
        env=row["env"] or {},
    )
    if created_at is not None:
        instance.created_at = created_at
    return instance


def _values(instance: Instance) -> dict:
    return dict(
        name=instance.name,
        server_type=instance.server_type,
        version=instance.version,
        status=instance.status.value,
        owner_id=instance.owner_id,
        memory_limit=instance.memory_limit,
        cpu_limit=instance.cpu_limit,
        game_port=instance.game_port,
        console_port=instance.console_port,
        query_port=instance.query_port,
        container_id=instance.container_id,
        console_password=instance.console_password,
        env=instance.env,
    )


class SQLInstanceRepository(InstanceRepository):
    async def create(self, instance: Instance) -> None:
        await database.execute(
            insert(InstanceDB).values(
                id=str(instance.id),
                created_at=instance.created_at,
                **_values(instance),
            )
        )

    async def get(self, instance_id: UUID) -> Instance | None:
        row = await database.fetch_one(
            select(InstanceDB).where(InstanceDB.id == str(instance_id))
        )
        if not row:
            return None
        return _row_to_instance(row)

    async def list(self) -> list[Instance]:
        rows = await database.fetch_all(select(InstanceDB).order_by(InstanceDB.created_at))
        return [_row_to_instance(r) for r in rows]

    async def update(self, instance: Instance) -> None:
        await database.execute(
            update(InstanceDB)
            .where(InstanceDB.id == str(instance.id))
            .values(**_values(instance))
        )

    async def delete(self, instance_id: UUID) -> None:
        # SQLite does not enforce the cascades unless asked to
        async with database.transaction():
            for table in (MetricSampleDB, AlertDB, MonitoringConfigDB):
                await database.execute(delete(table).where(table.instance_id == str(instance_id)))
            await database.execute(
                delete(InstanceDB).where(InstanceDB.id == str(instance_id))
            )
