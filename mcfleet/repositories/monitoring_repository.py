from uuid import UUID
from sqlalchemy import select, insert, update, delete

from mcfleet.core.database import database
from mcfleet.models.db import MonitoringConfigDB
from mcfleet.domain.ports import MonitoringConfigRepository
from mcfleet.schemas.monitoring import MonitoringConfig


class SQLMonitoringConfigRepository(MonitoringConfigRepository):
    async def get(self, instance_id: UUID) -> MonitoringConfig | None:
        row = await database.fetch_one(
            select(MonitoringConfigDB).where(MonitoringConfigDB.instance_id == str(instance_id))
        )
        if not row:
            return None
        return MonitoringConfig(
            console_enabled=row["console_enabled"],
            console_port=row["console_port"],
            console_password=row["console_password"],
            exposition_enabled=row["exposition_enabled"],
            exposition_port=row["exposition_port"],
            scrape_interval=row["scrape_interval"],
        )

    async def upsert(self, instance_id: UUID, config: MonitoringConfig) -> None:
        values = config.model_dump()
        async with database.transaction():
            exists = await database.fetch_one(
                select(MonitoringConfigDB.instance_id)
                .where(MonitoringConfigDB.instance_id == str(instance_id))
            )
            if exists:
                await database.execute(
                    update(MonitoringConfigDB)
                    .where(MonitoringConfigDB.instance_id == str(instance_id))
                    .values(**values)
                )
            else:
                await database.execute(
                    insert(MonitoringConfigDB).values(instance_id=str(instance_id), **values)
                )

    async def delete(self, instance_id: UUID) -> None:
        await database.execute(
            delete(MonitoringConfigDB).where(MonitoringConfigDB.instance_id == str(instance_id))
        )
