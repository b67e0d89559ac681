from uuid import UUID
from datetime import timezone
from sqlalchemy import select, insert, update

from mcfleet.core.database import database
from mcfleet.models.db import AlertDB
from mcfleet.domain.alerts import Alert, AlertType, Severity
from mcfleet.domain.ports import AlertRepository


def _utc(value):
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _row_to_alert(row) -> Alert:
    return Alert(
        id=UUID(row["id"]),
        instance_id=UUID(row["instance_id"]),
        type=AlertType(row["type"]),
        severity=Severity(row["severity"]),
        title=row["title"],
        message=row["message"],
        threshold=row["threshold"],
        current_value=row["current_value"],
        triggered_at=_utc(row["triggered_at"]),
        resolved_at=_utc(row["resolved_at"]),
        metadata=row["metadata"] or {},
    )


class SQLAlertRepository(AlertRepository):
    async def create(self, alert: Alert) -> None:
        await database.execute(
            insert(AlertDB).values(
                id=str(alert.id),
                instance_id=str(alert.instance_id),
                type=alert.type.value,
                severity=alert.severity.value,
                title=alert.title,
                message=alert.message,
                threshold=alert.threshold,
                current_value=alert.current_value,
                triggered_at=alert.triggered_at,
                resolved_at=alert.resolved_at,
                alert_metadata=alert.metadata,
            )
        )

    async def get(self, alert_id: UUID) -> Alert | None:
        row = await database.fetch_one(
            select(AlertDB).where(AlertDB.id == str(alert_id))
        )
        if not row:
            return None
        return _row_to_alert(row)

    async def list_for_instance(self, instance_id: UUID, *, active_only: bool = False) -> list[Alert]:
        query = select(AlertDB).where(AlertDB.instance_id == str(instance_id))
        if active_only:
            query = query.where(AlertDB.resolved_at.is_(None))
        rows = await database.fetch_all(query.order_by(AlertDB.triggered_at.desc()))
        return [_row_to_alert(r) for r in rows]

    async def update(self, alert: Alert) -> None:
        # Only resolution and metadata change after an alert fires
        await database.execute(
            update(AlertDB)
            .where(AlertDB.id == str(alert.id))
            .values(resolved_at=alert.resolved_at, alert_metadata=alert.metadata)
        )
