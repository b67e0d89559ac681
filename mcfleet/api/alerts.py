from fastapi import APIRouter, Depends, HTTPException, Query
from uuid import UUID

from mcfleet.api.deps import get_context
from mcfleet.services.context import ServiceContext
from mcfleet.schemas.alerts import AlertResponse


router = APIRouter(tags=["alerts"])


@router.get("/instances/{instance_id}/alerts", response_model=list[AlertResponse])
async def list_alerts(
    instance_id: UUID,
    active_only: bool = Query(False),
    ctx: ServiceContext = Depends(get_context),
):
    await ctx.instances.get_instance(instance_id)
    alerts = await ctx.alert_repo.list_for_instance(instance_id, active_only=active_only)
    return [AlertResponse.model_validate(a) for a in alerts]


@router.post("/alerts/{alert_id}/resolve", response_model=AlertResponse)
async def resolve_alert(alert_id: UUID, ctx: ServiceContext = Depends(get_context)):
    alert = await ctx.alerts.resolve(alert_id)
    if alert is None:
        raise HTTPException(status_code=404, detail="Alert not found")
    return AlertResponse.model_validate(alert)
