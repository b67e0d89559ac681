from fastapi import APIRouter, Depends, status
from uuid import UUID

from mcfleet.api.deps import get_context
from mcfleet.services.context import ServiceContext
from mcfleet.schemas.monitoring import (
    ExporterConfig,
    MonitoringConfig,
    MonitoringConfigResponse,
    validate_monitoring_config,
)


router = APIRouter(prefix="/instances/{instance_id}", tags=["monitoring"])


@router.get("/monitoring", response_model=MonitoringConfigResponse)
async def get_monitoring_config(instance_id: UUID, ctx: ServiceContext = Depends(get_context)):
    await ctx.instances.get_instance(instance_id)
    config = await ctx.monitoring_repo.get(instance_id) or MonitoringConfig()
    return MonitoringConfigResponse(config=config)


@router.put("/monitoring", response_model=MonitoringConfigResponse)
async def update_monitoring_config(
    instance_id: UUID,
    payload: MonitoringConfig,
    ctx: ServiceContext = Depends(get_context),
):
    await ctx.instances.get_instance(instance_id)
    warnings = validate_monitoring_config(payload)
    await ctx.monitoring_repo.upsert(instance_id, payload)

    # Credentials may have changed; the next tick reconnects lazily
    await ctx.sessions.disconnect(instance_id)
    return MonitoringConfigResponse(config=payload, warnings=warnings)


@router.post("/exporter", status_code=status.HTTP_201_CREATED)
async def install_exporter(
    instance_id: UUID,
    payload: ExporterConfig | None = None,
    ctx: ServiceContext = Depends(get_context),
):
    async with ctx.instance_lock(instance_id):
        await ctx.plugins.install_exporter(instance_id, payload)
    return {"installed": True}


@router.delete("/exporter", status_code=status.HTTP_204_NO_CONTENT)
async def remove_exporter(instance_id: UUID, ctx: ServiceContext = Depends(get_context)):
    async with ctx.instance_lock(instance_id):
        await ctx.plugins.remove_exporter(instance_id)


@router.get("/exporter")
async def exporter_status(instance_id: UUID, ctx: ServiceContext = Depends(get_context)):
    return {"installed": await ctx.plugins.is_exporter_installed(instance_id)}
