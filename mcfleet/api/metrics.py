import time
from fastapi import APIRouter, Depends, HTTPException, Query, Response
from uuid import UUID

from mcfleet.api.deps import get_context
from mcfleet.services.context import ServiceContext
from mcfleet.services import exposition
from mcfleet.schemas.metrics import MetricSampleResponse, MetricsHistoryResponse, MetricsSummary


router = APIRouter(prefix="/instances/{instance_id}/metrics", tags=["metrics"])


@router.get("/current", response_model=MetricSampleResponse)
async def current_metrics(instance_id: UUID, ctx: ServiceContext = Depends(get_context)):
    sample = await ctx.metrics.current(instance_id)
    if sample is None:
        raise HTTPException(status_code=404, detail="No metrics collected yet")
    return sample


@router.get("/history", response_model=MetricsHistoryResponse)
async def metrics_history(
    instance_id: UUID,
    hours: int = Query(24, ge=1, le=24 * 30),
    ctx: ServiceContext = Depends(get_context),
):
    samples = await ctx.metrics.history(instance_id, hours=hours)
    return MetricsHistoryResponse(
        instance_id=instance_id,
        hours=hours,
        samples=[MetricSampleResponse.model_validate(s) for s in samples],
    )


@router.get("/summary", response_model=MetricsSummary)
async def metrics_summary(instance_id: UUID, ctx: ServiceContext = Depends(get_context)):
    return await ctx.metrics.summary(instance_id)


@router.get("/prometheus")
async def prometheus_metrics(
    instance_id: UUID,
    timestamps: bool = Query(False, description="Attach millisecond timestamps to samples"),
    ctx: ServiceContext = Depends(get_context),
):
    instance = await ctx.instances.get_instance(instance_id)
    config = await ctx.monitoring_repo.get(instance_id)
    if config is None or not config.exposition_enabled:
        raise HTTPException(status_code=404, detail="Prometheus exposition is not enabled for this instance")

    sample = await ctx.metrics.current(instance_id)
    values = exposition.sample_values(
        instance,
        sample,
        console=ctx.sessions.get(instance_id),
        timestamp=time.time() if timestamps else None,
    )
    return Response(content=exposition.encode(values), media_type=exposition.CONTENT_TYPE)
