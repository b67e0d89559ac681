from fastapi import APIRouter, Depends, Query, status
from uuid import UUID

from mcfleet.api.deps import get_context
from mcfleet.services.context import ServiceContext
from mcfleet.schemas.instance import (
    ConsoleCommandRequest,
    ConsoleCommandResponse,
    ContainerResponse,
    InstanceCreateRequest,
    InstanceResponse,
    LogsResponse,
    StopRequest,
)


router = APIRouter(prefix="/instances", tags=["instances"])


@router.post("", response_model=InstanceResponse, status_code=status.HTTP_201_CREATED)
async def create_instance(
    payload: InstanceCreateRequest,
    ctx: ServiceContext = Depends(get_context),
):
    return await ctx.instances.create_instance(
        name=payload.name,
        server_type=payload.server_type,
        version=payload.version,
        owner_id=payload.owner_id,
        memory=payload.memory,
        cpu=payload.cpu,
        env=payload.env,
        console_enabled=payload.console_enabled,
    )


@router.get("", response_model=list[InstanceResponse])
async def list_instances(ctx: ServiceContext = Depends(get_context)):
    return await ctx.instances.list_instances()


@router.get("/{instance_id}", response_model=InstanceResponse)
async def get_instance(instance_id: UUID, ctx: ServiceContext = Depends(get_context)):
    return await ctx.instances.get_instance(instance_id)


@router.post("/{instance_id}/start", response_model=InstanceResponse)
async def start_instance(instance_id: UUID, ctx: ServiceContext = Depends(get_context)):
    async with ctx.instance_lock(instance_id):
        return await ctx.instances.start_instance(instance_id)


@router.post("/{instance_id}/stop", response_model=InstanceResponse)
async def stop_instance(
    instance_id: UUID,
    payload: StopRequest | None = None,
    ctx: ServiceContext = Depends(get_context),
):
    grace = payload.grace_period_seconds if payload else None
    async with ctx.instance_lock(instance_id):
        instance = await ctx.instances.stop_instance(instance_id, grace_period_seconds=grace)
    await ctx.release(instance_id)
    return instance


@router.post("/{instance_id}/restart", response_model=InstanceResponse)
async def restart_instance(instance_id: UUID, ctx: ServiceContext = Depends(get_context)):
    async with ctx.instance_lock(instance_id):
        instance = await ctx.instances.restart_instance(instance_id)
    await ctx.release(instance_id)
    return instance


@router.delete("/{instance_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_instance(instance_id: UUID, ctx: ServiceContext = Depends(get_context)):
    async with ctx.instance_lock(instance_id):
        await ctx.instances.delete_instance(instance_id)
    await ctx.forget(instance_id)


@router.get("/{instance_id}/container", response_model=ContainerResponse)
async def inspect_container(instance_id: UUID, ctx: ServiceContext = Depends(get_context)):
    return await ctx.instances.inspect(instance_id)


@router.get("/{instance_id}/logs", response_model=LogsResponse)
async def get_logs(
    instance_id: UUID,
    tail: int = Query(1000, ge=1, le=10000, description="Number of log lines"),
    ctx: ServiceContext = Depends(get_context),
):
    logs = await ctx.instances.logs(instance_id, tail=tail)
    return LogsResponse(instance_id=instance_id, logs=logs)


@router.post("/{instance_id}/console", response_model=ConsoleCommandResponse)
async def run_console_command(
    instance_id: UUID,
    payload: ConsoleCommandRequest,
    ctx: ServiceContext = Depends(get_context),
):
    instance = await ctx.instances.get_instance(instance_id)
    client = await ctx.console_for(instance)
    if client is None:
        return ConsoleCommandResponse(success=False, error="Console not available for this instance")
    return await client.execute(payload.command)
