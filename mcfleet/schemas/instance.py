from pydantic import BaseModel, ConfigDict, Field
from uuid import UUID
from datetime import datetime
from typing import Dict, Optional

from mcfleet.domain.instance import ContainerStatus, InstanceStatus


class InstanceCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=64)
    server_type: str = Field("VANILLA", description="Server flavour, e.g. VANILLA, PAPER, FORGE")
    version: str = Field("LATEST", description="Game version, e.g. 1.20.4")
    owner_id: Optional[str] = None
    memory: Optional[str] = Field(None, description="Memory limit, e.g. 2G or 512M")
    cpu: Optional[str] = Field(None, description="CPU cores, e.g. 1.5")
    env: Dict[str, str] = Field(default_factory=dict, description="Extra container environment")
    console_enabled: bool = True


class InstanceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    server_type: str
    version: str
    status: InstanceStatus
    owner_id: Optional[str]
    memory_limit: str
    cpu_limit: Optional[str]
    game_port: Optional[int]
    console_port: Optional[int]
    query_port: Optional[int]
    container_id: Optional[str]
    created_at: datetime


class StopRequest(BaseModel):
    grace_period_seconds: Optional[int] = Field(None, ge=0)


class ContainerResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    container_id: Optional[str]
    status: ContainerStatus


class LogsResponse(BaseModel):
    instance_id: UUID
    logs: str


class ConsoleCommandRequest(BaseModel):
    command: str = Field(..., min_length=1)


class ConsoleCommandResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    success: bool
    body: str = ""
    error: Optional[str] = None
