from uuid import UUID
from enum import Enum
from datetime import datetime, timezone
from dataclasses import dataclass, field
from typing import Dict, List


class InstanceStatus(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    ERROR = "error"


# Any state may additionally fall into ERROR on a runtime failure.
ALLOWED_TRANSITIONS: Dict[InstanceStatus, List[InstanceStatus]] = {
    InstanceStatus.STOPPED: [InstanceStatus.STARTING],
    InstanceStatus.STARTING: [InstanceStatus.RUNNING, InstanceStatus.STOPPING],
    InstanceStatus.RUNNING: [InstanceStatus.STOPPING, InstanceStatus.STARTING],
    InstanceStatus.STOPPING: [InstanceStatus.STOPPED],
    InstanceStatus.ERROR: [InstanceStatus.STARTING, InstanceStatus.STOPPING],
}


def can_transition(current: InstanceStatus, target: InstanceStatus) -> bool:
    if target == InstanceStatus.ERROR:
        return True
    return target in ALLOWED_TRANSITIONS.get(current, [])


class ContainerStatus(str, Enum):
    RUNNING = "running"
    EXITED = "exited"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class ContainerHandle:
    container_id: str | None
    status: ContainerStatus

    @classmethod
    def from_runtime(cls, container_id: str | None, runtime_status: str | None) -> "ContainerHandle":
        if not container_id or runtime_status is None:
            return cls(container_id, ContainerStatus.NOT_FOUND)
        if runtime_status == "running":
            return cls(container_id, ContainerStatus.RUNNING)
        # created / exited / paused / dead all count as not running
        return cls(container_id, ContainerStatus.EXITED)


@dataclass
class Instance:
    id: UUID
    name: str
    server_type: str
    version: str
    status: InstanceStatus = InstanceStatus.STOPPED
    owner_id: str | None = None
    memory_limit: str = "2G"
    cpu_limit: str | None = None
    game_port: int | None = None
    console_port: int | None = None
    query_port: int | None = None
    container_id: str | None = None
    console_password: str | None = None
    env: Dict[str, str] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def ports(self) -> List[int]:
        return [p for p in (self.game_port, self.console_port, self.query_port) if p is not None]
