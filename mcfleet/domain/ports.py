from datetime import datetime
from typing import Dict, List, Protocol, TYPE_CHECKING
from uuid import UUID

from mcfleet.domain.alerts import Alert
from mcfleet.domain.instance import Instance
from mcfleet.domain.metrics import GameStats, MetricSample, RuntimeCounters

if TYPE_CHECKING:
    from mcfleet.schemas.monitoring import MonitoringConfig


class InstanceRepository(Protocol):
    async def create(self, instance: Instance) -> None: ...

    async def get(self, instance_id: UUID) -> Instance | None: ...

    async def list(self) -> List[Instance]: ...

    async def update(self, instance: Instance) -> None: ...

    async def delete(self, instance_id: UUID) -> None: ...


class MetricSampleRepository(Protocol):
    async def append(self, sample: MetricSample) -> None: ...

    async def latest(self, instance_id: UUID) -> MetricSample | None: ...

    async def range(
        self,
        instance_id: UUID,
        *,
        since: datetime | None = None,
        limit: int = 1000,
    ) -> List[MetricSample]:
        """Newest first."""
        ...

    async def prune(self, before: datetime) -> None: ...


class AlertRepository(Protocol):
    async def create(self, alert: Alert) -> None: ...

    async def get(self, alert_id: UUID) -> Alert | None: ...

    async def list_for_instance(self, instance_id: UUID, *, active_only: bool = False) -> List[Alert]: ...

    async def update(self, alert: Alert) -> None: ...


class MonitoringConfigRepository(Protocol):
    async def get(self, instance_id: UUID) -> "MonitoringConfig | None": ...

    async def upsert(self, instance_id: UUID, config: "MonitoringConfig") -> None: ...

    async def delete(self, instance_id: UUID) -> None: ...


class DockerRuntime(Protocol):
    # -------------------------------
    # Containers
    # -------------------------------
    async def create(
        self,
        *,
        image: str,
        name: str,
        environment: Dict[str, str],
        ports: Dict[str, int],
        volume: str,
        mem_limit: int,
        cpu_quota: int | None,
        labels: Dict[str, str],
    ) -> str:
        """Create (but do not start) a container. Returns the docker id."""
        ...

    async def start(self, docker_id: str) -> bool:
        """Start a container. False if it does not exist."""
        ...

    async def stop(self, docker_id: str, timeout: int) -> bool:
        """Stop with a grace period before kill. False if it does not exist."""
        ...

    async def restart(self, docker_id: str, timeout: int) -> bool:
        ...

    async def remove(self, docker_id: str) -> bool:
        """Remove a container completely. False if it was already gone."""
        ...

    async def get_status(self, docker_id: str) -> str | None:
        """Runtime status string, None if the container does not exist."""
        ...

    async def stats(self, docker_id: str) -> RuntimeCounters:
        ...

    async def logs(self, docker_id: str, tail: int = 100) -> str:
        """Get the logs from a container"""
        ...

    # -------------------------------
    # Volumes
    # -------------------------------
    async def create_volume(self, name: str, labels: Dict[str, str]) -> None: ...

    async def remove_volume(self, name: str) -> bool: ...

    async def run_helper(self, *, image: str, volume: str, command: List[str]) -> tuple[int, str]:
        """Run a throwaway container with the volume mounted at /data.

        Returns (exit_code, logs). The container is always removed.
        """
        ...


class FilesystemMutator(Protocol):
    async def write_file(self, volume: str, path: str, content: str) -> None: ...

    async def fetch_file(self, volume: str, url: str, path: str) -> None: ...

    async def remove_files(self, volume: str, paths: List[str]) -> None: ...

    async def check_exists(self, volume: str, path: str) -> bool: ...


class GameStatsSource(Protocol):
    async def fetch(self, instance: Instance) -> GameStats: ...
