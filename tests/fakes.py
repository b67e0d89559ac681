"""In-memory stand-ins for the repositories, the docker runtime and volumes."""
import posixpath
from datetime import datetime
from typing import Dict, List, Tuple
from uuid import UUID

from mcfleet.domain.alerts import Alert
from mcfleet.domain.errors import TransientRuntimeError
from mcfleet.domain.instance import Instance
from mcfleet.domain.metrics import MetricSample, RuntimeCounters
from mcfleet.schemas.monitoring import MonitoringConfig
from mcfleet.services.console import ConsoleResult


class InMemoryInstanceRepository:
    def __init__(self, instances: List[Instance] | None = None):
        self.items: Dict[UUID, Instance] = {i.id: i for i in instances or []}

    async def create(self, instance: Instance) -> None:
        self.items[instance.id] = instance

    async def get(self, instance_id: UUID) -> Instance | None:
        return self.items.get(instance_id)

    async def list(self) -> List[Instance]:
        return list(self.items.values())

    async def update(self, instance: Instance) -> None:
        self.items[instance.id] = instance

    async def delete(self, instance_id: UUID) -> None:
        self.items.pop(instance_id, None)


class InMemoryMetricRepository:
    def __init__(self):
        self.samples: List[MetricSample] = []
        self.pruned_before: List[datetime] = []

    async def append(self, sample: MetricSample) -> None:
        self.samples.append(sample)

    async def latest(self, instance_id: UUID) -> MetricSample | None:
        found = [s for s in self.samples if s.instance_id == instance_id]
        return max(found, key=lambda s: s.timestamp) if found else None

    async def range(self, instance_id: UUID, *, since: datetime | None = None, limit: int = 1000):
        found = [
            s for s in self.samples
            if s.instance_id == instance_id and (since is None or s.timestamp >= since)
        ]
        found.sort(key=lambda s: s.timestamp, reverse=True)
        return found[:limit]

    async def prune(self, before: datetime) -> None:
        self.pruned_before.append(before)
        self.samples = [s for s in self.samples if s.timestamp >= before]


class InMemoryAlertRepository:
    def __init__(self):
        self.alerts: Dict[UUID, Alert] = {}

    async def create(self, alert: Alert) -> None:
        self.alerts[alert.id] = alert

    async def get(self, alert_id: UUID) -> Alert | None:
        return self.alerts.get(alert_id)

    async def list_for_instance(self, instance_id: UUID, *, active_only: bool = False) -> List[Alert]:
        return [
            a for a in self.alerts.values()
            if a.instance_id == instance_id and (a.active or not active_only)
        ]

    async def update(self, alert: Alert) -> None:
        self.alerts[alert.id] = alert


class InMemoryMonitoringRepository:
    def __init__(self):
        self.configs: Dict[UUID, MonitoringConfig] = {}

    async def get(self, instance_id: UUID) -> MonitoringConfig | None:
        return self.configs.get(instance_id)

    async def upsert(self, instance_id: UUID, config: MonitoringConfig) -> None:
        self.configs[instance_id] = config

    async def delete(self, instance_id: UUID) -> None:
        self.configs.pop(instance_id, None)


class FakeDockerRuntime:
    """
    Containers are plain dicts with a status. ``remove_out_of_band`` simulates
    someone deleting a container behind our back.
    """

    def __init__(self):
        self.containers: Dict[str, dict] = {}
        self.volumes: Dict[str, dict] = {}
        self.counters: Dict[str, RuntimeCounters] = {}
        self.log_text: Dict[str, str] = {}
        self.helper_runs: List[Tuple[str, str, List[str]]] = []
        self._next = 0

    async def create(self, *, image, name, environment, ports, volume, mem_limit, cpu_quota, labels) -> str:
        self._next += 1
        docker_id = f"docker-{self._next}"
        self.containers[docker_id] = {
            "image": image,
            "name": name,
            "environment": environment,
            "ports": ports,
            "volume": volume,
            "mem_limit": mem_limit,
            "cpu_quota": cpu_quota,
            "labels": labels,
            "status": "created",
        }
        return docker_id

    async def start(self, docker_id: str) -> bool:
        if docker_id not in self.containers:
            return False
        self.containers[docker_id]["status"] = "running"
        return True

    async def stop(self, docker_id: str, timeout: int) -> bool:
        if docker_id not in self.containers:
            return False
        self.containers[docker_id]["status"] = "exited"
        return True

    async def restart(self, docker_id: str, timeout: int) -> bool:
        if docker_id not in self.containers:
            return False
        self.containers[docker_id]["status"] = "running"
        return True

    async def remove(self, docker_id: str) -> bool:
        return self.containers.pop(docker_id, None) is not None

    def remove_out_of_band(self, docker_id: str) -> None:
        self.containers.pop(docker_id, None)

    async def get_status(self, docker_id: str) -> str | None:
        container = self.containers.get(docker_id)
        return container["status"] if container else None

    async def stats(self, docker_id: str) -> RuntimeCounters:
        if docker_id not in self.containers:
            raise TransientRuntimeError(f"no such container {docker_id}")
        return self.counters.get(docker_id, RuntimeCounters())

    async def logs(self, docker_id: str, tail: int = 100) -> str:
        if docker_id not in self.containers:
            raise LookupError(docker_id)
        return self.log_text.get(docker_id, "")

    async def create_volume(self, name: str, labels: Dict[str, str]) -> None:
        self.volumes[name] = {"labels": labels, "files": {}}

    async def remove_volume(self, name: str) -> bool:
        return self.volumes.pop(name, None) is not None

    async def run_helper(self, *, image: str, volume: str, command: List[str]) -> Tuple[int, str]:
        self.helper_runs.append((image, volume, command))
        return 0, ""


class InMemoryFilesystem:
    """Volume contents keyed by volume name, then by normalised path."""

    def __init__(self):
        self.volumes: Dict[str, Dict[str, str]] = {}

    def files(self, volume: str) -> Dict[str, str]:
        return self.volumes.setdefault(volume, {})

    async def write_file(self, volume: str, path: str, content: str) -> None:
        self.files(volume)[posixpath.normpath(path)] = content

    async def fetch_file(self, volume: str, url: str, path: str) -> None:
        self.files(volume)[posixpath.normpath(path)] = f"downloaded from {url}"

    async def remove_files(self, volume: str, paths: List[str]) -> None:
        files = self.files(volume)
        for path in paths:
            prefix = posixpath.normpath(path)
            for key in [k for k in files if k == prefix or k.startswith(prefix + "/")]:
                del files[key]

    async def check_exists(self, volume: str, path: str) -> bool:
        return posixpath.normpath(path) in self.files(volume)


class ScriptedClient:
    """Console client double that authenticates on demand and answers from a dict."""

    replies = {
        "list": "There are 4 of a max of 20 players online: a, b, c, d",
        "tps": "TPS from last 1m, 5m, 15m: 19.8, 19.9, 20.0",
    }
    reachable = True

    def __init__(self, host, port, password, timeout=5.0):
        self.is_authenticated = False
        self.commands_executed = 0

    async def connect(self):
        self.is_authenticated = self.reachable
        return self.reachable

    async def execute(self, command):
        self.commands_executed += 1
        if command in self.replies:
            return ConsoleResult(True, self.replies[command])
        return ConsoleResult.failure("Unknown command")

    async def disconnect(self):
        self.is_authenticated = False


class UnreachableClient(ScriptedClient):
    reachable = False
