import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple
from docker import from_env
from docker.errors import NotFound, APIError, ImageNotFound

from mcfleet.domain.errors import TransientRuntimeError
from mcfleet.domain.metrics import RuntimeCounters
from mcfleet.domain.ports import DockerRuntime

logger = logging.getLogger(__name__)

CPU_PERIOD = 100000


def parse_runtime_counters(raw: Dict[str, Any]) -> RuntimeCounters:
    """Flatten a one-shot docker stats document into byte/ns counters."""
    cpu_stats = raw.get("cpu_stats") or {}
    cpu_usage = cpu_stats.get("cpu_usage") or {}
    online_cpus = cpu_stats.get("online_cpus")
    if not online_cpus:
        online_cpus = len(cpu_usage.get("percpu_usage") or []) or 1

    memory_stats = raw.get("memory_stats") or {}

    rx = tx = 0
    for network in (raw.get("networks") or {}).values():
        rx += int(network.get("rx_bytes") or 0)
        tx += int(network.get("tx_bytes") or 0)

    read = write = 0
    blkio = (raw.get("blkio_stats") or {}).get("io_service_bytes_recursive") or []
    for entry in blkio:
        op = str(entry.get("op", "")).lower()
        if op == "read":
            read += int(entry.get("value") or 0)
        elif op == "write":
            write += int(entry.get("value") or 0)

    return RuntimeCounters(
        cpu_total_usage=int(cpu_usage.get("total_usage") or 0),
        system_cpu_usage=int(cpu_stats.get("system_cpu_usage") or 0),
        online_cpus=int(online_cpus),
        memory_usage_bytes=int(memory_stats.get("usage") or 0),
        memory_limit_bytes=int(memory_stats.get("limit") or 0),
        network_rx_bytes=rx,
        network_tx_bytes=tx,
        block_read_bytes=read,
        block_write_bytes=write,
    )


class DockerSDKRuntime(DockerRuntime):
    def __init__(self):
        self.docker_client = from_env()

    # -------------------------------
    # Container lifecycle
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
        cpu_quota: Optional[int],
        labels: Dict[str, str],
    ) -> str:
        kwargs: Dict[str, Any] = dict(
            name=name,
            environment=environment,
            ports=ports,
            volumes={volume: {"bind": "/data", "mode": "rw"}},
            mem_limit=mem_limit,
            restart_policy={"Name": "unless-stopped"},
            labels=labels,
        )
        if cpu_quota:
            kwargs.update(cpu_quota=cpu_quota, cpu_period=CPU_PERIOD)
        try:
            container = await asyncio.to_thread(self.docker_client.containers.create, image, **kwargs)
            return container.id
        except APIError as e:
            raise RuntimeError(f"Docker create failed: {e}")

    async def start(self, docker_id: str) -> bool:
        try:
            container = await asyncio.to_thread(self.docker_client.containers.get, docker_id)
            await asyncio.to_thread(container.start)
            return True
        except NotFound:
            return False

    async def stop(self, docker_id: str, timeout: int) -> bool:
        try:
            container = await asyncio.to_thread(self.docker_client.containers.get, docker_id)
            await asyncio.to_thread(container.stop, timeout=timeout)
            return True
        except NotFound:
            return False

    async def restart(self, docker_id: str, timeout: int) -> bool:
        try:
            container = await asyncio.to_thread(self.docker_client.containers.get, docker_id)
            await asyncio.to_thread(container.restart, timeout=timeout)
            return True
        except NotFound:
            return False

    async def remove(self, docker_id: str) -> bool:
        try:
            container = await asyncio.to_thread(self.docker_client.containers.get, docker_id)
            await asyncio.to_thread(container.remove, force=True)
            return True
        except NotFound:
            return False

    async def get_status(self, docker_id: str) -> Optional[str]:
        """
        Return the container's status as a string ("running", "exited", etc.)
        Returns None if container does not exist.
        """
        try:
            container = await asyncio.to_thread(self.docker_client.containers.get, docker_id)
            await asyncio.to_thread(container.reload)
            return container.status
        except NotFound:
            return None

    async def stats(self, docker_id: str) -> RuntimeCounters:
        try:
            container = await asyncio.to_thread(self.docker_client.containers.get, docker_id)
            raw = await asyncio.to_thread(container.stats, stream=False)
        except (NotFound, APIError) as e:
            raise TransientRuntimeError(f"Stats unavailable for {docker_id}: {e}") from e
        return parse_runtime_counters(raw)

    async def logs(self, docker_id: str, tail: int = 100) -> str:
        container = await asyncio.to_thread(self.docker_client.containers.get, docker_id)
        output = await asyncio.to_thread(container.logs, stdout=True, stderr=True, tail=tail)
        return output.decode("utf-8", errors="replace")

    # -------------------------------
    # Volumes
    # -------------------------------
    async def create_volume(self, name: str, labels: Dict[str, str]) -> None:
        try:
            await asyncio.to_thread(self.docker_client.volumes.create, name=name, labels=labels)
        except APIError as e:
            raise RuntimeError(f"Docker volume create failed: {e}")

    async def remove_volume(self, name: str) -> bool:
        try:
            volume = await asyncio.to_thread(self.docker_client.volumes.get, name)
            await asyncio.to_thread(volume.remove)
            return True
        except NotFound:
            return False

    async def run_helper(self, *, image: str, volume: str, command: List[str]) -> Tuple[int, str]:
        create = lambda: self.docker_client.containers.create(  # noqa: E731
            image,
            command=command,
            volumes={volume: {"bind": "/data", "mode": "rw"}},
        )
        try:
            container = await asyncio.to_thread(create)
        except ImageNotFound:
            logger.info("Pulling helper image %s", image)
            await asyncio.to_thread(self.docker_client.images.pull, image)
            container = await asyncio.to_thread(create)

        try:
            await asyncio.to_thread(container.start)
            result = await asyncio.to_thread(container.wait)
            output = await asyncio.to_thread(container.logs, stdout=True, stderr=True)
            return int(result.get("StatusCode", 1)), output.decode("utf-8", errors="replace")
        finally:
            try:
                await asyncio.to_thread(container.remove, force=True)
            except NotFound:
                pass
