# mcfleet/services/instance_service.py
import asyncio
import logging
import re
import secrets
from uuid import UUID, uuid4
from typing import Awaitable, Callable, Dict, List, Optional, Set, TypeVar

from mcfleet.core.config import Settings
from mcfleet.domain.errors import InstanceNotFoundError, InvalidTransitionError, ProvisioningError
from mcfleet.domain.instance import ContainerHandle, Instance, InstanceStatus, can_transition
from mcfleet.domain.ports import DockerRuntime, FilesystemMutator, InstanceRepository
from mcfleet.services.port_allocator import allocate_ports, ports_in_use

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MEMORY_BYTES = 2 * 1024 ** 3
_MEMORY_PATTERN = re.compile(r"^(\d+)([KMGT]?)B?$", re.IGNORECASE)
_MEMORY_MULTIPLIERS = {"": 1, "K": 1024, "M": 1024 ** 2, "G": 1024 ** 3, "T": 1024 ** 4}
_CPU_PATTERN = re.compile(r"^(\d+(?:\.\d+)?)$")


def parse_memory_limit(memory: str) -> int:
    """'2G' -> bytes. Unparseable values fall back to 2 GiB."""
    match = _MEMORY_PATTERN.match(memory.strip()) if memory else None
    if not match:
        return DEFAULT_MEMORY_BYTES
    return int(match.group(1)) * _MEMORY_MULTIPLIERS[match.group(2).upper()]


def parse_cpu_limit(cpu: Optional[str]) -> Optional[int]:
    """Core count -> CFS quota (100000 per core). None when unset or invalid."""
    if not cpu:
        return None
    match = _CPU_PATTERN.match(str(cpu).strip())
    if not match:
        return None
    return int(float(match.group(1)) * 100000)


class InstanceService:
    """Container lifecycle for game server instances.

    Holds no per-instance state between calls. Callers serialize lifecycle
    operations on the same instance; only the allocate-then-persist sequence
    of create is serialized here.
    """

    def __init__(
        self,
        instance_repo: InstanceRepository,
        docker_runtime: DockerRuntime,
        filesystem: FilesystemMutator,
        settings: Settings | None = None,
    ):
        self.repo = instance_repo
        self.runtime = docker_runtime
        self.filesystem = filesystem
        self.settings = settings or Settings()
        self._lock = asyncio.Lock()

    # -------------------------------
    # Naming
    # -------------------------------
    def volume_name(self, instance_id: UUID) -> str:
        return f"{self.settings.VOLUME_PREFIX}{instance_id}"

    def container_name(self, instance_id: UUID) -> str:
        return f"{self.settings.CONTAINER_PREFIX}{instance_id}"

    def _label(self, key: str) -> str:
        return f"{self.settings.LABEL_PREFIX}.{key}"

    # -------------------------------
    # Queries
    # -------------------------------
    async def get_instance(self, instance_id: UUID) -> Instance:
        instance = await self.repo.get(instance_id)
        if not instance:
            raise InstanceNotFoundError(instance_id)
        return instance

    async def list_instances(self) -> List[Instance]:
        return await self.repo.list()

    async def inspect(self, instance_id: UUID) -> ContainerHandle:
        instance = await self.get_instance(instance_id)
        if not instance.container_id:
            return ContainerHandle.from_runtime(None, None)
        status = await self.runtime.get_status(instance.container_id)
        return ContainerHandle.from_runtime(instance.container_id, status)

    async def logs(self, instance_id: UUID, tail: int = 1000) -> str:
        instance = await self.get_instance(instance_id)
        if not instance.container_id:
            return ""
        return await self.runtime.logs(instance.container_id, tail=tail)

    # -------------------------------
    # Create
    # -------------------------------
    async def create_instance(
        self,
        *,
        name: str,
        server_type: str,
        version: str,
        owner_id: str | None = None,
        memory: str | None = None,
        cpu: str | None = None,
        env: Dict[str, str] | None = None,
        console_enabled: bool = True,
    ) -> Instance:
        """
        Allocate ports, persist the record, then create volume and container.
        Any runtime failure leaves the instance in error and raises ProvisioningError.
        """
        async with self._lock:
            in_use: Set[int] = ports_in_use(await self.repo.list())
            game_port, console_port, query_port = allocate_ports(
                [
                    self.settings.GAME_BASE_PORT,
                    self.settings.CONSOLE_BASE_PORT,
                    self.settings.QUERY_BASE_PORT,
                ],
                in_use,
            )
            instance = Instance(
                id=uuid4(),
                name=name,
                server_type=server_type,
                version=version,
                owner_id=owner_id,
                memory_limit=memory or self.settings.DEFAULT_MEMORY,
                cpu_limit=cpu,
                game_port=game_port,
                console_port=console_port,
                query_port=query_port,
                status=InstanceStatus.STOPPED,
            )
            instance.env = self._build_environment(instance, env or {}, console_enabled)
            instance.console_password = instance.env.get("RCON_PASSWORD")
            await self.repo.create(instance)

        try:
            volume = self.volume_name(instance.id)
            await self.runtime.create_volume(volume, labels={self._label("instance-id"): str(instance.id)})
            instance.container_id = await self.runtime.create(
                image=self.settings.SERVER_IMAGE,
                name=self.container_name(instance.id),
                environment=instance.env,
                ports={
                    f"{game_port}/tcp": game_port,
                    f"{console_port}/tcp": console_port,
                    f"{query_port}/udp": query_port,
                },
                volume=volume,
                mem_limit=parse_memory_limit(instance.memory_limit),
                cpu_quota=parse_cpu_limit(instance.cpu_limit),
                labels={
                    self._label("instance-id"): str(instance.id),
                    self._label("instance-name"): instance.name,
                    self._label("owner-id"): instance.owner_id or "",
                },
            )
        except Exception as exc:
            logger.exception("Provisioning failed for instance %s", instance.id)
            await self._fail(instance, f"Failed to provision instance {instance.id}: {exc}", cause=exc)

        await self.repo.update(instance)
        logger.info("Created container %s for instance %s (%s)", instance.container_id, instance.name, instance.id)
        return instance

    def _build_environment(self, instance: Instance, overrides: Dict[str, str], console_enabled: bool) -> Dict[str, str]:
        env = {
            "EULA": "TRUE",
            "TYPE": instance.server_type.upper(),
            "VERSION": instance.version,
            "MEMORY": instance.memory_limit,
            "ENABLE_RCON": "true" if console_enabled else "false",
            "RCON_PORT": str(instance.console_port),
            "RCON_PASSWORD": secrets.token_hex(16),
            "ENABLE_QUERY": "true",
            "QUERY_PORT": str(instance.query_port),
            "SERVER_PORT": str(instance.game_port),
            "ONLINE_MODE": "true",
        }
        env.update({str(k): str(v) for k, v in overrides.items()})
        return env

    # -------------------------------
    # Lifecycle
    # -------------------------------
    async def start_instance(self, instance_id: UUID) -> Instance:
        instance = await self.get_instance(instance_id)
        if instance.status == InstanceStatus.RUNNING:
            return instance

        await self._transition(instance, InstanceStatus.STARTING)
        if not instance.container_id:
            await self._fail(instance, f"Instance {instance.id} has no container")

        try:
            found = await self.runtime.start(instance.container_id)
        except Exception as exc:
            await self._fail(instance, f"Failed to start instance {instance.id}: {exc}", cause=exc)
        if not found:
            await self._fail(instance, f"Container for instance {instance.id} no longer exists")

        await self._await_running(instance)
        return instance

    async def stop_instance(self, instance_id: UUID, grace_period_seconds: int | None = None) -> Instance:
        instance = await self.get_instance(instance_id)
        if instance.status == InstanceStatus.STOPPED:
            return instance
        grace = self.settings.STOP_GRACE_SECONDS if grace_period_seconds is None else grace_period_seconds

        await self._transition(instance, InstanceStatus.STOPPING)
        if instance.container_id:
            try:
                found = await self.runtime.stop(instance.container_id, timeout=grace)
            except Exception as exc:
                await self._fail(instance, f"Failed to stop instance {instance.id}: {exc}", cause=exc)

            if not found:
                logger.warning("Container %s of instance %s was removed out-of-band", instance.container_id, instance.id)
                instance.container_id = None
            else:
                try:
                    status = await self._await_status(instance.container_id, {"exited", "created", "dead"})
                except Exception as exc:
                    await self._fail(instance, f"Failed to check stop of instance {instance.id}: {exc}", cause=exc)
                if status == "running":
                    await self._fail(instance, f"Instance {instance.id} still running after {grace}s grace period")
                if status is None:
                    instance.container_id = None

        await self._transition(instance, InstanceStatus.STOPPED)
        return instance

    async def restart_instance(self, instance_id: UUID) -> Instance:
        instance = await self.get_instance(instance_id)
        await self._transition(instance, InstanceStatus.STARTING)
        if not instance.container_id:
            await self._fail(instance, f"Instance {instance.id} has no container")

        try:
            found = await self.runtime.restart(instance.container_id, timeout=self.settings.STOP_GRACE_SECONDS)
        except Exception as exc:
            await self._fail(instance, f"Failed to restart instance {instance.id}: {exc}", cause=exc)
        if not found:
            await self._fail(instance, f"Container for instance {instance.id} no longer exists")

        await self._await_running(instance)
        return instance

    async def delete_instance(self, instance_id: UUID) -> None:
        """Stop, remove container and volume, drop the record. Idempotent."""
        instance = await self.repo.get(instance_id)
        if not instance:
            logger.info("Instance %s already deleted", instance_id)
            return

        if instance.container_id:
            try:
                await self.runtime.stop(instance.container_id, timeout=self.settings.DELETE_STOP_GRACE_SECONDS)
            except Exception:
                logger.warning("Best-effort stop failed for instance %s", instance.id, exc_info=True)

        try:
            if instance.container_id and not await self.runtime.remove(instance.container_id):
                logger.info("Container %s already removed", instance.container_id)
            if not await self.runtime.remove_volume(self.volume_name(instance.id)):
                logger.info("Volume %s not found", self.volume_name(instance.id))
        except Exception as exc:
            await self._fail(instance, f"Failed to delete instance {instance.id}: {exc}", cause=exc)

        await self.repo.delete(instance.id)
        logger.info("Deleted instance %s", instance.id)

    async def reconcile_instance(self, instance_id: UUID) -> Instance | None:
        """
        Compare a running record against the runtime. A container that vanished
        or exited on its own means the server crashed: the instance moves to error.
        """
        instance = await self.repo.get(instance_id)
        if not instance or instance.status != InstanceStatus.RUNNING:
            return instance

        status = await self.runtime.get_status(instance.container_id) if instance.container_id else None
        if status is None:
            logger.warning("[RECONCILE] Instance %s has no container, marking error", instance.id)
            instance.container_id = None
            await self._transition(instance, InstanceStatus.ERROR)
        elif status != "running":
            logger.warning("[RECONCILE] Instance %s container is %s, marking error", instance.id, status)
            await self._transition(instance, InstanceStatus.ERROR)
        return instance

    # -------------------------------
    # Volume mutation
    # -------------------------------
    async def filesystem_mutate(
        self,
        instance_id: UUID,
        operation: Callable[[FilesystemMutator, str], Awaitable[T]],
    ) -> T:
        """Run an operation against the instance volume without starting the server."""
        instance = await self.get_instance(instance_id)
        return await operation(self.filesystem, self.volume_name(instance.id))

    #-----------------------------------------------------------------------------
    #
    #  Internal methods
    #
    #-----------------------------------------------------------------------------
    async def _transition(self, instance: Instance, target: InstanceStatus) -> None:
        if not can_transition(instance.status, target):
            raise InvalidTransitionError(instance.status.value, target.value)
        instance.status = target
        await self.repo.update(instance)

    async def _fail(self, instance: Instance, message: str, cause: Exception | None = None) -> None:
        instance.status = InstanceStatus.ERROR
        await self.repo.update(instance)
        logger.error("[LIFECYCLE ERROR] %s", message)
        raise ProvisioningError(message) from cause

    async def _await_status(self, docker_id: str, wanted: Set[str]) -> str | None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.settings.STATUS_POLL_TIMEOUT_SECONDS
        while True:
            status = await self.runtime.get_status(docker_id)
            if status is None or status in wanted or loop.time() >= deadline:
                return status
            await asyncio.sleep(self.settings.STATUS_POLL_INTERVAL_SECONDS)

    async def _await_running(self, instance: Instance) -> None:
        try:
            status = await self._await_status(instance.container_id, {"running"})
        except Exception as exc:
            await self._fail(instance, f"Failed to check start of instance {instance.id}: {exc}", cause=exc)
        if status is None:
            instance.container_id = None
            await self._fail(instance, f"Container for instance {instance.id} disappeared while starting")
        if status != "running":
            await self._fail(instance, f"Instance {instance.id} did not reach running (last status: {status})")
        await self._transition(instance, InstanceStatus.RUNNING)
