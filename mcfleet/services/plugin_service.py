import logging
from uuid import UUID

from mcfleet.domain.ports import FilesystemMutator
from mcfleet.schemas.monitoring import ExporterConfig
from mcfleet.services.instance_service import InstanceService

logger = logging.getLogger(__name__)

EXPORTER_URL = (
    "https://github.com/sladkoff/minecraft-prometheus-exporter/releases/latest/download/"
    "minecraft-prometheus-exporter.jar"
)
EXPORTER_JAR = "plugins/minecraft-prometheus-exporter.jar"
EXPORTER_DIR = "plugins/minecraft-prometheus-exporter"
EXPORTER_CONFIG = f"{EXPORTER_DIR}/config.yml"


def render_exporter_config(config: ExporterConfig) -> str:
    def flag(value: bool) -> str:
        return "true" if value else "false"

    return (
        "# Prometheus Exporter Configuration\n"
        "# Generated automatically by mcfleet\n"
        "\n"
        f"enable_metrics: {flag(config.enable_metrics)}\n"
        f"metrics_port: {config.metrics_port}\n"
        f"enable_player_metrics: {flag(config.enable_player_metrics)}\n"
        f"enable_server_metrics: {flag(config.enable_server_metrics)}\n"
        f"enable_world_metrics: {flag(config.enable_world_metrics)}\n"
        f"update_interval: {config.update_interval}\n"
    )


class PluginService:
    """Installs the in-game exporter plugin onto an instance volume."""

    def __init__(self, instances: InstanceService, exporter_url: str = EXPORTER_URL):
        self.instances = instances
        self.exporter_url = exporter_url

    async def install_exporter(self, instance_id: UUID, config: ExporterConfig | None = None) -> None:
        config = config or ExporterConfig()

        async def install(fs: FilesystemMutator, volume: str) -> None:
            await fs.fetch_file(volume, self.exporter_url, EXPORTER_JAR)
            await fs.write_file(volume, EXPORTER_CONFIG, render_exporter_config(config))

        await self.instances.filesystem_mutate(instance_id, install)
        logger.info("Exporter plugin installed for instance %s", instance_id)

    async def remove_exporter(self, instance_id: UUID) -> None:
        async def remove(fs: FilesystemMutator, volume: str) -> None:
            await fs.remove_files(volume, [EXPORTER_JAR, EXPORTER_DIR])

        await self.instances.filesystem_mutate(instance_id, remove)
        logger.info("Exporter plugin removed for instance %s", instance_id)

    async def is_exporter_installed(self, instance_id: UUID) -> bool:
        async def check(fs: FilesystemMutator, volume: str) -> bool:
            return await fs.check_exists(volume, EXPORTER_JAR)

        return await self.instances.filesystem_mutate(instance_id, check)

    async def update_exporter_config(self, instance_id: UUID, config: ExporterConfig) -> bool:
        async def update(fs: FilesystemMutator, volume: str) -> bool:
            if not await fs.check_exists(volume, EXPORTER_JAR):
                return False
            await fs.write_file(volume, EXPORTER_CONFIG, render_exporter_config(config))
            return True

        return await self.instances.filesystem_mutate(instance_id, update)
