import logging
import posixpath
import shlex
from typing import List

from mcfleet.domain.errors import ProvisioningError
from mcfleet.domain.ports import DockerRuntime, FilesystemMutator

logger = logging.getLogger(__name__)

DATA_ROOT = "/data"


def _data_path(path: str) -> str:
    """Resolve a volume-relative path under /data, refusing to escape it."""
    resolved = posixpath.normpath(posixpath.join(DATA_ROOT, path.lstrip("/")))
    if resolved != DATA_ROOT and not resolved.startswith(DATA_ROOT + "/"):
        raise ValueError(f"Path {path!r} escapes the instance volume")
    return resolved


class HelperContainerMutator(FilesystemMutator):
    """Mutates an instance volume through short-lived helper containers."""

    def __init__(self, docker_runtime: DockerRuntime, helper_image: str = "alpine"):
        self.runtime = docker_runtime
        self.helper_image = helper_image

    async def _run(self, volume: str, script: str) -> tuple[int, str]:
        exit_code, output = await self.runtime.run_helper(
            image=self.helper_image,
            volume=volume,
            command=["/bin/sh", "-c", script],
        )
        if exit_code != 0:
            logger.debug("Helper on %s exited %s: %s", volume, exit_code, output)
        return exit_code, output

    async def _run_checked(self, volume: str, script: str, action: str) -> None:
        exit_code, output = await self._run(volume, script)
        if exit_code != 0:
            raise ProvisioningError(f"{action} on volume {volume} failed ({exit_code}): {output.strip()}")

    async def write_file(self, volume: str, path: str, content: str) -> None:
        target = _data_path(path)
        script = (
            f"mkdir -p {shlex.quote(posixpath.dirname(target))} && "
            f"printf '%s' {shlex.quote(content)} > {shlex.quote(target)}"
        )
        await self._run_checked(volume, script, f"Writing {path}")

    async def fetch_file(self, volume: str, url: str, path: str) -> None:
        target = _data_path(path)
        script = (
            f"mkdir -p {shlex.quote(posixpath.dirname(target))} && "
            f"wget -q -O {shlex.quote(target)} {shlex.quote(url)}"
        )
        await self._run_checked(volume, script, f"Downloading {url}")

    async def remove_files(self, volume: str, paths: List[str]) -> None:
        if not paths:
            return
        targets = " ".join(shlex.quote(_data_path(p)) for p in paths)
        await self._run_checked(volume, f"rm -rf {targets}", "Removing files")

    async def check_exists(self, volume: str, path: str) -> bool:
        exit_code, _ = await self._run(volume, f"test -e {shlex.quote(_data_path(path))}")
        return exit_code == 0
