import asyncio
import io
import posixpath
import shlex
import tarfile
import time
import uuid
from collections.abc import AsyncIterator, Iterator
from typing import Any
from urllib.parse import urlsplit, urlunsplit

import docker
from docker.errors import DockerException
from docker.models.containers import Container
from loguru import logger

from coreason_preview.exceptions import DuplicateBootError, MountError
from coreason_preview.project.paths import FileTree, iter_tree_files
from coreason_preview.runtime import ContainerBackend, ContainerProcess


# Records the exec's PID, then replaces the shell with the command so the PID stays the same.
_PID_WRAPPER = 'echo $$ > "$0"; exec "$@"'


def descendant_pids(stat_text: str, root: int) -> list[int]:
    """Returns ``root`` and every process below it, from concatenated ``/proc/<pid>/stat`` lines.

    Empty when ``root`` is no longer running.
    """
    children: dict[int, list[int]] = {}
    running = set()
    for line in stat_text.splitlines():
        head, sep, tail = line.rpartition(")")
        if not sep:
            continue
        fields = tail.split()
        try:
            pid = int(head.split(" (", 1)[0])
            ppid = int(fields[1])
        except (ValueError, IndexError):
            continue
        running.add(pid)
        children.setdefault(ppid, []).append(pid)

    if root not in running:
        return []
    pids = []
    pending = [root]
    while pending:
        pid = pending.pop()
        pids.append(pid)
        pending.extend(children.get(pid, []))
    return pids


class DockerProcess(ContainerProcess):
    """A process started with ``docker exec``."""

    def __init__(
        self, backend: "DockerBackend", exec_id: str, stream: Iterator[bytes], command: str, pid_file: str
    ):
        self.backend = backend
        self.exec_id = exec_id
        self.stream = stream
        self.command = command
        self.pid_file = pid_file

    async def output(self) -> AsyncIterator[str]:
        while True:
            chunk = await asyncio.to_thread(next, self.stream, None)
            if chunk is None:
                break
            yield chunk.decode("utf-8", errors="replace")

    async def wait(self) -> int:
        api = self.backend.client.api
        while True:
            info = await asyncio.to_thread(api.exec_inspect, self.exec_id)
            if not info.get("Running"):
                code = info.get("ExitCode")
                return code if code is not None else 1
            await asyncio.sleep(self.backend.poll_interval)

    async def kill(self) -> None:
        container = self.backend.container
        if container is None:
            return
        # Exec sessions cannot be signalled directly; kill the recorded PID and everything it forked.
        try:
            pid_result = await asyncio.to_thread(container.exec_run, ["cat", self.pid_file])
            if pid_result.exit_code != 0:
                logger.debug(f"No PID recorded for '{self.command}'")
                return
            root = int(pid_result.output.decode().strip())
            stat_result = await asyncio.to_thread(
                container.exec_run, ["sh", "-c", "cat /proc/[0-9]*/stat 2>/dev/null"]
            )
            pids = descendant_pids(stat_result.output.decode("utf-8", errors="replace"), root)
            if not pids:
                logger.debug(f"Process already gone: {self.command}")
                return
            await asyncio.to_thread(
                container.exec_run,
                ["sh", "-c", f"kill -9 {' '.join(str(pid) for pid in pids)}; rm -f {shlex.quote(self.pid_file)}"],
            )
        except ValueError:
            logger.warning(f"Unreadable PID file for '{self.command}'")
        except DockerException as e:
            logger.warning(f"Failed to kill '{self.command}' in container: {e}")


class DockerBackend(ContainerBackend):
    """
    Docker-based implementation of the ContainerBackend.
    """

    def __init__(
        self,
        image: str = "node:20-slim",
        cpu_limit: float = 1.0,
        mem_limit: str = "1g",
        ports: tuple[int, ...] = (5173, 3000, 8080),
        poll_interval: float = 0.5,
    ):
        super().__init__()
        self.client = docker.from_env()
        self.image = image
        self.cpu_limit = cpu_limit
        self.mem_limit = mem_limit
        self.ports = ports
        self.poll_interval = poll_interval
        self.container: Container | None = None
        self.work_dir = "/home/project"

    async def boot(self) -> None:
        """
        Boot the environment.
        """
        if self.container is not None:
            raise DuplicateBootError(existing=self)

        logger.info(f"Starting Docker runtime with image {self.image}")
        try:
            self.container = await asyncio.to_thread(
                self.client.containers.run,
                self.image,
                command="tail -f /dev/null",
                detach=True,
                mem_limit=self.mem_limit,
                nano_cpus=int(self.cpu_limit * 1e9),
                remove=True,
                working_dir=self.work_dir,
                ports={f"{port}/tcp": None for port in self.ports},
            )
            self.container.exec_run(f"mkdir -p {self.work_dir}")
            logger.info(f"Docker runtime started: {self.container.short_id}")
        except DockerException as e:
            logger.error(f"Failed to start Docker runtime: {e}")
            raise

    def _require_container(self) -> Container:
        if not self.container:
            raise RuntimeError("Runtime not booted")
        return self.container

    def _container_path(self, relative: str | None) -> str:
        path = posixpath.normpath(posixpath.join(self.work_dir, relative or "."))
        if path != self.work_dir and not path.startswith(self.work_dir + "/"):
            raise MountError(f"Path escapes runtime root: {relative}")
        return path

    async def mount(self, tree: FileTree, mount_point: str = ".") -> None:
        container = self._require_container()
        target = self._container_path(mount_point)

        tar_stream = io.BytesIO()
        with tarfile.open(fileobj=tar_stream, mode="w") as tar:
            for path, contents in iter_tree_files(tree):
                data = contents.encode("utf-8")
                info = tarfile.TarInfo(name=path)
                info.size = len(data)
                info.mtime = int(time.time())
                tar.addfile(info, io.BytesIO(data))
        tar_stream.seek(0)

        try:
            await asyncio.to_thread(container.exec_run, ["mkdir", "-p", target])
            await asyncio.to_thread(container.put_archive, target, tar_stream.getvalue())
        except DockerException as e:
            logger.error(f"Mount failed: {e}")
            raise MountError(f"Failed to mount into {target}: {e}") from e

    async def spawn(self, command: str, args: list[str], cwd: str | None = None) -> ContainerProcess:
        container = self._require_container()
        api = self.client.api
        pid_file = f"/tmp/coreason-preview-{uuid.uuid4().hex}.pid"
        exec_info: dict[str, Any] = await asyncio.to_thread(
            api.exec_create,
            container.id,
            ["sh", "-c", _PID_WRAPPER, pid_file, command, *args],
            workdir=self._container_path(cwd),
            environment={"FORCE_COLOR": "0", "BROWSER": "none"},
        )
        exec_id = exec_info["Id"]
        stream = await asyncio.to_thread(api.exec_start, exec_id, stream=True)
        return DockerProcess(self, exec_id, iter(stream), " ".join([command, *args]), pid_file)

    async def remove(self, path: str) -> None:
        container = self._require_container()
        target = self._container_path(path)
        if target == self.work_dir:
            raise MountError("Refusing to remove the runtime root")
        try:
            await asyncio.to_thread(container.exec_run, ["rm", "-rf", target])
        except DockerException as e:
            raise MountError(f"Failed to remove {target}: {e}") from e

    def public_url(self, local_url: str) -> str:
        """Maps a container-local URL to the host port Docker published for it."""
        if self.container is None:
            return local_url
        parts = urlsplit(local_url)
        if parts.port is None:
            return local_url
        try:
            self.container.reload()
        except DockerException as e:
            logger.warning(f"Could not inspect published ports: {e}")
            return local_url
        bindings = (self.container.attrs.get("NetworkSettings", {}).get("Ports") or {}).get(f"{parts.port}/tcp")
        if not bindings:
            return local_url
        host_port = bindings[0].get("HostPort")
        return urlunsplit((parts.scheme, f"localhost:{host_port}", parts.path, parts.query, parts.fragment))
