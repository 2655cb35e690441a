import asyncio
import os
import shutil
import signal
import tempfile
from collections.abc import AsyncIterator
from pathlib import Path

import aiofiles  # type: ignore[import-untyped]
from loguru import logger

from coreason_preview.exceptions import DuplicateBootError, MountError
from coreason_preview.project.paths import FileTree, iter_tree_files
from coreason_preview.runtime import ContainerBackend, ContainerProcess


class LocalProcess(ContainerProcess):
    """A process running in its own session on the host."""

    def __init__(self, process: asyncio.subprocess.Process, command: str):
        self.process = process
        self.command = command

    async def output(self) -> AsyncIterator[str]:
        stream = self.process.stdout
        if stream is None:
            return
        while True:
            chunk = await stream.read(4096)
            if not chunk:
                break
            yield chunk.decode("utf-8", errors="replace")

    async def wait(self) -> int:
        return await self.process.wait()

    async def kill(self) -> None:
        if self.process.returncode is not None:
            return
        try:
            # Kill the whole group: npm leaves its children behind otherwise
            os.killpg(self.process.pid, signal.SIGKILL)
        except ProcessLookupError:
            logger.debug(f"Process already gone: {self.command}")
        except PermissionError:
            self.process.kill()


class LocalBackend(ContainerBackend):
    """Container runtime backed by a scratch directory and host processes.

    Requires ``node``/``npm`` on the host PATH for previews.
    """

    def __init__(self, root: str | None = None):
        super().__init__()
        self._requested_root = root
        self.root: Path | None = None

    async def boot(self) -> None:
        if self.root is not None:
            raise DuplicateBootError(existing=self)

        root = Path(self._requested_root or tempfile.mkdtemp(prefix="coreason-preview-"))
        root.mkdir(parents=True, exist_ok=True)
        self.root = root.resolve()
        logger.info(f"Local runtime booted at {self.root}")

    def _require_root(self) -> Path:
        if self.root is None:
            raise RuntimeError("Runtime not booted")
        return self.root

    def _resolve(self, relative: str) -> Path:
        root = self._require_root()
        target = (root / relative).resolve()
        if target != root and root not in target.parents:
            raise MountError(f"Path escapes runtime root: {relative}")
        return target

    async def mount(self, tree: FileTree, mount_point: str = ".") -> None:
        base = self._resolve(mount_point)
        entries = iter_tree_files(tree)
        logger.debug(f"Mounting {len(entries)} files into {base}")
        for path, contents in entries:
            target = base / path
            try:
                await asyncio.to_thread(target.parent.mkdir, parents=True, exist_ok=True)
                async with aiofiles.open(target, "w", encoding="utf-8") as f:
                    await f.write(contents)
            except OSError as e:
                raise MountError(f"Failed to write {path}: {e}") from e

    async def remove(self, path: str) -> None:
        target = self._resolve(path)
        if target == self.root:
            raise MountError("Refusing to remove the runtime root")
        try:
            await asyncio.to_thread(shutil.rmtree, target)
        except FileNotFoundError:
            logger.debug(f"Nothing to remove at {target}")
        except OSError as e:
            raise MountError(f"Failed to remove {path}: {e}") from e

    async def spawn(self, command: str, args: list[str], cwd: str | None = None) -> ContainerProcess:
        workdir = self._resolve(cwd or ".")
        env = {**os.environ, "FORCE_COLOR": "0", "BROWSER": "none"}
        process = await asyncio.create_subprocess_exec(
            command,
            *args,
            cwd=str(workdir),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            env=env,
            start_new_session=True,
        )
        return LocalProcess(process, " ".join([command, *args]))
