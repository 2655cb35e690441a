# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_preview

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable
from typing import Any, Literal

from coreason_preview.project.paths import FileTree

RuntimeEvent = Literal["port", "server-ready"]


class ContainerProcess(ABC):
    """A process spawned inside the container runtime."""

    command: str

    @abstractmethod
    def output(self) -> AsyncIterator[str]:
        """Stream of decoded chunks of the combined stdout/stderr."""
        pass  # pragma: no cover

    @abstractmethod
    async def wait(self) -> int:
        """Wait for the process to exit.

        Returns:
            int: The exit code.
        """
        pass  # pragma: no cover

    @abstractmethod
    async def kill(self) -> None:
        """Terminate the process. Safe to call on an exited process."""
        pass  # pragma: no cover


class ContainerBackend(ABC):
    """
    Abstract base class for the ephemeral container runtime (e.g., local, Docker).
    Follows the Strategy Pattern.

    A backend can be booted physically once per process. Booting a second time raises
    ``DuplicateBootError``.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Callable[..., Any]]] = {}

    @abstractmethod
    async def boot(self) -> None:
        """Boot the runtime.

        Raises:
            DuplicateBootError: If the runtime was already booted.
            RuntimeError: If the runtime fails to start.
        """
        pass  # pragma: no cover

    @abstractmethod
    async def mount(self, tree: FileTree, mount_point: str = ".") -> None:
        """Write a nested file tree into the runtime's file system.

        Args:
            tree: Nested ``{"directory": ...} / {"file": {"contents": ...}}`` tree.
            mount_point: Directory, relative to the runtime root, to mount into.

        Raises:
            MountError: If the tree cannot be written.
        """
        pass  # pragma: no cover

    @abstractmethod
    async def spawn(self, command: str, args: list[str], cwd: str | None = None) -> ContainerProcess:
        """Start a process inside the runtime.

        Args:
            command: Executable to run.
            args: Arguments.
            cwd: Working directory relative to the runtime root.

        Returns:
            ContainerProcess: Handle to the running process.
        """
        pass  # pragma: no cover

    @abstractmethod
    async def remove(self, path: str) -> None:
        """Delete a file or directory, relative to the runtime root, recursively.

        Raises:
            MountError: If the path is the root itself, escapes it, or cannot be removed.
        """
        pass  # pragma: no cover

    def on(self, event: RuntimeEvent, callback: Callable[..., Any]) -> Callable[[], None]:
        """Register a listener for a runtime event.

        ``port`` listeners receive ``(port, kind, url)`` with kind ``open`` or ``close``;
        ``server-ready`` listeners receive ``(port, url)``.

        Returns:
            Callable: Unsubscribe function.
        """
        self._listeners.setdefault(event, []).append(callback)

        def unsubscribe() -> None:
            listeners = self._listeners.get(event, [])
            if callback in listeners:
                listeners.remove(callback)

        return unsubscribe

    def emit(self, event: RuntimeEvent, *args: Any) -> None:
        for callback in list(self._listeners.get(event, [])):
            callback(*args)

    def public_url(self, local_url: str) -> str:
        """Translate a URL printed inside the runtime into one reachable by the caller."""
        return local_url
