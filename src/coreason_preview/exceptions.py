# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_preview

"""Error taxonomy for the runtime manager and the execution router."""

from typing import Any


class PreviewError(Exception):
    """Base class for all orchestrator errors."""


class IsolationUnavailableError(PreviewError):
    """The host does not provide the execution-isolation capability. Fatal."""

    def __init__(self, message: str | None = None):
        super().__init__(
            message
            or "Container runtime requires cross-origin isolation. "
            "Enable the isolation capability (COOP/COEP headers) on the host."
        )


class DuplicateBootError(PreviewError):
    """The underlying runtime was already booted in this process.

    Recoverable: the holder reuses ``existing`` (or the handle it already has).
    """

    def __init__(self, message: str = "Only a single runtime instance can be booted", existing: Any = None):
        super().__init__(message)
        self.existing = existing


class MountError(PreviewError):
    """Mounting the file tree into the runtime failed."""


class InstallTimeoutError(PreviewError):
    """Dependency install exceeded its deadline. Logged, never fatal."""


class StartError(PreviewError):
    """The dev server could not be started or never became ready."""

    def __init__(self, message: str, command: str | None = None, output: str = ""):
        super().__init__(message)
        self.command = command
        self.output = output


class RemoteExecutorUnavailableError(PreviewError):
    """A remote execution backend could not be reached or answered with an error."""

    def __init__(self, executor: str, message: str):
        super().__init__(f"{executor}: {message}")
        self.executor = executor


class RemoteExecutorTimeoutError(PreviewError):
    """A remote execution backend did not answer within the deadline."""

    def __init__(self, executor: str, timeout: float):
        super().__init__(f"{executor}: request exceeded {timeout} seconds limit.")
        self.executor = executor
        self.timeout = timeout


class AllBackendsExhaustedError(PreviewError):
    """No executor in the fallback chain could serve the request."""
