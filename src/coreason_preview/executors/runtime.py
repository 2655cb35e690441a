# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_preview

import asyncio
import json
import time
import uuid

from loguru import logger

from coreason_preview.config import PreviewConfig
from coreason_preview.exceptions import IsolationUnavailableError, MountError
from coreason_preview.executors.base import SnippetExecutor
from coreason_preview.models.execution import ExecutionRequest, ExecutionResult
from coreason_preview.project.paths import build_file_tree
from coreason_preview.runtime import ContainerBackend
from coreason_preview.runtime_manager import BackendFactory, RuntimeHolder

SNIPPETS_DIR = ".snippets"


class RuntimeSnippetExecutor(SnippetExecutor):
    """
    Runs JavaScript/TypeScript snippets inside the shared container runtime.

    Each request gets its own directory under ``.snippets/`` so concurrent snippets and
    the preview project never see each other's files. The directory is removed once the
    run ends.
    """

    name = "runtime"

    def __init__(self, backend_factory: BackendFactory, config: PreviewConfig | None = None):
        self.backend_factory = backend_factory
        self.config = config or PreviewConfig()

    def supports(self, language: str) -> bool:
        return language in self.config.runtime_languages

    async def is_available(self) -> bool:
        return self.config.isolation_enabled

    async def execute(self, request: ExecutionRequest) -> ExecutionResult:
        if not self.config.isolation_enabled:
            raise IsolationUnavailableError()

        # Boot failures propagate; they are infrastructure errors.
        backend = await RuntimeHolder.get_or_boot(self.backend_factory)

        start_time = time.time()
        filename = "index.ts" if request.language == "typescript" else "index.js"
        script = "npx tsx index.ts" if request.language == "typescript" else "node index.js"
        manifest = {"name": "coreason-snippet", "type": "module", "scripts": {"start": script}}
        workdir = f"{SNIPPETS_DIR}/{uuid.uuid4().hex}"

        if request.stdin:
            logger.debug("stdin is not forwarded to runtime snippets")

        try:
            await backend.mount(
                build_file_tree({filename: request.code, "package.json": json.dumps(manifest)}),
                mount_point=workdir,
            )
            return await self._run(backend, workdir, request, start_time)
        finally:
            try:
                await backend.remove(workdir)
            except MountError as e:
                logger.warning(f"Failed to clean up snippet directory {workdir}: {e}")

    async def _run(
        self, backend: ContainerBackend, workdir: str, request: ExecutionRequest, start_time: float
    ) -> ExecutionResult:
        process = await backend.spawn("npm", ["run", "--silent", "start"], cwd=workdir)
        chunks: list[str] = []

        async def collect() -> int:
            async for chunk in process.output():
                chunks.append(chunk)
            return await process.wait()

        timeout = request.timeout_seconds(self.config.runtime_timeout)
        try:
            exit_code = await asyncio.wait_for(collect(), timeout=timeout)
        except asyncio.TimeoutError:
            await process.kill()
            logger.warning(f"Runtime snippet timed out after {timeout}s")
            return ExecutionResult(
                success=False,
                stdout="".join(chunks),
                stderr=f"Execution timed out after {timeout}s",
                exit_code=124,
                duration_ms=(time.time() - start_time) * 1000,
                executor_used=self.name,
                error="Timeout",
            )

        return ExecutionResult(
            success=exit_code == 0,
            stdout="".join(chunks),
            stderr="",
            exit_code=exit_code,
            duration_ms=(time.time() - start_time) * 1000,
            executor_used=self.name,
        )
