import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx
from loguru import logger

from coreason_preview.exceptions import RemoteExecutorTimeoutError, RemoteExecutorUnavailableError
from coreason_preview.executors.base import SnippetExecutor
from coreason_preview.models.execution import ExecutionRequest, ExecutionResult

FILENAMES: dict[str, str] = {
    "javascript": "index.js",
    "typescript": "index.ts",
    "python": "main.py",
    "rust": "main.rs",
    "go": "main.go",
    "java": "Main.java",
    "cpp": "main.cpp",
    "c": "main.c",
    "ruby": "main.rb",
    "php": "main.php",
}

# Our language identifiers that the remote API names differently
REMOTE_LANGUAGE_NAMES: dict[str, str] = {"cpp": "c++"}


class RemoteSandboxExecutor(SnippetExecutor):
    """Client for a free, Piston-compatible multi-language execution API.

    Stateless apart from the cached runtime list; every call is a single HTTP request
    with no retries.
    """

    name = "remote"

    def __init__(
        self,
        base_url: str = "https://emkc.org/api/v2/piston",
        timeout: float = 10.0,
        health_timeout: float = 3.0,
        client: httpx.AsyncClient | None = None,
    ):
        """Initializes the RemoteSandboxExecutor.

        Args:
            base_url: Root of the execution API.
            timeout: Default execution deadline in seconds.
            health_timeout: Deadline of the availability check in seconds.
            client: Optional httpx.AsyncClient for connection pooling.
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.health_timeout = health_timeout
        self._shared_client = client
        self._runtimes: list[dict[str, Any]] | None = None
        self._resolved: dict[str, tuple[str, str]] = {}

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._shared_client is not None:
            yield self._shared_client
            return
        async with httpx.AsyncClient() as client:
            yield client

    async def is_available(self) -> bool:
        try:
            async with self._client() as client:
                response = await client.get(f"{self.base_url}/runtimes", timeout=self.health_timeout)
            return response.is_success
        except httpx.HTTPError as e:
            logger.debug(f"Remote sandbox health check failed: {e}")
            return False

    async def _fetch_runtimes(self) -> list[dict[str, Any]]:
        if self._runtimes is not None:
            return self._runtimes
        try:
            async with self._client() as client:
                response = await client.get(f"{self.base_url}/runtimes", timeout=self.timeout)
                response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Failed to fetch remote runtimes: {e}")
            return []
        self._runtimes = [r for r in data if isinstance(r, dict)] if isinstance(data, list) else []
        return self._runtimes

    async def resolve_runtime(self, language: str) -> tuple[str, str]:
        """Map a language to a concrete ``(language, version)`` offered by the API.

        JavaScript prefers the Node runtime and TypeScript any non-Deno runtime, so the
        choice never depends on the API's default ordering. Unknown languages resolve to
        version ``*``.
        """
        if language in self._resolved:
            return self._resolved[language]

        wanted = REMOTE_LANGUAGE_NAMES.get(language, language)
        runtimes = await self._fetch_runtimes()

        def matches(runtime: dict[str, Any]) -> bool:
            return runtime.get("language") == wanted or wanted in (runtime.get("aliases") or [])

        candidates = [r for r in runtimes if matches(r)]
        preferred: dict[str, Any] | None = None
        if language == "javascript":
            preferred = next((r for r in candidates if r.get("runtime") == "node"), None)
        elif language == "typescript":
            preferred = next((r for r in candidates if r.get("runtime") != "deno"), None)
        if preferred is None and candidates:
            preferred = candidates[0]

        if preferred is None:
            if not runtimes:
                # Runtime list unavailable; do not cache the guess
                return wanted, "*"
            resolved = (wanted, "*")
        else:
            resolved = (str(preferred["language"]), str(preferred["version"]))
        self._resolved[language] = resolved
        return resolved

    async def execute(self, request: ExecutionRequest) -> ExecutionResult:
        start_time = time.time()
        timeout = request.timeout_seconds(self.timeout)
        language, version = await self.resolve_runtime(request.language)

        body = {
            "language": language,
            "version": version,
            "files": [{"name": FILENAMES.get(request.language, "code.txt"), "content": request.code}],
            "stdin": request.stdin or "",
            "args": [],
            "compile_timeout": int(timeout * 1000),
            "run_timeout": int(timeout * 1000),
            "compile_memory_limit": -1,
            "run_memory_limit": -1,
        }

        logger.info(f"Executing {request.language} code on remote sandbox ({language} {version})")
        try:
            async with self._client() as client:
                response = await client.post(f"{self.base_url}/execute", json=body, timeout=timeout)
        except httpx.TimeoutException as e:
            raise RemoteExecutorTimeoutError(self.name, timeout) from e
        except httpx.HTTPError as e:
            raise RemoteExecutorUnavailableError(self.name, str(e)) from e

        if not response.is_success:
            raise RemoteExecutorUnavailableError(self.name, f"API error {response.status_code}: {response.text}")
        try:
            payload = response.json()
        except ValueError as e:
            raise RemoteExecutorUnavailableError(self.name, f"Invalid response: {e}") from e

        duration = (time.time() - start_time) * 1000
        compile_phase = payload.get("compile") or {}
        run_phase = payload.get("run") or {}

        if compile_phase.get("stderr"):
            return ExecutionResult(
                success=False,
                stdout=compile_phase.get("stdout") or "",
                stderr=compile_phase["stderr"],
                exit_code=compile_phase.get("code") or 1,
                duration_ms=duration,
                executor_used=self.name,
                error="Compilation failed",
            )

        signal = run_phase.get("signal")
        code = run_phase.get("code")
        exit_code = code if isinstance(code, int) else (1 if signal else 0)
        success = exit_code == 0 and not signal
        return ExecutionResult(
            success=success,
            stdout=run_phase.get("stdout") or "",
            stderr=run_phase.get("stderr") or "",
            exit_code=exit_code,
            duration_ms=duration,
            executor_used=self.name,
            error=None if success else (f"Terminated by {signal}" if signal else None),
        )
