import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from loguru import logger

from coreason_preview.exceptions import RemoteExecutorTimeoutError, RemoteExecutorUnavailableError
from coreason_preview.executors.base import SnippetExecutor
from coreason_preview.models.execution import ExecutionRequest, ExecutionResult


class FallbackSandboxExecutor(SnippetExecutor):
    """
    Client for the private, self-hosted execution host. Last tier of the auto chain.

    Disabled entirely when no base URL is configured.
    """

    name = "fallback"

    def __init__(
        self,
        base_url: str | None,
        token: str | None = None,
        timeout: float = 60.0,
        health_timeout: float = 3.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/") if base_url else None
        self.token = token
        self.timeout = timeout
        self.health_timeout = health_timeout
        self._shared_client = client

    @property
    def configured(self) -> bool:
        return self.base_url is not None

    def _headers(self) -> dict[str, str]:
        if self.token:
            return {"Authorization": f"Bearer {self.token}"}
        return {}

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._shared_client is not None:
            yield self._shared_client
            return
        async with httpx.AsyncClient() as client:
            yield client

    async def is_available(self) -> bool:
        if not self.configured:
            return False
        try:
            async with self._client() as client:
                response = await client.get(
                    f"{self.base_url}/health", headers=self._headers(), timeout=self.health_timeout
                )
            return response.is_success
        except httpx.HTTPError as e:
            logger.debug(f"Fallback sandbox health check failed: {e}")
            return False

    async def execute(self, request: ExecutionRequest) -> ExecutionResult:
        if not self.configured:
            raise RemoteExecutorUnavailableError(self.name, "not configured")

        start_time = time.time()
        timeout = request.timeout_seconds(self.timeout)
        body = {
            "code": request.code,
            "language": request.language,
            "stdin": request.stdin,
            "timeout": int(timeout * 1000),
        }

        logger.info(f"Executing {request.language} code on fallback sandbox")
        try:
            async with self._client() as client:
                response = await client.post(
                    f"{self.base_url}/execute", json=body, headers=self._headers(), timeout=timeout
                )
        except httpx.TimeoutException as e:
            raise RemoteExecutorTimeoutError(self.name, timeout) from e
        except httpx.HTTPError as e:
            raise RemoteExecutorUnavailableError(self.name, str(e)) from e

        if not response.is_success:
            raise RemoteExecutorUnavailableError(self.name, f"API error {response.status_code}")
        try:
            payload = response.json()
        except ValueError as e:
            raise RemoteExecutorUnavailableError(self.name, f"Invalid response: {e}") from e

        exit_code = payload.get("exitCode")
        if not isinstance(exit_code, int):
            exit_code = 1
        memory = payload.get("memoryUsed")
        return ExecutionResult(
            success=exit_code == 0,
            stdout=payload.get("stdout") or "",
            stderr=payload.get("stderr") or "",
            exit_code=exit_code,
            duration_ms=(time.time() - start_time) * 1000,
            executor_used=self.name,
            memory_used=memory if isinstance(memory, int) else None,
        )
