import httpx

from coreason_preview.config import PreviewConfig
from coreason_preview.executors import (
    FallbackSandboxExecutor,
    RemoteSandboxExecutor,
    RuntimeSnippetExecutor,
    SnippetExecutor,
)
from coreason_preview.models.execution import ExecutorName
from coreason_preview.runtime import ContainerBackend
from coreason_preview.runtime_manager import BackendFactory
from coreason_preview.runtimes.docker import DockerBackend
from coreason_preview.runtimes.local import LocalBackend


class PreviewFactory:
    """
    Factory to create container backends and snippet executors based on configuration.
    """

    @staticmethod
    def get_backend_factory(config: PreviewConfig) -> BackendFactory:
        """
        Returns a zero-argument callable building the configured ContainerBackend.

        The backend is only constructed when the runtime is first booted.
        """

        def build() -> ContainerBackend:
            if config.container_backend == "docker":
                return DockerBackend(image=config.docker_image)
            elif config.container_backend == "local":
                return LocalBackend(root=config.work_dir)
            else:
                raise ValueError(f"Unsupported container backend: {config.container_backend}")

        return build

    @staticmethod
    def get_executors(
        config: PreviewConfig, client: httpx.AsyncClient | None = None
    ) -> dict[ExecutorName, SnippetExecutor]:
        """
        Returns the three snippet executors keyed by name.
        """
        return {
            "runtime": RuntimeSnippetExecutor(PreviewFactory.get_backend_factory(config), config),
            "remote": RemoteSandboxExecutor(
                base_url=config.remote_url,
                timeout=config.remote_timeout,
                health_timeout=config.health_timeout,
                client=client,
            ),
            "fallback": FallbackSandboxExecutor(
                base_url=config.fallback_url,
                token=config.fallback_token,
                timeout=config.fallback_timeout,
                health_timeout=config.health_timeout,
                client=client,
            ),
        }
