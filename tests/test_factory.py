from unittest.mock import patch

from coreason_preview.config import PreviewConfig
from coreason_preview.executors import FallbackSandboxExecutor, RemoteSandboxExecutor, RuntimeSnippetExecutor
from coreason_preview.factory import PreviewFactory
from coreason_preview.runtime import ContainerBackend
from coreason_preview.runtimes.docker import DockerBackend
from coreason_preview.runtimes.local import LocalBackend


def test_factory_returns_local_backend() -> None:
    config = PreviewConfig(container_backend="local", work_dir="/tmp/preview-root")
    backend = PreviewFactory.get_backend_factory(config)()

    assert isinstance(backend, LocalBackend)
    assert isinstance(backend, ContainerBackend)
    assert backend._requested_root == "/tmp/preview-root"


def test_factory_returns_docker_backend() -> None:
    config = PreviewConfig(container_backend="docker", docker_image="node:22-alpine")
    with patch("coreason_preview.runtimes.docker.docker.from_env"):
        backend = PreviewFactory.get_backend_factory(config)()

    assert isinstance(backend, DockerBackend)
    assert backend.image == "node:22-alpine"


def test_backend_is_built_lazily() -> None:
    config = PreviewConfig(container_backend="docker")
    with patch("coreason_preview.runtimes.docker.docker.from_env") as from_env:
        PreviewFactory.get_backend_factory(config)
        from_env.assert_not_called()


def test_factory_wires_executors() -> None:
    config = PreviewConfig(
        remote_url="https://piston.test/",
        remote_timeout=7,
        fallback_url="https://vps.test",
        fallback_token="tok",
        health_timeout=1,
    )

    executors = PreviewFactory.get_executors(config)

    assert isinstance(executors["runtime"], RuntimeSnippetExecutor)
    remote = executors["remote"]
    assert isinstance(remote, RemoteSandboxExecutor)
    assert remote.base_url == "https://piston.test"
    assert remote.timeout == 7
    assert remote.health_timeout == 1
    fallback = executors["fallback"]
    assert isinstance(fallback, FallbackSandboxExecutor)
    assert fallback.configured
    assert fallback.token == "tok"
