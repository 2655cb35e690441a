from collections.abc import Callable, Generator

import pytest

from coreason_preview.config import PreviewConfig
from coreason_preview.runtime_manager import RuntimeHolder
from fakes import FakeBackend


@pytest.fixture(autouse=True)
def reset_runtime_holder() -> Generator[None, None, None]:
    RuntimeHolder.reset()
    yield
    RuntimeHolder.reset()


@pytest.fixture
def fake_backend() -> FakeBackend:
    backend = FakeBackend()
    backend.serve("npm run dev")
    backend.serve("npm start", "http://localhost:3000")
    backend.serve("npx serve .", "http://localhost:3000")
    return backend


@pytest.fixture
def backend_factory(fake_backend: FakeBackend) -> Callable[[], FakeBackend]:
    return lambda: fake_backend


@pytest.fixture
def config() -> PreviewConfig:
    return PreviewConfig(install_timeout=1.0, start_timeout=1.0, runtime_timeout=1.0)
