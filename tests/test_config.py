from unittest.mock import patch

import pytest
from pydantic import ValidationError

from coreason_preview.config import PreviewConfig


def test_defaults() -> None:
    with patch.dict("os.environ", {}, clear=True):
        config = PreviewConfig()

    assert config.isolation_enabled is True
    assert config.container_backend == "local"
    assert config.remote_url == "https://emkc.org/api/v2/piston"
    assert config.fallback_url is None
    assert config.install_timeout == 180.0
    assert config.start_timeout == 120.0
    assert config.health_timeout == 3.0
    assert config.log_cap == 100
    assert config.runtime_languages == {"javascript", "typescript"}


def test_environment_overrides() -> None:
    env = {
        "COREASON_PREVIEW_ISOLATION_ENABLED": "false",
        "COREASON_PREVIEW_CONTAINER_BACKEND": "docker",
        "COREASON_PREVIEW_FALLBACK_URL": "https://vps.example",
        "COREASON_PREVIEW_FALLBACK_TOKEN": "token",
        "COREASON_PREVIEW_INSTALL_TIMEOUT": "60",
        "COREASON_PREVIEW_RUNTIME_LANGUAGES": '["javascript"]',
    }
    with patch.dict("os.environ", env, clear=True):
        config = PreviewConfig()

    assert config.isolation_enabled is False
    assert config.container_backend == "docker"
    assert config.fallback_url == "https://vps.example"
    assert config.fallback_token == "token"
    assert config.install_timeout == 60.0
    assert config.runtime_languages == {"javascript"}


def test_unknown_backend_rejected() -> None:
    with pytest.raises(ValidationError):
        PreviewConfig(container_backend="e2b")  # type: ignore[arg-type]


def test_unrelated_environment_is_ignored() -> None:
    with patch.dict("os.environ", {"COREASON_PREVIEW_UNKNOWN": "x"}, clear=True):
        PreviewConfig()
