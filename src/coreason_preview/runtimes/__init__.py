from .docker import DockerBackend
from .local import LocalBackend

__all__ = ["DockerBackend", "LocalBackend"]
