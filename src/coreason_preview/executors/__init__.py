from .base import SnippetExecutor
from .fallback import FallbackSandboxExecutor
from .remote import RemoteSandboxExecutor
from .runtime import RuntimeSnippetExecutor

__all__ = ["FallbackSandboxExecutor", "RemoteSandboxExecutor", "RuntimeSnippetExecutor", "SnippetExecutor"]
