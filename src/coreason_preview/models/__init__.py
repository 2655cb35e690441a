# src/coreason_preview/models/__init__.py

"""
Data models for execution requests, preview sessions and manifests.
"""

from .execution import (
    ExecutionMode,
    ExecutionRequest,
    ExecutionResult,
    ExecutorName,
    LintIssue,
    LintResult,
    TestResult,
    normalize_language,
)
from .manifest import Manifest
from .session import ContainerSession, ContainerStatus, LogLine, SessionEvent

__all__ = [
    "ContainerSession",
    "ContainerStatus",
    "ExecutionMode",
    "ExecutionRequest",
    "ExecutionResult",
    "ExecutorName",
    "LintIssue",
    "LintResult",
    "LogLine",
    "Manifest",
    "SessionEvent",
    "TestResult",
    "normalize_language",
]
