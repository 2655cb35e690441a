# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_preview

"""
coreason-preview
"""

__version__ = "0.1.0"
__author__ = "Gowtham A Rao"
__email__ = "gowtham.rao@coreason.ai"

from .config import PreviewConfig
from .factory import PreviewFactory
from .models.execution import ExecutionRequest, ExecutionResult, LintResult, TestResult
from .models.session import ContainerSession, ContainerStatus, SessionEvent
from .preview import PreviewSessionController
from .router import ExecutionRouter, ExecutionRouterSync
from .runtime import ContainerBackend, ContainerProcess
from .runtime_manager import ContainerRuntimeManager, RuntimeHolder

__all__ = [
    "ContainerBackend",
    "ContainerProcess",
    "ContainerRuntimeManager",
    "ContainerSession",
    "ContainerStatus",
    "ExecutionRequest",
    "ExecutionResult",
    "ExecutionRouter",
    "ExecutionRouterSync",
    "LintResult",
    "PreviewConfig",
    "PreviewFactory",
    "PreviewSessionController",
    "RuntimeHolder",
    "SessionEvent",
    "TestResult",
]
