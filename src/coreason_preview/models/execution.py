# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_preview

"""Data models for snippet execution requests and results."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

ExecutionMode = Literal["browser", "remote", "fallback", "auto"]
ExecutorName = Literal["runtime", "remote", "fallback"]

LANGUAGE_ALIASES: dict[str, str] = {
    "js": "javascript",
    "node": "javascript",
    "ts": "typescript",
    "py": "python",
    "python3": "python",
    "c++": "cpp",
    "rs": "rust",
    "golang": "go",
    "rb": "ruby",
}


def normalize_language(language: str) -> str:
    """Lower-cases a language identifier and resolves common aliases."""
    key = language.strip().lower()
    return LANGUAGE_ALIASES.get(key, key)


class ExecutionRequest(BaseModel):
    """A single-use request to run a code snippet.

    Attributes:
        code: The source code to execute.
        language: Language identifier (aliases such as 'js' or 'py' are normalized).
        mode: Backend selection: a specific executor or 'auto' for the fallback chain.
        stdin: Optional standard input for the program.
        timeout_ms: Optional execution deadline in milliseconds.
        test_code: Optional test code appended to ``code`` before execution.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    code: str
    language: str
    mode: ExecutionMode = "auto"
    stdin: str | None = None
    timeout_ms: int | None = Field(default=None, alias="timeoutMs", gt=0)
    test_code: str | None = Field(default=None, alias="testCode")

    @field_validator("language")
    @classmethod
    def _normalize_language(cls, value: str) -> str:
        return normalize_language(value)

    def timeout_seconds(self, default: float) -> float:
        """Returns the request deadline in seconds, or ``default`` when unset."""
        if self.timeout_ms is None:
            return default
        return self.timeout_ms / 1000.0


class ExecutionResult(BaseModel):
    """Outcome of a snippet execution. Produced even when every backend failed.

    Attributes:
        success: True when the program ran and exited cleanly.
        stdout: Standard output captured from the execution.
        stderr: Standard error (or compiler diagnostics) captured from the execution.
        exit_code: The exit code of the process (0 for success).
        duration_ms: Wall-clock duration of the attempt in milliseconds.
        executor_used: Which backend produced the result.
        memory_used: Memory reported by the backend in bytes, when available.
        error: Short infrastructure or classification message, when not successful.
    """

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    stdout: str = ""
    stderr: str = ""
    exit_code: int = Field(default=0, alias="exitCode")
    duration_ms: float = Field(default=0.0, alias="durationMs")
    executor_used: ExecutorName = Field(alias="executorUsed")
    memory_used: int | None = Field(default=None, alias="memoryUsed")
    error: str | None = None

    @classmethod
    def failure(
        cls,
        executor: ExecutorName,
        message: str,
        duration_ms: float = 0.0,
        stderr: str | None = None,
    ) -> "ExecutionResult":
        """Builds a failed result carrying ``message`` as the error."""
        return cls(
            success=False,
            stdout="",
            stderr=stderr if stderr is not None else message,
            exit_code=1,
            duration_ms=duration_ms,
            executor_used=executor,
            error=message,
        )


class TestResult(ExecutionResult):
    """Execution result of a combined code + test run."""

    __test__ = False  # not a pytest test class

    tests_passed: int = Field(default=0, alias="testsPassed")
    tests_failed: int = Field(default=0, alias="testsFailed")


class LintIssue(BaseModel):
    """A single finding of the pattern-based linter, on a 1-based line."""

    line: int
    message: str
    severity: Literal["error", "warning"]


class LintResult(BaseModel):
    issues: list[LintIssue] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
