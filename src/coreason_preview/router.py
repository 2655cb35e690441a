# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_preview

import re
import time
from collections.abc import Mapping
from typing import Literal

import anyio
import httpx
from loguru import logger

from coreason_preview.config import PreviewConfig
from coreason_preview.exceptions import AllBackendsExhaustedError, IsolationUnavailableError
from coreason_preview.executors import SnippetExecutor
from coreason_preview.factory import PreviewFactory
from coreason_preview.models.execution import (
    ExecutionMode,
    ExecutionRequest,
    ExecutionResult,
    ExecutorName,
    LintIssue,
    LintResult,
    TestResult,
    normalize_language,
)
from coreason_preview.utils.fingerprint import code_hash

FALLBACK_CHAIN: tuple[ExecutorName, ...] = ("runtime", "remote", "fallback")

MODE_EXECUTORS: dict[ExecutionMode, ExecutorName] = {
    "browser": "runtime",
    "remote": "remote",
    "fallback": "fallback",
}

HASH_COMMENT_LANGUAGES = frozenset({"python", "ruby", "bash", "r"})

_PASSED = re.compile(r"(\d+)\s*(?:passed|pass|✓)", re.IGNORECASE)
_FAILED = re.compile(r"(\d+)\s*(?:failed|fail|✗)", re.IGNORECASE)

# (pattern, languages it applies to or None for all, message, severity)
LINT_RULES: tuple[tuple[re.Pattern[str], frozenset[str] | None, str, Literal["error", "warning"]], ...] = (
    (
        re.compile(r"console\.log"),
        frozenset({"typescript"}),
        "console.log found - consider removing for production",
        "warning",
    ),
    (re.compile(r"\bany\b"), frozenset({"typescript"}), 'Avoid using "any" type', "warning"),
    (re.compile(r"\beval\s*\("), None, "eval() is dangerous - avoid using", "error"),
)


def combine_with_tests(code: str, test_code: str, language: str) -> str:
    """Append ``test_code`` to ``code`` behind a separator comment valid in ``language``."""
    prefix = "#" if language in HASH_COMMENT_LANGUAGES else "//"
    return f"{code}\n\n{prefix} === TESTS ===\n{test_code}"


def parse_test_results(stdout: str) -> tuple[int, int]:
    """Extract ``(passed, failed)`` counts from common test-runner summaries."""
    passed = _PASSED.search(stdout)
    failed = _FAILED.search(stdout)
    return (int(passed.group(1)) if passed else 0, int(failed.group(1)) if failed else 0)


def lint_source(code: str, language: str) -> LintResult:
    """Flags risky patterns line by line. Purely textual: the code is never parsed or run."""
    issues = [
        LintIssue(line=number, message=message, severity=severity)
        for number, text in enumerate(code.split("\n"), start=1)
        for pattern, languages, message, severity in LINT_RULES
        if (languages is None or language in languages) and pattern.search(text)
    ]
    suggestions = ["Fix the issues above for better code quality"] if issues else ["Code looks clean!"]
    return LintResult(issues=issues, suggestions=suggestions)


class ExecutionRouter:
    """Async-native hybrid executor (The Core).

    Routes one-off snippets to the container runtime, the free remote sandbox or the
    private fallback host. Stateless between requests: there is no sticky routing and
    no circuit breaker.
    """

    def __init__(
        self,
        config: PreviewConfig | None = None,
        client: httpx.AsyncClient | None = None,
        executors: Mapping[ExecutorName, SnippetExecutor] | None = None,
    ):
        """Initializes the ExecutionRouter.

        Args:
            config: Configuration for the executors.
            client: Optional httpx.AsyncClient shared by the HTTP executors.
            executors: Optional executors keyed by name, replacing the configured ones.
        """
        self.config = config or PreviewConfig()
        self.executors: dict[ExecutorName, SnippetExecutor] = dict(
            executors if executors is not None else PreviewFactory.get_executors(self.config, client)
        )

    async def execute(self, request: ExecutionRequest) -> ExecutionResult:
        """Executes a snippet on the backend selected by ``request.mode``.

        Never raises: every failure, including exhaustion of the fallback chain, comes
        back as an unsuccessful ExecutionResult.

        Args:
            request: The execution request.

        Returns:
            ExecutionResult: The outcome, naming the executor that produced it.
        """
        if request.test_code:
            request = request.model_copy(
                update={"code": combine_with_tests(request.code, request.test_code, request.language), "test_code": None}
            )

        logger.bind(code_hash=code_hash(request.code), code_length=len(request.code)).info(
            f"Execution requested: {request.language} (mode: {request.mode})"
        )

        start_time = time.time()
        try:
            if request.mode == "auto":
                return await self._execute_auto(request)
            return await self._execute_explicit(MODE_EXECUTORS[request.mode], request)
        except Exception as e:
            logger.exception("Unexpected router failure")
            return ExecutionResult.failure(
                "remote" if request.mode == "auto" else MODE_EXECUTORS[request.mode],
                str(e),
                duration_ms=(time.time() - start_time) * 1000,
            )

    async def _execute_explicit(self, name: ExecutorName, request: ExecutionRequest) -> ExecutionResult:
        executor = self.executors[name]
        if not executor.supports(request.language):
            return ExecutionResult.failure(
                name, "Language not supported", stderr=f"The {name} executor does not support {request.language}"
            )

        start_time = time.time()
        try:
            return await executor.execute(request)
        except IsolationUnavailableError as e:
            logger.error(str(e))
            return ExecutionResult.failure(name, str(e))
        except Exception as e:
            logger.error(f"Executor {name} failed: {e}")
            return ExecutionResult.failure(name, str(e), duration_ms=(time.time() - start_time) * 1000)

    async def _execute_auto(self, request: ExecutionRequest) -> ExecutionResult:
        start_time = time.time()
        attempts: list[str] = []

        for name in FALLBACK_CHAIN:
            executor = self.executors.get(name)
            if executor is None or not executor.supports(request.language):
                continue
            if not await executor.is_available():
                logger.info(f"Executor {name} unavailable, skipping")
                attempts.append(f"{name}: unavailable")
                continue

            logger.info(f"Trying executor: {name}")
            try:
                # Success or a code-level failure ends the chain.
                return await executor.execute(request)
            except Exception as e:
                logger.warning(f"Executor {name} failed, falling through: {e}")
                attempts.append(str(e) if str(e).startswith(name) else f"{name}: {e}")

        exhausted = AllBackendsExhaustedError("; ".join(attempts) or "no executor accepts this language")
        logger.error(f"All executors unavailable: {exhausted}")
        return ExecutionResult(
            success=False,
            stdout="",
            stderr=f"No executor available. Please try again later. ({exhausted})",
            exit_code=1,
            duration_ms=(time.time() - start_time) * 1000,
            executor_used="remote",
            error="All executors unavailable",
        )

    async def execute_with_tests(self, code: str, test_code: str, language: str) -> TestResult:
        """Runs ``code`` followed by ``test_code`` in auto mode and counts passed/failed tests.

        Counts are scraped from the output (``3 passed``, ``1 failed``); zero when absent.
        """
        result = await self.execute(ExecutionRequest(code=code, language=language, test_code=test_code))
        passed, failed = parse_test_results(result.stdout)
        return TestResult(**result.model_dump(), tests_passed=passed, tests_failed=failed)

    async def lint_code(self, code: str, language: str) -> LintResult:
        """Pattern-based static check; no executor is involved."""
        result = lint_source(code, normalize_language(language))
        logger.debug(f"Lint found {len(result.issues)} issue(s) in {language} code")
        return result


class ExecutionRouterSync:
    """Sync Facade for ExecutionRouter (The Facade).

    Wraps ExecutionRouter and executes methods via anyio.run. Each call runs its own event
    loop, so a shared httpx client should not be passed here.
    """

    def __init__(
        self,
        config: PreviewConfig | None = None,
        executors: Mapping[ExecutorName, SnippetExecutor] | None = None,
    ):
        self._async = ExecutionRouter(config, executors=executors)

    def execute(self, request: ExecutionRequest) -> ExecutionResult:
        """Executes a snippet synchronously."""
        return anyio.run(self._async.execute, request)

    def execute_with_tests(self, code: str, test_code: str, language: str) -> TestResult:
        """Runs code plus tests synchronously."""
        return anyio.run(self._async.execute_with_tests, code, test_code, language)

    def lint_code(self, code: str, language: str) -> LintResult:
        return anyio.run(self._async.lint_code, code, language)
