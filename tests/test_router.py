from collections.abc import Callable
from unittest.mock import AsyncMock

import httpx
import pytest

from coreason_preview.config import PreviewConfig
from coreason_preview.exceptions import RemoteExecutorTimeoutError, RemoteExecutorUnavailableError
from coreason_preview.executors import FallbackSandboxExecutor, RemoteSandboxExecutor, RuntimeSnippetExecutor
from coreason_preview.executors.base import SnippetExecutor
from coreason_preview.models.execution import ExecutionRequest, ExecutionResult, ExecutorName
from coreason_preview.router import (
    ExecutionRouter,
    ExecutionRouterSync,
    combine_with_tests,
    lint_source,
    parse_test_results,
)
from fakes import FakeBackend, FakeProcess


class StubExecutor(SnippetExecutor):
    def __init__(
        self,
        name: ExecutorName,
        available: bool = True,
        result: ExecutionResult | None = None,
        error: Exception | None = None,
        languages: set[str] | None = None,
    ):
        self.name = name
        self.available = available
        self.result = result or ExecutionResult(success=True, stdout=f"from {name}", executor_used=name)
        self.error = error
        self.languages = languages
        self.requests: list[ExecutionRequest] = []
        self.health_checks = 0

    def supports(self, language: str) -> bool:
        return self.languages is None or language in self.languages

    async def is_available(self) -> bool:
        self.health_checks += 1
        return self.available

    async def execute(self, request: ExecutionRequest) -> ExecutionResult:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.result


def _stubs(**overrides: StubExecutor) -> dict[ExecutorName, StubExecutor]:
    stubs: dict[ExecutorName, StubExecutor] = {
        "runtime": StubExecutor("runtime", languages={"javascript", "typescript"}),
        "remote": StubExecutor("remote"),
        "fallback": StubExecutor("fallback"),
    }
    stubs.update(overrides)
    return stubs


@pytest.mark.asyncio
async def test_auto_success_short_circuits() -> None:
    stubs = _stubs()
    router = ExecutionRouter(executors=stubs)

    result = await router.execute(ExecutionRequest(code="console.log(1)", language="javascript"))

    assert result.executor_used == "runtime"
    assert stubs["remote"].requests == []
    assert stubs["fallback"].requests == []
    assert stubs["remote"].health_checks == 0
    assert stubs["fallback"].health_checks == 0


@pytest.mark.asyncio
async def test_auto_code_failure_is_returned_not_retried() -> None:
    failed = ExecutionResult(success=False, stderr="SyntaxError", exit_code=1, executor_used="runtime")
    stubs = _stubs(runtime=StubExecutor("runtime", result=failed, languages={"javascript"}))

    result = await ExecutionRouter(executors=stubs).execute(ExecutionRequest(code="(", language="js"))

    assert result is failed
    assert stubs["remote"].requests == []


@pytest.mark.asyncio
async def test_auto_skips_runtime_for_other_languages() -> None:
    stubs = _stubs()
    result = await ExecutionRouter(executors=stubs).execute(ExecutionRequest(code="print(1)", language="python"))

    assert result.executor_used == "remote"
    assert stubs["runtime"].health_checks == 0


@pytest.mark.asyncio
async def test_auto_infrastructure_failures_fall_through() -> None:
    stubs = _stubs(
        runtime=StubExecutor("runtime", error=RuntimeError("boot failed"), languages={"javascript"}),
        remote=StubExecutor("remote", error=RemoteExecutorTimeoutError("remote", 10)),
    )

    result = await ExecutionRouter(executors=stubs).execute(ExecutionRequest(code="1", language="js"))

    assert result.executor_used == "fallback"
    assert len(stubs["runtime"].requests) == 1
    assert len(stubs["remote"].requests) == 1
    assert len(stubs["fallback"].requests) == 1


@pytest.mark.asyncio
async def test_auto_exhaustion_returns_terminal_failure() -> None:
    stubs = _stubs(
        remote=StubExecutor("remote", available=False),
        fallback=StubExecutor("fallback", error=RemoteExecutorUnavailableError("fallback", "API error 502")),
    )

    result = await ExecutionRouter(executors=stubs).execute(ExecutionRequest(code="x", language="rust"))

    assert result.success is False
    assert result.error == "All executors unavailable"
    assert result.exit_code == 1
    assert "API error 502" in result.stderr
    assert stubs["remote"].requests == []


@pytest.mark.asyncio
async def test_explicit_mode_never_falls_back() -> None:
    stubs = _stubs(remote=StubExecutor("remote", error=RemoteExecutorUnavailableError("remote", "down")))

    result = await ExecutionRouter(executors=stubs).execute(ExecutionRequest(code="x", language="python", mode="remote"))

    assert result.success is False
    assert result.executor_used == "remote"
    assert result.error == "remote: down"
    assert stubs["fallback"].requests == []


@pytest.mark.asyncio
async def test_explicit_fallback_mode() -> None:
    stubs = _stubs()
    result = await ExecutionRouter(executors=stubs).execute(ExecutionRequest(code="x", language="go", mode="fallback"))
    assert result.executor_used == "fallback"
    assert stubs["remote"].requests == []


@pytest.mark.asyncio
async def test_browser_mode_rejects_unsupported_language() -> None:
    stubs = _stubs()
    result = await ExecutionRouter(executors=stubs).execute(ExecutionRequest(code="x", language="python", mode="browser"))

    assert result.success is False
    assert result.error == "Language not supported"
    assert result.executor_used == "runtime"
    assert stubs["runtime"].requests == []


@pytest.mark.asyncio
async def test_isolation_disabled_browser_and_auto(
    fake_backend: FakeBackend, backend_factory: Callable[[], FakeBackend]
) -> None:
    config = PreviewConfig(isolation_enabled=False)
    stubs = _stubs()
    executors = {**stubs, "runtime": RuntimeSnippetExecutor(backend_factory, config)}
    router = ExecutionRouter(config, executors=executors)

    browser = await router.execute(ExecutionRequest(code="1", language="js", mode="browser"))
    assert browser.success is False
    assert browser.executor_used == "runtime"
    assert "isolation" in (browser.error or "")

    auto = await router.execute(ExecutionRequest(code="1", language="js"))
    assert auto.executor_used == "remote"
    assert fake_backend.boot_calls == 0


@pytest.mark.asyncio
async def test_auto_runs_javascript_in_runtime(
    fake_backend: FakeBackend, backend_factory: Callable[[], FakeBackend], config: PreviewConfig
) -> None:
    run = "npm run --silent start"
    fake_backend.scripts[run] = lambda: FakeProcess(run, chunks=("2\n",))
    stubs = _stubs()
    executors = {**stubs, "runtime": RuntimeSnippetExecutor(backend_factory, config)}

    result = await ExecutionRouter(config, executors=executors).execute(
        ExecutionRequest(code="console.log(1 + 1)", language="javascript")
    )

    assert result.executor_used == "runtime"
    assert result.stdout == "2\n"
    assert stubs["remote"].health_checks == 0


@pytest.mark.asyncio
async def test_python_end_to_end_on_remote() -> None:
    def piston(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/runtimes"):
            return httpx.Response(200, json=[{"language": "python", "version": "3.10.0", "aliases": ["py"]}])
        return httpx.Response(200, json={"run": {"stdout": "hi\n", "stderr": "", "code": 0, "signal": None}})

    config = PreviewConfig(remote_url="https://piston.test/api/v2")
    client = httpx.AsyncClient(transport=httpx.MockTransport(piston))
    router = ExecutionRouter(config, client=client)

    result = await router.execute(ExecutionRequest(code='print("hi")', language="python"))

    assert result.success is True
    assert result.stdout == "hi\n"
    assert result.executor_used == "remote"
    assert isinstance(router.executors["remote"], RemoteSandboxExecutor)
    assert isinstance(router.executors["fallback"], FallbackSandboxExecutor)
    await client.aclose()


@pytest.mark.asyncio
async def test_unexpected_errors_never_escape() -> None:
    broken = StubExecutor("remote")
    broken.is_available = AsyncMock(side_effect=KeyError("bug"))  # type: ignore[method-assign]
    result = await ExecutionRouter(executors=_stubs(remote=broken)).execute(
        ExecutionRequest(code="x", language="python")
    )
    assert result.success is False
    assert result.error is not None


@pytest.mark.asyncio
async def test_execute_with_tests_counts_results() -> None:
    output = ExecutionResult(success=True, stdout="3 passed, 1 failed\n", executor_used="remote")
    stubs = _stubs(remote=StubExecutor("remote", result=output))

    result = await ExecutionRouter(executors=stubs).execute_with_tests("def f(): pass", "assert True", "python")

    assert result.tests_passed == 3
    assert result.tests_failed == 1
    assert result.executor_used == "remote"
    sent = stubs["remote"].requests[0]
    assert sent.code == "def f(): pass\n\n# === TESTS ===\nassert True"
    assert sent.test_code is None


def test_combine_with_tests_uses_language_comment() -> None:
    assert "// === TESTS ===" in combine_with_tests("a", "b", "javascript")
    assert "# === TESTS ===" in combine_with_tests("a", "b", "ruby")


@pytest.mark.parametrize(
    "stdout, expected",
    [
        ("Tests: 5 passed, 0 failed", (5, 0)),
        ("2 pass\n1 fail", (2, 1)),
        ("4 ✓", (4, 0)),
        ("no summary", (0, 0)),
    ],
)
def test_parse_test_results(stdout: str, expected: tuple[int, int]) -> None:
    assert parse_test_results(stdout) == expected


def test_sync_facade() -> None:
    stubs = _stubs()
    router = ExecutionRouterSync(executors=stubs)

    result = router.execute(ExecutionRequest(code="print(1)", language="python", mode="remote"))
    assert result.stdout == "from remote"

    tested = router.execute_with_tests("x", "y", "python")
    assert tested.tests_passed == 0
    assert router.lint_code("eval('1')", "js").issues[0].severity == "error"


@pytest.mark.asyncio
async def test_lint_code_flags_typescript_patterns() -> None:
    code = "const data: any = fetch();\nconsole.log(data);\nconst company = eval(input);"

    result = await ExecutionRouter(executors=_stubs()).lint_code(code, "ts")

    assert [(issue.line, issue.severity, issue.message) for issue in result.issues] == [
        (1, "warning", 'Avoid using "any" type'),
        (2, "warning", "console.log found - consider removing for production"),
        (3, "error", "eval() is dangerous - avoid using"),
    ]
    assert result.suggestions == ["Fix the issues above for better code quality"]


def test_lint_typescript_rules_skip_other_languages() -> None:
    code = "console.log(any)"
    assert lint_source(code, "javascript").issues == []
    assert lint_source(code, "javascript").suggestions == ["Code looks clean!"]
    assert lint_source("x = eval('1 + 1')", "python").issues[0].line == 1
