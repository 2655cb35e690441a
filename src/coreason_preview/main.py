# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_preview

from typing import Any, Literal

from mcp.server.fastmcp import FastMCP
from mcp.types import TextContent

from coreason_preview.models.execution import ExecutionRequest
from coreason_preview.preview import PreviewSessionController
from coreason_preview.project.templates import Template
from coreason_preview.router import ExecutionRouter
from coreason_preview.utils.logger import logger

# Initialize orchestrator logic
router = ExecutionRouter()
preview = PreviewSessionController()

# Initialize MCP Server
mcp = FastMCP("coreason-preview")


@mcp.tool()  # type: ignore[misc]
async def execute_code(
    code: str,
    language: str,
    mode: Literal["browser", "remote", "fallback", "auto"] = "auto",
    stdin: str | None = None,
    timeout_ms: int | None = None,
) -> list[TextContent]:
    """
    Execute a code snippet on the best available backend.
    Returns stdout, stderr, the exit code and the executor that ran it.
    """
    try:
        request = ExecutionRequest(code=code, language=language, mode=mode, stdin=stdin, timeout_ms=timeout_ms)
    except ValueError as e:
        return [TextContent(type="text", text=f"Invalid request: {e!s}")]

    result = await router.execute(request)
    output: list[TextContent] = []

    if result.stdout:
        output.append(TextContent(type="text", text=f"STDOUT:\n{result.stdout}"))
    if result.stderr:
        output.append(TextContent(type="text", text=f"STDERR:\n{result.stderr}"))
    if result.error:
        output.append(TextContent(type="text", text=f"Error: {result.error}"))

    output.append(TextContent(type="text", text=f"Exit Code: {result.exit_code}"))
    output.append(TextContent(type="text", text=f"Executor: {result.executor_used}"))
    if result.duration_ms:
        output.append(TextContent(type="text", text=f"Duration: {result.duration_ms:.0f}ms"))

    return output


@mcp.tool()  # type: ignore[misc]
async def lint_code(code: str, language: str) -> dict[str, Any]:
    """
    Check a snippet for risky patterns without running it.
    """
    result = await router.lint_code(code, language)
    return result.model_dump()


@mcp.tool()  # type: ignore[misc]
async def start_preview(files: dict[str, str], template: str | None = None) -> str:
    """
    Mount a project and start its dev server.
    Returns the preview URL, or the reason the preview failed.
    """
    try:
        resolved = Template(template) if template else None
    except ValueError:
        return f"Unknown template: {template}"

    status = await preview.submit(files, resolved)
    if preview.preview_url:
        return f"Preview ready at {preview.preview_url}"
    if preview.error_message:
        return f"Preview failed: {preview.error_message}"
    return f"Preview status: {status.value}"


@mcp.tool()  # type: ignore[misc]
async def preview_status(tail: int = 20) -> dict[str, Any]:
    """
    Report the preview status, URL, error and the most recent log lines.
    """
    return {
        "status": preview.status.value,
        "preview_url": preview.preview_url,
        "error": preview.error_message,
        "logs": preview.logs[-tail:] if tail > 0 else [],
    }


@mcp.tool()  # type: ignore[misc]
async def refresh_preview() -> str:
    """
    Force the next start_preview call to remount and restart the project.
    """
    await preview.refresh()
    return f"Preview reset, status: {preview.status.value}"


def main() -> None:
    """Entry point for the MCP server."""
    logger.info("Starting coreason-preview MCP server")
    mcp.run()


if __name__ == "__main__":  # pragma: no cover
    main()
