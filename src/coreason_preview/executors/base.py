from abc import ABC, abstractmethod

from coreason_preview.models.execution import ExecutionRequest, ExecutionResult, ExecutorName


class SnippetExecutor(ABC):
    """
    An abstract base class that defines the standard interface for a snippet executor.

    This class adheres to the Strategy Pattern, allowing the router to treat the
    container runtime, the remote sandbox and the fallback host interchangeably.
    """

    name: ExecutorName

    @abstractmethod
    async def is_available(self) -> bool:  # pragma: no cover
        """
        Cheap availability check. Never raises.
        """
        pass

    @abstractmethod
    async def execute(self, request: ExecutionRequest) -> ExecutionResult:  # pragma: no cover
        """
        Executes a snippet and returns its outcome.

        Code-level failures (compile errors, non-zero exits) are returned as unsuccessful
        results. Infrastructure failures are raised.

        Args:
            request: The execution request.

        Returns:
            An ExecutionResult describing the run.

        Raises:
            RemoteExecutorUnavailableError: If the backend cannot be reached.
            RemoteExecutorTimeoutError: If the backend does not answer in time.
        """
        pass

    def supports(self, language: str) -> bool:
        """Whether this executor can run ``language`` at all."""
        return True
