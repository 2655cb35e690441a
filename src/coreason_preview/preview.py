# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_preview

from collections.abc import Callable, Mapping

from loguru import logger

from coreason_preview.config import PreviewConfig
from coreason_preview.factory import PreviewFactory
from coreason_preview.models.session import ContainerSession, ContainerStatus
from coreason_preview.project.templates import Template
from coreason_preview.runtime_manager import BackendFactory, ContainerRuntimeManager, EventListener
from coreason_preview.utils.fingerprint import fingerprint_files


class PreviewSessionController:
    """UI-facing façade over one live preview.

    Accepts flat file maps, exposes status, logs and the preview URL, and forwards
    session events to subscribers. Nothing raised inside the runtime manager escapes
    ``submit`` or ``refresh``; failures show up as the ``error`` status and an ``error``
    event instead.
    """

    def __init__(
        self,
        config: PreviewConfig | None = None,
        backend_factory: BackendFactory | None = None,
        on_ready: Callable[[str], None] | None = None,
        manager: ContainerRuntimeManager | None = None,
    ):
        """Initializes the PreviewSessionController.

        Args:
            config: Configuration for the runtime manager.
            backend_factory: Builds the container backend on first boot. Defaults to the
                configured backend.
            on_ready: Called with the preview URL whenever the server becomes ready.
            manager: Optional pre-built manager, replacing the one built from config.
        """
        self.config = config or PreviewConfig()
        self.on_ready = on_ready
        self.manager = manager or ContainerRuntimeManager(
            backend_factory or PreviewFactory.get_backend_factory(self.config), self.config
        )

    @property
    def session(self) -> ContainerSession:
        return self.manager.session

    @property
    def status(self) -> ContainerStatus:
        return self.session.status

    @property
    def preview_url(self) -> str | None:
        return self.session.preview_url

    @property
    def error_message(self) -> str | None:
        return self.session.error_message

    @property
    def logs(self) -> list[str]:
        """Formatted log lines, oldest first."""
        return [line.format() for line in self.session.log_lines]

    def subscribe(self, listener: EventListener) -> Callable[[], None]:
        """Register a listener for session events. Returns an unsubscribe function."""
        return self.manager.subscribe(listener)

    async def submit(self, files: Mapping[str, str], template: Template | None = None) -> ContainerStatus:
        """Deliver a new file map to the preview.

        A map identical to the one already mounted is ignored unless the session failed.

        Returns:
            ContainerStatus: The session status after the attempt.
        """
        if not files:
            logger.debug("Empty file map submitted, ignoring")
            return self.status
        if fingerprint_files(files) == self.session.mounted_fingerprint and self.status is not ContainerStatus.ERROR:
            logger.debug("File map unchanged, nothing to do")
            return self.status

        try:
            await self.manager.run(files, template, on_ready=self._notify_ready)
        except Exception as e:
            logger.exception("Preview session failed")
            self.manager.fail(str(e))
        return self.status

    async def refresh(self) -> None:
        """Reset session state so the next submitted file map is remounted."""
        try:
            await self.manager.refresh()
        except Exception as e:
            logger.exception("Preview refresh failed")
            self.manager.fail(str(e))

    def _notify_ready(self, url: str) -> None:
        if self.on_ready is None:
            return
        try:
            self.on_ready(url)
        except Exception as e:
            logger.error(f"on_ready callback failed: {e}")
