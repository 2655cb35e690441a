# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_preview

import asyncio
import re
from collections.abc import Callable, Mapping

from loguru import logger

from coreason_preview.config import PreviewConfig
from coreason_preview.exceptions import (
    DuplicateBootError,
    InstallTimeoutError,
    IsolationUnavailableError,
    MountError,
    StartError,
)
from coreason_preview.models.session import ContainerSession, ContainerStatus, SessionEvent
from coreason_preview.project.detector import detect_template
from coreason_preview.project.manifest import enforce_manifest, inject_bootstrap, sanitize_components
from coreason_preview.project.paths import build_file_tree, sanitize_files
from coreason_preview.project.templates import INSTALL_COMMAND, Template, start_command
from coreason_preview.runtime import ContainerBackend, ContainerProcess
from coreason_preview.utils.fingerprint import fingerprint_files

LOCAL_URL_PATTERN = re.compile(r"https?://(?:localhost|127\.0\.0\.1|0\.0\.0\.0|\[::1?\]):\d+/?")
_ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;?]*[A-Za-z]")

BackendFactory = Callable[[], ContainerBackend]
EventListener = Callable[[SessionEvent], None]


def _failed(task: "asyncio.Task[ContainerBackend]") -> bool:
    return task.done() and (task.cancelled() or task.exception() is not None)


class RuntimeHolder:
    """Process-wide holder of the one booted container runtime.

    State lives on the class, not on instances, so the handle survives re-creation of
    every manager, controller or executor that uses it. There is no teardown: the
    physical runtime cannot be booted twice in a process.
    """

    _handle: ContainerBackend | None = None
    _pending: "asyncio.Task[ContainerBackend] | None" = None

    @classmethod
    def current(cls) -> ContainerBackend | None:
        return cls._handle

    @classmethod
    def is_booting(cls) -> bool:
        return cls._pending is not None and not cls._pending.done()

    @classmethod
    async def get_or_boot(cls, factory: BackendFactory) -> ContainerBackend:
        """Return the booted runtime, booting it on first use.

        Concurrent callers await the same in-flight boot. A failed boot is forgotten so
        a later call may try again.
        """
        if cls._handle is not None:
            return cls._handle

        pending = cls._pending
        loop = asyncio.get_running_loop()
        if pending is None or pending.get_loop() is not loop or _failed(pending):
            pending = loop.create_task(cls._boot(factory))
            cls._pending = pending

        try:
            return await asyncio.shield(pending)
        finally:
            if _failed(pending) and cls._pending is pending:
                cls._pending = None

    @classmethod
    async def _boot(cls, factory: BackendFactory) -> ContainerBackend:
        backend = factory()
        try:
            await backend.boot()
        except DuplicateBootError as e:
            recovered = cls._handle or e.existing
            if recovered is None:
                raise
            logger.warning("Runtime already booted, reusing existing instance")
            backend = recovered
        cls._handle = backend
        logger.info(f"Container runtime ready: {type(backend).__name__}")
        return backend

    @classmethod
    def reset(cls) -> None:
        """Forget the held runtime without tearing it down."""
        cls._handle = None
        cls._pending = None


class ContainerRuntimeManager:
    """Drives one preview session through boot, mount, install and start.

    States: ``idle -> booting -> mounting -> installing -> starting -> ready``, with
    ``error`` reachable from any of them. Phases run strictly one after another; every
    failure is logged and recorded on the session instead of being raised.
    """

    def __init__(
        self,
        backend_factory: BackendFactory,
        config: PreviewConfig | None = None,
        session: ContainerSession | None = None,
    ):
        self.config = config or PreviewConfig()
        self.backend_factory = backend_factory
        self.session = session or ContainerSession(log_cap=self.config.log_cap)
        self._listeners: list[EventListener] = []
        self._lock = asyncio.Lock()
        self._server: ContainerProcess | None = None
        self._pumps: set[asyncio.Task[None]] = set()
        self.mount_count = 0

    # -- events -----------------------------------------------------------------

    def subscribe(self, listener: EventListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: SessionEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Session listener failed: {e}")

    def _set_status(self, status: ContainerStatus, preview_url: str | None = None) -> None:
        self.session.transition(status, preview_url)
        self._emit(SessionEvent(kind="status", status=status, url=preview_url))

    def log(self, text: str) -> None:
        line = self.session.append_log(text)
        self._emit(SessionEvent(kind="log", line=line))

    def fail(self, message: str) -> None:
        self.session.fail(message)
        self.log(f"ERROR: {message}")
        self._emit(SessionEvent(kind="status", status=ContainerStatus.ERROR))
        self._emit(SessionEvent(kind="error", message=message))

    # -- lifecycle ----------------------------------------------------------------

    async def ensure_runtime(self) -> ContainerBackend:
        """Check the isolation precondition and return the shared runtime, booting it if needed.

        Raises:
            IsolationUnavailableError: If the host lacks the isolation capability.
        """
        if not self.config.isolation_enabled:
            raise IsolationUnavailableError()

        existing = RuntimeHolder.current()
        if existing is not None:
            self.log("Reusing existing runtime instance")
            return existing

        self._set_status(ContainerStatus.BOOTING)
        self.log("Isolation enabled, booting runtime...")
        return await RuntimeHolder.get_or_boot(self.backend_factory)

    async def run(
        self,
        files: Mapping[str, str],
        template: Template | None = None,
        on_ready: Callable[[str], None] | None = None,
    ) -> ContainerSession:
        """Mount ``files`` and bring up a dev server for them.

        Identical file maps (by fingerprint) are not remounted.

        Args:
            files: Flat ``{path: content}`` map.
            template: Project template; detected from the files when omitted.
            on_ready: Called with the preview URL once the server is ready.

        Returns:
            ContainerSession: The session, in ``ready`` or ``error`` state (or unchanged
            when the file map was already mounted).
        """
        async with self._lock:
            fingerprint = fingerprint_files(files)
            if fingerprint == self.session.mounted_fingerprint and self.session.status is not ContainerStatus.ERROR:
                logger.debug("File map unchanged, skipping remount")
                return self.session

            resolved = template or detect_template(files)
            phase = "boot"
            try:
                backend = await self.ensure_runtime()

                phase = "mount"
                await self._mount(backend, files, resolved)
                self.session.mounted_fingerprint = fingerprint

                phase = "install"
                await self._stop_server()
                await self._install(backend)

                phase = "start"
                url = await self._start(backend, resolved)
            except IsolationUnavailableError as e:
                logger.error(str(e))
                self.fail(str(e))
                return self.session
            except StartError as e:
                logger.error(f"Start failed: {e} (command: {e.command})\n{e.output[-2000:]}")
                self.fail(str(e))
                return self.session
            except Exception as e:
                logger.exception(f"Preview {phase} phase failed")
                self.fail(f"{phase} failed: {e}")
                return self.session

            self._set_status(ContainerStatus.READY, url)
            self.log(f"Server ready at {url}")
            self._emit(SessionEvent(kind="ready", url=url))
            if on_ready is not None:
                on_ready(url)
            return self.session

    async def refresh(self) -> None:
        """Force the next delivery of a file map to remount. The runtime is kept."""
        self.session.reset()
        self._emit(SessionEvent(kind="status", status=ContainerStatus.MOUNTING))
        self.log("Refresh requested, next file map will be remounted")

    # -- phases -------------------------------------------------------------------

    async def _mount(self, backend: ContainerBackend, files: Mapping[str, str], template: Template) -> None:
        self._set_status(ContainerStatus.MOUNTING)
        self.log(f"Mounting {len(files)} files...")

        prepared = sanitize_files(files)
        prepared = sanitize_components(prepared) if template in (Template.VITE, Template.NEXTJS) else prepared
        prepared = enforce_manifest(prepared, template)
        prepared = inject_bootstrap(prepared, template)

        try:
            await backend.mount(build_file_tree(prepared))
        except MountError:
            raise
        except Exception as e:
            raise MountError(str(e)) from e
        self.mount_count += 1
        self.log("Files mounted successfully")

    async def _pump(self, process: ContainerProcess, prefix: str, on_text: Callable[[str], None] | None = None) -> None:
        async for chunk in process.output():
            text = _ANSI_ESCAPE.sub("", chunk)
            for line in text.splitlines():
                if line.strip():
                    self.log(f"[{prefix}] {line}")
            if on_text is not None:
                on_text(text)

    def _start_pump(
        self, process: ContainerProcess, prefix: str, on_text: Callable[[str], None] | None = None
    ) -> "asyncio.Task[None]":
        task = asyncio.create_task(self._pump(process, prefix, on_text))
        self._pumps.add(task)
        task.add_done_callback(self._pumps.discard)
        return task

    async def _install(self, backend: ContainerBackend) -> None:
        self._set_status(ContainerStatus.INSTALLING)
        cmd, args = INSTALL_COMMAND
        self.log(f"Running {cmd} {' '.join(args)}...")

        process = await backend.spawn(cmd, list(args))
        pump = self._start_pump(process, "npm")
        try:
            exit_code = await asyncio.wait_for(process.wait(), timeout=self.config.install_timeout)
        except asyncio.TimeoutError:
            warning = InstallTimeoutError(f"Install timed out after {self.config.install_timeout}s")
            logger.warning(f"{warning} - starting server anyway")
            self.log(f"WARNING: {warning}, attempting to start server anyway...")
            await process.kill()
            pump.cancel()
            return

        await asyncio.gather(pump, return_exceptions=True)
        if exit_code != 0:
            logger.warning(f"Install exited with code {exit_code}, continuing")
            self.log(f"WARNING: install exited with code {exit_code}, trying to continue...")
        self.log("Dependencies installed")

    async def _start(self, backend: ContainerBackend, template: Template) -> str:
        self._set_status(ContainerStatus.STARTING)
        cmd, args = start_command(template)
        command = " ".join([cmd, *args])
        self.log(f"Starting server: {command}")

        loop = asyncio.get_running_loop()
        ready: asyncio.Future[str] = loop.create_future()
        transcript: list[str] = []

        def signal_ready(url: str, source: str) -> None:
            # First signal wins
            if ready.done():
                return
            logger.info(f"Server ready via {source}: {url}")
            ready.set_result(url)

        def scan(text: str) -> None:
            transcript.append(text)
            match = LOCAL_URL_PATTERN.search(text)
            if match:
                signal_ready(backend.public_url(match.group(0)), "output")

        def on_port(port: int, kind: str, url: str) -> None:
            if kind == "open":
                signal_ready(url, f"port {port}")

        def on_server_ready(port: int, url: str) -> None:
            signal_ready(url, f"server-ready {port}")

        unsubscribers = [backend.on("port", on_port), backend.on("server-ready", on_server_ready)]
        try:
            process = await backend.spawn(cmd, args)
            self._server = process
            pump = self._start_pump(process, "server", scan)
            exited = asyncio.ensure_future(process.wait())
            done, _ = await asyncio.wait(
                {ready, exited}, timeout=self.config.start_timeout, return_when=asyncio.FIRST_COMPLETED
            )
            if ready in done:
                exited.cancel()
                return ready.result()

            ready.cancel()
            if exited in done:
                await asyncio.gather(pump, return_exceptions=True)
                self._server = None
                raise StartError(
                    f"Server exited with code {exited.result()} before becoming ready",
                    command=command,
                    output="".join(transcript),
                )
            exited.cancel()
            await process.kill()
            self._server = None
            raise StartError(
                f"Server not ready after {self.config.start_timeout}s",
                command=command,
                output="".join(transcript),
            )
        except FileNotFoundError as e:
            raise StartError(f"Cannot run {cmd}: {e}", command=command) from e
        finally:
            for unsubscribe in unsubscribers:
                unsubscribe()

    async def _stop_server(self) -> None:
        if self._server is not None:
            self.log(f"Stopping previous server: {self._server.command}")
            await self._server.kill()
            self._server = None
