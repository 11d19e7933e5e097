"""
Runtime supervisor.

Drives the readiness chain for the local inference runtime:

    NOT_DOWNLOADED -> DOWNLOADED -> INSTALLED -> STARTED -> READY

Each transition is guarded by a check of what already exists on disk or is
already answering, so ensure_ready resumes from wherever a previous attempt
stopped. Calls are single-flight: a second ensure_ready waits for the one in
progress and then re-evaluates its guards.
"""

import logging
import os
import threading
import time
from typing import Callable, List, Optional, Tuple

from downloads import DownloadManager, DownloadProgress, DownloadStatus

from .core.exceptions import (
    ModelPullError,
    RuntimeDownloadError,
    RuntimeProviderError,
    RuntimeServiceError,
    RuntimeUnresponsiveError,
)
from .core.logging import OperationContext, log_with_context
from .core.progress import ProgressChannel
from .core.types import (
    ProgressEvent,
    ProgressPhase,
    RuntimeConfig,
    RuntimePhase,
    RuntimeState,
    ServiceResult,
)
from .installer import RuntimeInstaller
from .platforms import PlatformStrategy, select_platform
from .process import RuntimeProcess
from .providers.ollama_client import OllamaClient
from .utils.retry import wait_until


logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]

READY_STATUS = "LLM Service Initialization Complete"
UNRESPONSIVE_MESSAGE = "Max retries reached. Ollama server didn't respond."


def _ignore(event: ProgressEvent) -> None:
    return None


class RuntimeSupervisor:
    """
    Owns the runtime directory, the child process handle and the runtime state.

    One instance per application context; nothing here is module-global, so
    tests construct supervisors with fake collaborators.

    Example:
        >>> supervisor = RuntimeSupervisor(RuntimeConfig(runtime_dir=Path("/data/files/ollama")))
        >>> result = supervisor.ensure_ready(lambda e: print(e.status))
        >>> result.success
    """

    def __init__(
        self,
        config: RuntimeConfig,
        platform: Optional[PlatformStrategy] = None,
        client: Optional[OllamaClient] = None,
        downloader: Optional[DownloadManager] = None,
        installer: Optional[RuntimeInstaller] = None,
        process_factory: Optional[Callable[..., RuntimeProcess]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the supervisor.

        Args:
            config: Runtime configuration
            platform: Platform strategy (selected for the current OS if None)
            client: Runtime API client
            downloader: Download manager used to fetch the artifact
            installer: Installer (built from the platform if None)
            process_factory: Callable spawning the runtime (RuntimeProcess.spawn)
            sleep: Sleep function used between health probes
        """
        self.config = config
        self.platform = platform or select_platform()
        self.client = client or OllamaClient(config)
        self.downloader = downloader or DownloadManager()
        self.installer = installer or RuntimeInstaller(self.platform)
        self._process_factory = process_factory or RuntimeProcess.spawn
        self._sleep = sleep

        self._state = RuntimeState()
        self._state_lock = threading.Lock()
        self._flight_lock = threading.Lock()

    @property
    def runtime_dir(self):
        return self.config.runtime_dir

    def status(self) -> dict:
        """Snapshot of the runtime state."""
        with self._state_lock:
            return self._state.to_dict()

    def is_ready(self) -> bool:
        """True when READY, the runtime is running and every required model is present."""
        with self._state_lock:
            return (
                self._state.phase == RuntimePhase.READY
                and self._state.running
                and set(self.config.required_models) <= self._state.models_pulled
            )

    def ensure_ready(self, on_progress: Optional[ProgressCallback] = None) -> ServiceResult:
        """
        Drive the readiness chain once.

        Every call ends with exactly one progress event whose completed flag
        is True. Failures never raise; they are returned in the result and in
        the terminal event's error field.

        Args:
            on_progress: Callback receiving ProgressEvent payloads

        Returns:
            ServiceResult whose data is the runtime status snapshot
        """
        emit = on_progress or _ignore
        result, terminal = self._drive(emit)
        self._safe_emit(emit, terminal)
        return result

    def ensure_ready_in_background(self) -> ProgressChannel:
        """
        Run ensure_ready on a worker thread.

        Returns:
            A ProgressChannel ending in exactly one Done item
        """
        channel = ProgressChannel()

        def worker():
            try:
                result, terminal = self._drive(channel.publish)
            except Exception as e:
                logger.exception("Background readiness run crashed")
                result = ServiceResult(success=False, error=str(e))
                terminal = ProgressEvent(
                    phase=ProgressPhase.READY,
                    status="Runtime initialization failed",
                    completed=True,
                    error=str(e),
                )
            channel.close(result, terminal)

        thread = threading.Thread(target=worker, name="runtime-ensure-ready", daemon=True)
        thread.start()
        return channel

    def stop_runtime(self) -> ServiceResult:
        """
        Terminate the owned runtime process and clear the handle.

        Does not wait for the process to exit. An externally started runtime
        is left alone.
        """
        with self._state_lock:
            process = self._state.process
            self._state.process = None
            self._state.external = False
            if self._state.phase in (RuntimePhase.STARTED, RuntimePhase.READY):
                self._state.phase = RuntimePhase.INSTALLED

        if process is None:
            logger.info("No owned runtime process to stop")
            return ServiceResult(success=True, data={"stopped": False})

        try:
            process.terminate()
        except OSError as e:
            logger.error(f"Failed to terminate runtime process: {e}")
            return ServiceResult(success=False, error=str(e))

        return ServiceResult(success=True, data={"stopped": True, "pid": process.pid})

    def _drive(self, emit: ProgressCallback) -> Tuple[ServiceResult, ProgressEvent]:
        with self._flight_lock:
            if self.is_ready():
                logger.debug("Runtime already ready, nothing to do")
                return (
                    ServiceResult(success=True, data=self.status()),
                    ProgressEvent(phase=ProgressPhase.READY, status=READY_STATUS, completed=True),
                )

            stage = ProgressPhase.DOWNLOAD
            with OperationContext(operation_id=f"ensure-ready-{int(time.time() * 1000)}"):
                try:
                    self._ensure_downloaded(emit)
                    stage = ProgressPhase.INSTALL
                    self._ensure_installed(emit)
                    stage = ProgressPhase.START
                    self._ensure_started(emit)
                    stage = ProgressPhase.PULL
                    model_errors = self._ensure_models(emit)
                except RuntimeServiceError as e:
                    return self._failed(stage, str(e))
                except Exception as e:
                    logger.exception(f"Unexpected error during runtime {stage.value}")
                    return self._failed(stage, f"{type(e).__name__}: {e}")

            with self._state_lock:
                self._state.phase = RuntimePhase.READY
                self._state.last_error = None

            data = self.status()
            if model_errors:
                data["model_errors"] = model_errors

            log_with_context(logger, logging.INFO, "Runtime ready", phase=ProgressPhase.READY.value)
            return (
                ServiceResult(success=True, data=data),
                ProgressEvent(phase=ProgressPhase.READY, status=READY_STATUS, completed=True),
            )

    def _failed(self, stage: ProgressPhase, error: str) -> Tuple[ServiceResult, ProgressEvent]:
        log_with_context(logger, logging.ERROR, f"Runtime {stage.value} failed: {error}", phase=stage.value)
        with self._state_lock:
            self._state.phase = RuntimePhase.FAILED
            self._state.last_error = error
        return (
            ServiceResult(success=False, data=self.status(), error=error),
            ProgressEvent(
                phase=stage,
                status="Runtime initialization failed",
                completed=True,
                error=error,
            ),
        )

    def _ensure_downloaded(self, emit: ProgressCallback) -> None:
        directory = self.runtime_dir
        directory.mkdir(parents=True, exist_ok=True)

        if self.installer.find_executable(directory) or self.platform.find_artifact(directory):
            self._set_phase_at_least(RuntimePhase.DOWNLOADED)
            return

        url = self.config.download_url or self.platform.download_url(self.config.version)
        self._safe_emit(emit, ProgressEvent(phase=ProgressPhase.DOWNLOAD, status="Downloading runtime"))
        log_with_context(logger, logging.INFO, f"Downloading runtime from {url}", phase="download")

        def forward(progress: DownloadProgress) -> None:
            if progress.status == DownloadStatus.ERROR:
                return
            self._safe_emit(emit, ProgressEvent(
                phase=ProgressPhase.DOWNLOAD,
                status=progress.status.value,
                filename=progress.filename,
                downloaded_bytes=progress.downloaded,
                total_bytes=progress.total,
                percentage=progress.percentage,
            ))

        results = self.downloader.download_all([url], directory, on_progress=forward)
        if not results or not results[0].success:
            error = results[0].error if results else "no download result"
            raise RuntimeDownloadError(f"Failed to download runtime: {error}")

        self._set_phase_at_least(RuntimePhase.DOWNLOADED)

    def _ensure_installed(self, emit: ProgressCallback) -> None:
        if self.installer.find_executable(self.runtime_dir) is None:
            self._safe_emit(emit, ProgressEvent(phase=ProgressPhase.INSTALL, status="Installing runtime"))

        executable = self.installer.install(self.runtime_dir)

        with self._state_lock:
            self._state.executable = executable
        self._set_phase_at_least(RuntimePhase.INSTALLED)

    def _ensure_started(self, emit: ProgressCallback) -> None:
        with self._state_lock:
            process = self._state.process
            executable = self._state.executable

        if process is not None and process.is_alive() and self.client.ping():
            self._set_phase_at_least(RuntimePhase.STARTED)
            return

        if process is None and self.client.ping():
            logger.info(f"Runtime already answering at {self.config.base_url}, not spawning")
            with self._state_lock:
                self._state.external = True
            self._set_phase_at_least(RuntimePhase.STARTED)
            self._safe_emit(emit, ProgressEvent(phase=ProgressPhase.START, status="Runtime already running"))
            return

        if process is not None:
            # Alive but unresponsive, or a stale handle: replace it
            process.terminate()
            with self._state_lock:
                self._state.process = None

        self._safe_emit(emit, ProgressEvent(phase=ProgressPhase.START, status="Starting runtime"))

        env = self.platform.spawn_env(os.environ, executable, self.config)
        process = self._process_factory(
            self.platform.serve_command(executable),
            env=env,
            **self.platform.popen_kwargs(executable)
        )
        with self._state_lock:
            self._state.process = process
            self._state.external = False
        # The handle must be stored before an immediate exit can be reported
        process.watch(self._handle_exit)

        responded = wait_until(
            self.client.ping,
            attempts=self.config.health_attempts,
            delay_seconds=self.config.health_delay_seconds,
            sleep=self._sleep,
            operation_name="runtime health probe",
        )
        if not responded:
            process.terminate()
            with self._state_lock:
                if self._state.process is process:
                    self._state.process = None
            raise RuntimeUnresponsiveError(UNRESPONSIVE_MESSAGE)

        self._set_phase_at_least(RuntimePhase.STARTED)
        logger.info(f"Runtime started (pid {process.pid})")

    def _ensure_models(self, emit: ProgressCallback) -> List[str]:
        """
        Pull every missing required model.

        Returns:
            Error messages for models that could not be pulled
        """
        required = list(self.config.required_models)
        with self._state_lock:
            missing = [m for m in required if m not in self._state.models_pulled]
        if not missing:
            return []

        errors: List[str] = []
        try:
            installed = self.client.list_models()
        except RuntimeProviderError as e:
            if self.config.fail_on_model_error:
                raise ModelPullError(f"Failed to list installed models: {e}")
            logger.error(f"Failed to list installed models: {e}")
            return [str(e)]

        for model in missing:
            if any(model in name for name in installed):
                logger.debug(f"Model {model} already installed")
                self._mark_model(model)
                continue

            self._safe_emit(emit, ProgressEvent(
                phase=ProgressPhase.PULL, status=f"Pulling model {model}", model=model
            ))
            try:
                for update in self.client.pull_model(model):
                    self._safe_emit(emit, ProgressEvent(
                        phase=ProgressPhase.PULL,
                        status=update.status,
                        model=model,
                        downloaded_bytes=update.completed,
                        total_bytes=update.total,
                        percentage=update.percentage,
                    ))
                self._mark_model(model)
            except (ModelPullError, RuntimeProviderError) as e:
                log_with_context(logger, logging.ERROR, f"Model pull failed: {e}", model=model)
                errors.append(str(e))
                self._safe_emit(emit, ProgressEvent(
                    phase=ProgressPhase.PULL,
                    status=f"Failed to pull model {model}",
                    model=model,
                    error=str(e),
                ))

        if errors and self.config.fail_on_model_error:
            raise ModelPullError("; ".join(errors))
        return errors

    def _mark_model(self, model: str) -> None:
        with self._state_lock:
            self._state.models_pulled.add(model)

    def _set_phase_at_least(self, phase: RuntimePhase) -> None:
        order = [
            RuntimePhase.NOT_DOWNLOADED,
            RuntimePhase.DOWNLOADED,
            RuntimePhase.INSTALLED,
            RuntimePhase.STARTED,
            RuntimePhase.READY,
        ]
        with self._state_lock:
            current = self._state.phase
            if current == RuntimePhase.FAILED or order.index(current) < order.index(phase):
                self._state.phase = phase

    def _handle_exit(self, process: RuntimeProcess, returncode: Optional[int]) -> None:
        with self._state_lock:
            if self._state.process is not process:
                return
            self._state.process = None
            if self._state.phase in (RuntimePhase.STARTED, RuntimePhase.READY):
                self._state.phase = RuntimePhase.INSTALLED
        logger.warning(f"Runtime process exited (code {returncode}); handle cleared")

    def _safe_emit(self, emit: ProgressCallback, event: ProgressEvent) -> None:
        try:
            emit(event)
        except Exception as e:
            logger.warning(f"Progress callback raised: {e}")
