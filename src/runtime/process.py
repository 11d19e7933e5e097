"""
Child process wrapper for the runtime server.

Drains stdout/stderr on daemon threads so a chatty child never blocks on a
full pipe, and reports exit through a callback from a watcher thread.
"""

import logging
import subprocess
import threading
from typing import Callable, Dict, IO, List, Optional


logger = logging.getLogger(__name__)

ExitCallback = Callable[["RuntimeProcess", Optional[int]], None]


class RuntimeProcess:
    """
    Owned handle to a spawned runtime process.
    
    Example:
        >>> process = RuntimeProcess.spawn(["ollama", "serve"], env=env, on_exit=handle_exit)
        >>> process.is_alive()
        True
        >>> process.terminate()
    """
    
    def __init__(
        self,
        popen: subprocess.Popen,
        on_exit: Optional[ExitCallback] = None,
        output_logger: Optional[logging.Logger] = None,
    ):
        self._popen = popen
        self._on_exit: Optional[ExitCallback] = None
        self._output_logger = output_logger or logger
        self._threads: List[threading.Thread] = []
        
        for name, stream in (("stdout", popen.stdout), ("stderr", popen.stderr)):
            if stream is not None:
                self._start_thread(f"runtime-{name}", self._drain, stream, name)
        if on_exit is not None:
            self.watch(on_exit)
    
    def watch(self, on_exit: ExitCallback) -> None:
        """
        Report the process exit to on_exit from a watcher thread.
        
        Only the first call has an effect. A process that already exited is
        reported right away.
        """
        if self._on_exit is not None:
            return
        self._on_exit = on_exit
        self._start_thread("runtime-watch", self._watch)
    
    @classmethod
    def spawn(
        cls,
        args: List[str],
        env: Optional[Dict[str, str]] = None,
        on_exit: Optional[ExitCallback] = None,
        **popen_kwargs
    ) -> "RuntimeProcess":
        """
        Start a process with piped output and wrap it.
        
        Raises:
            OSError: If the executable cannot be started
        """
        logger.info(f"Spawning runtime: {' '.join(args)}")
        popen = subprocess.Popen(
            args,
            env=env,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            **popen_kwargs
        )
        return cls(popen, on_exit=on_exit)
    
    @property
    def pid(self) -> int:
        return self._popen.pid
    
    @property
    def returncode(self) -> Optional[int]:
        return self._popen.returncode
    
    def is_alive(self) -> bool:
        return self._popen.poll() is None
    
    def terminate(self) -> None:
        """Send a terminate signal without waiting for the process to exit."""
        if not self.is_alive():
            return
        logger.info(f"Terminating runtime process {self.pid}")
        try:
            self._popen.terminate()
        except ProcessLookupError:
            logger.debug(f"Runtime process {self.pid} already gone")
    
    def wait(self, timeout: Optional[float] = None) -> Optional[int]:
        return self._popen.wait(timeout=timeout)
    
    def _start_thread(self, name: str, target, *args) -> None:
        thread = threading.Thread(target=target, args=args, name=name, daemon=True)
        thread.start()
        self._threads.append(thread)
    
    def _drain(self, stream: IO[bytes], name: str) -> None:
        try:
            for raw_line in iter(stream.readline, b""):
                line = raw_line.decode("utf-8", errors="replace").rstrip()
                if line:
                    self._output_logger.debug(f"[runtime {name}] {line}")
        except (OSError, ValueError) as e:
            logger.debug(f"Runtime {name} pipe closed: {e}")
        finally:
            stream.close()
    
    def _watch(self) -> None:
        returncode = self._popen.wait()
        logger.info(f"Runtime process {self.pid} exited with code {returncode}")
        try:
            self._on_exit(self, returncode)
        except Exception:
            logger.exception("Runtime exit callback failed")
