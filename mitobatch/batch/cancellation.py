"""
Interruption handling for a batch run: the shared cancellation flag, termination of running
pipeline processes, and removal of run-scoped temporary artifacts.
"""
import os
import signal
import threading
import time
from os.path import isdir
from os.path import lexists
from shutil import rmtree
from subprocess import Popen
from typing import Callable

from mitobatch.standalone_utilities.log_formats import colorized_logger

logger = colorized_logger(__name__)

DEFAULT_GRACE_PERIOD = 30.0
HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def _send(process: Popen, signal_number: int) -> None:
    """Signals the process group of a pipeline process, which was started as a session leader so
    that container runtimes and their children are reached too."""
    if process.poll() is not None:
        return
    try:
        os.killpg(process.pid, signal_number)
    except (ProcessLookupError, PermissionError):
        try:
            process.send_signal(signal_number)
        except ProcessLookupError:
            pass


class CancellationManager:
    """Owner of the cancellation flag. Once set, no unit is admitted, running processes get
    SIGTERM, and after the grace period survivors get SIGKILL.
    """

    def __init__(self, grace_period: float = DEFAULT_GRACE_PERIOD):
        self.grace_period = grace_period
        self.reason = ''
        self._event = threading.Event()
        self._lock = threading.RLock()
        self._processes: set[Popen] = set()
        self._listeners: list[Callable[[], None]] = []
        self._temporary_paths: list[str] = []
        self._previous_handlers: dict[int, object] = {}
        self._signal_count = 0

    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def add_listener(self, listener: Callable[[], None]) -> None:
        with self._lock:
            self._listeners.append(listener)
        if self.is_cancelled():
            listener()

    def cancel(self, reason: str = 'Cancellation requested.') -> None:
        with self._lock:
            if self._event.is_set():
                return
            self.reason = reason
            self._event.set()
            listeners = list(self._listeners)
        logger.warning('%s Stopping admission of new units.', reason)
        for listener in listeners:
            listener()
        self.terminate_running()

    def register_process(self, process: Popen) -> None:
        with self._lock:
            self._processes.add(process)
            cancelled = self._event.is_set()
        if cancelled:
            _send(process, signal.SIGTERM)

    def unregister_process(self, process: Popen) -> None:
        with self._lock:
            self._processes.discard(process)

    def _running(self) -> list[Popen]:
        with self._lock:
            return [process for process in self._processes if process.poll() is None]

    def running_count(self) -> int:
        return len(self._running())

    def terminate_running(self) -> None:
        running = self._running()
        if running:
            logger.info('Sending SIGTERM to %s running pipeline processes.', len(running))
        for process in running:
            _send(process, signal.SIGTERM)

    def kill_remaining(self) -> None:
        running = self._running()
        if running:
            logger.warning('Sending SIGKILL to %s pipeline processes that did not exit.',
                           len(running))
        for process in running:
            _send(process, signal.SIGKILL)

    def wait_for_processes(self, timeout: float | None = None) -> bool:
        """Waits until no registered process is running. True if none remain."""
        if timeout is None:
            timeout = self.grace_period
        deadline = time.monotonic() + timeout
        while self.running_count() > 0:
            if time.monotonic() >= deadline:
                return False
            time.sleep(0.1)
        return True

    def finish_termination(self) -> None:
        """Grace period for terminated processes, then SIGKILL."""
        if not self.wait_for_processes(self.grace_period):
            self.kill_remaining()
            self.wait_for_processes(5.0)

    def register_temporary(self, path: str) -> str:
        with self._lock:
            self._temporary_paths.append(path)
        return path

    def cleanup(self) -> None:
        with self._lock:
            paths = list(reversed(self._temporary_paths))
            self._temporary_paths = []
        for path in paths:
            if isdir(path):
                rmtree(path, ignore_errors=True)
            elif lexists(path):
                try:
                    os.remove(path)
                except FileNotFoundError:
                    pass
            logger.debug('Removed temporary artifact %s', path)

    def _handle_signal(self, signal_number, frame):  # pylint: disable=unused-argument
        self._signal_count += 1
        name = signal.Signals(signal_number).name
        if self._signal_count > 1:
            logger.warning('Received %s again.', name)
            self.kill_remaining()
            return
        self.cancel(f'Received {name}.')

    def install_signal_handlers(self) -> bool:
        if threading.current_thread() is not threading.main_thread():
            logger.debug('Not in the main thread; signal handlers not installed.')
            return False
        for signal_number in HANDLED_SIGNALS:
            self._previous_handlers[signal_number] = signal.getsignal(signal_number)
            signal.signal(signal_number, self._handle_signal)
        return True

    def restore_signal_handlers(self) -> None:
        for signal_number, handler in self._previous_handlers.items():
            signal.signal(signal_number, handler)
        self._previous_handlers = {}

    def __enter__(self):
        self.install_signal_handlers()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.restore_signal_handlers()
        self.cleanup()
