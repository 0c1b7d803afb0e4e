"""
External process execution.

Runs a command with both output pipes drained concurrently into one sink,
offers every line to an optional observer (used for progress parsing),
enforces a wall-clock timeout and honours a cancellation token.
"""
import logging
import os
import shutil
import signal
import subprocess
import threading
import time
from dataclasses import dataclass
from typing import IO, Callable, List, Optional, Sequence

from mediafetch.errors import Cancelled, CommandFailed, ProcessTimeout

_logger = logging.getLogger("media_fetch.process")

LineObserver = Callable[[str], None]


class CancelToken:
    """Cancellation flag passed from the scheduler down to every subprocess."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)

    def raise_if_cancelled(self, what: str = "Operation") -> None:
        if self._event.is_set():
            raise Cancelled(f"{what} cancelled")


@dataclass
class ProcessResult:
    exit_code: int
    output: str


class _OutputSink:
    """Thread-safe line buffer shared by the stdout and stderr readers."""

    def __init__(self, on_line: Optional[LineObserver], tag: str) -> None:
        self._lines: List[str] = []
        self._lock = threading.Lock()
        self._on_line = on_line
        self._tag = tag

    def drain(self, stream: IO[str], name: str) -> None:
        try:
            for raw in iter(stream.readline, ""):
                line = raw.rstrip("\r\n")
                if self._on_line is not None:
                    try:
                        self._on_line(line)
                    except Exception:
                        _logger.debug("%s Line observer failed line=%r", self._tag, line, exc_info=True)
                with self._lock:
                    self._lines.append(line)
                _logger.debug("%s %s | %s", self._tag, name, line)
        except (OSError, ValueError):
            _logger.warning("%s Error reading %s", self._tag, name, exc_info=True)
        finally:
            stream.close()

    def text(self) -> str:
        with self._lock:
            return "\n".join(self._lines)

    def last_line(self) -> str:
        with self._lock:
            for line in reversed(self._lines):
                if line.strip():
                    return line.strip()
        return ""


class ProcessRunner:
    """Runs external commands. Retry policy belongs to the caller."""

    poll_interval = 0.2
    terminate_grace = 5.0
    reader_join_timeout = 5.0

    def run(
        self,
        command: str,
        args: Sequence[str],
        working_dir: Optional[str] = None,
        timeout: Optional[float] = None,
        on_line: Optional[LineObserver] = None,
        cancel_token: Optional[CancelToken] = None,
        tag: str = "",
    ) -> ProcessResult:
        name = os.path.basename(command)
        tag = tag or f"[{name}]"
        if cancel_token is not None:
            cancel_token.raise_if_cancelled(f"{name} invocation")

        executable = shutil.which(command)
        if executable is None:
            raise CommandFailed(f"Executable not found: {command}", exit_code=127)

        argv = [executable, *args]
        _logger.debug("%s Running command argv=%s cwd=%s timeout=%s", tag, argv, working_dir, timeout)
        start = time.monotonic()
        try:
            proc = subprocess.Popen(
                argv,
                cwd=working_dir,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
                start_new_session=(os.name == "posix"),
            )
        except OSError as exc:
            raise CommandFailed(f"Failed to start {name}: {exc}", exit_code=127) from exc

        sink = _OutputSink(on_line, tag)
        readers = [
            threading.Thread(target=sink.drain, args=(proc.stdout, "stdout"), daemon=True, name=f"{name}-stdout"),
            threading.Thread(target=sink.drain, args=(proc.stderr, "stderr"), daemon=True, name=f"{name}-stderr"),
        ]
        for reader in readers:
            reader.start()

        deadline = start + timeout if timeout else None
        outcome = None
        try:
            while True:
                try:
                    proc.wait(timeout=self.poll_interval)
                    break
                except subprocess.TimeoutExpired:
                    pass
                if cancel_token is not None and cancel_token.is_cancelled:
                    outcome = "cancelled"
                    _logger.info("%s Cancellation requested, terminating pid=%d", tag, proc.pid)
                    self._terminate(proc)
                    break
                if deadline is not None and time.monotonic() >= deadline:
                    outcome = "timeout"
                    _logger.error("%s Process timed out after %.0fs, killing pid=%d", tag, timeout, proc.pid)
                    self._kill(proc)
                    break
        finally:
            if proc.poll() is None:
                self._kill(proc)
            for reader in readers:
                reader.join(self.reader_join_timeout)

        output = sink.text()
        elapsed_ms = int((time.monotonic() - start) * 1000)

        if outcome == "timeout":
            raise ProcessTimeout(f"{name} timed out after {timeout:.0f}s", timeout=timeout, output=output)
        if outcome == "cancelled":
            raise Cancelled(f"{name} cancelled")

        exit_code = proc.returncode
        if exit_code != 0:
            _logger.error("%s Command failed exit_code=%d elapsed_ms=%d", tag, exit_code, elapsed_ms)
            detail = sink.last_line()
            message = f"{name} exited with code {exit_code}"
            if detail:
                message = f"{message}: {detail}"
            raise CommandFailed(message, exit_code=exit_code, output=output)

        _logger.debug("%s Command finished elapsed_ms=%d", tag, elapsed_ms)
        return ProcessResult(exit_code=exit_code, output=output)

    def _terminate(self, proc: subprocess.Popen) -> None:
        self._signal(proc, signal.SIGTERM)
        try:
            proc.wait(timeout=self.terminate_grace)
        except subprocess.TimeoutExpired:
            self._kill(proc)

    def _kill(self, proc: subprocess.Popen) -> None:
        self._signal(proc, signal.SIGKILL if os.name == "posix" else signal.SIGTERM)
        try:
            proc.wait(timeout=self.terminate_grace)
        except subprocess.TimeoutExpired:
            _logger.warning("Process did not exit after kill pid=%d", proc.pid)

    @staticmethod
    def _signal(proc: subprocess.Popen, sig: int) -> None:
        try:
            if os.name == "posix":
                # The child leads its own session, so this reaches grandchildren (ffmpeg under yt-dlp).
                os.killpg(proc.pid, sig)
            elif sig == signal.SIGTERM:
                proc.terminate()
            else:
                proc.kill()
        except (ProcessLookupError, PermissionError):
            pass
