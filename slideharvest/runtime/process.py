from __future__ import annotations

import logging
import subprocess
import threading
import time
from contextlib import suppress
from typing import Callable, Sequence

from slideharvest.errors import (
    MissingToolError,
    PipelineCancelledError,
    ProcessFailedError,
    ProcessTimeoutError,
)

STDERR_TAIL_CHARS = 8192
WATCHDOG_POLL_SECONDS = 0.1

logger = logging.getLogger(__name__)


class _Watchdog:
    """Kills a child process once its deadline passes or the run is cancelled."""

    def __init__(
        self,
        proc: subprocess.Popen[str],
        timeout_seconds: float,
        cancel_event: threading.Event | None,
    ) -> None:
        self._proc = proc
        self._deadline = time.monotonic() + max(timeout_seconds, 0.0)
        self._cancel_event = cancel_event
        self._done = threading.Event()
        self._thread = threading.Thread(target=self._watch, daemon=True)
        self.timed_out = False
        self.cancelled = False

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        self._done.set()
        self._thread.join()

    def _watch(self) -> None:
        while not self._done.wait(WATCHDOG_POLL_SECONDS):
            if self._cancel_event is not None and self._cancel_event.is_set():
                self.cancelled = True
            elif time.monotonic() >= self._deadline:
                self.timed_out = True
            else:
                continue
            _kill(self._proc)
            return

    def raise_if_tripped(self, label: str, timeout_seconds: float) -> None:
        if self.cancelled:
            raise PipelineCancelledError(label)
        if self.timed_out:
            raise ProcessTimeoutError(label, timeout_seconds)


class _StderrTail:
    def __init__(self, limit: int = STDERR_TAIL_CHARS) -> None:
        self._limit = limit
        self._text = ""

    def append(self, line: str) -> None:
        self._text = (self._text + line + "\n")[-self._limit :]

    def text(self) -> str:
        return self._text.strip()


def run_process(
    command: str,
    args: Sequence[str],
    *,
    timeout_seconds: float,
    label: str,
    on_stderr_line: Callable[[str], None] | None = None,
    cancel_event: threading.Event | None = None,
) -> None:
    """Run an executable, streaming complete stderr lines to `on_stderr_line`."""

    proc = _spawn(command, args, label=label, capture_stdout=False)
    watchdog = _Watchdog(proc, timeout_seconds, cancel_event)
    watchdog.start()
    tail = _StderrTail()

    try:
        assert proc.stderr is not None
        for raw_line in proc.stderr:
            line = raw_line.rstrip("\r\n")
            if not line:
                continue
            if on_stderr_line is not None:
                on_stderr_line(line)
            tail.append(line)
        returncode = proc.wait()
    finally:
        watchdog.stop()
        _reap(proc)

    watchdog.raise_if_tripped(label, timeout_seconds)
    if returncode != 0:
        raise ProcessFailedError(label, returncode, tail.text())


def run_process_capture(
    command: str,
    args: Sequence[str],
    *,
    timeout_seconds: float,
    label: str,
    cancel_event: threading.Event | None = None,
) -> str:
    """Run an executable and return its full standard output."""

    proc = _spawn(command, args, label=label, capture_stdout=True)
    watchdog = _Watchdog(proc, timeout_seconds, cancel_event)
    watchdog.start()

    try:
        stdout, stderr = proc.communicate()
    finally:
        watchdog.stop()
        _reap(proc)

    watchdog.raise_if_tripped(label, timeout_seconds)
    if proc.returncode != 0:
        raise ProcessFailedError(label, proc.returncode, (stderr or "")[-STDERR_TAIL_CHARS:].strip())
    return stdout or ""


def _spawn(command: str, args: Sequence[str], *, label: str, capture_stdout: bool) -> subprocess.Popen[str]:
    argv = [command, *[str(arg) for arg in args]]
    logger.debug("Running %s", " ".join(argv))
    try:
        return subprocess.Popen(
            argv,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE if capture_stdout else subprocess.DEVNULL,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
    except FileNotFoundError as exc:
        raise MissingToolError(label, f"{command} is not installed or not on PATH") from exc


def _kill(proc: subprocess.Popen[str]) -> None:
    with suppress(ProcessLookupError):
        proc.kill()


def _reap(proc: subprocess.Popen[str]) -> None:
    if proc.poll() is None:
        _kill(proc)
        proc.wait()
    for stream in (proc.stdout, proc.stderr):
        if stream is not None:
            stream.close()
