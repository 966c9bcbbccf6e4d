"""
Streaming process runner for xdeploy.

Runs one external program to completion and delivers its output to a sink
line by line as it is produced. stdout and stderr are drained on their own
reader threads while the calling thread waits on the process, so neither
pipe can fill up and stall the child.
"""

import errno
import logging
import os
import subprocess
import threading
from typing import Callable, Iterable, List, Mapping, Optional, Sequence

from .errors import CommandFailedError, DeploymentCancelledError, LaunchError

logger = logging.getLogger(__name__)

OutputHandler = Callable[[str], None]

CHUNK_SIZE = 64 * 1024
KILL_GRACE_SECONDS = 10.0


def format_command(executable: str, arguments: Sequence[str]) -> str:
    """Reconstruct the command line as reported in failures."""
    return " ".join([executable, *arguments])


def merged_environment(overlay: Optional[Mapping[str, str]] = None) -> dict:
    env = os.environ.copy()
    if overlay:
        env.update(overlay)
    return env


class LineBuffer:
    """Accumulates raw bytes and hands back complete newline-terminated lines."""

    def __init__(self, encoding: str = "utf-8"):
        self.encoding = encoding
        self._pending = bytearray()

    def _decode(self, data: bytes) -> str:
        return data.decode(self.encoding, errors="replace")

    def feed(self, data: bytes) -> List[str]:
        self._pending.extend(data)
        end = self._pending.rfind(b"\n")
        if end < 0:
            return []
        complete = bytes(self._pending[:end + 1])
        del self._pending[:end + 1]
        return [self._decode(line + b"\n") for line in complete.split(b"\n")[:-1]]

    def flush(self) -> Optional[str]:
        """Return and clear any trailing partial line."""
        if not self._pending:
            return None
        remaining = self._decode(bytes(self._pending))
        self._pending.clear()
        return remaining

    @property
    def pending(self) -> bool:
        return bool(self._pending)


class SerializedSink:
    """Funnels output from several reader threads into one handler, one call at a time."""

    def __init__(self, handler: Optional[OutputHandler]):
        self._handler = handler
        self._lock = threading.Lock()

    def __call__(self, text: str) -> None:
        if self._handler is None:
            return
        with self._lock:
            try:
                self._handler(text)
            except Exception as e:
                # A broken observer must not stop the pipe from being drained.
                logger.error(f"Output handler error: {e}")


class StreamReader(threading.Thread):
    """Drains one readable stream into a sink until EOF."""

    def __init__(self, read_chunk: Callable[[], bytes], sink: SerializedSink, name: str):
        super().__init__(name=f"xdeploy-{name}", daemon=True)
        self._read_chunk = read_chunk
        self._sink = sink
        self.buffer = LineBuffer()
        self.error: Optional[OSError] = None

    @classmethod
    def for_pipe(cls, stream, sink: SerializedSink, name: str) -> "StreamReader":
        reader = getattr(stream, "read1", None) or stream.read
        return cls(lambda: reader(CHUNK_SIZE), sink, name)

    @classmethod
    def for_fd(cls, fd: int, sink: SerializedSink, name: str) -> "StreamReader":
        return cls(lambda: os.read(fd, CHUNK_SIZE), sink, name)

    def run(self) -> None:
        while True:
            try:
                data = self._read_chunk()
            except OSError as e:
                # A pty master reports EIO once the last slave handle closes.
                if e.errno != errno.EIO:
                    self.error = e
                    logger.warning(f"{self.name} read failed: {e}")
                break
            if not data:
                break
            for line in self.buffer.feed(data):
                self._sink(line)

    def flush(self) -> None:
        remaining = self.buffer.flush()
        if remaining is not None:
            self._sink(remaining)


def _terminate(process: subprocess.Popen) -> None:
    if process.poll() is not None:
        return
    try:
        process.terminate()
    except ProcessLookupError:
        return

    def _kill_if_alive():
        if process.poll() is None:
            logger.warning(f"Process {process.pid} ignored SIGTERM; killing")
            try:
                process.kill()
            except ProcessLookupError:
                pass

    timer = threading.Timer(KILL_GRACE_SECONDS, _kill_if_alive)
    timer.daemon = True
    timer.start()


class CancellationToken:
    """Lets a driver abort an in-flight deployment by terminating its children."""

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._processes = set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        with self._lock:
            self._event.set()
            processes = list(self._processes)
        for process in processes:
            logger.info(f"Cancelling process {process.pid}")
            _terminate(process)

    def register(self, process: subprocess.Popen) -> None:
        with self._lock:
            if not self._event.is_set():
                self._processes.add(process)
                return
        _terminate(process)

    def unregister(self, process: subprocess.Popen) -> None:
        with self._lock:
            self._processes.discard(process)

    def raise_if_cancelled(self) -> None:
        if self.is_cancelled:
            raise DeploymentCancelledError()


def check_exit_status(command: str, returncode: int, cancel_token: Optional[CancellationToken] = None) -> None:
    if returncode == 0:
        logger.debug(f"Command succeeded: {command}")
        return
    if cancel_token is not None and cancel_token.is_cancelled:
        raise DeploymentCancelledError(f"Deployment cancelled while running {command.split(' ', 1)[0]}")
    logger.debug(f"Command exited with {returncode}: {command}")
    raise CommandFailedError(command, returncode)


def _close_streams(streams: Iterable) -> None:
    for stream in streams:
        if stream is not None:
            stream.close()


def run_command(
    executable: str,
    arguments: Sequence[str],
    output_handler: Optional[OutputHandler] = None,
    *,
    env: Optional[Mapping[str, str]] = None,
    merge_stderr: bool = False,
    cwd: Optional[str] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> None:
    """
    Run a program and stream its output to ``output_handler``.

    Each complete line is delivered with its trailing newline; a final
    partial line is delivered after the process exits. Returns normally only
    on exit status 0.

    Raises:
        LaunchError: the program could not be started.
        CommandFailedError: the program exited with a non-zero status.
        DeploymentCancelledError: ``cancel_token`` was cancelled mid-run.
    """
    command = format_command(executable, arguments)
    if cancel_token is not None:
        cancel_token.raise_if_cancelled()

    sink = SerializedSink(output_handler)
    logger.info(f"Running: {command}")
    try:
        process = subprocess.Popen(
            [executable, *arguments],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT if merge_stderr else subprocess.PIPE,
            env=merged_environment(env),
            cwd=cwd,
        )
    except OSError as e:
        logger.error(f"Failed to launch {executable}: {e}")
        raise LaunchError(command, e) from e

    readers = [StreamReader.for_pipe(process.stdout, sink, "stdout")]
    if not merge_stderr:
        readers.append(StreamReader.for_pipe(process.stderr, sink, "stderr"))
    for reader in readers:
        reader.start()
    if cancel_token is not None:
        cancel_token.register(process)

    try:
        returncode = process.wait()
        for reader in readers:
            reader.join()
    finally:
        if cancel_token is not None:
            cancel_token.unregister(process)
        _close_streams([process.stdout, process.stderr])

    for reader in readers:
        reader.flush()
    check_exit_status(command, returncode, cancel_token)
