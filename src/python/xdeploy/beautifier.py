"""
Two-stage runner: a primary command piped through a build-log formatter.

The primary's combined stdout+stderr becomes the formatter's stdin, and only
the formatter's output reaches the sink. Shutdown order is fixed: wait for
the primary, close the shared pipe's write end so the formatter sees EOF,
wait for the formatter, then flush the last partial line. Success is decided
by the primary's exit status alone.
"""

import logging
import os
import subprocess
from typing import Mapping, Optional, Sequence

from .config import DEFAULT_FORMATTER, FORMATTER_COLOR_ENV
from .errors import LaunchError
from .process_runner import (
    CancellationToken,
    OutputHandler,
    SerializedSink,
    StreamReader,
    check_exit_status,
    format_command,
    merged_environment,
)

logger = logging.getLogger(__name__)


def _open_raw_pty():
    """Open a pty pair with output post-processing off, so newlines stay bare."""
    import pty
    import tty

    master_fd, slave_fd = pty.openpty()
    try:
        tty.setraw(slave_fd)
    except OSError:
        _close_fd(master_fd)
        _close_fd(slave_fd)
        raise
    return master_fd, slave_fd


def _close_fd(fd: Optional[int]) -> None:
    if fd is not None:
        try:
            os.close(fd)
        except OSError:
            pass


def run_command_with_beautifier(
    executable: str,
    arguments: Sequence[str],
    output_handler: Optional[OutputHandler] = None,
    *,
    formatter_path: str = DEFAULT_FORMATTER,
    formatter_args: Sequence[str] = (),
    formatter_env: Optional[Mapping[str, str]] = None,
    use_pty: bool = False,
    env: Optional[Mapping[str, str]] = None,
    cwd: Optional[str] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> None:
    """
    Run ``executable`` with its output reformatted by ``formatter_path``.

    Same contract as process_runner.run_command. With ``use_pty`` the
    formatter writes to a pseudo-terminal, for formatters that only colorize
    when attached to a TTY.
    """
    command = format_command(executable, arguments)
    formatter_command = format_command(formatter_path, formatter_args)
    if cancel_token is not None:
        cancel_token.raise_if_cancelled()

    sink = SerializedSink(output_handler)
    helper_env = merged_environment({**FORMATTER_COLOR_ENV, **(formatter_env or {})})

    master_fd = slave_fd = None
    if use_pty:
        master_fd, slave_fd = _open_raw_pty()
    try:
        read_fd, write_fd = os.pipe()
    except OSError:
        _close_fd(master_fd)
        _close_fd(slave_fd)
        raise

    # The formatter goes first so it is already reading when output arrives.
    logger.info(f"Starting formatter: {formatter_command}")
    try:
        helper = subprocess.Popen(
            [formatter_path, *formatter_args],
            stdin=read_fd,
            stdout=slave_fd if use_pty else subprocess.PIPE,
            stderr=slave_fd if use_pty else subprocess.STDOUT,
            env=helper_env,
        )
    except OSError as e:
        logger.error(f"Failed to launch formatter {formatter_path}: {e}")
        for fd in (write_fd, master_fd):
            _close_fd(fd)
        raise LaunchError(formatter_command, e) from e
    finally:
        _close_fd(read_fd)
        _close_fd(slave_fd)

    if use_pty:
        reader = StreamReader.for_fd(master_fd, sink, "formatter")
    else:
        reader = StreamReader.for_pipe(helper.stdout, sink, "formatter")
    reader.start()
    if cancel_token is not None:
        cancel_token.register(helper)

    primary = None
    try:
        logger.info(f"Running: {command}")
        try:
            primary = subprocess.Popen(
                [executable, *arguments],
                stdin=subprocess.DEVNULL,
                stdout=write_fd,
                stderr=write_fd,
                env=merged_environment(env),
                cwd=cwd,
            )
        except OSError as e:
            logger.error(f"Failed to launch {executable}: {e}")
            raise LaunchError(command, e) from e

        if cancel_token is not None:
            cancel_token.register(primary)
        returncode = primary.wait()
    finally:
        # EOF for the formatter only once the primary is gone.
        _close_fd(write_fd)
        helper_returncode = helper.wait()
        reader.join()
        reader.flush()
        if cancel_token is not None:
            cancel_token.unregister(helper)
            if primary is not None:
                cancel_token.unregister(primary)
        if use_pty:
            _close_fd(master_fd)
        elif helper.stdout is not None:
            helper.stdout.close()

    if helper_returncode != 0:
        logger.debug(f"Formatter exited with {helper_returncode}; ignoring")
    check_exit_status(command, returncode, cancel_token)
