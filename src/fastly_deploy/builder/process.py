"""Run external commands and stream their output to a status sink."""

import subprocess
from pathlib import Path
from typing import List, Optional, Union

from fastly_deploy.context import OperationContext
from fastly_deploy.utils.errors import CommandFailedError, ErrorContext, OperationCancelledError
from fastly_deploy.utils.logging import get_logger

logger = get_logger(__name__)

# Grace period for a terminated child before it is killed
TERMINATE_TIMEOUT = 5


def run_command(
    cmd: List[str],
    cwd: Optional[Union[str, Path]],
    ctx: OperationContext
) -> None:
    """Run a command to completion, forwarding stdout line by line.

    Each stdout line becomes an update on a status sink opened from
    ``ctx.ui``. Stderr is inherited so it reaches the host's error stream
    unmodified. The sink is closed on every exit path.

    Args:
        cmd: Program and arguments
        cwd: Working directory for the child process
        ctx: Operation context (UI and cancellation)

    Raises:
        CommandFailedError: If the command cannot be started or exits non-zero
        OperationCancelledError: If the context is cancelled while it runs
    """
    command = ' '.join(cmd)
    sink = ctx.ui.status()
    try:
        sink.update(f"Running: {command}")
        logger.debug(f"Running: {command} (cwd={cwd})")

        try:
            process = subprocess.Popen(
                cmd,
                cwd=str(cwd) if cwd is not None else None,
                stdout=subprocess.PIPE,
                stderr=None,
                text=True,
                bufsize=1,  # Line buffered
            )
        except OSError as e:
            raise CommandFailedError(
                f"Failed to start {command}: {e}",
                command=cmd,
                context=ErrorContext(operation='spawn'),
                cause=e
            ) from e

        with process:
            for line in process.stdout:
                line = line.rstrip()
                if line:
                    sink.update(line)

                if ctx.cancelled:
                    _terminate(process)
                    raise OperationCancelledError(f"Cancelled while running {command}")

            returncode = process.wait()

        if returncode != 0:
            raise CommandFailedError(
                f"Command failed with exit status {returncode}: {command}",
                command=cmd,
                returncode=returncode
            )

        logger.debug(f"Command succeeded: {command}")
    finally:
        sink.close()


def _terminate(process: subprocess.Popen) -> None:
    """Stop a child process, escalating to kill if it lingers."""
    process.terminate()
    try:
        process.wait(timeout=TERMINATE_TIMEOUT)
    except subprocess.TimeoutExpired:
        logger.warning(f"Process {process.pid} did not terminate, killing it")
        process.kill()
        process.wait()
