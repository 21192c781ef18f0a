"""
On-change command execution.
"""

from __future__ import annotations

import asyncio
import os
import signal
import sys
from typing import Awaitable, Callable, Optional

from fsconsul.exceptions import HookError
from fsconsul.utils.logging import get_logger

logger = get_logger("fsconsul.core.hooks")

# Signature: (command, cwd) -> exit status
HookRunner = Callable[[str, Optional[str]], Awaitable[int]]

# Hooks get their own process group so children of the shell can be killed too
_POSIX = sys.platform != "win32"


async def run_hook(command: str, cwd: Optional[str] = None) -> int:
    """
    Run an on-change command through the shell and wait for it.

    Output goes to the daemon's own stdout/stderr. A non-zero exit status is
    logged, not raised; the watch loop keeps going either way. If the
    awaiting task is cancelled the command and everything it started are
    killed and reaped before the cancellation propagates.

    Args:
        command: Shell command line, as configured
        cwd: Working directory (default: the daemon's)

    Returns:
        Exit status of the command

    Raises:
        HookError: If the command could not be started at all
    """
    logger.info(f"Running on-change command: {command}")
    try:
        proc = await asyncio.create_subprocess_shell(command, cwd=cwd, start_new_session=_POSIX)
    except OSError as e:
        raise HookError(command, str(e)) from e

    try:
        returncode = await proc.wait()
    except asyncio.CancelledError:
        if proc.returncode is None:
            _kill(proc)
            await proc.wait()
        raise

    if returncode != 0:
        logger.error(f"On-change command exited with status {returncode}: {command}")
    else:
        logger.debug(f"On-change command finished: {command}")
    return returncode


def _kill(proc: asyncio.subprocess.Process) -> None:
    """Kill the command along with everything it started."""
    try:
        if _POSIX:
            os.killpg(proc.pid, signal.SIGKILL)
        else:
            proc.kill()
    except ProcessLookupError:
        pass
