"""
Blocking command execution for nmcli, ip, arping and ping
"""

import logging
import shutil
import subprocess
from typing import Sequence

logger = logging.getLogger(__name__)

# Upper bound for connection manager and ip calls
DEFAULT_TIMEOUT = 30


def run_command(
    cmd: Sequence[str],
    timeout: float = DEFAULT_TIMEOUT,
    check: bool = True
) -> subprocess.CompletedProcess:
    """
    Run an external tool and capture its output.

    Args:
        cmd: Command and arguments
        timeout: Seconds before the call is abandoned
        check: Raise exception on non-zero exit

    Returns:
        CompletedProcess instance

    Raises:
        subprocess.CalledProcessError: If command fails and check=True
        subprocess.TimeoutExpired: If command times out
        FileNotFoundError: If the tool is not installed
    """
    logger.debug(f"Running: {' '.join(cmd)}")
    result = subprocess.run(
        list(cmd),
        capture_output=True,
        text=True,
        timeout=timeout,
        check=False
    )

    if check and result.returncode != 0:
        raise subprocess.CalledProcessError(
            result.returncode,
            list(cmd),
            result.stdout,
            result.stderr
        )

    return result


def has_command(name: str) -> bool:
    """Check whether a tool is on PATH"""
    return shutil.which(name) is not None


def missing_commands(names: Sequence[str]) -> list[str]:
    """Return the tools from names that are not installed"""
    return [name for name in names if not has_command(name)]


def describe_failure(error: Exception) -> str:
    """One-line description of a failed command for log and error messages"""
    if isinstance(error, subprocess.CalledProcessError):
        stderr = (error.stderr or "").strip()
        return f"exit {error.returncode}" + (f": {stderr}" if stderr else "")
    if isinstance(error, subprocess.TimeoutExpired):
        return f"timed out after {error.timeout} seconds"
    return str(error)
