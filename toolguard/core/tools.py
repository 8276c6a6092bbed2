"""
External tool invocation with bounded timeouts.

The engine talks to third-party binaries (node, npm, composer, git, eslint)
only through their exit code and stdout/stderr text. It never parses a tool's
structured output; on failure it keeps the last few stderr lines as evidence.

Error handling:
- Missing executable -> ToolNotFoundError (PRB-02)
- Timeout -> ToolTimeoutError (PRB-01)
- Non-zero exit is NOT an exception here; callers decide what it means
"""

import logging
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Mapping, Optional

from .errors import ToolError, ToolNotFoundError, ToolTimeoutError


logger = logging.getLogger(__name__)

DEFAULT_PROBE_TIMEOUT = 5.0
DEFAULT_FIX_TIMEOUT = 30.0
DEFAULT_STDERR_TAIL_LINES = 20


def tail(text: str, lines: int = DEFAULT_STDERR_TAIL_LINES) -> str:
    """Return the last `lines` non-empty lines of text."""
    if not text:
        return ""
    kept = [line for line in text.strip().splitlines() if line.strip()]
    return '\n'.join(kept[-lines:])


@dataclass(frozen=True)
class ToolResult:
    """Exit status and captured output of one tool invocation."""
    command: str
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def stderr_tail(self, lines: int = DEFAULT_STDERR_TAIL_LINES) -> str:
        return tail(self.stderr, lines) or tail(self.stdout, lines)


def run_tool(
    cmd: List[str],
    cwd: Path,
    timeout: float = DEFAULT_PROBE_TIMEOUT,
    env: Optional[Mapping[str, str]] = None,
    tail_lines: int = DEFAULT_STDERR_TAIL_LINES,
) -> ToolResult:
    """
    Run an external tool and capture its output.

    Args:
        cmd: Command and arguments (never passed through a shell)
        cwd: Working directory
        timeout: Seconds before the process is killed
        env: Optional full environment for the child process
        tail_lines: stderr lines kept in error messages

    Returns:
        ToolResult (including non-zero exits)

    Raises:
        ToolNotFoundError: If the executable cannot be found
        ToolTimeoutError: If the process exceeds timeout
    """
    command = ' '.join(cmd)
    executable = cmd[0]
    # Relative paths like node_modules/.bin/eslint resolve against cwd
    if '/' not in executable and shutil.which(executable) is None:
        raise ToolNotFoundError(f"'{executable}' is not installed or not on PATH")

    logger.debug(f"Running: {command} (timeout {timeout}s)", extra={'operation': 'run_tool'})

    try:
        completed = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=timeout,
            env=dict(env) if env is not None else None,
        )
    except subprocess.TimeoutExpired as e:
        stderr = e.stderr.decode(errors='replace') if isinstance(e.stderr, bytes) else (e.stderr or "")
        raise ToolTimeoutError(
            f"'{command}' timed out after {timeout}s",
            timeout,
            tail(stderr, tail_lines),
        ) from e
    except FileNotFoundError as e:
        raise ToolNotFoundError(f"'{executable}' not found: {e}") from e
    except PermissionError as e:
        raise ToolError(f"Permission denied executing '{executable}': {e}") from e

    return ToolResult(
        command=command,
        returncode=completed.returncode,
        stdout=completed.stdout or "",
        stderr=completed.stderr or "",
    )


def require_success(result: ToolResult, tail_lines: int = DEFAULT_STDERR_TAIL_LINES) -> ToolResult:
    """
    Raise ToolError if the tool exited non-zero.

    Use from probes where a non-zero exit means "could not determine" and
    from fixes where it means the fix failed.
    """
    if not result.ok:
        raise ToolError(
            f"'{result.command}' exited with code {result.returncode}",
            result.stderr_tail(tail_lines),
        )
    return result
