"""
Git integration utilities for probes and fixes.

Provides safe git operations for:
- Detecting a repository
- Initializing one
- Asking whether a path is tracked

Error handling features:
- Missing git binary surfaces as ToolNotFoundError (GIT-04)
- Timeouts surface as ToolTimeoutError (GIT-06)
- Unexpected exit codes raise ToolError with the stderr tail

Security features:
- Paths are passed after `--` so they are never parsed as options
"""

import logging
from pathlib import Path

from .context import ProjectContext
from .errors import ToolError, ToolNotFoundError, ToolTimeoutError
from .tools import ToolResult


logger = logging.getLogger(__name__)


def _git(ctx: ProjectContext, args: list, fix: bool = False) -> ToolResult:
    cmd = ['git'] + args
    try:
        return ctx.run_fix(cmd) if fix else ctx.run(cmd)
    except ToolNotFoundError:
        logger.error("Git is not installed or not in PATH", extra={'error_code': 'GIT-04'})
        raise
    except ToolTimeoutError:
        logger.error(f"git {args[0]} timed out", extra={'error_code': 'GIT-06'})
        raise


def has_git_dir(root: Path) -> bool:
    """True if root itself holds a .git directory (or worktree file)."""
    return (Path(root) / '.git').exists()


def git_init(ctx: ProjectContext) -> ToolResult:
    """
    Initialize a repository at the project root.

    Re-running `git init` on an existing repository is safe; git only
    reinitializes missing pieces.

    Raises:
        ToolError: If git exits non-zero
    """
    result = _git(ctx, ['init', '--quiet'], fix=True)
    if not result.ok:
        raise ToolError(f"git init failed with code {result.returncode}", result.stderr_tail())
    logger.info(f"Initialized git repository in {ctx.root}")
    return result


def is_tracked(ctx: ProjectContext, relative: str) -> bool:
    """
    Check whether a path is in the git index.

    Returns:
        True if tracked

    Raises:
        ToolError: If git cannot answer (not a repository, corrupt index)
    """
    result = _git(ctx, ['ls-files', '--error-unmatch', '--', relative])
    if result.ok:
        return True
    if 'did not match any file' in result.stderr:
        return False
    raise ToolError(f"git ls-files exited with code {result.returncode}", result.stderr_tail())

