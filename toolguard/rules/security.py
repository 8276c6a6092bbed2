"""
Secret hygiene rules.

Rules:
    security.gitignore_env  .gitignore excludes dotenv files
    security.env_untracked  .env is not tracked by git (detect-only)
"""

from ..core.context import ProjectContext
from ..core.git_utils import has_git_dir, is_tracked
from ..core.models import Category, Rule, Severity
from .base import append_lines_fix


ENV_PATTERNS = (
    '.env',
    '.env.local',
    '.env.development.local',
    '.env.test.local',
    '.env.production.local',
)

# ".env*" covers every pattern above, ".env.*" all but the first
WILDCARD_ALL = '.env*'
WILDCARD_SUFFIXED = '.env.*'


def gitignore_lines(ctx: ProjectContext):
    if not ctx.exists('.gitignore'):
        return None
    return {line.strip() for line in ctx.read_text('.gitignore').splitlines()}


def probe_gitignore_env(ctx: ProjectContext):
    lines = gitignore_lines(ctx)
    if lines is None:
        return False, ".gitignore missing"
    if WILDCARD_ALL in lines:
        return True, f".gitignore excludes {WILDCARD_ALL}"
    covered = set(lines)
    if WILDCARD_SUFFIXED in lines:
        covered.update(ENV_PATTERNS[1:])
    missing = [p for p in ENV_PATTERNS if p not in covered]
    if missing:
        return False, f".gitignore does not exclude: {', '.join(missing)}"
    return True, ".gitignore excludes dotenv files"


def in_git_repository(ctx: ProjectContext) -> bool:
    return has_git_dir(ctx.root)


def probe_env_untracked(ctx: ProjectContext):
    if is_tracked(ctx, '.env'):
        return False, ".env is tracked by git and may leak secrets"
    return True, ".env is not tracked"


RULES = [
    Rule(
        id='security.gitignore_env',
        category=Category.SECURITY,
        severity=Severity.BLOCKING,
        description=".gitignore excludes environment files",
        probe=probe_gitignore_env,
        fix=append_lines_fix('.gitignore', ENV_PATTERNS, header='# Environment variables'),
        targets=('.gitignore',),
        remediation="Add .env and .env.*.local patterns to .gitignore.",
    ),
    Rule(
        id='security.env_untracked',
        category=Category.SECURITY,
        severity=Severity.BLOCKING,
        description=".env is not committed to git",
        probe=probe_env_untracked,
        prerequisites={'git.repository'},
        applies_to=in_git_repository,
        remediation="Run `git rm --cached .env`, commit, and rotate any exposed secrets.",
    ),
]
