"""
Prerequisite rules: things every other rule builds on.

Rules:
    project.manifest  package.json or composer.json exists (detect-only)
    git.repository    project root is a git repository (fix: git init)
    node.runtime      node >= 18 is installed (detect-only)
"""

import re

from ..core.context import ProjectContext
from ..core.errors import ProbeError
from ..core.git_utils import git_init, has_git_dir
from ..core.models import Category, Rule, Severity
from ..core.tools import require_success
from .base import is_node_project


MIN_NODE_MAJOR = 18

NODE_VERSION_PATTERN = re.compile(r'v?(\d+)\.(\d+)\.(\d+)')


def probe_manifest(ctx: ProjectContext):
    found = [name for name in ('package.json', 'composer.json') if ctx.exists(name)]
    if not found:
        return False, "no package.json or composer.json in project root"
    for name in found:
        # Malformed manifests make every dependent rule unreliable
        ctx.read_json(name)
    return True, f"{', '.join(found)} present"


def probe_git_repository(ctx: ProjectContext):
    if has_git_dir(ctx.root):
        return True, ".git present"
    return False, "project root is not a git repository"


def fix_git_repository(ctx: ProjectContext):
    git_init(ctx)
    return ['.git']


def parse_node_version(output: str):
    """
    Extract (major, minor, patch) from `node --version` output.

    Raises:
        ProbeError: If no version number is present
    """
    match = NODE_VERSION_PATTERN.search(output)
    if not match:
        raise ProbeError(f"unrecognized node --version output: {output.strip()!r}")
    return tuple(int(part) for part in match.groups())


def probe_node_runtime(ctx: ProjectContext):
    result = require_success(ctx.run(['node', '--version']), ctx.stderr_tail_lines)
    version = parse_node_version(result.stdout)
    text = '.'.join(str(part) for part in version)
    if version[0] < MIN_NODE_MAJOR:
        return False, f"node {text} is older than {MIN_NODE_MAJOR}"
    return True, f"node {text}"


RULES = [
    Rule(
        id='project.manifest',
        category=Category.PREREQUISITE,
        severity=Severity.BLOCKING,
        description="Project has a package.json or composer.json",
        probe=probe_manifest,
        remediation="Run `npm init -y` (or `composer init`) in the project root.",
    ),
    Rule(
        id='git.repository',
        category=Category.PREREQUISITE,
        severity=Severity.BLOCKING,
        description="Project root is a git repository",
        probe=probe_git_repository,
        fix=fix_git_repository,
        targets=('.git',),
        remediation="Run `git init` in the project root.",
    ),
    Rule(
        id='node.runtime',
        category=Category.PREREQUISITE,
        severity=Severity.WARNING,
        description=f"Node.js {MIN_NODE_MAJOR} or newer is installed",
        probe=probe_node_runtime,
        applies_to=is_node_project,
        remediation=f"Install Node.js {MIN_NODE_MAJOR}+ (https://nodejs.org or nvm install {MIN_NODE_MAJOR}).",
    ),
]
