"""
Git hook rules (Husky).

Rules:
    hooks.husky_dir       .husky/ exists
    hooks.pre_commit      .husky/pre-commit runs lint-staged
    hooks.commit_msg      .husky/commit-msg runs commitlint
    hooks.permissions     hook files are executable
    hooks.prepare_script  package.json "prepare" installs husky

Hook fixes append to existing hook files instead of replacing them.
"""

import os

from ..core.atomic_write import write_json
from ..core.context import ProjectContext
from ..core.models import Category, Rule, Severity
from .base import (
    EXECUTABLE_MODE,
    append_lines_fix,
    directory_probe,
    file_contains_probe,
    is_executable,
    is_node_project,
    load_manifest,
)


HUSKY_DIR = '.husky'
PRE_COMMIT = '.husky/pre-commit'
COMMIT_MSG = '.husky/commit-msg'
HOOK_FILES = (PRE_COMMIT, COMMIT_MSG)

PRE_COMMIT_COMMAND = 'npx lint-staged'
COMMIT_MSG_COMMAND = 'npx commitlint --edit $1'

# husky >= 9 installs hooks with a bare "husky" prepare script
PREPARE_SCRIPT = 'husky'


def fix_husky_dir(ctx: ProjectContext):
    path = ctx.path(HUSKY_DIR)
    if path.exists() and not path.is_dir():
        raise NotADirectoryError(f"{HUSKY_DIR} exists and is not a directory")
    path.mkdir(exist_ok=True)
    return [HUSKY_DIR]


def hook_fix(relative: str, command: str):
    append = append_lines_fix(relative, [command])

    def fix(ctx: ProjectContext):
        created = not ctx.exists(relative)
        touched = append(ctx)
        if created:
            os.chmod(ctx.path(relative), EXECUTABLE_MODE)
        return touched

    return fix


def probe_permissions(ctx: ProjectContext):
    present = [hook for hook in HOOK_FILES if ctx.exists(hook)]
    if not present:
        return False, "no hook files to check"
    not_executable = [hook for hook in present if not is_executable(ctx, hook)]
    if not_executable:
        return False, f"not executable: {', '.join(not_executable)}"
    return True, f"executable: {', '.join(present)}"


def fix_permissions(ctx: ProjectContext):
    touched = []
    for hook in HOOK_FILES:
        if ctx.exists(hook) and not is_executable(ctx, hook):
            mode = ctx.path(hook).stat().st_mode
            os.chmod(ctx.path(hook), mode | 0o111)
            touched.append(hook)
    return touched


def probe_prepare_script(ctx: ProjectContext):
    scripts = load_manifest(ctx, 'package.json').get('scripts') or {}
    prepare = scripts.get('prepare') if isinstance(scripts, dict) else None
    if not prepare:
        return False, "package.json has no \"prepare\" script"
    if 'husky' not in prepare:
        return False, f"\"prepare\" script does not install husky: {prepare!r}"
    return True, f"\"prepare\": {prepare!r}"


def fix_prepare_script(ctx: ProjectContext):
    manifest = load_manifest(ctx, 'package.json')
    scripts = manifest.setdefault('scripts', {})
    prepare = scripts.get('prepare')
    if prepare and 'husky' in prepare:
        return []
    # keep an existing prepare step and chain husky after it
    scripts['prepare'] = f"{prepare} && {PREPARE_SCRIPT}" if prepare else PREPARE_SCRIPT
    write_json(ctx.path('package.json'), manifest)
    return ['package.json']


RULES = [
    Rule(
        id='hooks.husky_dir',
        category=Category.HOOKS,
        severity=Severity.BLOCKING,
        description="Husky hook directory exists",
        probe=directory_probe(HUSKY_DIR),
        fix=fix_husky_dir,
        prerequisites={'git.repository', 'project.manifest'},
        targets=(HUSKY_DIR,),
        applies_to=is_node_project,
        remediation="Run `npx husky init`.",
    ),
    Rule(
        id='hooks.pre_commit',
        category=Category.HOOKS,
        severity=Severity.BLOCKING,
        description="pre-commit hook runs lint-staged",
        probe=file_contains_probe(PRE_COMMIT, 'lint-staged'),
        fix=hook_fix(PRE_COMMIT, PRE_COMMIT_COMMAND),
        prerequisites={'hooks.husky_dir'},
        targets=(PRE_COMMIT,),
        applies_to=is_node_project,
        remediation=f"echo '{PRE_COMMIT_COMMAND}' > {PRE_COMMIT} && chmod +x {PRE_COMMIT}",
    ),
    Rule(
        id='hooks.commit_msg',
        category=Category.HOOKS,
        severity=Severity.WARNING,
        description="commit-msg hook runs commitlint",
        probe=file_contains_probe(COMMIT_MSG, 'commitlint'),
        fix=hook_fix(COMMIT_MSG, COMMIT_MSG_COMMAND),
        prerequisites={'hooks.husky_dir'},
        targets=(COMMIT_MSG,),
        applies_to=is_node_project,
        remediation=f"echo '{COMMIT_MSG_COMMAND}' > {COMMIT_MSG} && chmod +x {COMMIT_MSG}",
    ),
    Rule(
        id='hooks.permissions',
        category=Category.HOOKS,
        severity=Severity.BLOCKING,
        description="Hook files are executable",
        probe=probe_permissions,
        fix=fix_permissions,
        prerequisites={'hooks.pre_commit'},
        targets=HOOK_FILES,
        applies_to=is_node_project,
        remediation="chmod +x .husky/pre-commit .husky/commit-msg",
    ),
    Rule(
        id='hooks.prepare_script',
        category=Category.HOOKS,
        severity=Severity.WARNING,
        description="package.json prepare script installs husky",
        probe=probe_prepare_script,
        fix=fix_prepare_script,
        prerequisites={'project.manifest'},
        targets=('package.json',),
        applies_to=is_node_project,
        remediation=f"npm pkg set scripts.prepare='{PREPARE_SCRIPT}'",
    ),
]
