"""
Building blocks shared by the stock rules.

Probes here are read-only and return (passed, detail). Fix helpers are
idempotent and preserve user content:

- template files are written only when no accepted alternative exists
- JSON manifests only gain missing keys, existing values are left alone
- line-oriented files (.gitignore, hooks) are only appended to
"""

import json
import os
import stat
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import yaml

from ..core.atomic_write import append_missing_lines, atomic_write, write_json
from ..core.context import LARAVEL, TYPESCRIPT, ProjectContext
from ..core.errors import ProbeError


ProbeResult = Tuple[bool, str]

EXECUTABLE_MODE = 0o755


# =============================================================================
# Applicability predicates
# =============================================================================

def is_node_project(ctx: ProjectContext) -> bool:
    return ctx.exists('package.json')


def is_laravel_project(ctx: ProjectContext) -> bool:
    return ctx.has(LARAVEL)


def is_typescript_project(ctx: ProjectContext) -> bool:
    return ctx.has(TYPESCRIPT)


# =============================================================================
# Syntax validation
# =============================================================================

def validate_syntax(ctx: ProjectContext, relative: str) -> Optional[str]:
    """
    Check that a JSON or YAML config file parses.

    JavaScript configs and extension-less files other than JSON-style rc
    files are not parsed.

    Args:
        ctx: Project context
        relative: File to check

    Returns:
        None if the file is well-formed, otherwise a short description

    Raises:
        ProbeError: If the file cannot be read
    """
    name = os.path.basename(relative)
    content = ctx.read_text(relative)

    if name.endswith('.json'):
        try:
            json.loads(content)
        except json.JSONDecodeError as e:
            return f"{relative} is not valid JSON (line {e.lineno}: {e.msg})"
    elif name.endswith(('.yml', '.yaml')) or name in ('.prettierrc', '.commitlintrc', '.lintstagedrc'):
        # rc files may hold JSON or YAML; YAML accepts both
        try:
            yaml.safe_load(content)
        except yaml.YAMLError as e:
            mark = getattr(e, 'problem_mark', None)
            where = f" (line {mark.line + 1})" if mark is not None else ""
            return f"{relative} is not valid YAML/JSON{where}"
    return None


# =============================================================================
# Probe factories
# =============================================================================

def first_existing(ctx: ProjectContext, candidates: Sequence[str]) -> Optional[str]:
    for candidate in candidates:
        if ctx.exists(candidate):
            return candidate
    return None


def config_file_probe(
    candidates: Sequence[str],
    package_key: Optional[str] = None,
) -> Callable[[ProjectContext], ProbeResult]:
    """
    Probe passing when any accepted config file exists and parses.

    Args:
        candidates: Accepted file names, in preference order
        package_key: Optional package.json key that also counts as config

    Returns:
        Probe function
    """
    def probe(ctx: ProjectContext) -> ProbeResult:
        found = first_existing(ctx, candidates)
        if found is not None:
            problem = validate_syntax(ctx, found)
            if problem:
                return False, problem
            return True, f"{found} present"
        if package_key and ctx.exists('package.json'):
            if package_key in ctx.read_json('package.json'):
                return True, f"\"{package_key}\" configured in package.json"
        return False, f"none of {', '.join(candidates)} found"

    return probe


def directory_probe(relative: str) -> Callable[[ProjectContext], ProbeResult]:
    def probe(ctx: ProjectContext) -> ProbeResult:
        path = ctx.path(relative)
        if path.is_dir():
            return True, f"{relative}/ present"
        if path.exists():
            return False, f"{relative} exists but is not a directory"
        return False, f"{relative}/ missing"

    return probe


def json_keys_missing(data: Dict[str, Any], section: Optional[str], keys: Iterable[str]) -> List[str]:
    """Keys absent from data[section] (or data itself when section is None)."""
    container = data.get(section, {}) if section else data
    if not isinstance(container, dict):
        return list(keys)
    return [key for key in keys if key not in container]


def json_keys_probe(
    relative: str,
    section: Optional[str],
    keys: Sequence[str],
) -> Callable[[ProjectContext], ProbeResult]:
    """
    Probe passing when every key exists in a JSON manifest section.

    Example:
        json_keys_probe('package.json', 'scripts', ['lint', 'format', 'test'])
    """
    where = f"{relative} {section}" if section else relative

    def probe(ctx: ProjectContext) -> ProbeResult:
        if not ctx.exists(relative):
            return False, f"{relative} missing"
        missing = json_keys_missing(ctx.read_json(relative), section, keys)
        if missing:
            return False, f"{where} missing: {', '.join(missing)}"
        return True, f"{where} has {', '.join(keys)}"

    return probe


def file_contains_probe(relative: str, needle: str) -> Callable[[ProjectContext], ProbeResult]:
    def probe(ctx: ProjectContext) -> ProbeResult:
        if not ctx.exists(relative):
            return False, f"{relative} missing"
        if needle not in ctx.read_text(relative):
            return False, f"{relative} does not run {needle}"
        return True, f"{relative} runs {needle}"

    return probe


def is_executable(ctx: ProjectContext, relative: str) -> bool:
    mode = ctx.path(relative).stat().st_mode
    return bool(mode & stat.S_IXUSR)


# =============================================================================
# Fix factories
# =============================================================================

def write_template_fix(
    relative: str,
    content: str,
    alternatives: Sequence[str] = (),
    mode: Optional[int] = None,
) -> Callable[[ProjectContext], List[str]]:
    """
    Fix writing a template file unless it (or an accepted alternative) exists.

    Args:
        relative: File to create
        content: Template text
        alternatives: Other file names that already satisfy the rule
        mode: Permission bits for the new file

    Returns:
        Fix function returning the paths it wrote
    """
    def fix(ctx: ProjectContext) -> List[str]:
        if first_existing(ctx, (relative,) + tuple(alternatives)) is not None:
            return []
        atomic_write(ctx.path(relative), content, mode=mode)
        return [relative]

    return fix


def load_manifest(ctx: ProjectContext, relative: str) -> Dict[str, Any]:
    """
    Read a JSON manifest for editing.

    Raises:
        ProbeError: If the manifest is missing or malformed
    """
    if not ctx.exists(relative):
        raise ProbeError(f"{relative} missing; cannot edit it")
    return ctx.read_json(relative)


def add_json_defaults_fix(
    relative: str,
    section: Optional[str],
    defaults: Dict[str, Any],
) -> Callable[[ProjectContext], List[str]]:
    """
    Fix adding missing keys to a JSON manifest, never overwriting values.

    Args:
        relative: Manifest path, e.g. "package.json"
        section: Top-level object to extend, or None for the root object
        defaults: Keys and values to add when absent

    Returns:
        Fix function
    """
    def fix(ctx: ProjectContext) -> List[str]:
        data = load_manifest(ctx, relative)
        if section:
            container = data.setdefault(section, {})
            if not isinstance(container, dict):
                raise ProbeError(f"{relative} \"{section}\" must be an object")
        else:
            container = data

        added = [key for key in defaults if key not in container]
        if not added:
            return []
        for key in added:
            container[key] = defaults[key]
        write_json(ctx.path(relative), data)
        return [relative]

    return fix


def append_lines_fix(
    relative: str,
    lines: Sequence[str],
    header: Optional[str] = None,
) -> Callable[[ProjectContext], List[str]]:
    def fix(ctx: ProjectContext) -> List[str]:
        changed = append_missing_lines(ctx.path(relative), list(lines), header=header)
        return [relative] if changed else []

    return fix


def dump_json(data: Any) -> str:
    """Render a template object the way fixes write JSON files."""
    return json.dumps(data, indent=2) + "\n"
