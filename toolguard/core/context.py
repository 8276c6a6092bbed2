"""
Project context: the read-only snapshot descriptor threaded into every
probe and fix call.

Built once at Init from the invocation root. Holds the detected project
flavors, the environment variables rules are allowed to consult and the
timeouts that bound external tool calls. Nothing in the engine reads
os.environ or the cwd directly after the context exists.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, List, Mapping, Optional

from .errors import ProbeError
from .tools import (
    DEFAULT_FIX_TIMEOUT,
    DEFAULT_PROBE_TIMEOUT,
    DEFAULT_STDERR_TAIL_LINES,
    ToolResult,
    run_tool,
)


logger = logging.getLogger(__name__)

# Project flavors
GIT = "git"
NODE = "node"
COMPOSER = "composer"
LARAVEL = "laravel"
TYPESCRIPT = "typescript"
REACT = "react"

# Environment variables rules may consult
RELEVANT_ENV_VARS = (
    'CI',
    'HUSKY',
    'NODE_ENV',
    'GITHUB_ACTIONS',
    'npm_config_registry',
    'COMPOSER_HOME',
)

MAX_MANIFEST_BYTES = 5 * 1024 * 1024


@dataclass(frozen=True)
class ProjectContext:
    """
    Immutable description of the project under inspection.

    Attributes:
        root: Absolute project root
        flavors: Detected traits, e.g. {"git", "node", "typescript"}
        env: Relevant environment variables (read-only mapping)
        probe_timeout: Seconds allowed per probe subprocess
        fix_timeout: Seconds allowed per fix subprocess
        stderr_tail_lines: stderr lines kept as evidence
    """
    root: Path
    flavors: FrozenSet[str] = frozenset()
    env: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    probe_timeout: float = DEFAULT_PROBE_TIMEOUT
    fix_timeout: float = DEFAULT_FIX_TIMEOUT
    stderr_tail_lines: int = DEFAULT_STDERR_TAIL_LINES

    def has(self, flavor: str) -> bool:
        return flavor in self.flavors

    def path(self, relative: str) -> Path:
        return self.root / relative

    def exists(self, relative: str) -> bool:
        return self.path(relative).exists()

    def read_text(self, relative: str) -> str:
        """
        Read a project file.

        Raises:
            FileNotFoundError: If the file does not exist
            ProbeError: If the file is unreadable or too large
        """
        target = self.path(relative)
        if not target.exists():
            raise FileNotFoundError(f"{relative} not found")
        if target.stat().st_size > MAX_MANIFEST_BYTES:
            raise ProbeError(f"{relative} is too large to inspect")
        try:
            return target.read_text(encoding='utf-8')
        except (OSError, UnicodeDecodeError) as e:
            raise ProbeError(f"Cannot read {relative}: {e}") from e

    def read_json(self, relative: str) -> Dict[str, Any]:
        """
        Parse a JSON file in the project.

        Raises:
            FileNotFoundError: If the file does not exist
            ProbeError: If the content is not a JSON object
        """
        content = self.read_text(relative)
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise ProbeError(f"{relative} is not valid JSON (line {e.lineno}: {e.msg})") from e
        if not isinstance(data, dict):
            raise ProbeError(f"{relative} must contain a JSON object")
        return data

    def run(self, cmd: List[str], timeout: Optional[float] = None) -> ToolResult:
        """Run a read-only tool under the probe timeout."""
        return run_tool(
            cmd,
            cwd=self.root,
            timeout=timeout or self.probe_timeout,
            tail_lines=self.stderr_tail_lines,
        )

    def run_fix(self, cmd: List[str]) -> ToolResult:
        """Run a mutating tool under the (longer) fix timeout."""
        return run_tool(
            cmd,
            cwd=self.root,
            timeout=self.fix_timeout,
            tail_lines=self.stderr_tail_lines,
        )


def _load_manifest(root: Path, name: str) -> Optional[Dict[str, Any]]:
    manifest = root / name
    if not manifest.is_file():
        return None
    try:
        if manifest.stat().st_size > MAX_MANIFEST_BYTES:
            logger.warning(f"{name} too large, flavor detection skipped")
            return {}
        data = json.loads(manifest.read_text(encoding='utf-8'))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning(f"Cannot parse {name} for flavor detection: {e}")
        return {}
    return data if isinstance(data, dict) else {}


def _dependency_names(manifest: Dict[str, Any], *sections: str) -> FrozenSet[str]:
    names = set()
    for section in sections:
        deps = manifest.get(section)
        if isinstance(deps, dict):
            names.update(deps)
    return frozenset(names)


def detect_flavors(root: Path) -> FrozenSet[str]:
    """
    Detect project traits from manifests and well-known paths.

    Args:
        root: Project root

    Returns:
        Frozen set of flavor names
    """
    flavors = set()

    if (root / '.git').exists():
        flavors.add(GIT)

    package = _load_manifest(root, 'package.json')
    if package is not None:
        flavors.add(NODE)
        deps = _dependency_names(package, 'dependencies', 'devDependencies')
        if 'typescript' in deps or (root / 'tsconfig.json').exists():
            flavors.add(TYPESCRIPT)
        if 'react' in deps:
            flavors.add(REACT)

    composer = _load_manifest(root, 'composer.json')
    if composer is not None:
        flavors.add(COMPOSER)
        if 'laravel/framework' in _dependency_names(composer, 'require'):
            flavors.add(LARAVEL)

    return frozenset(flavors)


def build_context(
    root: Path,
    env: Optional[Mapping[str, str]] = None,
    probe_timeout: float = DEFAULT_PROBE_TIMEOUT,
    fix_timeout: float = DEFAULT_FIX_TIMEOUT,
    stderr_tail_lines: int = DEFAULT_STDERR_TAIL_LINES,
) -> ProjectContext:
    """
    Build the immutable context for one run.

    Args:
        root: Invocation directory
        env: Environment to sample (defaults to os.environ)
        probe_timeout: Per-probe subprocess timeout
        fix_timeout: Per-fix subprocess timeout
        stderr_tail_lines: stderr lines kept as evidence

    Returns:
        ProjectContext

    Raises:
        NotADirectoryError: If root is not a directory
    """
    root = Path(root).expanduser().resolve()
    if not root.is_dir():
        raise NotADirectoryError(f"Project root is not a directory: {root}")

    source = os.environ if env is None else env
    relevant = {name: source[name] for name in RELEVANT_ENV_VARS if name in source}

    flavors = detect_flavors(root)
    logger.debug(f"Detected flavors: {', '.join(sorted(flavors)) or 'none'}")

    return ProjectContext(
        root=root,
        flavors=flavors,
        env=MappingProxyType(relevant),
        probe_timeout=probe_timeout,
        fix_timeout=fix_timeout,
        stderr_tail_lines=stderr_tail_lines,
    )
