"""
Shared fixtures for the Toolguard test suite.

Rules built here are in-memory and file-backed: each "flag" rule passes when
its flag file exists under the project root, and its fix creates that file.
This keeps the engine tests free of node, npm, composer and network access.
"""

import json
import logging
import sys
from pathlib import Path
from typing import Callable, Iterable, List, Optional

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from toolguard.core.catalog import RuleCatalog
from toolguard.core.context import ProjectContext, build_context
from toolguard.core.logger import LOGGER_NAME
from toolguard.core.models import Category, Rule, Severity
from toolguard.core.prober import StateProber


def flag_path(rule_id: str) -> str:
    return f"flags/{rule_id}"


def flag_probe(rule_id: str) -> Callable:
    def probe(ctx):
        if ctx.exists(flag_path(rule_id)):
            return True, f"{rule_id} ok"
        return False, f"{rule_id} missing"
    return probe


def flag_fix(rule_id: str, calls: Optional[List[str]] = None) -> Callable:
    def fix(ctx):
        if calls is not None:
            calls.append(rule_id)
        target = ctx.path(flag_path(rule_id))
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text("ok\n")
        return [flag_path(rule_id)]
    return fix


def make_rule(
    rule_id: str,
    prerequisites: Iterable[str] = (),
    severity: Severity = Severity.BLOCKING,
    probe: Optional[Callable] = None,
    fix: Optional[Callable] = None,
    fixable: bool = True,
    calls: Optional[List[str]] = None,
    **kwargs
) -> Rule:
    """
    Build a flag-file rule.

    Args:
        rule_id: Rule id (also names the flag file)
        prerequisites: Prerequisite rule ids
        severity: Rule severity
        probe: Override probe
        fix: Override fix
        fixable: False for a detect-only rule
        calls: List that records fix invocations
    """
    if fix is None and fixable:
        fix = flag_fix(rule_id, calls)
    return Rule(
        id=rule_id,
        category=kwargs.pop('category', Category.STRUCTURE),
        severity=severity,
        description=kwargs.pop('description', f"{rule_id} is configured"),
        probe=probe or flag_probe(rule_id),
        fix=fix,
        prerequisites=frozenset(prerequisites),
        targets=kwargs.pop('targets', (flag_path(rule_id),)),
        **kwargs
    )


def set_flags(root: Path, *rule_ids: str):
    for rule_id in rule_ids:
        target = root / flag_path(rule_id)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text("ok\n")


@pytest.fixture(autouse=True)
def reset_logger():
    """Drop handlers the CLI attaches to captured streams."""
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def ctx(tmp_path) -> ProjectContext:
    return ProjectContext(root=tmp_path.resolve())


@pytest.fixture
def sequential_prober() -> StateProber:
    return StateProber(parallel=False)


@pytest.fixture
def chain_catalog():
    """a <- b <- c, plus independent d and e."""
    return RuleCatalog([
        make_rule('a'),
        make_rule('b', prerequisites={'a'}),
        make_rule('c', prerequisites={'b'}),
        make_rule('d'),
        make_rule('e'),
    ])


# Rules that need node, npm or a real git index; disabled in catalog tests
OFFLINE_DISABLED = ('node.runtime', 'lint.dev_dependencies', 'security.env_untracked')


@pytest.fixture
def node_project(tmp_path) -> Path:
    """Bare JavaScript project: package.json and a .git directory, nothing else."""
    root = tmp_path / "app"
    root.mkdir()
    (root / ".git").mkdir()
    (root / "package.json").write_text(json.dumps({"name": "app", "version": "1.0.0"}, indent=2))
    return root


@pytest.fixture
def node_ctx(node_project) -> ProjectContext:
    return build_context(node_project)
