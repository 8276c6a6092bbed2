"""
Toolguard stock rules.

Rules are declared per concern and assembled into one catalog in the order
below; ties in the dependency order keep this declaration order.
"""

from typing import List

from ..core.catalog import RuleCatalog
from ..core.models import Rule
from . import hooks, ide, lint, php, prerequisite, release, security


DECLARATION_ORDER = [
    'project.manifest',
    'git.repository',
    'node.runtime',
    'hooks.husky_dir',
    'hooks.pre_commit',
    'hooks.commit_msg',
    'hooks.permissions',
    'hooks.prepare_script',
    'lint.eslint_config',
    'lint.prettier_config',
    'lint.lint_staged',
    'lint.commitlint_config',
    'lint.package_scripts',
    'lint.dev_dependencies',
    'lint.eslint_runs',
    'lint.tsconfig',
    'structure.editorconfig',
    'release.ci_workflow',
    'release.releaserc',
    'security.gitignore_env',
    'security.env_untracked',
    'ide.vscode_settings',
    'ide.vscode_extensions',
    'php.composer_scripts',
    'php.dev_tools',
]


def default_rules() -> List[Rule]:
    """Stock rules in declaration order."""
    rules = []
    for module in (prerequisite, hooks, lint, ide, release, security, php):
        rules.extend(module.RULES)
    position = {rule_id: i for i, rule_id in enumerate(DECLARATION_ORDER)}
    return sorted(rules, key=lambda rule: position[rule.id])


def build_default_catalog() -> RuleCatalog:
    """Build the stock catalog (validated lazily on first use)."""
    return RuleCatalog(default_rules())


__all__ = [
    'DECLARATION_ORDER',
    'build_default_catalog',
    'default_rules',
]
