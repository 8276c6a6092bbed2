"""
Toolguard - validate and repair developer-tooling setups.

Checks a project's git hooks, linters, formatters, CI workflow and editor
settings against a rule catalog, and repairs what it can in dependency order.
"""

from toolguard.core import (
    RuleCatalog,
    RunMode,
    RunOrchestrator,
    RunReport,
    build_context,
)
from toolguard.rules import build_default_catalog

__version__ = "0.1.0"
__license__ = "MIT"

__all__ = [
    "RuleCatalog",
    "RunMode",
    "RunOrchestrator",
    "RunReport",
    "build_context",
    "build_default_catalog",
    "__version__",
    "__license__",
]
