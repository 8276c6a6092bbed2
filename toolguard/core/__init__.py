"""
Toolguard Core - rule engine for validating and repairing tooling setups.

Catalog, resolver, prober, executor and orchestrator are project-agnostic;
concrete rules live in toolguard.rules.
"""

from .models import (
    Category,
    CheckResult,
    Outcome,
    Phase,
    RepairAction,
    Rule,
    RuleSummary,
    RunMode,
    RunReport,
    Severity,
    Status,
    Verdict,
)
from .errors import (
    CatalogError,
    ProbeError,
    RepairError,
    RevertError,
    ToolError,
    ToolNotFoundError,
    ToolTimeoutError,
    ToolguardError,
)
from .catalog import RuleCatalog
from .resolver import order
from .context import ProjectContext, build_context, detect_flavors
from .prober import StateProber
from .executor import RepairExecutor
from .orchestrator import RunOrchestrator, RunState
from .signal_handlers import CancellationToken, install_signal_handlers
from .reporting import (
    EXIT_BROKEN,
    EXIT_CATALOG_FAULT,
    EXIT_CONFIG_ERROR,
    EXIT_DEGRADED,
    EXIT_HEALTHY,
    exit_code_for,
    generate_console_output,
    generate_doctor_output,
    generate_markdown_report,
    save_report,
    summarize,
    to_json_dict,
)
from .config_validator import (
    ConfigError,
    ConfigValidationError,
    ValidationResult,
    load_config_strict,
    validate_and_load_config,
    validate_config_schema,
)

__all__ = [
    # Model
    'Category',
    'CheckResult',
    'Outcome',
    'Phase',
    'RepairAction',
    'Rule',
    'RuleSummary',
    'RunMode',
    'RunReport',
    'Severity',
    'Status',
    'Verdict',

    # Errors
    'CatalogError',
    'ProbeError',
    'RepairError',
    'RevertError',
    'ToolError',
    'ToolNotFoundError',
    'ToolTimeoutError',
    'ToolguardError',

    # Engine
    'RuleCatalog',
    'order',
    'ProjectContext',
    'build_context',
    'detect_flavors',
    'StateProber',
    'RepairExecutor',
    'RunOrchestrator',
    'RunState',
    'CancellationToken',
    'install_signal_handlers',

    # Reporting
    'EXIT_BROKEN',
    'EXIT_CATALOG_FAULT',
    'EXIT_CONFIG_ERROR',
    'EXIT_DEGRADED',
    'EXIT_HEALTHY',
    'exit_code_for',
    'generate_console_output',
    'generate_doctor_output',
    'generate_markdown_report',
    'save_report',
    'summarize',
    'to_json_dict',

    # Config Validation
    'ConfigError',
    'ConfigValidationError',
    'ValidationResult',
    'load_config_strict',
    'validate_and_load_config',
    'validate_config_schema',
]
