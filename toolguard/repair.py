#!/usr/bin/env python3
"""
Toolguard command line front end.

Validates a project's developer tooling against the stock rule catalog,
repairs what it can in dependency order, or explains what is wrong.

Features:
- Three modes: --validate (default), --repair, --doctor
- Parallel, read-only probing (disable with --sequential)
- Graceful shutdown handling (Ctrl+C finishes the current repair)
- Multi-format config support (YAML/TOML/JSON)

Usage:
    toolguard --validate
    toolguard --repair --root path/to/project
    toolguard --doctor --config toolguard.yaml
    toolguard --validate --json > report.json
    toolguard --repair --only hooks.pre_commit
    toolguard --list

Exit codes:
    0 healthy, 1 degraded, 2 broken, 3 catalog fault, 4 configuration error
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set

from toolguard.core.catalog import RuleCatalog
from toolguard.core.colors import error, info, render_box, success, warning
from toolguard.core.config_validator import (
    ConfigValidationError,
    find_config_file,
    load_config_strict,
)
from toolguard.core.context import build_context
from toolguard.core.errors import CatalogError
from toolguard.core.logger import LOGGER_NAME, setup_logger
from toolguard.core.models import Outcome, RunMode, RunReport
from toolguard.core.orchestrator import RunOrchestrator
from toolguard.core.prober import StateProber
from toolguard.core.reporting import (
    EXIT_CATALOG_FAULT,
    EXIT_CONFIG_ERROR,
    exit_code_for,
    generate_console_output,
    generate_doctor_output,
    generate_markdown_report,
    save_report,
    to_json_dict,
)
from toolguard.core.signal_handlers import install_signal_handlers, shutdown_manager
from toolguard.rules import build_default_catalog


logger = logging.getLogger(LOGGER_NAME)


class UsageError(Exception):
    """Invalid command line usage."""
    pass


class ToolguardArgumentParser(argparse.ArgumentParser):
    """ArgumentParser whose usage errors exit with the configuration error code."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(EXIT_CONFIG_ERROR, f"{self.prog}: error: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    parser = ToolguardArgumentParser(
        prog='toolguard',
        description="Validate and repair developer-tooling configuration",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --validate
  %(prog)s --repair --root ./my-app
  %(prog)s --doctor --config toolguard.yaml
  %(prog)s --validate --json
  %(prog)s --repair --skip lint.dev_dependencies,php.dev_tools
  %(prog)s --list

Exit codes: 0 healthy, 1 degraded, 2 broken, 3 catalog fault, 4 config error
        """
    )

    modes = parser.add_mutually_exclusive_group()
    modes.add_argument('--validate', dest='mode', action='store_const', const=RunMode.VALIDATE,
                       help='Probe every rule and report (default mode)')
    modes.add_argument('--repair', dest='mode', action='store_const', const=RunMode.REPAIR,
                       help='Probe, then fix failing rules in dependency order')
    modes.add_argument('--doctor', dest='mode', action='store_const', const=RunMode.DOCTOR,
                       help='Repair, then explain every rule that still fails')

    parser.add_argument('--root', type=Path, help='Project root (default: config project.root or cwd)')
    parser.add_argument('--config', type=Path, help='Path to configuration file (YAML, TOML or JSON)')
    parser.add_argument('--json', action='store_true', help='Print the report as JSON on stdout')
    parser.add_argument('--output', type=Path, help='Write the report to this file')
    parser.add_argument('--format', choices=['markdown', 'json', 'both'], default=None,
                        help='Report file format (default: from config, else markdown)')
    parser.add_argument('--list', action='store_true', help='List rules in resolved order and exit')
    parser.add_argument('--only', help='Comma-separated rule ids to run (prerequisites included)')
    parser.add_argument('--skip', help='Comma-separated rule ids to report as skipped')
    parser.add_argument('--sequential', action='store_true', help='Probe rules one at a time')
    parser.add_argument('--max-workers', type=int, default=None,
                        help='Max parallel probe workers (default: min(cpu_count, 8))')
    parser.add_argument('--log-file', type=Path, help='Write JSON-lines logs to this file')

    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument('--verbose', '-v', action='store_true', help='Show debug logging and passing details')
    verbosity.add_argument('--quiet', '-q', action='store_true', help='Minimal output (errors only)')

    parser.set_defaults(mode=RunMode.VALIDATE)
    return parser


def split_ids(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(',') if part.strip()]


def resolve_disabled(
    catalog: RuleCatalog,
    only: Sequence[str],
    skip: Sequence[str],
) -> Set[str]:
    """
    Rule ids reported as skipped.

    `only` keeps the named rules plus their prerequisites; `skip` always wins.

    Raises:
        UsageError: If any id is unknown
    """
    known = set(catalog.ids())
    unknown = [rule_id for rule_id in list(only) + list(skip) if rule_id not in known]
    if unknown:
        raise UsageError(f"Unknown rule id(s): {', '.join(sorted(set(unknown)))}")

    disabled = set(skip)
    if only:
        disabled |= known - catalog.prerequisites_closure(only)
    return disabled


def list_rules(catalog: RuleCatalog, disabled: Set[str]) -> str:
    """
    List all rules in execution order.

    Returns:
        Formatted string listing rules
    """
    lines = ["Rule execution order:\n"]
    for i, rule in enumerate(catalog.ordered_rules(), 1):
        status = "⏭️  skipped" if rule.id in disabled else "✅ enabled"
        fix = "fix" if rule.fixable else "detect-only"
        lines.append(f"  {i:2}. {rule.id:28} {rule.severity.value:13} {fix:11} {status}\n")
        if rule.prerequisites:
            lines.append(f"      after: {', '.join(sorted(rule.prerequisites))}\n")
    return ''.join(lines)


def print_summary_box(report: RunReport):
    """
    Print repair summary box with color and formatting.

    Args:
        report: RunReport from a repair or doctor run
    """
    lines = []
    for outcome, label, paint in (
        (Outcome.FIXED, "Fixed", success),
        (Outcome.NO_OP_ALREADY_FIXED, "Already fine", info),
        (Outcome.SKIPPED_PREREQ_FAILED, "Blocked by prerequisite", warning),
        (Outcome.FAILED, "Failed", error),
    ):
        count = report.count_outcome(outcome)
        if count:
            lines.append(paint(f"{label:26} {count}"))
    if not lines:
        lines.append("No repairs attempted")
    lines.append("")
    lines.append(f"Health: {report.health_percentage}% ({report.verdict.value})")
    print(render_box(lines, title="Repair summary"))


def write_report_file(report: RunReport, output: Path, fmt: str) -> List[Path]:
    """Write the report to an explicit file path (plus a .json sibling for "both")."""
    output.parent.mkdir(parents=True, exist_ok=True)
    written = []
    if fmt == 'json':
        output.write_text(json.dumps(to_json_dict(report), indent=2), encoding='utf-8')
        written.append(output)
    else:
        output.write_text(generate_markdown_report(report), encoding='utf-8')
        written.append(output)
        if fmt == 'both':
            json_path = output.with_suffix('.json')
            json_path.write_text(json.dumps(to_json_dict(report), indent=2), encoding='utf-8')
            written.append(json_path)
    return written


def load_settings(args, catalog: RuleCatalog) -> Dict:
    """
    Resolve the effective configuration.

    Raises:
        ConfigValidationError, FileNotFoundError, ValueError: On bad config
    """
    config_path = args.config
    search_root = args.root or Path.cwd()
    if config_path is None:
        config_path = find_config_file(search_root)

    config = load_config_strict(config_path, known_rule_ids=catalog.ids())
    if args.root is not None:
        config['project']['root'] = str(args.root)
    elif config_path is None:
        config['project']['root'] = str(Path.cwd())
    return config


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main CLI entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)

    catalog = build_default_catalog()

    try:
        config = load_settings(args, catalog)
    except ConfigValidationError as e:
        print(error(f"ERROR: {e}"), file=sys.stderr)
        print("\nFix the above errors and re-run.", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    except FileNotFoundError as e:
        print(error(f"ERROR: {e}"), file=sys.stderr)
        return EXIT_CONFIG_ERROR
    except ValueError as e:
        print(error(f"ERROR: Failed to load config: {e}"), file=sys.stderr)
        return EXIT_CONFIG_ERROR

    if args.verbose:
        level = logging.DEBUG
    elif args.quiet:
        level = logging.ERROR
    else:
        level = getattr(logging, config['logging']['level'])
    setup_logger(LOGGER_NAME, log_file=args.log_file or config['logging']['file'], level=level)

    engine = config['engine']
    max_workers = args.max_workers if args.max_workers is not None else engine['max_workers']
    if max_workers is not None and max_workers < 1:
        print(error("ERROR: --max-workers must be at least 1"), file=sys.stderr)
        return EXIT_CONFIG_ERROR

    try:
        # unknown ids in the config file were already reported as warnings
        only = split_ids(args.only) or [r for r in config['rules']['only'] if r in catalog]
        skip = split_ids(args.skip) + [r for r in config['rules']['disabled'] if r in catalog]
        disabled = resolve_disabled(catalog, only, skip)
        if disabled:
            logger.debug(f"Disabled rules: {', '.join(sorted(disabled))}")
    except UsageError as e:
        print(error(f"ERROR: {e}"), file=sys.stderr)
        return EXIT_CONFIG_ERROR
    except CatalogError as e:
        print(error(f"ERROR: {e}"), file=sys.stderr)
        return EXIT_CATALOG_FAULT

    if args.list:
        print(list_rules(catalog, disabled))
        return 0

    try:
        ctx = build_context(
            Path(config['project']['root']),
            probe_timeout=engine['probe_timeout'],
            fix_timeout=engine['fix_timeout'],
            stderr_tail_lines=engine['stderr_tail_lines'],
        )
    except (NotADirectoryError, OSError) as e:
        print(error(f"ERROR: {e}"), file=sys.stderr)
        return EXIT_CONFIG_ERROR

    token = install_signal_handlers()
    try:
        prober = StateProber(
            parallel=engine['parallel'] and not args.sequential,
            max_workers=max_workers,
            token=token,
            disabled=disabled,
        )
        orchestrator = RunOrchestrator(catalog, ctx, prober=prober, token=token)
        try:
            report = orchestrator.run(args.mode)
        except CatalogError as e:
            print(error(f"ERROR: {e}"), file=sys.stderr)
            return EXIT_CATALOG_FAULT
    finally:
        shutdown_manager.uninstall()

    if args.json:
        print(json.dumps(to_json_dict(report), indent=2))
    elif not args.quiet:
        if args.mode == RunMode.DOCTOR:
            print(generate_doctor_output(report, catalog.list_rules()))
        print(generate_console_output(report, verbose=args.verbose))
        if args.mode.repairs:
            print()
            print_summary_box(report)
    elif report.revert_failures:
        print(generate_console_output(report), file=sys.stderr)

    fmt = args.format or config['reporting']['format']
    written: List[Path] = []
    if args.output:
        written = write_report_file(report, args.output, fmt)
    elif config['reporting']['output_dir']:
        output_dir = Path(config['reporting']['output_dir'])
        if not output_dir.is_absolute():
            output_dir = ctx.root / output_dir
        written = save_report(report, output_dir, fmt)

    if written and not args.quiet and not args.json:
        for path in written:
            print(success(f"📄 Report saved to {path}"))

    return exit_code_for(report.verdict)


if __name__ == "__main__":
    sys.exit(main())
