"""
Run reports: aggregation, verdict, exit codes and rendering.

Provides:
- summarize(): the only constructor of RunReport
- exit_code_for(): pure function of the verdict
- JSON form (machine-readable, for CI)
- Console summary (counts, percentage, pass/fail markers)
- Markdown report and doctor diagnostics (human-readable)
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Sequence

from .colors import bold, error, info, paint_status, paint_verdict, success, warning
from .models import (
    CheckResult,
    Outcome,
    RepairAction,
    Rule,
    RuleSummary,
    RunMode,
    RunReport,
    Severity,
    Status,
    Verdict,
)


EXIT_HEALTHY = 0
EXIT_DEGRADED = 1
EXIT_BROKEN = 2
EXIT_CATALOG_FAULT = 3
EXIT_CONFIG_ERROR = 4

DEGRADED_THRESHOLD = 50

REVERT_MARKER = "REVERT FAILED"

STATUS_MARKERS = {
    Status.PASS: "✅",
    Status.FAIL: "❌",
    Status.ERROR: "⛔",
    Status.SKIPPED: "⏭️ ",
}


def health_percentage(passed: int, total: int) -> int:
    """
    Whole-percent health (passed / total), rounded half up.

    Returns 100 when no rule is in scope.
    """
    if total <= 0:
        return 100
    return (passed * 200 + total) // (2 * total)


def determine_verdict(passed: int, total: int) -> Verdict:
    """
    Healthy when every in-scope rule passes, degraded when at least half
    of them pass, broken otherwise.
    """
    if passed >= total:
        return Verdict.HEALTHY
    if health_percentage(passed, total) >= DEGRADED_THRESHOLD:
        return Verdict.DEGRADED
    return Verdict.BROKEN


def exit_code_for(verdict: Verdict) -> int:
    """Map a verdict to the process exit code."""
    return {
        Verdict.HEALTHY: EXIT_HEALTHY,
        Verdict.DEGRADED: EXIT_DEGRADED,
        Verdict.BROKEN: EXIT_BROKEN,
    }[verdict]


def summarize(
    rules: Sequence[Rule],
    results: Mapping[str, CheckResult],
    actions: Iterable[RepairAction] = (),
    mode: RunMode = RunMode.VALIDATE,
    history: Iterable[CheckResult] = (),
    cancelled: bool = False,
    execution_time: float = 0.0,
) -> RunReport:
    """
    Build the immutable RunReport.

    Every rule appears exactly once. A rule without a result (never probed,
    e.g. after cancellation) is reported as skipped, never as passed.
    Out-of-scope results are listed but only counted as excluded.

    Args:
        rules: Rules in catalog declaration order
        results: Final CheckResult per rule id
        actions: RepairActions in the order they were attempted
        mode: Invocation mode
        history: Every CheckResult produced during the run
        cancelled: True if the run was interrupted
        execution_time: Wall-clock seconds

    Returns:
        RunReport
    """
    final: List[CheckResult] = []
    summaries: List[RuleSummary] = []

    for rule in rules:
        result = results.get(rule.id)
        if result is None:
            result = CheckResult(rule_id=rule.id, status=Status.SKIPPED, detail="not verified in this run")
        final.append(result)
        summaries.append(RuleSummary(
            rule_id=rule.id,
            category=rule.category,
            severity=rule.severity,
            status=result.status,
            detail=result.detail,
            in_scope=result.in_scope,
        ))

    counted = [r for r in final if r.in_scope]
    passed = sum(1 for r in counted if r.status == Status.PASS)
    failed = sum(1 for r in counted if r.status == Status.FAIL)
    errored = sum(1 for r in counted if r.status == Status.ERROR)
    skipped = sum(1 for r in counted if r.status == Status.SKIPPED)
    total = len(counted)

    return RunReport(
        mode=mode,
        rules=tuple(summaries),
        results=tuple(final),
        actions=tuple(actions),
        history=tuple(history),
        passed=passed,
        failed=failed,
        errored=errored,
        skipped=skipped,
        total=total,
        health_percentage=health_percentage(passed, total),
        verdict=determine_verdict(passed, total),
        excluded=len(final) - total,
        cancelled=cancelled,
        execution_time=execution_time,
    )


def blocking_failures(report: RunReport) -> List[RuleSummary]:
    """Blocking-severity rules that failed or errored, in report order."""
    return [
        s for s in report.rules
        if s.severity == Severity.BLOCKING and s.status in (Status.FAIL, Status.ERROR)
    ]


def to_json_dict(report: RunReport) -> Dict[str, Any]:
    """
    Machine-parseable form of a report.

    Structure:
    {
        "mode": str, "verdict": str, "exit_code": int, ...
        "summary": {"passed", "failed", "errored", "skipped", "total",
                    "excluded", "health_percentage"},
        "rules": [{"rule_id", "category", "severity", "status", "detail",
                   "in_scope"}],
        "actions": [{"rule_id", "outcome", "side_effects", "error", ...}]
    }
    """
    return {
        "mode": report.mode.value,
        "timestamp": report.timestamp,
        "execution_time": round(report.execution_time, 3),
        "verdict": report.verdict.value,
        "exit_code": exit_code_for(report.verdict),
        "cancelled": report.cancelled,
        "summary": {
            "passed": report.passed,
            "failed": report.failed,
            "errored": report.errored,
            "skipped": report.skipped,
            "total": report.total,
            "excluded": report.excluded,
            "health_percentage": report.health_percentage,
        },
        "rules": [
            {
                "rule_id": s.rule_id,
                "category": s.category.value,
                "severity": s.severity.value,
                "status": s.status.value,
                "detail": s.detail,
                "in_scope": s.in_scope,
            }
            for s in report.rules
        ],
        "actions": [
            {
                "rule_id": a.rule_id,
                "outcome": a.outcome.value,
                "pre_state_snapshot": a.pre_state_snapshot,
                "side_effects": list(a.side_effects),
                "error": a.error,
                "revert_attempted": a.revert_attempted,
                "revert_error": a.revert_error,
            }
            for a in report.actions
        ],
    }


def _verdict_line(report: RunReport) -> str:
    if report.verdict == Verdict.HEALTHY:
        return success("🎉 Healthy: all applicable checks pass")
    if report.verdict == Verdict.DEGRADED:
        return warning(f"⚠️  Degraded: {report.total - report.passed} check(s) need attention")
    return error("🚨 Broken: most checks fail, run with --repair")


def _revert_banner(report: RunReport) -> List[str]:
    lines = []
    for action in report.revert_failures:
        lines.append(error(f"🚨 {REVERT_MARKER} [{action.rule_id}]: {action.revert_error}"))
        lines.append(error("   Inspect these files manually before re-running."))
    return lines


def generate_console_output(report: RunReport, verbose: bool = False) -> str:
    """
    Terminal-friendly summary with pass/fail markers.

    Args:
        report: RunReport
        verbose: Include details for passing rules too

    Returns:
        Formatted string
    """
    lines = []
    lines.append("=" * 70)
    lines.append(bold(f"Toolguard {report.mode.value} report"))
    lines.append("=" * 70)

    for s in report.rules:
        marker = STATUS_MARKERS[s.status]
        line = f"{marker} {s.rule_id:28} {paint_status(s.status.value, f'{s.status.value:8}')}"
        if s.status != Status.PASS or verbose:
            line += f" {s.detail.splitlines()[0] if s.detail else ''}"
        lines.append(line)

    if report.actions:
        lines.append("")
        lines.append(bold("🔧 Repairs:"))
        for action in report.actions:
            suffix = f" ({action.error})" if action.error else ""
            lines.append(f"   {action.rule_id:28} {action.outcome.value}{suffix}")

    lines.append("")
    counts = (f"📊 Passed {report.passed}/{report.total}, failed {report.failed}, "
              f"errors {report.errored}, skipped {report.skipped}")
    if report.excluded:
        counts += f" ({report.excluded} out of scope)"
    lines.append(counts)
    blocking = blocking_failures(report)
    if blocking:
        lines.append(error(f"🧱 Blocking: {', '.join(s.rule_id for s in blocking)}"))
    lines.append(paint_verdict(
        report.verdict.value,
        f"   Health: {report.health_percentage}% ({report.verdict.value})"
    ))
    if report.cancelled:
        lines.append(warning("⚠️  Run was cancelled; unverified rules are reported as skipped"))
    lines.extend(_revert_banner(report))
    lines.append(_verdict_line(report))
    lines.append("=" * 70)

    return '\n'.join(lines)


def generate_markdown_report(report: RunReport) -> str:
    """Markdown form of a report, suitable for saving next to the project."""
    lines = []

    lines.append("# Toolguard Report\n\n")
    lines.append(f"**Mode**: {report.mode.value}\n")
    lines.append(f"**Timestamp**: {report.timestamp}\n")
    lines.append(f"**Execution Time**: {report.execution_time:.2f}s\n")
    lines.append(f"**Verdict**: {report.verdict.value} (exit {exit_code_for(report.verdict)})\n")

    lines.append("\n## Summary\n\n")
    lines.append(f"- **Passed**: {report.passed}\n")
    lines.append(f"- **Failed**: {report.failed}\n")
    lines.append(f"- **Errors**: {report.errored}\n")
    lines.append(f"- **Skipped**: {report.skipped}\n")
    lines.append(f"- **Total**: {report.total}\n")
    lines.append(f"- **Excluded**: {report.excluded}\n")
    lines.append(f"- **Health**: {report.health_percentage}%\n")

    if report.revert_failures:
        lines.append(f"\n## 🚨 {REVERT_MARKER}\n\n")
        for action in report.revert_failures:
            lines.append(f"- `{action.rule_id}`: {action.revert_error}. Inspect manually.\n")

    lines.append("\n## Checks\n\n")
    lines.append("| Rule | Category | Severity | Status | Detail |\n")
    lines.append("|---|---|---|---|---|\n")
    for s in report.rules:
        detail = s.detail.replace("\n", " ").replace("|", "\\|")
        lines.append(
            f"| `{s.rule_id}` | {s.category.value} | {s.severity.value} | "
            f"{STATUS_MARKERS[s.status].strip()} {s.status.value} | {detail} |\n"
        )

    if report.actions:
        lines.append("\n## Repairs\n\n")
        for action in report.actions:
            lines.append(f"### `{action.rule_id}`: {action.outcome.value}\n\n")
            if action.side_effects:
                lines.append(f"- **Touched**: {', '.join(action.side_effects)}\n")
            if action.error:
                lines.append(f"- **Error**: {action.error}\n")
            if action.revert_attempted:
                state = f"failed ({action.revert_error})" if action.revert_error else "restored"
                lines.append(f"- **Revert**: {state}\n")
            lines.append("\n")

    if report.cancelled:
        lines.append("\n> Run was cancelled before completion.\n")

    return ''.join(lines)


def generate_doctor_output(report: RunReport, rules: Sequence[Rule]) -> str:
    """
    Diagnostic expansion of every non-passing rule.

    Args:
        report: RunReport from a doctor run
        rules: Catalog rules (for descriptions and remediation)

    Returns:
        Human-readable diagnosis
    """
    by_id = {rule.id: rule for rule in rules}
    lines = [bold("🩺 Toolguard doctor"), ""]

    problems = [s for s in report.rules if s.status != Status.PASS]
    if not problems:
        lines.append(success("No problems found. Every applicable check passes."))
        return '\n'.join(lines)

    blocking = blocking_failures(report)
    if blocking:
        lines.append(error(f"Blocking failures ({len(blocking)}): {', '.join(s.rule_id for s in blocking)}"))
        lines.append("")

    for s in problems:
        rule = by_id.get(s.rule_id)
        lines.append(f"{STATUS_MARKERS[s.status]} {bold(s.rule_id)} [{s.category.value}/{s.severity.value}]")
        if rule is not None:
            lines.append(f"   {rule.description}")
        for detail_line in (s.detail or "no detail").splitlines():
            lines.append(f"   │ {detail_line}")

        action = report.action_for(s.rule_id)
        if action is not None:
            lines.append(f"   Repair: {action.outcome.value}")
            if action.outcome == Outcome.SKIPPED_PREREQ_FAILED and rule is not None:
                lines.append(f"   Blocked by: {', '.join(sorted(rule.prerequisites))}")
            if action.error:
                lines.append(f"   Error: {action.error}")
            if action.revert_error:
                lines.append(error(f"   {REVERT_MARKER}: {action.revert_error}"))
        elif s.status == Status.SKIPPED:
            lines.append(info("   Not evaluated."))
        elif rule is not None and rule.fix is None:
            lines.append(warning("   No automatic fix available; manual action required."))

        if rule is not None and rule.remediation:
            lines.append(f"   How to fix: {rule.remediation}")
        lines.append("")

    return '\n'.join(lines)


def save_report(report: RunReport, output_dir: Path, format: str = 'markdown') -> List[Path]:
    """
    Save report to disk.

    Filename format: toolguard_{mode}_{timestamp}.{ext}

    Args:
        report: RunReport
        output_dir: Directory to save report
        format: "markdown", "json", or "both"

    Returns:
        Paths written
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.fromisoformat(report.timestamp).strftime("%Y%m%d_%H%M%S")
    base_name = f"toolguard_{report.mode.value}_{timestamp}"
    written = []

    if format in ['markdown', 'both']:
        md_path = output_dir / f"{base_name}.md"
        md_path.write_text(generate_markdown_report(report), encoding='utf-8')
        written.append(md_path)

    if format in ['json', 'both']:
        json_path = output_dir / f"{base_name}.json"
        json_path.write_text(json.dumps(to_json_dict(report), indent=2), encoding='utf-8')
        written.append(json_path)

    return written
