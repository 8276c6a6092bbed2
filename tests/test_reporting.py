"""
Test suite for run reports.

Tests:
1. Health percentage and verdict thresholds
2. Exit code mapping
3. summarize() completeness (every rule exactly once)
4. JSON, console, markdown and doctor renderers
5. Saving reports to disk
"""

import json

import pytest

from toolguard.core.colors import strip_ansi
from toolguard.core.models import (
    CheckResult,
    Outcome,
    RepairAction,
    RunMode,
    Severity,
    Status,
    Verdict,
)
from toolguard.core.reporting import (
    EXIT_BROKEN,
    EXIT_DEGRADED,
    EXIT_HEALTHY,
    REVERT_MARKER,
    blocking_failures,
    determine_verdict,
    exit_code_for,
    generate_console_output,
    generate_doctor_output,
    generate_markdown_report,
    health_percentage,
    save_report,
    summarize,
    to_json_dict,
)

from conftest import make_rule


def result(rule_id, status, detail="detail", in_scope=True):
    return CheckResult(rule_id=rule_id, status=status, detail=detail, in_scope=in_scope)


def report_with(statuses, mode=RunMode.VALIDATE, actions=(), rules=None):
    rules = rules or [make_rule(rule_id) for rule_id in statuses]
    results = {rule_id: result(rule_id, status) for rule_id, status in statuses.items()}
    return summarize(rules, results, actions, mode=mode)


class TestHealthAndVerdict:
    """Percentages and thresholds."""

    def test_percentage_rounding(self):
        assert health_percentage(1, 3) == 33
        assert health_percentage(2, 3) == 67
        assert health_percentage(1, 2) == 50
        assert health_percentage(0, 5) == 0

    def test_no_applicable_rules_is_full_health(self):
        assert health_percentage(0, 0) == 100

    def test_verdicts(self):
        assert determine_verdict(10, 10) == Verdict.HEALTHY
        assert determine_verdict(9, 10) == Verdict.DEGRADED
        assert determine_verdict(5, 10) == Verdict.DEGRADED
        assert determine_verdict(4, 10) == Verdict.BROKEN

    def test_nothing_in_scope_is_healthy(self):
        assert determine_verdict(0, 0) == Verdict.HEALTHY

    def test_errors_count_against_health(self):
        statuses = {f"r{i}": Status.PASS for i in range(9)}
        statuses['r9'] = Status.ERROR
        report = report_with(statuses)
        assert report.health_percentage == 90
        assert report.verdict == Verdict.DEGRADED

    def test_skipped_counts_against_health(self):
        """passed / total: a skipped in-scope rule is not a pass."""
        report = report_with({'a': Status.PASS, 'b': Status.SKIPPED})
        assert report.health_percentage == 50
        assert report.verdict == Verdict.DEGRADED

    def test_out_of_scope_rules_left_out_of_total(self):
        rules = [make_rule('a'), make_rule('php')]
        report = summarize(rules, {
            'a': result('a', Status.PASS),
            'php': result('php', Status.SKIPPED, "not applicable to this project", in_scope=False),
        })
        assert (report.passed, report.skipped, report.total, report.excluded) == (1, 0, 1, 1)
        assert report.health_percentage == 100
        assert report.verdict == Verdict.HEALTHY
        assert report.result_for('php').status == Status.SKIPPED

    def test_non_blocking_failure_degrades(self):
        rules = [make_rule('a'), make_rule('b'), make_rule('info', severity=Severity.INFORMATIONAL)]
        report = summarize(rules, {
            'a': result('a', Status.PASS),
            'b': result('b', Status.PASS),
            'info': result('info', Status.FAIL),
        })
        assert report.health_percentage == 67
        assert report.verdict == Verdict.DEGRADED


class TestExitCodes:
    """Exit code is a pure function of the verdict."""

    @pytest.mark.parametrize("verdict,code", [
        (Verdict.HEALTHY, EXIT_HEALTHY),
        (Verdict.DEGRADED, EXIT_DEGRADED),
        (Verdict.BROKEN, EXIT_BROKEN),
    ])
    def test_mapping(self, verdict, code):
        assert exit_code_for(verdict) == code

    def test_ten_passing(self):
        report = report_with({f"r{i}": Status.PASS for i in range(10)})
        assert exit_code_for(report.verdict) == 0

    def test_nine_passing_one_blocking_failure(self):
        statuses = {f"r{i}": Status.PASS for i in range(9)}
        statuses['r9'] = Status.FAIL
        report = report_with(statuses)
        assert exit_code_for(report.verdict) == 1
        assert [s.rule_id for s in blocking_failures(report)] == ['r9']

    def test_two_passing_eight_failing(self):
        statuses = {f"r{i}": Status.PASS if i < 2 else Status.FAIL for i in range(10)}
        report = report_with(statuses)
        assert report.health_percentage == 20
        assert exit_code_for(report.verdict) == 2


class TestSummarize:
    """Every rule appears exactly once."""

    def test_counts(self):
        report = report_with({
            'a': Status.PASS, 'b': Status.FAIL, 'c': Status.ERROR, 'd': Status.SKIPPED,
        })
        assert (report.passed, report.failed, report.errored, report.skipped, report.total) == (1, 1, 1, 1, 4)
        assert report.health_percentage == 25

    def test_missing_result_reported_skipped(self):
        rules = [make_rule('a'), make_rule('b')]
        report = summarize(rules, {'a': result('a', Status.PASS)})
        assert report.result_for('b').status == Status.SKIPPED
        assert "not verified" in report.result_for('b').detail
        assert report.total == 2

    def test_rules_in_declaration_order(self):
        rules = [make_rule('z'), make_rule('a'), make_rule('m')]
        results = {r.id: result(r.id, Status.PASS) for r in rules}
        report = summarize(rules, results)
        assert [s.rule_id for s in report.rules] == ['z', 'a', 'm']

    def test_summary_carries_rule_metadata(self):
        rules = [make_rule('a', severity=Severity.INFORMATIONAL)]
        report = summarize(rules, {'a': result('a', Status.FAIL)})
        assert report.rules[0].severity == Severity.INFORMATIONAL
        assert blocking_failures(report) == []


class TestRenderers:
    """Machine and human forms."""

    def test_json_structure(self):
        action = RepairAction(rule_id='b', pre_state_snapshot='abc', outcome=Outcome.FIXED,
                              side_effects=('package.json',))
        report = report_with({'a': Status.PASS, 'b': Status.PASS}, mode=RunMode.REPAIR, actions=[action])
        data = json.loads(json.dumps(to_json_dict(report)))

        assert data['mode'] == 'repair'
        assert data['verdict'] == 'healthy'
        assert data['exit_code'] == 0
        assert data['summary']['passed'] == 2
        assert data['rules'][0] == {
            'rule_id': 'a', 'category': 'structure', 'severity': 'blocking',
            'status': 'pass', 'detail': 'detail', 'in_scope': True,
        }
        assert data['summary']['excluded'] == 0
        assert data['actions'][0]['outcome'] == 'fixed'
        assert data['actions'][0]['side_effects'] == ['package.json']

    def test_console_output(self):
        report = report_with({'a': Status.PASS, 'b': Status.FAIL})
        text = strip_ansi(generate_console_output(report))
        assert "✅ a" in text
        assert "❌ b" in text
        assert "Passed 1/2" in text
        assert "Health: 50% (degraded)" in text

    def test_console_lists_blocking_failures(self):
        rules = [make_rule('a'), make_rule('b'), make_rule('info', severity=Severity.INFORMATIONAL)]
        report = summarize(rules, {
            'a': result('a', Status.PASS),
            'b': result('b', Status.ERROR),
            'info': result('info', Status.FAIL),
        })
        blocking_line = [l for l in strip_ansi(generate_console_output(report)).splitlines() if "Blocking" in l]
        assert blocking_line == ["🧱 Blocking: b"]

    def test_console_counts_out_of_scope(self):
        rules = [make_rule('a'), make_rule('php')]
        report = summarize(rules, {
            'a': result('a', Status.PASS),
            'php': result('php', Status.SKIPPED, "disabled by configuration", in_scope=False),
        })
        text = strip_ansi(generate_console_output(report))
        assert "Passed 1/1" in text
        assert "(1 out of scope)" in text
        assert "Blocking" not in text

    def test_console_verbose_shows_passing_detail(self):
        report = summarize([make_rule('a')], {'a': result('a', Status.PASS, "everything fine")})
        assert "everything fine" not in generate_console_output(report)
        assert "everything fine" in generate_console_output(report, verbose=True)

    def test_revert_failure_banner(self):
        action = RepairAction(rule_id='a', pre_state_snapshot='abc', outcome=Outcome.FAILED,
                              error='[a] fix raised', revert_attempted=True,
                              revert_error='Could not restore package.json')
        report = report_with({'a': Status.FAIL}, mode=RunMode.REPAIR, actions=[action])
        assert REVERT_MARKER in strip_ansi(generate_console_output(report))
        assert REVERT_MARKER in generate_markdown_report(report)

    def test_markdown_report(self):
        report = report_with({'a': Status.PASS, 'b': Status.FAIL})
        text = generate_markdown_report(report)
        assert text.startswith("# Toolguard Report")
        assert "| `b` | structure | blocking | ❌ fail | detail |" in text
        assert "**Health**: 50%" in text
        assert "**Excluded**: 0" in text

    def test_markdown_escapes_pipes(self):
        report = summarize([make_rule('a')], {'a': result('a', Status.FAIL, "a | b\nc")})
        assert "a \\| b c" in generate_markdown_report(report)


class TestDoctorOutput:
    """Doctor explains every rule that is not passing."""

    def test_healthy(self):
        report = report_with({'a': Status.PASS}, mode=RunMode.DOCTOR)
        assert "No problems found" in strip_ansi(generate_doctor_output(report, [make_rule('a')]))

    def test_detect_only_needs_manual_action(self):
        rules = [make_rule('a', fixable=False, remediation="Install Node.js 18+")]
        report = summarize(rules, {'a': result('a', Status.FAIL)}, mode=RunMode.DOCTOR)
        text = strip_ansi(generate_doctor_output(report, rules))
        assert "manual action required" in text
        assert "How to fix: Install Node.js 18+" in text

    def test_blocked_repair_names_prerequisites(self):
        rules = [make_rule('git'), make_rule('hooks', prerequisites={'git'})]
        action = RepairAction(rule_id='hooks', pre_state_snapshot='', outcome=Outcome.SKIPPED_PREREQ_FAILED)
        report = summarize(
            rules,
            {'git': result('git', Status.FAIL), 'hooks': result('hooks', Status.FAIL)},
            [action],
            mode=RunMode.DOCTOR,
        )
        text = strip_ansi(generate_doctor_output(report, rules))
        assert "Repair: skipped_prereq_failed" in text
        assert "Blocked by: git" in text

    def test_blocking_failures_listed_first(self):
        rules = [make_rule('git'), make_rule('info', severity=Severity.INFORMATIONAL)]
        report = summarize(rules, {'git': result('git', Status.FAIL), 'info': result('info', Status.FAIL)})
        lines = strip_ansi(generate_doctor_output(report, rules)).splitlines()
        assert lines[2] == "Blocking failures (1): git"

    def test_passing_rules_not_listed(self):
        rules = [make_rule('ok'), make_rule('bad')]
        report = summarize(rules, {'ok': result('ok', Status.PASS), 'bad': result('bad', Status.FAIL)})
        text = strip_ansi(generate_doctor_output(report, rules))
        assert " bad " in text
        assert " ok " not in text


class TestSaveReport:
    """Reports written to disk."""

    def test_markdown(self, tmp_path):
        report = report_with({'a': Status.PASS})
        written = save_report(report, tmp_path / "reports")
        assert len(written) == 1
        assert written[0].name.startswith("toolguard_validate_")
        assert written[0].suffix == ".md"

    def test_both(self, tmp_path):
        report = report_with({'a': Status.PASS}, mode=RunMode.REPAIR)
        written = save_report(report, tmp_path, format='both')
        assert sorted(p.suffix for p in written) == ['.json', '.md']
        data = json.loads([p for p in written if p.suffix == '.json'][0].read_text())
        assert data['mode'] == 'repair'
