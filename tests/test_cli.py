"""
Test suite for the toolguard command line.

Tests:
1. Exit codes per verdict, catalog fault and configuration error
2. Machine-readable JSON on stdout
3. --only / --skip rule selection
4. Report files and config discovery
"""

import json
from unittest.mock import patch

import pytest

from toolguard import repair
from toolguard.core.errors import CatalogError
from toolguard.core.reporting import EXIT_CATALOG_FAULT, EXIT_CONFIG_ERROR
from toolguard.core.signal_handlers import shutdown_manager

from conftest import OFFLINE_DISABLED


SKIP = ','.join(OFFLINE_DISABLED)


def main(*argv):
    return repair.main(list(argv))


class TestModes:
    """validate, repair, doctor."""

    def test_validate_broken_project(self, node_project, capsys):
        code = main('--validate', '--root', str(node_project), '--skip', SKIP)
        assert code == 2
        out = capsys.readouterr().out
        assert "Toolguard validate report" in out
        assert "hooks.husky_dir" in out

    def test_validate_is_default(self, node_project):
        assert main('--root', str(node_project), '--skip', SKIP, '-q') == 2
        assert not (node_project / ".husky").exists()

    def test_repair_then_validate(self, node_project, capsys):
        assert main('--repair', '--root', str(node_project), '--skip', SKIP) == 1
        out = capsys.readouterr().out
        assert "Repair summary" in out
        # only the informational eslint execution check remains
        assert main('--validate', '--root', str(node_project), '--skip', SKIP, '-q') == 1

    def test_doctor(self, node_project, capsys):
        main('--doctor', '--root', str(node_project), '--skip', SKIP)
        out = capsys.readouterr().out
        assert "Toolguard doctor" in out
        assert "lint.eslint_runs" in out
        assert "manual action required" in out

    def test_signal_handlers_restored(self, node_project):
        main('--root', str(node_project), '--skip', SKIP, '-q')
        assert not shutdown_manager._installed


class TestJsonOutput:
    """--json prints exactly one JSON document on stdout."""

    def test_json_document(self, node_project, capsys):
        code = main('--json', '--root', str(node_project), '--skip', SKIP)
        data = json.loads(capsys.readouterr().out)
        assert data['mode'] == 'validate'
        assert data['exit_code'] == code == 2
        assert data['summary']['total'] == 19
        assert data['summary']['excluded'] == 6
        assert {r['rule_id'] for r in data['rules'] if r['status'] == 'skipped'} >= set(OFFLINE_DISABLED)

    def test_json_with_verbose_logs_keeps_stdout_clean(self, node_project, capsys):
        main('--json', '-v', '--root', str(node_project), '--skip', SKIP)
        json.loads(capsys.readouterr().out)


class TestRuleSelection:
    """--only keeps prerequisites; --skip reports rules as skipped."""

    def test_only_includes_prerequisites(self, node_project, capsys):
        code = main('--json', '--root', str(node_project), '--only', 'hooks.pre_commit')
        data = json.loads(capsys.readouterr().out)
        active = {r['rule_id'] for r in data['rules'] if r['status'] != 'skipped'}
        assert active == {'project.manifest', 'git.repository', 'hooks.husky_dir', 'hooks.pre_commit'}
        assert data['summary']['total'] == 4
        assert data['summary']['health_percentage'] == 50
        assert code == 1

    def test_unknown_rule_id(self, node_project, capsys):
        assert main('--root', str(node_project), '--skip', 'no.such_rule') == EXIT_CONFIG_ERROR
        assert "no.such_rule" in capsys.readouterr().err

    def test_list(self, capsys):
        assert main('--list') == 0
        out = capsys.readouterr().out
        assert out.index('git.repository') < out.index('hooks.husky_dir')
        assert "detect-only" in out

    def test_list_marks_skipped(self, capsys):
        main('--list', '--skip', 'php.dev_tools')
        line = [l for l in capsys.readouterr().out.splitlines() if 'php.dev_tools' in l][0]
        assert "skipped" in line


class TestErrors:
    """Exit codes 3 and 4."""

    def test_usage_error_exits_config_error(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main('--validate', '--repair')
        assert exc_info.value.code == EXIT_CONFIG_ERROR

    def test_missing_root(self, tmp_path):
        assert main('--root', str(tmp_path / "missing")) == EXIT_CONFIG_ERROR

    def test_invalid_config(self, node_project, capsys):
        (node_project / "toolguard.yaml").write_text("engine:\n  probe_timeout: fast\n")
        assert main('--root', str(node_project)) == EXIT_CONFIG_ERROR
        assert "probe_timeout" in capsys.readouterr().err

    def test_missing_config_file(self, tmp_path):
        assert main('--config', str(tmp_path / "nope.yaml")) == EXIT_CONFIG_ERROR

    def test_bad_worker_count(self, node_project):
        assert main('--root', str(node_project), '--max-workers', '0') == EXIT_CONFIG_ERROR

    def test_catalog_fault(self, node_project, capsys):
        fault = CatalogError(CatalogError.CYCLE, "prerequisite cycle among: a, b", ['a', 'b'])
        with patch('toolguard.repair.RunOrchestrator.run', side_effect=fault):
            assert main('--root', str(node_project), '--skip', SKIP) == EXIT_CATALOG_FAULT
        assert "cycle" in capsys.readouterr().err


class TestConfigAndReports:
    """Config discovery and report files."""

    def test_config_discovered_in_root(self, node_project, capsys):
        (node_project / "toolguard.yaml").write_text(
            "rules:\n  disabled:\n" + "".join(f"    - {rule_id}\n" for rule_id in OFFLINE_DISABLED)
        )
        main('--json', '--root', str(node_project))
        data = json.loads(capsys.readouterr().out)
        statuses = {r['rule_id']: r['status'] for r in data['rules']}
        assert all(statuses[rule_id] == 'skipped' for rule_id in OFFLINE_DISABLED)

    def test_output_markdown(self, node_project, tmp_path):
        target = tmp_path / "out" / "report.md"
        main('--root', str(node_project), '--skip', SKIP, '-q', '--output', str(target))
        assert target.read_text().startswith("# Toolguard Report")

    def test_output_both(self, node_project, tmp_path):
        target = tmp_path / "report.md"
        main('--root', str(node_project), '--skip', SKIP, '-q', '--output', str(target), '--format', 'both')
        data = json.loads((tmp_path / "report.json").read_text())
        assert data['verdict'] == 'broken'

    def test_output_dir_from_config(self, node_project):
        (node_project / "toolguard.toml").write_text(
            '[reporting]\noutput_dir = "reports"\nformat = "json"\n\n'
            '[rules]\ndisabled = ["node.runtime", "lint.dev_dependencies", "security.env_untracked"]\n'
        )
        main('--root', str(node_project), '-q')
        written = list((node_project / "reports").glob("toolguard_validate_*.json"))
        assert len(written) == 1
