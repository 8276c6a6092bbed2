"""
Test suite for the state prober.

Tests:
1. pass / fail / error / skipped mapping
2. Tool timeouts and missing executables become error, never fail
3. Parallel probing returns results in input order
4. Cancellation turns unprobed rules into skipped
"""

import subprocess
import threading
import time
from unittest.mock import patch

import pytest

from toolguard.core.errors import ProbeError, ToolNotFoundError, ToolTimeoutError
from toolguard.core.models import Phase, Status
from toolguard.core.prober import (
    CANCELLED_DETAIL,
    DISABLED_DETAIL,
    MAX_PROBE_WORKERS,
    NOT_APPLICABLE_DETAIL,
    StateProber,
    default_max_workers,
)
from toolguard.core.signal_handlers import CancellationToken
from toolguard.core.tools import run_tool

from conftest import make_rule, set_flags


class TestStatusMapping:
    """Probe outcomes map onto the four statuses."""

    def test_pass(self, ctx, sequential_prober):
        set_flags(ctx.root, 'a')
        result = sequential_prober.probe(make_rule('a'), ctx)
        assert result.status == Status.PASS
        assert result.detail == "a ok"
        assert result.phase == Phase.PROBE

    def test_fail(self, ctx, sequential_prober):
        result = sequential_prober.probe(make_rule('a'), ctx)
        assert result.status == Status.FAIL
        assert result.failing

    def test_phase_recorded(self, ctx, sequential_prober):
        result = sequential_prober.probe(make_rule('a'), ctx, Phase.REPROBE)
        assert result.phase == Phase.REPROBE

    def test_probe_error_is_error(self, ctx, sequential_prober):
        """A probe that cannot determine state yields error, not fail."""
        def probe(ctx):
            raise ProbeError("package.json is not valid JSON")

        result = sequential_prober.probe(make_rule('a', probe=probe), ctx)
        assert result.status == Status.ERROR
        assert "not valid JSON" in result.detail

    def test_unexpected_exception_is_error(self, ctx, sequential_prober):
        """A crashing probe never propagates."""
        def probe(ctx):
            raise KeyError('scripts')

        result = sequential_prober.probe(make_rule('a', probe=probe), ctx)
        assert result.status == Status.ERROR
        assert "KeyError" in result.detail

    def test_non_boolean_verdict_is_error(self, ctx, sequential_prober):
        result = sequential_prober.probe(make_rule('a', probe=lambda ctx: ("yes", "detail")), ctx)
        assert result.status == Status.ERROR

    def test_disabled_rule_skipped(self, ctx):
        calls = []

        def probe(ctx):
            calls.append(1)
            return True, "ok"

        prober = StateProber(parallel=False, disabled={'a'})
        result = prober.probe(make_rule('a', probe=probe), ctx)
        assert result.status == Status.SKIPPED
        assert result.detail == DISABLED_DETAIL
        assert calls == []
        assert not result.in_scope

    def test_not_applicable_rule_skipped(self, ctx, sequential_prober):
        rule = make_rule('a', applies_to=lambda ctx: False)
        result = sequential_prober.probe(rule, ctx)
        assert result.status == Status.SKIPPED
        assert result.detail == NOT_APPLICABLE_DETAIL
        assert not result.in_scope


class TestExternalTools:
    """External tool failures are errors with evidence."""

    def test_timeout_is_error(self, ctx, sequential_prober):
        """A probe whose tool exceeds the timeout is error, not fail."""
        def probe(ctx):
            return ctx.run(['node', '--version']).ok, "node"

        with patch('toolguard.core.tools.shutil.which', return_value='/usr/bin/node'), \
                patch('toolguard.core.tools.subprocess.run') as mock_run:
            mock_run.side_effect = subprocess.TimeoutExpired('node', 5, stderr=b"still thinking\n")
            result = sequential_prober.probe(make_rule('a', probe=probe), ctx)

        assert result.status == Status.ERROR
        assert "timed out" in result.detail
        assert "still thinking" in result.detail

    def test_missing_tool_is_error(self, ctx, sequential_prober):
        def probe(ctx):
            return ctx.run(['definitely-not-a-tool', '--version']).ok, "tool"

        with patch('toolguard.core.tools.shutil.which', return_value=None):
            result = sequential_prober.probe(make_rule('a', probe=probe), ctx)

        assert result.status == Status.ERROR
        assert "not installed" in result.detail

    def test_run_tool_raises_typed_errors(self, tmp_path):
        with patch('toolguard.core.tools.shutil.which', return_value=None):
            with pytest.raises(ToolNotFoundError):
                run_tool(['npm', '--version'], cwd=tmp_path)

        with patch('toolguard.core.tools.shutil.which', return_value='/usr/bin/npm'), \
                patch('toolguard.core.tools.subprocess.run') as mock_run:
            mock_run.side_effect = subprocess.TimeoutExpired('npm', 1)
            with pytest.raises(ToolTimeoutError) as exc_info:
                run_tool(['npm', '--version'], cwd=tmp_path, timeout=1)
        assert exc_info.value.timeout == 1

    def test_run_tool_nonzero_exit_is_result(self, tmp_path):
        completed = subprocess.CompletedProcess(['git'], 128, stdout="", stderr="fatal: bad\n")
        with patch('toolguard.core.tools.shutil.which', return_value='/usr/bin/git'), \
                patch('toolguard.core.tools.subprocess.run', return_value=completed):
            result = run_tool(['git', 'status'], cwd=tmp_path)
        assert not result.ok
        assert result.stderr_tail() == "fatal: bad"


class TestProbeAll:
    """Batch probing."""

    def test_results_in_input_order(self, ctx):
        """Parallel completion order never leaks into the result order."""
        def slow_probe(delay, rule_id):
            def probe(ctx):
                time.sleep(delay)
                return True, rule_id
            return probe

        rules = [make_rule(f"r{i}", probe=slow_probe(0.05 * (5 - i), f"r{i}")) for i in range(5)]
        prober = StateProber(parallel=True, max_workers=4)
        results = prober.probe_all(rules, ctx)
        assert [r.rule_id for r in results] == [f"r{i}" for i in range(5)]
        assert all(r.status == Status.PASS for r in results)

    def test_parallel_matches_sequential(self, ctx):
        set_flags(ctx.root, 'b', 'd')
        rules = [make_rule(name) for name in 'abcde']
        sequential = StateProber(parallel=False).probe_all(rules, ctx)
        parallel = StateProber(parallel=True, max_workers=3).probe_all(rules, ctx)
        assert [(r.rule_id, r.status) for r in sequential] == [(r.rule_id, r.status) for r in parallel]

    def test_probes_actually_overlap(self, ctx):
        """With several workers, probes run concurrently."""
        barrier = threading.Barrier(3, timeout=5)

        def probe(ctx):
            barrier.wait()
            return True, "met"

        rules = [make_rule(f"r{i}", probe=probe) for i in range(3)]
        results = StateProber(parallel=True, max_workers=3).probe_all(rules, ctx)
        assert all(r.status == Status.PASS for r in results)

    def test_worker_cap(self):
        assert StateProber(max_workers=64).max_workers == MAX_PROBE_WORKERS
        assert 1 <= default_max_workers() <= MAX_PROBE_WORKERS

    def test_cancelled_token_skips_unprobed(self, ctx):
        token = CancellationToken()
        token.cancel("SIGINT")
        prober = StateProber(parallel=False, token=token)
        results = prober.probe_all([make_rule('a'), make_rule('b')], ctx)
        assert [r.status for r in results] == [Status.SKIPPED, Status.SKIPPED]
        assert results[0].detail == CANCELLED_DETAIL
        assert all(r.in_scope for r in results)

    def test_cancellation_mid_batch(self, ctx):
        """Rules probed before cancellation keep their real status."""
        token = CancellationToken()

        def cancelling_probe(ctx):
            token.cancel("SIGINT")
            return True, "done"

        rules = [make_rule('first', probe=cancelling_probe), make_rule('second')]
        results = StateProber(parallel=False, token=token).probe_all(rules, ctx)
        assert results[0].status == Status.PASS
        assert results[1].status == Status.SKIPPED

    def test_probe_is_read_only(self, ctx):
        """Probing never creates files."""
        rules = [make_rule(name) for name in 'abc']
        StateProber(parallel=True).probe_all(rules, ctx)
        assert list(ctx.root.iterdir()) == []
