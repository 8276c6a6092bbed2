"""
State prober: evaluates rules against the live project.

A probe is read-only. It may read files, parse config fragments or run a
`--version` style subprocess under the probe timeout, but it never writes.

Status mapping:
- probe returns (True, detail)  -> pass
- probe returns (False, detail) -> fail (state is known and wrong)
- probe raises (timeout, missing tool, crash, malformed input) -> error
- rule not applicable / disabled / run cancelled -> skipped

Because probes are side-effect-free they may be dispatched concurrently;
results always come back in input order so parallelism never changes what
callers observe.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from multiprocessing import cpu_count
from typing import Dict, Iterable, List, Optional, Sequence

from .context import ProjectContext
from .errors import ProbeError, ToolError, ToolNotFoundError, ToolTimeoutError
from .models import CheckResult, Phase, Rule, Status
from .signal_handlers import CancellationToken


logger = logging.getLogger(__name__)

MAX_PROBE_WORKERS = 8

DISABLED_DETAIL = "disabled by configuration"
NOT_APPLICABLE_DETAIL = "not applicable to this project"
CANCELLED_DETAIL = "run cancelled before probe"


def default_max_workers() -> int:
    """Number of processing units, capped at 8."""
    try:
        return max(1, min(cpu_count(), MAX_PROBE_WORKERS))
    except NotImplementedError:
        return 1


def _error_detail(error: Exception) -> str:
    detail = str(error)
    stderr_tail = getattr(error, 'stderr_tail', '')
    if stderr_tail:
        detail = f"{detail}\n{stderr_tail}"
    return detail


class StateProber:
    """
    Runs rule probes and records CheckResults.

    Args:
        parallel: Dispatch probe_all() on a thread pool
        max_workers: Pool size (default: min(cpu_count, 8))
        token: Cancellation token; unprobed rules become skipped once set
        disabled: Rule ids reported as skipped without probing
    """

    def __init__(
        self,
        parallel: bool = True,
        max_workers: Optional[int] = None,
        token: Optional[CancellationToken] = None,
        disabled: Iterable[str] = (),
    ):
        self.parallel = parallel
        self.max_workers = min(max_workers or default_max_workers(), MAX_PROBE_WORKERS)
        self.token = token or CancellationToken()
        self.disabled = frozenset(disabled)

    def _result(
        self,
        rule: Rule,
        status: Status,
        detail: str,
        phase: Phase,
        started: float,
        in_scope: bool = True,
    ) -> CheckResult:
        return CheckResult(
            rule_id=rule.id,
            status=status,
            detail=detail,
            phase=phase,
            duration=time.monotonic() - started,
            in_scope=in_scope,
        )

    def probe(self, rule: Rule, ctx: ProjectContext, phase: Phase = Phase.PROBE) -> CheckResult:
        """
        Probe one rule.

        Never raises: every failure mode is folded into the CheckResult.

        Args:
            rule: Rule to evaluate
            ctx: Read-only project context
            phase: Why the probe runs (initial, verification, re-probe)

        Returns:
            New CheckResult
        """
        started = time.monotonic()
        extra = {'rule_id': rule.id, 'category': rule.category.value}

        if rule.id in self.disabled:
            return self._result(rule, Status.SKIPPED, DISABLED_DETAIL, phase, started, in_scope=False)

        try:
            if rule.applies_to is not None and not rule.applies_to(ctx):
                return self._result(rule, Status.SKIPPED, NOT_APPLICABLE_DETAIL, phase, started, in_scope=False)

            outcome = rule.probe(ctx)
            passed, detail = outcome
            if not isinstance(passed, bool):
                raise ProbeError(f"probe returned non-boolean verdict {passed!r}")

        except ToolTimeoutError as e:
            logger.warning(str(e), extra={**extra, 'error_code': 'PRB-01'})
            return self._result(rule, Status.ERROR, _error_detail(e), phase, started)
        except ToolNotFoundError as e:
            logger.warning(str(e), extra={**extra, 'error_code': 'PRB-02'})
            return self._result(rule, Status.ERROR, _error_detail(e), phase, started)
        except (ToolError, ProbeError) as e:
            logger.warning(str(e), extra={**extra, 'error_code': 'PRB-03'})
            return self._result(rule, Status.ERROR, _error_detail(e), phase, started)
        except Exception as e:
            logger.error(
                f"Probe raised {type(e).__name__}: {e}",
                extra={**extra, 'error_code': 'PRB-03'},
                exc_info=logger.isEnabledFor(logging.DEBUG),
            )
            return self._result(
                rule, Status.ERROR, f"probe raised {type(e).__name__}: {e}", phase, started
            )

        status = Status.PASS if passed else Status.FAIL
        logger.debug(f"{status.value}: {detail}", extra=extra)
        return self._result(rule, status, str(detail), phase, started)

    def _probe_unless_cancelled(self, rule: Rule, ctx: ProjectContext, phase: Phase) -> CheckResult:
        if self.token.cancelled:
            return CheckResult(rule_id=rule.id, status=Status.SKIPPED, detail=CANCELLED_DETAIL, phase=phase)
        return self.probe(rule, ctx, phase)

    def probe_all(
        self,
        rules: Sequence[Rule],
        ctx: ProjectContext,
        phase: Phase = Phase.PROBE
    ) -> List[CheckResult]:
        """
        Probe many rules, possibly concurrently.

        Args:
            rules: Rules to probe
            ctx: Read-only project context
            phase: Phase recorded on every result

        Returns:
            CheckResults in the same order as rules
        """
        if not self.parallel or len(rules) <= 1 or self.max_workers <= 1:
            return [self._probe_unless_cancelled(rule, ctx, phase) for rule in rules]

        results: Dict[int, CheckResult] = {}

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            future_to_index = {
                executor.submit(self._probe_unless_cancelled, rule, ctx, phase): i
                for i, rule in enumerate(rules)
            }

            for future in as_completed(future_to_index):
                i = future_to_index[future]
                try:
                    results[i] = future.result()
                except Exception as e:
                    results[i] = CheckResult(
                        rule_id=rules[i].id,
                        status=Status.ERROR,
                        detail=f"parallel probe failed: {e}",
                        phase=phase,
                    )

        return [results[i] for i in range(len(rules))]
