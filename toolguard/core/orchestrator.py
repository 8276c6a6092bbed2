"""
Run orchestrator: drives one invocation through its state machine.

    Init -> Ordering -> Probing -> (Repairing -> Reprobing)? -> Reporting -> Done
                  \\
                   -> Failed   (catalog fault, exit 3, no report)

The orchestrator owns every CheckResult and RepairAction of the invocation.
Repairs run strictly sequentially in dependency order; only probing may run
on a thread pool.

Concurrent invocations against the same project are not supported. No lock
is taken, so two runs repairing the same file can overwrite each other.
"""

import logging
import time
from enum import Enum
from typing import Dict, List, Optional, Sequence, Set

from .catalog import RuleCatalog
from .context import ProjectContext
from .errors import CatalogError
from .executor import RepairExecutor
from .models import CheckResult, Outcome, Phase, RepairAction, Rule, RunMode, RunReport, Status
from .prober import StateProber
from .reporting import EXIT_CATALOG_FAULT, exit_code_for, summarize
from .signal_handlers import CancellationToken


logger = logging.getLogger(__name__)


class RunState(str, Enum):
    INIT = "init"
    ORDERING = "ordering"
    PROBING = "probing"
    REPAIRING = "repairing"
    REPROBING = "reprobing"
    REPORTING = "reporting"
    DONE = "done"
    FAILED = "failed"


ALLOWED_TRANSITIONS = {
    RunState.INIT: {RunState.ORDERING},
    RunState.ORDERING: {RunState.PROBING, RunState.FAILED},
    RunState.PROBING: {RunState.REPAIRING, RunState.REPORTING},
    RunState.REPAIRING: {RunState.REPROBING},
    RunState.REPROBING: {RunState.REPORTING},
    RunState.REPORTING: {RunState.DONE},
    RunState.DONE: set(),
    RunState.FAILED: set(),
}


class RunOrchestrator:
    """
    Validates, repairs or diagnoses a project against a rule catalog.

    Args:
        catalog: Rule catalog (validated on first use)
        ctx: Project context
        prober: State prober (default: parallel, no disabled rules)
        token: Cancellation token (default: the prober's token)
        executor: Repair executor (default: built on the prober)

    Example:
        orchestrator = RunOrchestrator(build_default_catalog(), build_context("."))
        report = orchestrator.run(RunMode.REPAIR)
    """

    def __init__(
        self,
        catalog: RuleCatalog,
        ctx: ProjectContext,
        prober: Optional[StateProber] = None,
        token: Optional[CancellationToken] = None,
        executor: Optional[RepairExecutor] = None,
    ):
        self.catalog = catalog
        self.ctx = ctx
        self.token = token or (prober.token if prober else CancellationToken())
        self.prober = prober or StateProber(token=self.token)
        self.prober.token = self.token
        self.executor = executor or RepairExecutor(self.prober)
        self.state = RunState.INIT
        self.transitions: List[RunState] = [RunState.INIT]
        self.last_report: Optional[RunReport] = None

    def _enter(self, state: RunState):
        if state not in ALLOWED_TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal transition {self.state.value} -> {state.value}")
        logger.debug(f"Run state: {self.state.value} -> {state.value}")
        self.state = state
        self.transitions.append(state)

    def _reset(self):
        self.state = RunState.INIT
        self.transitions = [RunState.INIT]

    def run(self, mode: RunMode = RunMode.VALIDATE) -> RunReport:
        """
        Execute one invocation.

        Args:
            mode: validate, repair or doctor

        Returns:
            RunReport (the only artifact of the run)

        Raises:
            CatalogError: If the catalog is invalid (state ends in Failed)
        """
        start_time = time.time()
        self._reset()
        mode = RunMode(mode)

        self._enter(RunState.ORDERING)
        try:
            rules = self.catalog.list_rules()
            ordered = self.catalog.ordered_rules()
        except CatalogError:
            self._enter(RunState.FAILED)
            raise

        self._enter(RunState.PROBING)
        history: List[CheckResult] = []
        initial = self.prober.probe_all(ordered, self.ctx, Phase.PROBE)
        history.extend(initial)
        current: Dict[str, CheckResult] = {r.rule_id: r for r in initial}

        actions: List[RepairAction] = []
        needs_repair = any(r.failing for r in initial)

        if mode.repairs and needs_repair and not self.token.cancelled:
            self._enter(RunState.REPAIRING)
            actions = self._repair_all(ordered, current, history)

            self._enter(RunState.REPROBING)
            if not self.token.cancelled:
                self._reprobe(ordered, initial, actions, current, history)
            else:
                logger.warning(
                    f"Run cancelled ({self.token.reason}); reporting verified statuses only",
                    extra={'error_code': 'RT-06'}
                )

        self._enter(RunState.REPORTING)
        report = summarize(
            rules,
            current,
            actions,
            mode=mode,
            history=history,
            cancelled=self.token.cancelled,
            execution_time=time.time() - start_time,
        )
        self._enter(RunState.DONE)

        logger.info(
            f"{mode.value}: {report.passed}/{report.total} passed, "
            f"health {report.health_percentage}% ({report.verdict.value})"
        )
        return report

    def _repair_all(
        self,
        ordered: Sequence[Rule],
        current: Dict[str, CheckResult],
        history: List[CheckResult],
    ) -> List[RepairAction]:
        actions = []
        for rule in ordered:
            if self.token.cancelled:
                logger.warning(
                    f"Cancellation requested; not repairing {rule.id} or later rules",
                    extra={'error_code': 'RT-06', 'rule_id': rule.id}
                )
                break

            result = current[rule.id]
            if not result.failing or not rule.fixable:
                continue

            action = self.executor.repair(rule, result, self.ctx, current)
            actions.append(action)
            for check in self.executor.last_checks:
                history.append(check)
                current[check.rule_id] = check

        return actions

    def _reprobe(
        self,
        ordered: Sequence[Rule],
        initial: List[CheckResult],
        actions: List[RepairAction],
        current: Dict[str, CheckResult],
        history: List[CheckResult],
    ):
        """
        Re-probe rules whose fix converged plus direct dependents of any rule
        whose status changed during repair.
        """
        before = {r.rule_id: r.status for r in initial}
        changed = {rule_id for rule_id, result in current.items() if result.status != before[rule_id]}
        targets: Set[str] = {
            a.rule_id for a in actions
            if a.outcome in (Outcome.FIXED, Outcome.NO_OP_ALREADY_FIXED)
        }
        targets.update(rule.id for rule in ordered if rule.prerequisites & changed)

        to_probe = [rule for rule in ordered if rule.id in targets]
        if not to_probe:
            return

        for result in self.prober.probe_all(to_probe, self.ctx, Phase.REPROBE):
            history.append(result)
            # keep the verified result if cancellation arrived mid re-probe
            if result.rule_id in current and self.token.cancelled and result.status == Status.SKIPPED:
                continue
            current[result.rule_id] = result

    def execute(self, mode: RunMode = RunMode.VALIDATE) -> int:
        """
        Run and map the outcome to an exit code.

        Returns:
            0 healthy, 1 degraded, 2 broken, 3 catalog fault
        """
        try:
            report = self.run(mode)
        except CatalogError:
            return EXIT_CATALOG_FAULT
        self.last_report = report
        return exit_code_for(report.verdict)
