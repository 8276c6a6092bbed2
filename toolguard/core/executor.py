"""
Repair executor: snapshot -> apply -> verify -> commit or revert.

Ordering guarantee: a fix never runs unless every prerequisite of its rule
currently passes. Otherwise the action is skipped_prereq_failed and the fix
procedure is not invoked at all.

Idempotence: the rule is re-probed right before the fix. If an earlier fix
already satisfied it, the action is no_op_already_fixed and the fix is not
invoked. A fix that runs but leaves its targets byte-identical is also
reported as no_op_already_fixed.

Failure containment: a fix that raises is reported as failed and its targets
are restored from the snapshot. A failed restore is logged (RPR-03) and
flagged on the action; it never aborts the run.
"""

import logging
from dataclasses import replace
from typing import Mapping, Optional, Tuple

from .context import ProjectContext
from .errors import RepairError, RevertError
from .logger import RuleLogger
from .models import CheckResult, Outcome, Phase, RepairAction, Rule, Status
from .prober import StateProber
from .snapshot import PathSecurityError, Snapshot, capture, restore


logger = logging.getLogger(__name__)


class RepairExecutor:
    """
    Applies one rule's fix under the snapshot/verify/revert discipline.

    Args:
        prober: Prober used for the pre-check and verification probes
    """

    def __init__(self, prober: StateProber):
        self.prober = prober
        # Verification results of the last repair() call, for the caller's history
        self.last_checks: Tuple[CheckResult, ...] = ()

    def repair(
        self,
        rule: Rule,
        prior_result: CheckResult,
        ctx: ProjectContext,
        current_results: Mapping[str, CheckResult],
    ) -> RepairAction:
        """
        Attempt to fix a failing rule.

        Args:
            rule: Rule to repair (must have a fix)
            prior_result: The rule's latest CheckResult (fail or error)
            ctx: Project context
            current_results: Latest CheckResult per rule id

        Returns:
            RepairAction describing what happened

        Raises:
            ValueError: If called for a passing or detect-only rule
        """
        if not prior_result.failing:
            raise ValueError(f"{rule.id}: repair requires a failing result, got {prior_result.status.value}")
        if rule.fix is None:
            raise ValueError(f"{rule.id}: rule is detect-only")

        self.last_checks = ()
        log = RuleLogger(rule.id, rule.category.value)

        blocked = [
            prereq for prereq in sorted(rule.prerequisites)
            if prereq not in current_results or current_results[prereq].status != Status.PASS
        ]
        if blocked:
            log.info(f"Skipping fix: prerequisite(s) not passing: {', '.join(blocked)}")
            return RepairAction(
                rule_id=rule.id,
                pre_state_snapshot=self._token_or_empty(ctx, rule),
                outcome=Outcome.SKIPPED_PREREQ_FAILED,
            )

        pre_check = self.prober.probe(rule, ctx, Phase.PRECHECK)
        if pre_check.passed:
            self.last_checks = (pre_check,)
            log.info("Already satisfied; fix not needed")
            return RepairAction(
                rule_id=rule.id,
                pre_state_snapshot=self._token_or_empty(ctx, rule),
                outcome=Outcome.NO_OP_ALREADY_FIXED,
            )

        try:
            before = capture(ctx.root, rule.targets)
        except (PathSecurityError, OSError) as e:
            log.error(f"Cannot snapshot targets: {e}", error_code='FS-09')
            return self._failed(rule, "", RepairError(rule.id, f"cannot snapshot targets: {e}"))

        log.operation_start("fix")
        try:
            touched = rule.fix(ctx)
        except Exception as e:
            log.error(f"Fix raised {type(e).__name__}: {e}", error_code='RPR-01')
            return self._revert_after_failure(rule, before, e, log)
        log.operation_complete("fix")

        try:
            after = capture(ctx.root, rule.targets)
        except (PathSecurityError, OSError) as e:
            log.error(f"Cannot inspect targets after fix: {e}", error_code='FS-09')
            return self._revert_after_failure(
                rule, before, RepairError(rule.id, f"cannot inspect targets after fix: {e}"), log
            )
        side_effects = list(before.changed_paths(after))
        for extra in touched or ():
            if str(extra) not in side_effects:
                side_effects.append(str(extra))

        check = self.prober.probe(rule, ctx, Phase.VERIFY)
        self.last_checks = (check,)

        if not check.passed:
            log.warning(f"Fix did not converge: {check.detail}", error_code='RPR-02')
            return RepairAction(
                rule_id=rule.id,
                pre_state_snapshot=before.token,
                outcome=Outcome.FAILED,
                side_effects=tuple(side_effects),
                error=str(RepairError(rule.id, f"still {check.status.value} after fix: {check.detail}")),
            )

        if rule.targets and not side_effects:
            outcome = Outcome.NO_OP_ALREADY_FIXED
        else:
            outcome = Outcome.FIXED
        log.info(f"{outcome.value}: {check.detail}")

        return RepairAction(
            rule_id=rule.id,
            pre_state_snapshot=before.token,
            outcome=outcome,
            side_effects=tuple(side_effects),
        )

    def _revert_after_failure(
        self,
        rule: Rule,
        before: Snapshot,
        error: Exception,
        log: RuleLogger
    ) -> RepairAction:
        revert_error: Optional[str] = None
        side_effects: Tuple[str, ...] = ()

        try:
            side_effects = before.changed_paths(capture(before.root, rule.targets))
        except (PathSecurityError, OSError) as e:
            log.warning(f"Cannot inspect targets after failed fix: {e}", operation="revert")

        try:
            restored = restore(before)
            if restored:
                log.info(f"Reverted: {', '.join(restored)}", operation="revert")
        except RevertError as e:
            revert_error = str(e)
            log.critical(
                f"Revert failed, manual inspection required: {e}",
                error_code='RPR-03',
                operation="revert"
            )

        action = self._failed(rule, before.token, error)
        return replace(
            action,
            side_effects=side_effects,
            revert_attempted=True,
            revert_error=revert_error,
        )

    @staticmethod
    def _failed(rule: Rule, token: str, error: Exception) -> RepairAction:
        if isinstance(error, RepairError):
            message = str(error)
        else:
            message = str(RepairError(rule.id, f"fix raised {type(error).__name__}: {error}"))
        return RepairAction(
            rule_id=rule.id,
            pre_state_snapshot=token,
            outcome=Outcome.FAILED,
            error=message,
        )

    @staticmethod
    def _token_or_empty(ctx: ProjectContext, rule: Rule) -> str:
        try:
            return capture(ctx.root, rule.targets).token
        except (PathSecurityError, OSError):
            return ""
