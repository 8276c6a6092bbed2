"""
Core data model for the Toolguard engine.

Four entity kinds live for exactly one invocation and are owned by the
run orchestrator:

- Rule: immutable check/fix definition from the catalog
- CheckResult: one probe outcome (append-only history per run)
- RepairAction: record of one attempted fix
- RunReport: aggregate handed across the external interface

All of them are frozen dataclasses; a re-probe produces a new CheckResult
rather than mutating an old one.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, FrozenSet, Iterable, Optional, Tuple


class Category(str, Enum):
    """Rule category."""
    PREREQUISITE = "prerequisite"
    STRUCTURE = "structure"
    HOOKS = "hooks"
    LINT = "lint"
    RELEASE = "release"
    SECURITY = "security"
    IDE = "ide"


class Severity(str, Enum):
    """How much a failing rule hurts the overall verdict."""
    BLOCKING = "blocking"
    WARNING = "warning"
    INFORMATIONAL = "informational"


class Status(str, Enum):
    """
    Probe verdict.

    FAIL means the state is well-defined and deterministically wrong.
    ERROR means the state could not be determined (tool timeout, crash).
    """
    PASS = "pass"
    FAIL = "fail"
    SKIPPED = "skipped"
    ERROR = "error"


class Outcome(str, Enum):
    """Outcome of a repair attempt."""
    FIXED = "fixed"
    FAILED = "failed"
    SKIPPED_PREREQ_FAILED = "skipped_prereq_failed"
    NO_OP_ALREADY_FIXED = "no_op_already_fixed"


class Verdict(str, Enum):
    """Overall project health."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    BROKEN = "broken"


class RunMode(str, Enum):
    """Invocation modes exposed to the CLI front end."""
    VALIDATE = "validate"
    REPAIR = "repair"
    DOCTOR = "doctor"

    @property
    def repairs(self) -> bool:
        return self in (RunMode.REPAIR, RunMode.DOCTOR)


class Phase(str, Enum):
    """When a CheckResult was produced."""
    PROBE = "probe"
    PRECHECK = "precheck"
    VERIFY = "verify"
    REPROBE = "reprobe"


# probe(ctx) -> (passed, detail); raising means "could not determine"
ProbeFn = Callable[[Any], Tuple[bool, str]]
# fix(ctx) -> optional iterable of extra relative paths touched
FixFn = Callable[[Any], Optional[Iterable[str]]]


def now_iso() -> str:
    return datetime.now().isoformat()


@dataclass(frozen=True)
class Rule:
    """
    Immutable rule definition.

    Attributes:
        id: Stable identifier, e.g. "hooks.pre_commit"
        category: Category of configuration this rule guards
        severity: Impact of a failure on the verdict
        description: One-line human description
        probe: Read-only check, returns (passed, detail)
        fix: Optional mutating repair; None means detect-only
        prerequisites: Rule ids that must pass before this fix may run
        targets: Relative paths the fix may touch (snapshot scope)
        applies_to: Optional predicate on the ProjectContext; rules that do
            not apply are reported as skipped
        remediation: Manual instructions shown by the doctor mode
    """
    id: str
    category: Category
    severity: Severity
    description: str
    probe: ProbeFn = field(compare=False, repr=False)
    fix: Optional[FixFn] = field(default=None, compare=False, repr=False)
    prerequisites: FrozenSet[str] = frozenset()
    targets: Tuple[str, ...] = ()
    applies_to: Optional[Callable[[Any], bool]] = field(default=None, compare=False, repr=False)
    remediation: str = ""

    def __post_init__(self):
        # Accept plain lists/sets from rule modules and tests
        if not isinstance(self.prerequisites, frozenset):
            object.__setattr__(self, 'prerequisites', frozenset(self.prerequisites))
        if not isinstance(self.targets, tuple):
            object.__setattr__(self, 'targets', tuple(self.targets))

    @property
    def fixable(self) -> bool:
        return self.fix is not None


@dataclass(frozen=True)
class CheckResult:
    """
    Outcome of probing one rule once.

    A result that is not in scope (rule disabled by configuration or not
    applicable to the project) is listed in reports but left out of the
    summary counts.
    """
    rule_id: str
    status: Status
    detail: str
    timestamp: str = field(default_factory=now_iso)
    phase: Phase = Phase.PROBE
    duration: float = 0.0
    in_scope: bool = True

    @property
    def passed(self) -> bool:
        return self.status == Status.PASS

    @property
    def failing(self) -> bool:
        """Fail and error are both eligible for repair."""
        return self.status in (Status.FAIL, Status.ERROR)


@dataclass(frozen=True)
class RepairAction:
    """
    Record of one attempted fix.

    Attributes:
        rule_id: Rule the fix belongs to
        pre_state_snapshot: Digest token of the targets before the fix
        outcome: What happened
        side_effects: Relative paths that changed
        error: Present iff outcome is FAILED
        revert_attempted: True if a rollback was tried after the fix raised
        revert_error: Set when the rollback could not restore prior state
    """
    rule_id: str
    pre_state_snapshot: str
    outcome: Outcome
    side_effects: Tuple[str, ...] = ()
    error: Optional[str] = None
    revert_attempted: bool = False
    revert_error: Optional[str] = None
    timestamp: str = field(default_factory=now_iso)

    def __post_init__(self):
        if (self.outcome == Outcome.FAILED) != (self.error is not None):
            raise ValueError(
                f"RepairAction for {self.rule_id}: error must be set "
                f"iff outcome is failed (outcome={self.outcome.value})"
            )

    @property
    def converged(self) -> bool:
        return self.outcome in (Outcome.FIXED, Outcome.NO_OP_ALREADY_FIXED)


@dataclass(frozen=True)
class RuleSummary:
    """Final per-rule line of a report (structured output row)."""
    rule_id: str
    category: Category
    severity: Severity
    status: Status
    detail: str
    in_scope: bool = True


@dataclass(frozen=True)
class RunReport:
    """
    Aggregate result of one invocation.

    Attributes:
        mode: validate, repair or doctor
        rules: Final state per rule, catalog declaration order
        results: Final CheckResult per rule, same order as rules
        actions: RepairActions in repair order
        history: Every CheckResult produced during the run, append order
        passed / failed / errored / skipped / total: Summary counts over
            in-scope rules
        excluded: Rules disabled by configuration or not applicable
        health_percentage: passed / total, whole percent
        verdict: healthy, degraded or broken
        cancelled: True if the run was interrupted
    """
    mode: RunMode
    rules: Tuple[RuleSummary, ...]
    results: Tuple[CheckResult, ...]
    actions: Tuple[RepairAction, ...]
    history: Tuple[CheckResult, ...]
    passed: int
    failed: int
    errored: int
    skipped: int
    total: int
    health_percentage: int
    verdict: Verdict
    excluded: int = 0
    cancelled: bool = False
    timestamp: str = field(default_factory=now_iso)
    execution_time: float = 0.0

    @property
    def revert_failures(self) -> Tuple[RepairAction, ...]:
        return tuple(a for a in self.actions if a.revert_error)

    def result_for(self, rule_id: str) -> CheckResult:
        for result in self.results:
            if result.rule_id == rule_id:
                return result
        raise KeyError(rule_id)

    def action_for(self, rule_id: str) -> Optional[RepairAction]:
        for action in self.actions:
            if action.rule_id == rule_id:
                return action
        return None

    def count_outcome(self, outcome: Outcome) -> int:
        return sum(1 for a in self.actions if a.outcome == outcome)
