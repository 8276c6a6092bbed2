"""
Exception taxonomy for Toolguard.

Only CatalogError aborts a run. Every other error kind is captured into the
per-rule CheckResult or RepairAction and the run continues, so one misbehaving
check never hides the state of the others.
"""

from typing import Iterable, Optional, Tuple


class ToolguardError(Exception):
    """Base class for all engine errors."""
    pass


class CatalogError(ToolguardError):
    """
    Rule catalog integrity fault (fatal, startup only).

    Attributes:
        kind: One of "cycle", "dangling_prerequisite", "duplicate_id"
        rule_ids: Rule ids involved in the fault, in a stable order
    """

    CYCLE = "cycle"
    DANGLING_PREREQUISITE = "dangling_prerequisite"
    DUPLICATE_ID = "duplicate_id"

    def __init__(self, kind: str, message: str, rule_ids: Iterable[str] = ()):
        self.kind = kind
        self.rule_ids: Tuple[str, ...] = tuple(rule_ids)
        super().__init__(f"Catalog error ({kind}): {message}")


class ProbeError(ToolguardError):
    """
    A probe could not determine the rule state.

    Recorded as status=error, never as fail.
    """
    pass


class ToolError(ProbeError):
    """External tool invocation failed before giving a usable answer."""

    def __init__(self, message: str, stderr_tail: str = ""):
        self.stderr_tail = stderr_tail
        super().__init__(message)


class ToolNotFoundError(ToolError):
    """Executable is not installed or not on PATH."""
    pass


class ToolTimeoutError(ToolError):
    """External tool exceeded its timeout."""

    def __init__(self, message: str, timeout: float, stderr_tail: str = ""):
        self.timeout = timeout
        super().__init__(message, stderr_tail)


class RepairError(ToolguardError):
    """A fix procedure failed or its target still fails verification."""

    def __init__(self, rule_id: str, message: str):
        self.rule_id = rule_id
        super().__init__(f"[{rule_id}] {message}")


class RevertError(ToolguardError):
    """
    Best-effort rollback after a failed fix could not restore prior state.

    The project may be worse off than before for that rule; the report must
    flag it for manual inspection.
    """

    def __init__(self, message: str, paths: Optional[Iterable[str]] = None):
        self.paths: Tuple[str, ...] = tuple(paths or ())
        super().__init__(message)
