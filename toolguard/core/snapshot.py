"""
Pre-state snapshots for repair transactions.

Before a fix runs, the executor captures the state of every path the rule
declares as a target: existence, type, permission bits and (for files up to
MAX_SNAPSHOT_BYTES) the raw content. The snapshot yields:

- an opaque digest token, enough to tell whether the fix changed anything
- the list of paths that changed, compared with a later snapshot
- a best-effort restore used when a fix raises

Security:
- Target paths must stay inside the project root (FS-09)
- Oversized files are fingerprinted by size/mtime only and cannot be restored
"""

import hashlib
import os
import shutil
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from .atomic_write import atomic_write
from .errors import RevertError


MAX_SNAPSHOT_BYTES = 10 * 1024 * 1024

MISSING = "missing"
FILE = "file"
DIRECTORY = "dir"
SYMLINK = "symlink"


class PathSecurityError(ValueError):
    """Target path escapes the project root."""
    pass


def validate_contained(root: Path, relative: str) -> Path:
    """
    Resolve a target path and make sure it stays under root.

    Args:
        root: Project root (absolute)
        relative: Target path relative to root

    Returns:
        Absolute, non-resolved path (symlinks at the leaf are kept)

    Raises:
        PathSecurityError: If the path is absolute, contains null bytes or
            resolves outside root
    """
    if '\x00' in relative:
        raise PathSecurityError(f"Target contains null byte: {relative!r}")
    if os.path.isabs(relative):
        raise PathSecurityError(f"Target must be relative to the project root: {relative}")

    candidate = root / relative
    parent = candidate.parent.resolve()
    try:
        parent.relative_to(root.resolve())
    except ValueError:
        raise PathSecurityError(f"Target escapes project root: {relative}")
    return candidate


@dataclass(frozen=True)
class PathState:
    """State of one target path."""
    relative: str
    kind: str
    mode: Optional[int] = None
    content: Optional[bytes] = None
    fingerprint: str = ""

    @property
    def restorable(self) -> bool:
        return self.kind != FILE or self.content is not None


def _capture_path(root: Path, relative: str) -> PathState:
    path = validate_contained(root, relative)
    try:
        info = path.lstat()
    except FileNotFoundError:
        return PathState(relative=relative, kind=MISSING, fingerprint=MISSING)

    mode = stat.S_IMODE(info.st_mode)

    if stat.S_ISLNK(info.st_mode):
        link = os.readlink(path)
        return PathState(relative=relative, kind=SYMLINK, content=link.encode(),
                         fingerprint=f"link:{link}")

    if stat.S_ISDIR(info.st_mode):
        return PathState(relative=relative, kind=DIRECTORY, mode=mode, fingerprint=f"dir:{mode:o}")

    if info.st_size > MAX_SNAPSHOT_BYTES:
        return PathState(relative=relative, kind=FILE, mode=mode,
                         fingerprint=f"big:{info.st_size}:{info.st_mtime_ns}:{mode:o}")

    data = path.read_bytes()
    digest = hashlib.sha256(data).hexdigest()
    return PathState(relative=relative, kind=FILE, mode=mode, content=data,
                     fingerprint=f"file:{digest}:{mode:o}")


@dataclass(frozen=True)
class Snapshot:
    """Captured state of a rule's targets."""
    root: Path
    states: Tuple[PathState, ...]

    @property
    def token(self) -> str:
        """Opaque digest of all captured states."""
        h = hashlib.sha256()
        for state in self.states:
            h.update(state.relative.encode())
            h.update(b"\x00")
            h.update(state.fingerprint.encode())
            h.update(b"\x00")
        return h.hexdigest()[:16]

    def changed_paths(self, other: 'Snapshot') -> Tuple[str, ...]:
        """Relative paths whose state differs between two snapshots."""
        after = {state.relative: state.fingerprint for state in other.states}
        return tuple(
            state.relative for state in self.states
            if after.get(state.relative) != state.fingerprint
        )


def capture(root: Path, targets: Iterable[str]) -> Snapshot:
    """
    Capture the state of the given targets.

    Args:
        root: Project root
        targets: Relative paths (duplicates ignored, order kept)

    Returns:
        Snapshot

    Raises:
        PathSecurityError: If any target escapes root
    """
    seen = []
    for target in targets:
        if target not in seen:
            seen.append(target)
    return Snapshot(root=root, states=tuple(_capture_path(root, t) for t in seen))


def _depth(relative: str) -> int:
    return len(Path(relative).parts)


def _remove(path: Path):
    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.is_dir():
        shutil.rmtree(path)


def restore(snapshot: Snapshot) -> List[str]:
    """
    Best-effort restore of every target that changed since the snapshot.

    Files that existed get their bytes and mode back; directories that
    existed get their mode back; paths that did not exist are removed
    (deepest first).

    Args:
        snapshot: State captured before the fix

    Returns:
        Relative paths that were restored

    Raises:
        RevertError: If any path could not be restored; lists the paths
    """
    restored: List[str] = []
    failures: List[str] = []
    messages: List[str] = []

    # a path that can no longer be inspected (e.g. its parent became a
    # file) counts as changed; one that now escapes root is never touched
    changed = set()
    for state in snapshot.states:
        try:
            now = _capture_path(snapshot.root, state.relative)
        except PathSecurityError as e:
            failures.append(state.relative)
            messages.append(f"{state.relative}: {e}")
            continue
        except OSError:
            changed.add(state.relative)
            continue
        if now.fingerprint != state.fingerprint:
            changed.add(state.relative)

    existed = sorted(
        (s for s in snapshot.states if s.relative in changed and s.kind != MISSING),
        key=lambda s: _depth(s.relative)
    )
    created = sorted(
        (s for s in snapshot.states if s.relative in changed and s.kind == MISSING),
        key=lambda s: _depth(s.relative),
        reverse=True
    )

    for state in existed:
        path = snapshot.root / state.relative
        try:
            if not state.restorable:
                raise RevertError(f"{state.relative} was too large to snapshot")
            if state.kind == FILE:
                if path.is_dir() and not path.is_symlink():
                    shutil.rmtree(path)
                elif path.is_symlink():
                    path.unlink()
                atomic_write(path, state.content, mode=state.mode)
            elif state.kind == DIRECTORY:
                if path.exists() and not path.is_dir():
                    path.unlink()
                path.mkdir(parents=True, exist_ok=True)
                os.chmod(path, state.mode)
            elif state.kind == SYMLINK:
                if path.exists() or path.is_symlink():
                    _remove(path)
                path.symlink_to(state.content.decode())
            restored.append(state.relative)
        except Exception as e:
            failures.append(state.relative)
            messages.append(f"{state.relative}: {e}")

    for state in created:
        path = snapshot.root / state.relative
        try:
            if path.exists() or path.is_symlink():
                _remove(path)
            restored.append(state.relative)
        except Exception as e:
            failures.append(state.relative)
            messages.append(f"{state.relative}: {e}")

    if failures:
        raise RevertError("Could not restore " + "; ".join(messages), failures)

    return restored
