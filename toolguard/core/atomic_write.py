"""
Atomic file writing utilities for fix procedures.

Prevents half-written configuration files from:
- Ctrl+C interrupts
- Disk full errors
- Power failures

Uses the write-to-temp-then-rename pattern which is atomic on POSIX systems.

Usage:
    from toolguard.core.atomic_write import atomic_write, write_json

    atomic_write(root / ".prettierrc", PRETTIER_TEMPLATE)
    write_json(root / "package.json", manifest)
"""

import errno
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Optional, Union

from .signal_handlers import shutdown_manager


class AtomicWriteError(Exception):
    """Error during atomic write operation."""
    pass


def atomic_write(
    file_path: Path,
    content: Union[str, bytes],
    encoding: str = 'utf-8',
    mode: Optional[int] = None,
) -> bool:
    """
    Write file atomically.

    Uses temp file + atomic rename (POSIX guarantee). The temp file lives in
    the target directory so the rename never crosses filesystems.

    Args:
        file_path: Path to file to write
        content: Text or bytes to write
        encoding: Text encoding when content is str
        mode: Permission bits for the result; defaults to the existing
            file's mode, or the process default for new files

    Returns:
        True if write succeeded

    Raises:
        AtomicWriteError: If write fails (with descriptive message)
    """
    file_path = Path(file_path)
    temp_path = None
    data = content.encode(encoding) if isinstance(content, str) else content

    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)

        temp_fd, temp_path_str = tempfile.mkstemp(
            prefix=f".tmp_{file_path.name}_",
            dir=file_path.parent,
            suffix=".tmp"
        )
        temp_path = Path(temp_path_str)

        with shutdown_manager.protected_write(temp_path):
            try:
                with os.fdopen(temp_fd, 'wb') as f:
                    f.write(data)
                    f.flush()
                    os.fsync(f.fileno())
            except OSError as e:
                if e.errno == errno.ENOSPC:
                    raise AtomicWriteError(
                        f"Disk full: Cannot write to {file_path}. "
                        f"Free up space and try again."
                    ) from e
                elif e.errno == errno.EACCES:
                    raise AtomicWriteError(
                        f"Permission denied: Cannot write to {file_path}. "
                        f"Check file/directory permissions."
                    ) from e
                raise AtomicWriteError(f"Write error for {file_path}: {e}") from e

            if mode is None and file_path.exists():
                mode = file_path.stat().st_mode
            if mode is None:
                # mkstemp creates 0600; fall back to the umask default
                umask = os.umask(0)
                os.umask(umask)
                mode = 0o666 & ~umask
            os.chmod(temp_path, mode & 0o7777)

            os.replace(temp_path, file_path)

        return True

    except AtomicWriteError:
        _discard(temp_path)
        raise

    except Exception as e:
        _discard(temp_path)
        raise AtomicWriteError(f"Failed to write {file_path}: {e}") from e


def _discard(temp_path: Optional[Path]):
    if temp_path and temp_path.exists():
        try:
            temp_path.unlink()
        except OSError:
            pass


def write_json(file_path: Path, data: Any, indent: int = 2) -> bool:
    """
    Atomically write a JSON document with a trailing newline.

    Key order is preserved so edits to user manifests stay reviewable.
    """
    text = json.dumps(data, indent=indent, ensure_ascii=False) + "\n"
    return atomic_write(file_path, text)


def append_missing_lines(file_path: Path, lines: list, header: Optional[str] = None) -> bool:
    """
    Append lines that are not already present, keeping existing content.

    Args:
        file_path: File to extend (created if missing)
        lines: Lines that must be present
        header: Optional comment line written before the appended block

    Returns:
        True if the file changed
    """
    file_path = Path(file_path)
    existing = file_path.read_text(encoding='utf-8') if file_path.exists() else ""
    present = {line.strip() for line in existing.splitlines()}
    missing = [line for line in lines if line.strip() not in present]
    if not missing:
        return False

    block = []
    if existing and not existing.endswith("\n"):
        block.append("")
    if existing:
        block.append("")
    if header:
        block.append(header)
    block.extend(missing)

    atomic_write(file_path, existing + "\n".join(block) + "\n")
    return True
