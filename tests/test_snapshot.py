"""
Test suite for pre-state snapshots and atomic writes.

Tests:
1. Snapshot tokens detect changes
2. restore() brings back files, modes and removes created paths
3. Targets cannot escape the project root
4. Atomic writes never leave partial files
"""

import json
import os
import stat

import pytest

from toolguard.core.atomic_write import AtomicWriteError, append_missing_lines, atomic_write, write_json
from toolguard.core.errors import RevertError
from toolguard.core.snapshot import PathSecurityError, capture, restore, validate_contained


class TestSnapshotCapture:
    """Digest tokens and change detection."""

    def test_token_stable_without_changes(self, tmp_path):
        (tmp_path / "a.txt").write_text("one")
        assert capture(tmp_path, ["a.txt"]).token == capture(tmp_path, ["a.txt"]).token

    def test_token_changes_with_content(self, tmp_path):
        target = tmp_path / "a.txt"
        target.write_text("one")
        before = capture(tmp_path, ["a.txt"])
        target.write_text("two")
        after = capture(tmp_path, ["a.txt"])
        assert before.token != after.token
        assert before.changed_paths(after) == ("a.txt",)

    def test_mode_change_detected(self, tmp_path):
        target = tmp_path / "hook"
        target.write_text("#!/bin/sh\n")
        os.chmod(target, 0o644)
        before = capture(tmp_path, ["hook"])
        os.chmod(target, 0o755)
        assert before.changed_paths(capture(tmp_path, ["hook"])) == ("hook",)

    def test_missing_then_created(self, tmp_path):
        before = capture(tmp_path, ["new.json"])
        (tmp_path / "new.json").write_text("{}")
        assert before.changed_paths(capture(tmp_path, ["new.json"])) == ("new.json",)

    def test_duplicate_targets_collapsed(self, tmp_path):
        snapshot = capture(tmp_path, ["a", "a", "b"])
        assert [s.relative for s in snapshot.states] == ["a", "b"]


class TestRestore:
    """Best-effort revert."""

    def test_restores_file_content_and_mode(self, tmp_path):
        target = tmp_path / "package.json"
        target.write_text('{"name": "app"}')
        os.chmod(target, 0o640)
        before = capture(tmp_path, ["package.json"])

        target.write_text("garbage")
        os.chmod(target, 0o600)

        restored = restore(before)
        assert restored == ["package.json"]
        assert target.read_text() == '{"name": "app"}'
        assert stat.S_IMODE(target.stat().st_mode) == 0o640

    def test_removes_created_paths(self, tmp_path):
        before = capture(tmp_path, [".husky", ".husky/pre-commit"])
        (tmp_path / ".husky").mkdir()
        (tmp_path / ".husky" / "pre-commit").write_text("npx lint-staged\n")

        restore(before)
        assert not (tmp_path / ".husky").exists()

    def test_recreates_deleted_file(self, tmp_path):
        target = tmp_path / ".gitignore"
        target.write_text("node_modules\n")
        before = capture(tmp_path, [".gitignore"])
        target.unlink()

        restore(before)
        assert target.read_text() == "node_modules\n"

    def test_unchanged_paths_untouched(self, tmp_path):
        (tmp_path / "a").write_text("a")
        before = capture(tmp_path, ["a"])
        assert restore(before) == []

    def test_parent_replaced_by_file(self, tmp_path):
        (tmp_path / "cfg").mkdir()
        (tmp_path / "cfg" / "settings").write_text("v1")
        before = capture(tmp_path, ["cfg/settings", "cfg/extra"])

        (tmp_path / "cfg" / "settings").unlink()
        (tmp_path / "cfg").rmdir()
        (tmp_path / "cfg").write_text("not a directory")

        with pytest.raises(RevertError) as exc_info:
            restore(before)
        assert exc_info.value.paths == ("cfg/settings",)

    def test_failure_raises_revert_error(self, tmp_path, monkeypatch):
        before = capture(tmp_path, ["created.txt"])
        (tmp_path / "created.txt").write_text("x")

        def refuse(path):
            raise PermissionError("read-only filesystem")

        monkeypatch.setattr("toolguard.core.snapshot._remove", refuse)
        with pytest.raises(RevertError) as exc_info:
            restore(before)
        assert exc_info.value.paths == ("created.txt",)
        assert "read-only" in str(exc_info.value)


class TestPathContainment:
    """FS-09: targets stay inside the project root."""

    def test_relative_inside_root(self, tmp_path):
        assert validate_contained(tmp_path, ".husky/pre-commit") == tmp_path / ".husky/pre-commit"

    def test_parent_escape_rejected(self, tmp_path):
        with pytest.raises(PathSecurityError):
            validate_contained(tmp_path, "../../etc/passwd")

    def test_absolute_rejected(self, tmp_path):
        with pytest.raises(PathSecurityError):
            validate_contained(tmp_path, "/etc/passwd")

    def test_null_byte_rejected(self, tmp_path):
        with pytest.raises(PathSecurityError):
            validate_contained(tmp_path, "a\x00b")

    def test_capture_rejects_escape(self, tmp_path):
        with pytest.raises(PathSecurityError):
            capture(tmp_path, ["../outside.txt"])


class TestAtomicWrite:
    """FS-03: atomic writes."""

    def test_atomic_write_creates_file(self, tmp_path):
        target = tmp_path / "new.txt"
        assert atomic_write(target, "content") is True
        assert target.read_text() == "content"

    def test_creates_parent_directories(self, tmp_path):
        target = tmp_path / ".github" / "workflows" / "test.yml"
        atomic_write(target, "jobs: {}\n")
        assert target.exists()

    def test_preserves_existing_mode(self, tmp_path):
        target = tmp_path / "hook"
        target.write_text("old")
        os.chmod(target, 0o755)
        atomic_write(target, "new")
        assert stat.S_IMODE(target.stat().st_mode) == 0o755

    def test_explicit_mode(self, tmp_path):
        target = tmp_path / "hook"
        atomic_write(target, "#!/bin/sh\n", mode=0o700)
        assert stat.S_IMODE(target.stat().st_mode) == 0o700

    def test_no_temp_files_left(self, tmp_path):
        atomic_write(tmp_path / "a.txt", "a")
        assert [p.name for p in tmp_path.iterdir()] == ["a.txt"]

    def test_failure_raises_and_preserves_original(self, tmp_path):
        original = tmp_path / "existing.txt"
        original.write_text("original")
        blocker = tmp_path / "not_a_dir"
        blocker.write_text("file")

        with pytest.raises(AtomicWriteError):
            atomic_write(blocker / "child.txt", "content")
        assert original.read_text() == "original"

    def test_write_json_keeps_key_order(self, tmp_path):
        target = tmp_path / "package.json"
        write_json(target, {"name": "app", "scripts": {"test": "jest"}, "version": "1.0.0"})
        text = target.read_text()
        assert list(json.loads(text)) == ["name", "scripts", "version"]
        assert text.endswith("}\n")


class TestAppendMissingLines:
    """Line-oriented edits keep user content."""

    def test_appends_only_missing(self, tmp_path):
        target = tmp_path / ".gitignore"
        target.write_text("node_modules\n.env\n")
        changed = append_missing_lines(target, [".env", ".env.local"], header="# Environment variables")
        assert changed is True
        assert target.read_text() == "node_modules\n.env\n\n# Environment variables\n.env.local\n"

    def test_no_change_when_complete(self, tmp_path):
        target = tmp_path / ".gitignore"
        target.write_text(".env\n")
        assert append_missing_lines(target, [".env"]) is False
        assert target.read_text() == ".env\n"

    def test_creates_file(self, tmp_path):
        target = tmp_path / "pre-commit"
        append_missing_lines(target, ["npx lint-staged"])
        assert target.read_text() == "npx lint-staged\n"

    def test_missing_trailing_newline(self, tmp_path):
        target = tmp_path / ".gitignore"
        target.write_text("dist")
        append_missing_lines(target, [".env"])
        assert target.read_text() == "dist\n\n.env\n"
