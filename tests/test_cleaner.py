"""Tests for cleanup, purge and uninstall actions."""

import queue
import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from molehill.broadcast import BroadcastHub
from molehill.cleaner import (
    TRASH_ITEM_ESTIMATE,
    clean,
    clean_preview,
    delete_files,
    delete_path,
    empty_trash,
    is_protected_path,
    purge_paths,
    uninstall_apps,
)
from molehill.config import Settings
from molehill.context import AppContext

ECHO_MOLE = '#!/bin/sh\necho "$@" "confirm=$MOLE_NO_CONFIRM" "gui=$MOLE_GUI_MODE"\n'


@pytest.fixture
def unprotected():
    """Temp dirs live under /var or /private on macOS; only keep /System protected."""
    with patch("molehill.cleaner.PROTECTED_PREFIXES", ["/System"]):
        yield


@pytest.fixture
def fake_mole(tmp_path):
    mole = tmp_path / "bin" / "mole"
    mole.parent.mkdir()
    mole.write_text(ECHO_MOLE)
    mole.chmod(0o755)
    return mole


@pytest.fixture
def ctx(tmp_path, fake_mole):
    return AppContext(Settings(mole_path=fake_mole, log_file=tmp_path / "web-ui.log"))


@pytest.fixture
def no_mole_ctx(tmp_path):
    context = AppContext(Settings(log_file=tmp_path / "web-ui.log"))
    with patch.object(AppContext, "find_mole", return_value=None):
        yield context


def make_tree(root: Path) -> Path:
    (root / "sub").mkdir(parents=True)
    (root / "a.txt").write_bytes(b"x" * 100)
    (root / "sub" / "b.txt").write_bytes(b"x" * 50)
    return root


def completed(stdout: str = "", returncode: int = 0) -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr="")


class TestIsProtectedPath:
    def test_system_prefixes(self):
        assert is_protected_path("/System")
        assert is_protected_path("/usr/bin/python3")
        assert is_protected_path("/etc/hosts")

    def test_prefix_matches_whole_components(self):
        assert not is_protected_path("/usrdata/file")
        assert not is_protected_path("/binaries")

    def test_home_directory(self):
        assert is_protected_path(Path.home())
        assert is_protected_path(str(Path.home()) + "/")

    def test_user_file_allowed(self, unprotected, tmp_path):
        assert not is_protected_path(tmp_path / "junk.bin")

    def test_normalizes_traversal(self):
        assert is_protected_path("/tmp/../etc/passwd")


class TestDeletePath:
    def test_deletes_file(self, tmp_path):
        f = tmp_path / "f.bin"
        f.write_bytes(b"x" * 10)

        size, error = delete_path(f)

        assert (size, error) == (10, None)
        assert not f.exists()

    def test_deletes_directory(self, tmp_path):
        root = make_tree(tmp_path / "tree")

        size, error = delete_path(root)

        assert (size, error) == (150, None)
        assert not root.exists()

    def test_symlink_removed_not_target(self, tmp_path):
        target = make_tree(tmp_path / "target")
        link = tmp_path / "link"
        link.symlink_to(target, target_is_directory=True)

        _, error = delete_path(link)

        assert error is None
        assert not link.exists()
        assert target.exists()

    @patch("molehill.cleaner.shutil.rmtree", side_effect=PermissionError("denied"))
    def test_permission_error(self, mock_rmtree, tmp_path):
        root = make_tree(tmp_path / "tree")
        size, error = delete_path(root)
        assert size == 0
        assert "Permission denied" in error

    def test_missing_path(self, tmp_path):
        size, error = delete_path(tmp_path / "missing")
        assert size == 0
        assert error.startswith("OS error")


class TestDeleteFiles:
    def test_deletes_and_logs(self, unprotected, tmp_path):
        hub = BroadcastHub(tmp_path / "web-ui.log")
        sub = hub.subscribe()
        f = tmp_path / "old.dmg"
        f.write_bytes(b"x" * 2000)

        result = delete_files([str(f)], hub)

        assert result.success
        assert result.deleted_count == 1
        assert result.deleted_size == 2000
        assert result.size_human == "2.0 KB"
        assert sub.get(timeout=1) == f"Deleted: {f} (2.0 KB)"

    def test_refuses_protected_paths(self):
        result = delete_files(["/etc/hosts", str(Path.home())], BroadcastHub())

        assert not result.success
        assert result.deleted_count == 0
        assert result.errors == ["Protected system path", "Protected system path"]

    def test_missing_path_reported(self, unprotected, tmp_path):
        result = delete_files([str(tmp_path / "gone")], BroadcastHub())

        assert not result.success
        assert result.failed == [str(tmp_path / "gone")]
        assert result.errors == ["Path does not exist"]

    def test_partial_failure(self, unprotected, tmp_path):
        f = tmp_path / "ok.txt"
        f.write_text("data")

        result = delete_files([str(f), str(tmp_path / "missing")], BroadcastHub())

        assert not result.success
        assert result.deleted_count == 1
        assert len(result.failed) == 1


class TestPurgePaths:
    def test_removes_and_sums(self, unprotected, tmp_path):
        a = make_tree(tmp_path / "a" / "node_modules")
        b = make_tree(tmp_path / "b" / "target")

        outcome = purge_paths([str(a), str(b), str(tmp_path / "missing")], BroadcastHub())

        assert outcome.success
        assert outcome.message == "Removed 2 items"
        assert outcome.cleaned_bytes == 300
        assert not a.exists()
        assert not b.exists()

    def test_skips_protected(self):
        outcome = purge_paths(["/usr/lib"], BroadcastHub())
        assert outcome.message == "Removed 0 items"
        assert outcome.cleaned_bytes == 0


class TestEmptyTrash:
    @patch("molehill.cleaner.subprocess.run", side_effect=FileNotFoundError("osascript"))
    def test_osascript_unavailable(self, mock_run):
        outcome = empty_trash(BroadcastHub())
        assert not outcome.success
        assert outcome.message == "Failed to check trash"

    @patch("molehill.cleaner.subprocess.run", return_value=completed("0\n"))
    def test_already_empty(self, mock_run):
        outcome = empty_trash(BroadcastHub())

        assert outcome.success
        assert outcome.message == "Trash is already empty"
        assert mock_run.call_count == 1

    @patch("molehill.cleaner.estimate_size", return_value=0)
    @patch("molehill.cleaner.subprocess.run")
    def test_estimates_size_from_count(self, mock_run, mock_size):
        mock_run.side_effect = [completed("3\n"), completed("")]

        outcome = empty_trash(BroadcastHub())

        assert outcome.success
        assert outcome.message == "Trash emptied"
        assert outcome.cleaned_bytes == 3 * TRASH_ITEM_ESTIMATE
        assert "Emptied 3 items" in outcome.output

    @patch("molehill.cleaner.estimate_size", return_value=1000)
    @patch("molehill.cleaner.subprocess.run")
    def test_measured_size_used(self, mock_run, mock_size):
        mock_run.side_effect = [completed("2\n"), completed("")]

        outcome = empty_trash(BroadcastHub())

        # ~/.Trash and /.Trashes/<uid> are both measured
        assert outcome.cleaned_bytes == 2000

    @patch("molehill.cleaner.estimate_size", return_value=0)
    @patch("molehill.cleaner.subprocess.run")
    def test_empty_fails(self, mock_run, mock_size):
        mock_run.side_effect = [completed("2\n"), completed("", returncode=1)]

        outcome = empty_trash(BroadcastHub())

        assert not outcome.success
        assert outcome.message == "Failed to empty trash: exit status 1"


class TestClean:
    def test_category_flag(self, ctx):
        outcome = clean(ctx, "cache")

        assert outcome.success
        assert outcome.output.startswith("clean --cache --yes")

    def test_all_categories(self, ctx):
        assert clean(ctx, "all").output.startswith("clean --yes")
        assert clean(ctx, "").output.startswith("clean --yes")

    @patch("molehill.cleaner.empty_trash")
    def test_trash_bypasses_mole(self, mock_trash, ctx):
        clean(ctx, "trash")
        mock_trash.assert_called_once_with(ctx.hub)

    def test_preview_is_dry_run(self, ctx):
        assert clean_preview(ctx).output.startswith("clean --dry-run")

    def test_mole_not_found(self, no_mole_ctx):
        outcome = clean(no_mole_ctx, "cache")
        assert not outcome.success
        assert outcome.message == "Mole CLI not found"


class TestUninstallApps:
    def test_no_apps(self, ctx):
        outcome = uninstall_apps(ctx, [])
        assert not outcome.success
        assert outcome.message == "No apps specified"

    def test_uses_gui_environment_and_strips_broadcast(self, ctx, tmp_path):
        app = tmp_path / "Foo.app"
        app.mkdir()
        sub = ctx.hub.subscribe()

        outcome = uninstall_apps(ctx, [str(app)])

        assert outcome.success
        assert outcome.message == "Uninstalled 1 app(s)"
        assert "Foo.app" in outcome.output

        lines = []
        while True:
            try:
                lines.append(sub.get(timeout=0.1))
            except queue.Empty:
                break
        assert f"uninstall --path {app} --debug confirm=1 gui=1" in lines

    def test_missing_app_only(self, ctx, tmp_path):
        outcome = uninstall_apps(ctx, [str(tmp_path / "Gone.app")])

        assert not outcome.success
        assert outcome.message == "Failed to remove: Gone.app (not found)"

    def test_partial_success(self, ctx, tmp_path):
        app = tmp_path / "Foo.app"
        app.mkdir()

        outcome = uninstall_apps(ctx, [str(app), str(tmp_path / "Gone.app")])

        assert outcome.success
        assert outcome.message == "Uninstalled 1 app(s) (Failed 1: Gone.app (not found))"

    def test_mole_not_found(self, no_mole_ctx, tmp_path):
        outcome = uninstall_apps(no_mole_ctx, [str(tmp_path / "Foo.app")])
        assert not outcome.success
        assert outcome.message.startswith("Mole CLI not found")
