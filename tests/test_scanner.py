"""Tests for size estimation and ranking."""

from pathlib import Path
from unittest.mock import patch

from molehill.models import ScanEntry
from molehill.scanner import (
    estimate_size,
    estimate_sizes,
    list_children,
    rank_entries,
    top_level_breakdown,
)


def write(path: Path, size: int) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"x" * size)
    return path


def entry(name: str, size: int) -> ScanEntry:
    return ScanEntry(path=f"/tmp/{name}", name=name, size_bytes=size)


class TestEstimateSize:
    def test_empty_directory(self, tmp_path):
        assert estimate_size(tmp_path) == 0

    def test_counts_files_within_depth(self, tmp_path):
        write(tmp_path / "f0", 1)
        write(tmp_path / "a" / "f1", 10)
        write(tmp_path / "a" / "b" / "f2", 100)
        write(tmp_path / "a" / "b" / "c" / "f3", 1000)

        assert estimate_size(tmp_path, max_depth=3) == 111

    def test_shallower_depth_counts_less(self, tmp_path):
        write(tmp_path / "f0", 1)
        write(tmp_path / "a" / "f1", 10)
        write(tmp_path / "a" / "b" / "f2", 100)

        assert estimate_size(tmp_path, max_depth=1) == 1
        assert estimate_size(tmp_path, max_depth=2) == 11

    def test_deeper_depth_counts_more(self, tmp_path):
        write(tmp_path / "a" / "b" / "c" / "d" / "f", 7)

        assert estimate_size(tmp_path, max_depth=3) == 0
        assert estimate_size(tmp_path, max_depth=5) == 7

    def test_zero_depth_is_zero(self, tmp_path):
        write(tmp_path / "f", 10)
        assert estimate_size(tmp_path, max_depth=0) == 0

    def test_skip_list_directories_not_entered(self, tmp_path):
        write(tmp_path / "src" / "main.py", 5)
        write(tmp_path / "node_modules" / "pkg.js", 50)
        write(tmp_path / ".git" / "objects", 60)
        write(tmp_path / "Library" / "data", 70)
        write(tmp_path / "Caches" / "blob", 80)

        assert estimate_size(tmp_path) == 5

    def test_skip_list_root_is_still_sized(self, tmp_path):
        modules = tmp_path / "node_modules"
        write(modules / "pkg" / "index.js", 50)

        assert estimate_size(modules) == 50

    def test_missing_path_is_zero(self, tmp_path):
        assert estimate_size(tmp_path / "missing") == 0

    def test_file_root_reports_own_size(self, tmp_path):
        f = write(tmp_path / "single.bin", 42)
        assert estimate_size(f) == 42

    def test_unreadable_directory_is_zero(self, tmp_path):
        write(tmp_path / "f", 10)
        with patch("molehill.scanner.os.scandir", side_effect=PermissionError("denied")):
            assert estimate_size(tmp_path) == 0

    def test_symlinks_not_followed(self, tmp_path):
        outside = tmp_path / "outside"
        write(outside / "big", 500)
        root = tmp_path / "root"
        write(root / "small", 5)
        (root / "link").symlink_to(outside, target_is_directory=True)
        (root / "filelink").symlink_to(outside / "big")

        assert estimate_size(root) == 5

    def test_accepts_string_path(self, tmp_path):
        write(tmp_path / "f", 3)
        assert estimate_size(str(tmp_path)) == 3


class TestEstimateSizes:
    def test_sizes_every_path(self, tmp_path):
        a = tmp_path / "a"
        b = tmp_path / "b"
        write(a / "f", 10)
        write(b / "f", 20)

        sizes = estimate_sizes([a, b])
        assert sizes == {str(a): 10, str(b): 20}

    def test_bounded_workers(self, tmp_path):
        paths = []
        for i in range(5):
            d = tmp_path / f"d{i}"
            write(d / "f", i)
            paths.append(d)

        sizes = estimate_sizes(paths, max_workers=2)
        assert len(sizes) == 5
        assert sizes[str(paths[4])] == 4

    def test_empty_input(self):
        assert estimate_sizes([]) == {}


class TestRankEntries:
    def test_largest_first(self):
        ranked = rank_entries([entry("a", 1), entry("b", 300), entry("c", 20)])
        assert [e.name for e in ranked] == ["b", "c", "a"]

    def test_idempotent(self):
        ranked = rank_entries([entry("a", 5), entry("b", 50), entry("c", 10)])
        assert rank_entries(ranked) == ranked

    def test_ties_keep_input_order(self):
        ranked = rank_entries([entry("x", 10), entry("y", 10), entry("z", 99)])
        assert [e.name for e in ranked] == ["z", "x", "y"]

    def test_returns_new_list(self):
        original = [entry("a", 1), entry("b", 2)]
        ranked = rank_entries(original)
        assert ranked is not original
        assert [e.name for e in original] == ["a", "b"]

    def test_empty(self):
        assert rank_entries([]) == []

    def test_custom_key(self):
        ranked = rank_entries([{"n": 1}, {"n": 3}], key=lambda d: d["n"])
        assert ranked == [{"n": 3}, {"n": 1}]


class TestListChildren:
    def test_sorted_by_name_without_hidden(self, tmp_path):
        write(tmp_path / "b", 1)
        write(tmp_path / "a", 1)
        write(tmp_path / ".hidden", 1)

        assert [c.name for c in list_children(tmp_path)] == ["a", "b"]

    def test_include_hidden(self, tmp_path):
        write(tmp_path / ".hidden", 1)
        assert [c.name for c in list_children(tmp_path, include_hidden=True)] == [".hidden"]

    def test_missing_directory(self, tmp_path):
        assert list_children(tmp_path / "missing") == []


class TestTopLevelBreakdown:
    def test_ranks_children(self, tmp_path):
        write(tmp_path / "small.txt", 10)
        write(tmp_path / "big" / "data.bin", 5000)
        write(tmp_path / "medium" / "nested" / "f", 300)

        entries = top_level_breakdown(tmp_path)

        assert [e.name for e in entries] == ["big", "medium", "small.txt"]
        assert [e.size_bytes for e in entries] == [5000, 300, 10]

    def test_hidden_children_skipped(self, tmp_path):
        write(tmp_path / ".cache" / "blob", 9999)
        write(tmp_path / "visible", 1)

        entries = top_level_breakdown(tmp_path)
        assert [e.name for e in entries] == ["visible"]

    def test_directory_flag_and_paths(self, tmp_path):
        write(tmp_path / "dir" / "f", 1)
        write(tmp_path / "file", 2)

        by_name = {e.name: e for e in top_level_breakdown(tmp_path)}
        assert by_name["dir"].is_dir
        assert not by_name["file"].is_dir
        assert by_name["dir"].path == str(tmp_path / "dir")

    def test_missing_root_is_empty(self, tmp_path):
        assert top_level_breakdown(tmp_path / "missing") == []

    def test_bounded_workers_same_result(self, tmp_path):
        for i in range(4):
            write(tmp_path / f"d{i}" / "f", (i + 1) * 10)

        assert top_level_breakdown(tmp_path, max_workers=1) == top_level_breakdown(tmp_path)
