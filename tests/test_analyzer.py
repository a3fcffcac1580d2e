import gc
import os
from unittest import mock

import pytest

from gdu.analyzer import ParallelAnalyzer, follow_symlink, get_dir_flag, get_flag
from gdu.items import by_usage


def never(name, path):
    return False


@pytest.fixture
def tree_root(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    os.makedirs("test_dir/nested/subnested")
    with open("test_dir/nested/subnested/file", "w") as handle:
        handle.write("hello")
    with open("test_dir/nested/file2", "w") as handle:
        handle.write("go")
    return tmp_path


def analyze(follow=False, ignore=never):
    analyzer = ParallelAnalyzer()
    analyzer.set_follow_symlinks(follow)
    directory = analyzer.analyze_dir("test_dir", ignore, False)
    analyzer.done().wait()
    directory.update_stats({})
    return analyzer, directory


def sort_reverse(directory):
    directory.set_files(sorted(directory.files(), key=by_usage, reverse=True))


def test_analyze_dir(tree_root):
    analyzer = ParallelAnalyzer()
    directory = analyzer.analyze_dir("test_dir", never, False)

    progress = analyzer.progress_queue().get_nowait()
    assert progress.total_size >= 0

    assert analyzer.done().wait(5)
    analyzer.reset_progress()
    directory.update_stats({})

    assert directory.name == "test_dir"
    assert directory.size == 7 + 4096 * 3
    assert directory.item_count() == 5
    assert directory.is_dir()
    assert directory.base_path == "."

    nested = directory.files()[0]
    assert nested.name == "nested"
    assert nested.files()[1].name == "subnested"

    assert nested.files()[0].name == "file2"
    assert nested.files()[0].size == 2

    subnested = nested.files()[1]
    assert subnested.files()[0].name == "file"
    assert subnested.files()[0].size == 5

    assert subnested.files()[0].parent.parent.parent.name == "test_dir"


def test_reset_progress_clears_done(tree_root):
    analyzer = ParallelAnalyzer()
    analyzer.analyze_dir("test_dir", never, True)
    assert analyzer.done().is_set()
    analyzer.reset_progress()
    assert not analyzer.done().is_set()
    assert analyzer.progress_queue().empty()


def test_ignore_dir(tree_root):
    directory = ParallelAnalyzer().analyze_dir("test_dir", lambda name, path: True, False)
    assert directory.name == "test_dir"
    assert directory.item_count() == 1


def test_ignore_receives_joined_path(tree_root):
    seen = []

    def record(name, path):
        seen.append((name, path))
        return False

    directory = ParallelAnalyzer().analyze_dir("test_dir", record, True)
    assert directory.files()[0].name == "nested"
    assert ("nested", os.path.join("test_dir", "nested")) in seen


def test_flags(tree_root):
    os.mkdir("test_dir/empty")
    os.symlink("test_dir/nested/file2", "test_dir/nested/file3")

    _, directory = analyze()
    sort_reverse(directory)

    assert directory.size == 28 + 4096 * 4
    assert directory.item_count() == 7

    nested = directory.files()[0]
    assert nested.name == "nested"
    assert nested.files()[1].name == "file3"
    assert nested.files()[1].size == 21
    assert nested.files()[1].flag == "@"

    assert directory.files()[1].flag == "e"


def test_hardlink(tree_root):
    os.link("test_dir/nested/file2", "test_dir/nested/file3")

    _, directory = analyze()

    assert directory.size == 7 + 4096 * 3
    assert directory.item_count() == 6

    file3 = directory.files()[0].files()[1]
    assert file3.name == "file3"
    assert file3.size == 2
    assert file3.flag == "H"


def test_follow_symlink(tree_root):
    os.mkdir("test_dir/empty")
    os.symlink("./file2", "test_dir/nested/file3")

    _, directory = analyze(follow=True)
    sort_reverse(directory)

    assert directory.size == 9 + 4096 * 4
    assert directory.item_count() == 7

    nested = directory.files()[0]
    assert nested.name == "nested"
    assert nested.files()[1].name == "file3"
    assert nested.files()[1].size == 2
    assert nested.files()[1].flag == " "

    assert directory.files()[1].flag == "e"


def test_broken_symlink_skipped(tree_root):
    os.mkdir("test_dir/empty")
    os.symlink("xxx", "test_dir/nested/file3")

    _, directory = analyze(follow=True)
    sort_reverse(directory)

    assert directory.size == 7 + 4096 * 4
    assert directory.item_count() == 6
    assert directory.files()[0].flag == "!"


def test_err(tree_root):
    real_scandir = os.scandir
    unreadable = os.path.join("test_dir", "nested")

    def fake_scandir(path="."):
        if os.path.normpath(path) == unreadable:
            raise PermissionError(13, "Permission denied", path)
        return real_scandir(path)

    with mock.patch("os.scandir", new=fake_scandir):
        _, directory = analyze()

    assert directory.name == "test_dir"
    assert directory.item_count() == 2
    assert directory.flag == "."
    assert directory.files()[0].name == "nested"
    assert directory.files()[0].flag == "!"


def test_gc_state_restored(tree_root):
    was_enabled = gc.isenabled()
    thresholds = gc.get_threshold()
    directory = ParallelAnalyzer().analyze_dir("test_dir", never, False)
    assert directory.name == "test_dir"
    assert gc.isenabled() == was_enabled
    assert gc.get_threshold() == thresholds


@pytest.mark.parametrize(
    "error, items, expected",
    [(OSError("boom"), 3, "!"), (None, 0, "e"), (None, 2, " ")],
)
def test_get_dir_flag(error, items, expected):
    assert get_dir_flag(error, items) == expected


def test_get_flag(tmp_path):
    regular = tmp_path / "regular"
    regular.write_text("x")
    link = tmp_path / "link"
    os.symlink(str(regular), str(link))
    assert get_flag(os.lstat(regular)) == " "
    assert get_flag(os.lstat(link)) == "@"


def test_follow_symlink_to_file(tmp_path):
    target = tmp_path / "target"
    target.write_text("abc")
    link = tmp_path / "link"
    os.symlink("target", str(link))
    info = follow_symlink(str(link), os.lstat(link))
    assert info.st_size == 3


def test_follow_symlink_to_dir_keeps_link(tmp_path):
    (tmp_path / "sub").mkdir()
    link = tmp_path / "link"
    os.symlink("sub", str(link))
    original = os.lstat(link)
    assert follow_symlink(str(link), original) is original


def test_follow_broken_symlink_raises(tmp_path):
    link = tmp_path / "link"
    os.symlink("missing", str(link))
    with pytest.raises(OSError):
        follow_symlink(str(link), os.lstat(link))