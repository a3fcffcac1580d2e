import re

import pytest

from gdu.common import BaseUI, CurrentProgress, create_ignore_pattern, format_number


class RecordingAnalyzer:
    def __init__(self):
        self.follow_symlinks = False

    def set_follow_symlinks(self, value):
        self.follow_symlinks = value


def test_create_ignore_pattern():
    pattern = create_ignore_pattern(["[abc]+"])
    assert pattern.search("aa")


def test_create_ignore_pattern_with_err():
    with pytest.raises(re.error):
        create_ignore_pattern(["[[["])


def test_create_ignore_pattern_does_not_modify_input():
    paths = ["/a", "/b"]
    create_ignore_pattern(paths)
    assert paths == ["/a", "/b"]


def test_empty_ignore():
    should_be_ignored = BaseUI().create_ignore_func()
    assert should_be_ignored("abc", "/abc") is False
    assert should_be_ignored("xxx", "/xxx") is False


def test_ignore_by_abs_path():
    ui = BaseUI()
    ui.set_ignore_dir_paths(["/abc"])
    should_be_ignored = ui.create_ignore_func()
    assert should_be_ignored("abc", "/abc") is True
    assert should_be_ignored("xxx", "/xxx") is False


def test_ignore_by_pattern():
    ui = BaseUI()
    ui.set_ignore_dir_patterns(["/[abc]+"])
    should_be_ignored = ui.create_ignore_func()
    assert should_be_ignored("aaa", "/aaa") is True
    assert should_be_ignored("aaa", "/aaabc") is True
    assert should_be_ignored("xxx", "/xxx") is False


def test_ignore_from_file(tmp_path):
    ignore = tmp_path / "ignore"
    ignore.write_text("/aaa\n/aaabc\n/[abd]+\n")
    ui = BaseUI()
    ui.set_ignore_from_file(str(ignore))
    should_be_ignored = ui.create_ignore_func()
    assert should_be_ignored("aaa", "/aaa") is True
    assert should_be_ignored("aaabc", "/aaabc") is True
    assert should_be_ignored("aaabd", "/aaabd") is True
    assert should_be_ignored("xxx", "/xxx") is False


def test_ignore_from_not_existing_file(tmp_path):
    ui = BaseUI()
    with pytest.raises(OSError):
        ui.set_ignore_from_file(str(tmp_path / "xxx"))


def test_ignore_hidden():
    ui = BaseUI()
    ui.set_ignore_hidden(True)
    should_be_ignored = ui.create_ignore_func()
    assert should_be_ignored(".git", "/aaa/.git") is True
    assert should_be_ignored(".bbb", "/aaa/.bbb") is True
    assert should_be_ignored("xxx", "/xxx") is False


def test_ignore_by_abs_path_and_hidden():
    ui = BaseUI()
    ui.set_ignore_dir_paths(["/abc"])
    ui.set_ignore_hidden(True)
    should_be_ignored = ui.create_ignore_func()
    assert should_be_ignored("abc", "/abc") is True
    assert should_be_ignored(".git", "/aaa/.git") is True
    assert should_be_ignored(".bbb", "/aaa/.bbb") is True
    assert should_be_ignored("xxx", "/xxx") is False


def test_ignore_by_abs_path_and_pattern():
    ui = BaseUI()
    ui.set_ignore_dir_paths(["/abc"])
    ui.set_ignore_dir_patterns(["/[abc]+"])
    should_be_ignored = ui.create_ignore_func()
    assert should_be_ignored("abc", "/abc") is True
    assert should_be_ignored("aabc", "/aabc") is True
    assert should_be_ignored("ccc", "/ccc") is True
    assert should_be_ignored("xxx", "/xxx") is False


def test_ignore_by_pattern_and_hidden():
    ui = BaseUI()
    ui.set_ignore_dir_patterns(["/[abc]+"])
    ui.set_ignore_hidden(True)
    should_be_ignored = ui.create_ignore_func()
    assert should_be_ignored("abbc", "/abbc") is True
    assert should_be_ignored(".git", "/aaa/.git") is True
    assert should_be_ignored(".bbb", "/aaa/.bbb") is True
    assert should_be_ignored("xxx", "/xxx") is False


def test_ignore_by_all():
    ui = BaseUI()
    ui.set_ignore_dir_paths(["/abc"])
    ui.set_ignore_dir_patterns(["/[abc]+"])
    ui.set_ignore_hidden(True)
    should_be_ignored = ui.create_ignore_func()
    assert should_be_ignored("abc", "/abc") is True
    assert should_be_ignored("aabc", "/aabc") is True
    assert should_be_ignored(".git", "/aaa/.git") is True
    assert should_be_ignored(".bbb", "/aaa/.bbb") is True
    assert should_be_ignored("xxx", "/xxx") is False


def test_format_number():
    assert format_number(1234567890) == "1,234,567,890"


@pytest.mark.parametrize(
    "number, expected",
    [(0, "0"), (12, "12"), (123, "123"), (1234, "1,234"), (123456, "123,456")],
)
def test_format_number_small(number, expected):
    assert format_number(number) == expected


def test_set_follow_symlinks():
    analyzer = RecordingAnalyzer()
    ui = BaseUI(analyzer=analyzer)
    ui.set_follow_symlinks(True)
    assert analyzer.follow_symlinks is True


def test_current_progress_defaults():
    progress = CurrentProgress()
    assert (progress.current_item_name, progress.item_count, progress.total_size) == ("", 0, 0)