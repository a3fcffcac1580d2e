"""Parallel directory tree analysis."""

from __future__ import annotations

import gc
import logging
import os
import queue
import stat
import sys
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from gdu.common import CurrentProgress, ShouldDirBeIgnored
from gdu.items import Dir, File

logger = logging.getLogger(__name__)

_DEV_BSIZE = 512
_WORKERS = 3 * (os.cpu_count() or 1)
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class _WaitGroup:
    """Counter of pending tasks that can be incremented from any thread."""

    def __init__(self) -> None:
        self._value = 0
        self._cond = threading.Condition()

    def add(self, value: int = 1) -> None:
        with self._cond:
            self._value += value

    def done(self) -> None:
        with self._cond:
            self._value -= 1
            if self._value <= 0:
                self._cond.notify_all()

    def wait(self) -> None:
        with self._cond:
            self._cond.wait_for(lambda: self._value <= 0)


def get_dir_flag(error: Optional[BaseException], items: int) -> str:
    """Flag of a directory: '!' on read error, 'e' when empty, ' ' otherwise."""
    if error is not None:
        return "!"
    if items == 0:
        return "e"
    return " "


def get_flag(stat_result: os.stat_result) -> str:
    """Flag of a file: '@' for symlinks and sockets, ' ' otherwise."""
    mode = stat_result.st_mode
    if stat.S_ISLNK(mode) or stat.S_ISSOCK(mode):
        return "@"
    return " "


def follow_symlink(path: str, stat_result: os.stat_result) -> os.stat_result:
    """Return the stat of the symlink's target, unless the target is a directory.

    Raises ``OSError`` when the link cannot be resolved.
    """
    target = os.path.realpath(path, strict=True)
    target_info = os.lstat(target)
    if stat.S_ISDIR(target_info.st_mode):
        return stat_result
    return target_info


def _mtime(info: os.stat_result) -> datetime:
    return _EPOCH + timedelta(microseconds=info.st_mtime_ns // 1000)


def _set_file_attrs(file: File, info: os.stat_result) -> None:
    file.mtime = _mtime(info)
    blocks = getattr(info, "st_blocks", None)
    if blocks is not None:
        file.usage = blocks * _DEV_BSIZE
        if info.st_nlink > 1:
            file.mli = info.st_ino


def _set_dir_attrs(directory: Dir, path: str) -> None:
    try:
        info = os.stat(path)
    except OSError:
        return
    directory.mtime = _mtime(info)


def _base(path: str) -> str:
    if not path:
        return "."
    seps = os.sep + (os.altsep or "")
    stripped = path.rstrip(seps)
    if not stripped:
        return os.sep
    return os.path.basename(stripped)


def _dirname(path: str) -> str:
    parent = os.path.dirname(path)
    return os.path.normpath(parent) if parent else "."


def _free_memory() -> Optional[int]:
    try:
        return os.sysconf("SC_AVPHYS_PAGES") * os.sysconf("SC_PAGE_SIZE")
    except (AttributeError, ValueError, OSError):
        return None


def _used_memory() -> Optional[int]:
    try:
        with open("/proc/self/statm", encoding="ascii") as handle:
            resident = int(handle.read().split()[1])
        return resident * os.sysconf("SC_PAGE_SIZE")
    except (OSError, ValueError, IndexError, AttributeError):
        pass
    try:
        import resource
    except ImportError:
        return None
    peak = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    return peak if sys.platform == "darwin" else peak * 1024


def _rebalance_gc(disabled: bool) -> bool:
    """Disable collection while memory is plentiful, collect more often when it is not.

    Returns whether collection is disabled afterwards.
    """
    free = _free_memory()
    used = _used_memory()
    if free is None or not used:
        return disabled

    if used < free:
        if not disabled:
            logger.info("disabling GC, alloc: %d, free: %d", used, free)
            gc.disable()
        return True

    gc_percent = int(100 / used * free)
    logger.info("setting GC percent to %d, alloc: %d, free: %d", gc_percent, used, free)
    gc.set_threshold(max(1, 700 * gc_percent // 100))
    gc.enable()
    return False


def _manage_memory_usage(done: threading.Event) -> None:
    disabled = True
    while not done.wait(1.0):
        disabled = _rebalance_gc(disabled)


class ParallelAnalyzer:
    """Walks a directory tree with a pool of worker threads."""

    def __init__(self) -> None:
        self.follow_symlinks = False
        self._ignore: ShouldDirBeIgnored = lambda name, path: False
        self._tree_lock = threading.Lock()
        self.reset_progress()

    def set_follow_symlinks(self, value: bool) -> None:
        """Set whether symlinks to files are replaced by their targets."""
        self.follow_symlinks = value

    def progress_queue(self) -> "queue.Queue[CurrentProgress]":
        """Queue holding the latest progress snapshot."""
        return self._progress_queue

    def done(self) -> threading.Event:
        """Event set when the analysis has finished."""
        return self._done

    def reset_progress(self) -> None:
        """Prepare fresh progress tracking for another analysis."""
        self._progress = CurrentProgress()
        self._progress_lock = threading.Lock()
        self._progress_queue: "queue.Queue[CurrentProgress]" = queue.Queue(maxsize=1)
        self._done = threading.Event()

    def analyze_dir(self, path: str, ignore: ShouldDirBeIgnored, const_gc: bool) -> Dir:
        """Analyze ``path`` recursively and return its directory tree."""
        self._ignore = ignore

        gc_state: Optional[Tuple[bool, Tuple[int, ...]]] = None
        memory_thread: Optional[threading.Thread] = None
        if not const_gc:
            gc_state = (gc.isenabled(), gc.get_threshold())
            gc.disable()
            memory_thread = threading.Thread(
                target=_manage_memory_usage, args=(self._done,), daemon=True
            )
            memory_thread.start()

        wait = _WaitGroup()
        try:
            with ThreadPoolExecutor(max_workers=_WORKERS) as pool:
                root, subdirs = self._read_dir(path)
                for subdir_path in subdirs:
                    self._schedule(subdir_path, root, pool, wait)
                wait.wait()
            root.base_path = _dirname(path)
        finally:
            self._done.set()
            if memory_thread is not None:
                memory_thread.join()
            if gc_state is not None:
                enabled, thresholds = gc_state
                gc.set_threshold(*thresholds)
                if enabled:
                    gc.enable()
                else:
                    gc.disable()

        return root

    def _schedule(self, path: str, parent: Dir, pool: ThreadPoolExecutor, wait: _WaitGroup) -> None:
        wait.add(1)
        pool.submit(self._run_task, path, parent, pool, wait)

    def _run_task(self, path: str, parent: Dir, pool: ThreadPoolExecutor, wait: _WaitGroup) -> None:
        try:
            directory, subdirs = self._read_dir(path)
            directory.parent = parent
            with self._tree_lock:
                parent.add_file(directory)
            for subdir_path in subdirs:
                self._schedule(subdir_path, directory, pool, wait)
        except Exception:
            logger.exception("Failed to analyze %s", path)
        finally:
            wait.done()

    def _read_dir(self, path: str) -> Tuple[Dir, List[str]]:
        error: Optional[OSError] = None
        try:
            with os.scandir(path) as iterator:
                entries = sorted(iterator, key=lambda entry: entry.name)
        except OSError as exc:
            logger.warning("%s", exc)
            error = exc
            entries = []

        directory = Dir(name=_base(path), flag=get_dir_flag(error, len(entries)), count=1)
        _set_dir_attrs(directory, path)

        subdirs: List[str] = []
        total_size = 0
        for entry in entries:
            name = entry.name
            entry_path = os.path.normpath(os.path.join(path, name))
            try:
                is_dir = entry.is_dir(follow_symlinks=False)
            except OSError:
                is_dir = False

            if is_dir:
                if not self._ignore(name, entry_path):
                    subdirs.append(entry_path)
                continue

            try:
                info = entry.stat(follow_symlinks=False)
                if self.follow_symlinks and stat.S_ISLNK(info.st_mode):
                    info = follow_symlink(entry_path, info)
            except OSError as exc:
                logger.warning("%s", exc)
                directory.flag = "!"
                continue

            file = File(name=name, flag=get_flag(info), size=info.st_size, parent=directory)
            _set_file_attrs(file, info)
            total_size += info.st_size
            directory.add_file(file)

        self._report(CurrentProgress(path, len(entries), total_size))
        return directory, subdirs

    def _report(self, progress: CurrentProgress) -> None:
        with self._progress_lock:
            self._progress.current_item_name = progress.current_item_name
            self._progress.item_count += progress.item_count
            self._progress.total_size += progress.total_size
            snapshot = CurrentProgress(
                self._progress.current_item_name,
                self._progress.item_count,
                self._progress.total_size,
            )
            try:
                self._progress_queue.get_nowait()
            except queue.Empty:
                pass
            try:
                self._progress_queue.put_nowait(snapshot)
            except queue.Full:
                pass