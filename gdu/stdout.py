"""Plain text output of disk usage."""

from __future__ import annotations

import gc
import itertools
import math
import queue
import threading
from typing import IO, Optional

from gdu.analyzer import ParallelAnalyzer
from gdu.common import BaseUI, CurrentProgress, format_number
from gdu.export import PROGRESS_RUNES, _humanize_size, _painter
from gdu.importer import read_analysis as _read_report
from gdu.items import Dir, File, by_usage


def _percent_text(used: int, size: int) -> str:
    if size == 0:
        if used == 0:
            return "NaN%"
        return "+Inf%" if used > 0 else "-Inf%"
    ratio = used / size * 100
    rounded = math.copysign(math.floor(abs(ratio) + 0.5), ratio)
    return f"{rounded:.0f}%"


class StdoutUI(BaseUI):
    """Prints analysis results, summaries and device lists as text."""

    def __init__(
        self,
        output: IO,
        use_colors: bool = False,
        show_progress: bool = False,
        show_apparent_size: bool = False,
        show_relative_size: bool = False,
        summarize: bool = False,
        const_gc: bool = False,
        use_si_prefix: bool = False,
        no_prefix: bool = False,
    ) -> None:
        super().__init__(
            analyzer=ParallelAnalyzer(),
            use_colors=use_colors,
            show_progress=show_progress,
            show_apparent_size=show_apparent_size,
            show_relative_size=show_relative_size,
            const_gc=const_gc,
            use_si_prefix=use_si_prefix,
        )
        self.output = output
        self.summarize = summarize
        self.no_prefix = no_prefix
        self._red = _painter(use_colors, "red")
        self._orange = _painter(use_colors, "yellow")
        self._blue = _painter(use_colors, "blue")

    def start_ui_loop(self) -> None:
        """Flush the output; everything is printed by the time this is called."""
        self.output.flush()

    def list_devices(self, getter) -> None:
        """Print mounted devices with their size, usage and free space."""
        devices = getter.get_devices_info()

        name_width = max([len("Devices"), *(len(device.name) for device in devices)])
        size_width, percent_width = (20, 16) if self.use_colors else (9, 5)

        self.output.write(
            f"{'Device':>{name_width}} {'Size':>9} {'Used':>9} "
            f"{'Free':>9} {'Used%':>5} Mount point\n"
        )
        for device in devices:
            used = device.size - device.free
            percent = self._red(_percent_text(used, device.size))
            self.output.write(
                f"{device.name:>{name_width}} "
                f"{self.format_size(device.size):>{size_width}} "
                f"{self.format_size(used):>{size_width}} "
                f"{self.format_size(device.free):>{size_width}} "
                f"{percent:>{percent_width}} "
                f"{device.mount_point}\n"
            )

    def analyze_path(self, path: str, parent_dir=None) -> None:
        """Analyze ``path`` recursively and print its content or total."""
        progress_thread: Optional[threading.Thread] = None
        if self.show_progress:
            progress_thread = threading.Thread(target=self._update_progress, daemon=True)
            progress_thread.start()

        try:
            directory = self.analyzer.analyze_dir(
                path, self.create_ignore_func(), self.const_gc
            )
            directory.update_stats({})
        finally:
            if progress_thread is not None:
                progress_thread.join()

        self._show(directory)

    def read_analysis(self, stream: IO) -> None:
        """Read an exported analysis from ``stream`` and print it."""
        done = threading.Event()
        progress_thread: Optional[threading.Thread] = None
        if self.show_progress:
            progress_thread = threading.Thread(
                target=self._show_reading_progress, args=(done,), daemon=True
            )
            progress_thread.start()

        try:
            directory = _read_report(stream)
            gc.collect()
            directory.update_stats({})
        finally:
            done.set()
            if progress_thread is not None:
                progress_thread.join()

        self._show(directory)

    def format_size(self, size: int) -> str:
        """Size as a raw number or with a binary or decimal SI prefix."""
        if self.no_prefix:
            return self._orange(str(size))
        return _humanize_size(size, self.use_si_prefix, self._orange)

    def _show(self, directory: Dir) -> None:
        if self.summarize:
            self._print_total_item(directory)
        else:
            self._show_dir(directory)

    def _show_dir(self, directory: Dir) -> None:
        directory.files().sort(key=by_usage, reverse=True)
        for item in directory.files():
            self._print_item(item)

    def _item_size(self, item: File) -> int:
        return item.size if self.show_apparent_size else item.usage

    def _print_total_item(self, item: File) -> None:
        width = 20 if self.use_colors else 9
        self.output.write(
            f"{self.format_size(self._item_size(item)):>{width}} {item.name}\n"
        )

    def _print_item(self, item: File) -> None:
        width = 20 if self.use_colors else 9
        name = self._blue("/" + item.name) if item.is_dir() else item.name
        self.output.write(
            f"{item.flag} {self.format_size(self._item_size(item)):>{width}} {name}\n"
        )

    def _show_reading_progress(self, done: threading.Event) -> None:
        empty_row = "\r" + " " * 40
        for rune in itertools.cycle(PROGRESS_RUNES):
            self.output.write(empty_row)
            if done.is_set():
                self.output.write("\r")
                return
            self.output.write(f"\r {rune} ")
            self.output.write("Reading analysis from file...")
            done.wait(0.1)

    def _next_progress(self) -> Optional[CurrentProgress]:
        """Wait for a progress snapshot; None once the analysis is done."""
        progress_queue = self.analyzer.progress_queue()
        done = self.analyzer.done()
        while True:
            try:
                return progress_queue.get(timeout=0.05)
            except queue.Empty:
                if done.is_set():
                    return None

    def _update_progress(self) -> None:
        empty_row = "\r" + " " * 100
        done = self.analyzer.done()
        for rune in itertools.cycle(PROGRESS_RUNES):
            self.output.write(empty_row)

            progress = self._next_progress()
            if progress is None:
                self.output.write("\r")
                return

            self.output.write(f"\r {rune} ")
            self.output.write(
                "Scanning... Total items: "
                + self._red(format_number(progress.item_count))
                + " size: "
                + self.format_size(progress.total_size)
            )
            done.wait(0.1)