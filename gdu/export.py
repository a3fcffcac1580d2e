"""Exporting an analysis of a directory tree as JSON."""

from __future__ import annotations

import io
import itertools
import queue
import threading
import time
from importlib.metadata import PackageNotFoundError, version
from typing import IO, Callable, Optional, Tuple

from termcolor import colored

from gdu.analyzer import ParallelAnalyzer
from gdu.common import (
    EI, GI, KI, MI, PI, TI, E, G, K, M, P, T,
    BaseUI,
    CurrentProgress,
    format_number,
)
from gdu.items import by_usage

PROGRESS_RUNES = "⠇⠏⠋⠙⠹⠸⠼⠴⠦⠧"

_BINARY_UNITS: Tuple[Tuple[float, str], ...] = (
    (EI, "EiB"),
    (PI, "PiB"),
    (TI, "TiB"),
    (GI, "GiB"),
    (MI, "MiB"),
    (KI, "KiB"),
)

_DECIMAL_UNITS: Tuple[Tuple[float, str], ...] = (
    (E, "EB"),
    (P, "PB"),
    (T, "TB"),
    (G, "GB"),
    (M, "MB"),
    (K, "kB"),
)

Painter = Callable[[str], str]


class ExportError(RuntimeError):
    """Raised for operations that are not available while exporting."""


def _painter(enabled: bool, color: str) -> Painter:
    if not enabled:
        return str

    def paint(text: str) -> str:
        return colored(text, color, attrs=["bold"], force_color=True)

    return paint


def _humanize_size(size: int, use_si_prefix: bool, paint: Painter) -> str:
    units = _DECIMAL_UNITS if use_si_prefix else _BINARY_UNITS
    for factor, unit in units:
        if abs(size) >= factor:
            return paint(f"{size / factor:.1f}") + " " + unit
    return paint(str(size)) + " B"


def _program_version() -> str:
    try:
        return version("gdu")
    except PackageNotFoundError:
        return "development"


def _close_if_file(stream: IO) -> None:
    """Close streams backed by a real file descriptor."""
    try:
        stream.fileno()
    except (OSError, ValueError, AttributeError):
        return
    if stream.isatty():
        stream.flush()
        return
    stream.close()


class ExportUI(BaseUI):
    """Analyzes a directory and writes the result as JSON to a stream."""

    def __init__(
        self,
        output: IO,
        export_output: IO,
        use_colors: bool = False,
        show_progress: bool = False,
        const_gc: bool = False,
        use_si_prefix: bool = False,
    ) -> None:
        super().__init__(
            analyzer=ParallelAnalyzer(),
            use_colors=use_colors,
            show_progress=show_progress,
            const_gc=const_gc,
            use_si_prefix=use_si_prefix,
        )
        self.output = output
        self.export_output = export_output
        self._red = _painter(use_colors, "red")
        self._orange = _painter(use_colors, "yellow")

    def start_ui_loop(self) -> None:
        """Flush the terminal output; the export is finished once the path is analyzed."""
        self.output.flush()

    def list_devices(self, getter) -> None:
        raise ExportError("Exporting devices list is not supported")

    def read_analysis(self, stream: IO) -> None:
        raise ExportError("Reading analysis is not possible while exporting")

    def analyze_path(self, path: str, parent_dir=None) -> None:
        """Analyze ``path`` recursively and write the report to the export stream."""
        written = threading.Event()
        progress_thread: Optional[threading.Thread] = None
        if self.show_progress:
            progress_thread = threading.Thread(
                target=self._update_progress, args=(written,), daemon=True
            )
            progress_thread.start()

        try:
            directory = self.analyzer.analyze_dir(
                path, self.create_ignore_func(), self.const_gc
            )
            directory.update_stats({})
            directory.files().sort(key=by_usage, reverse=True)

            buffer = io.StringIO()
            buffer.write(
                '[1,2,{"progname":"gdu","progver":"'
                + _program_version()
                + '","timestamp":'
                + str(int(time.time()))
                + "},\n"
            )
            directory.encode_json(buffer, True)
            buffer.write("]\n")

            self.export_output.write(buffer.getvalue())
            _close_if_file(self.export_output)
        finally:
            if progress_thread is not None:
                written.set()
                progress_thread.join()

    def format_size(self, size: int) -> str:
        """Size with a binary or, if chosen, a decimal SI prefix."""
        return _humanize_size(size, self.use_si_prefix, self._orange)

    def _update_progress(self, written: threading.Event) -> None:
        empty_row = "\r" + " " * 100
        progress_queue = self.analyzer.progress_queue()
        done = self.analyzer.done()
        progress = CurrentProgress()
        waiting_for_write = False

        for rune in itertools.cycle(PROGRESS_RUNES):
            self.output.write(empty_row)

            if written.is_set():
                self.output.write("\r")
                return
            try:
                progress = progress_queue.get_nowait()
            except queue.Empty:
                if done.is_set():
                    self.output.write("\r")
                    waiting_for_write = True

            self.output.write(f"\r {rune} ")
            if waiting_for_write:
                self.output.write("Writing output file...")
            else:
                self.output.write(
                    "Scanning... Total items: "
                    + self._red(format_number(progress.item_count))
                    + " size: "
                    + self.format_size(progress.total_size)
                )

            written.wait(0.1)