# gdu

A disk usage analysis library. It walks a directory tree with a pool of
worker threads, totals apparent size and real disk usage, detects hard
links, and reports the largest entries first. An analysis can be written
as JSON in the ncdu export format and read back later.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Analyzing a directory

```python
from gdu.analyzer import ParallelAnalyzer
from gdu.items import by_usage

analyzer = ParallelAnalyzer()
analyzer.set_follow_symlinks(False)
root = analyzer.analyze_dir("/tmp", lambda name, path: False, False)
root.update_stats({})
for item in sorted(root.files(), key=by_usage, reverse=True):
    print(item.flag, item.usage, item.name)
```

`analyze_dir(path, ignore, const_gc)` returns a `gdu.items.Dir`. The
`ignore` callable receives the name and path of every subdirectory and
returns `True` to skip it. Unless `const_gc` is true, the garbage collector
is turned off while memory is plentiful and restored afterwards.

`Dir.update_stats` computes sizes, item counts and the newest mtime of the
tree. Directories count 4096 bytes of their own; a hard-linked file seen a
second time counts as an item but adds no size and gets the flag `H`.

Flags used on items: `!` read error, `.` an error somewhere below, `e` empty
directory, `@` symlink, socket or other non-regular file, `H` repeated hard
link.

Sort keys in `gdu.items`: `by_usage`, `by_apparent_size`, `by_item_count`,
`by_name` and `by_mtime`; names are compared in natural order
(`natural_key`).

`remove_item_from_dir(directory, item)` deletes an item from disk and from
the tree; `empty_file_from_dir(directory, file)` truncates a file. Both
update the totals of all ancestors.

## Text output

`gdu.stdout.StdoutUI` prints one line per entry, largest first:

```python
import sys
from gdu.stdout import StdoutUI

ui = StdoutUI(sys.stdout, use_colors=False, show_progress=False)
ui.set_ignore_dir_paths(["/proc", "/sys"])
ui.set_ignore_hidden(True)
ui.analyze_path("/var/log")
```

Constructor options: `use_colors`, `show_progress`, `show_apparent_size`,
`show_relative_size`, `summarize` (print only the total), `const_gc`,
`use_si_prefix` (kB, MB, GB instead of KiB, MiB, GiB) and `no_prefix` (raw
byte counts). Ignore rules are set with `set_ignore_dir_paths`,
`set_ignore_dir_patterns` (regular expressions matched against the whole
path), `set_ignore_from_file` (one pattern per line) and
`set_ignore_hidden`; an invalid pattern raises `re.error`.

`list_devices(getter)` prints mounted devices with size, used and free
space:

```python
from gdu.device import default_getter
ui.list_devices(default_getter())
```

On Linux devices are read from `/proc/mounts`; on the BSDs and macOS from
the output of `/sbin/mount`. On other platforms the getter raises
`gdu.device.UnsupportedPlatformError`.

## JSON export and import

```python
import sys
from gdu.export import ExportUI

with open("report.json", "w") as out:
    ExportUI(sys.stderr, out).analyze_path("/home")
```

`ExportUI` writes the report to its second stream and closes it when it is
a real file. It does not list devices or read reports; those methods raise
`gdu.export.ExportError`.

A report is loaded back with `gdu.importer.read_analysis(stream)`, which
returns the same `Dir` / `File` tree, or printed directly:

```python
with open("report.json") as report:
    StdoutUI(sys.stdout).read_analysis(report)
```

Malformed reports raise `json.JSONDecodeError` or
`gdu.importer.AnalysisFormatError`.

## Helpers

- `gdu.common.format_number(1234567)` gives `"1,234,567"`.
- `gdu.pathutil.shorten_path(path, max_len)` replaces middle components
  with `.../` so the path fits.
- `gdu.device.get_nested_mountpoints_paths(path, mounts)` lists mount
  points below a path, useful for staying on one filesystem.

## What is not included

The package is a library only. It installs no command-line program, has no
interactive terminal screen, and does not read or write a configuration
file; options are passed to the classes above directly.