"""Files and directories found during disk usage analysis."""

from __future__ import annotations

import json
import math
import os
import re
import shutil
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, Optional, Protocol, Tuple

_DIGITS = re.compile(r"([0-9]+)")


class _Writer(Protocol):
    def write(self, text: str) -> object: ...


class Files(list):
    """List of file system items with lookup and removal by identity or name."""

    def index_of(self, item: "File") -> Optional[int]:
        """Return the position of ``item`` (compared by identity) or None."""
        for index, entry in enumerate(self):
            if entry is item:
                return index
        return None

    def find_by_name(self, name: str) -> Optional[int]:
        """Return the position of the first item called ``name`` or None."""
        for index, entry in enumerate(self):
            if entry.name == name:
                return index
        return None

    def remove_item(self, item: "File") -> "Files":
        """Return the items without ``item``; unchanged if it is not present."""
        index = self.index_of(item)
        if index is None:
            return self
        return Files(self[:index] + self[index + 1:])

    def remove_by_name(self, name: str) -> "Files":
        """Return the items without the first one called ``name``."""
        index = self.find_by_name(name)
        if index is None:
            return self
        return Files(self[:index] + self[index + 1:])


HardLinkedItems = Dict[int, Files]


def _join(*parts: str) -> str:
    parts = tuple(part for part in parts if part)
    if not parts:
        return ""
    return os.path.normpath(os.path.join(*parts))


def _unix(moment: datetime) -> int:
    return math.floor(moment.timestamp())


_JSON_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


def _json_string(value: str) -> str:
    encoded = json.dumps(value, ensure_ascii=False)
    for char, escape in _JSON_ESCAPES.items():
        encoded = encoded.replace(char, escape)
    return encoded


@dataclass(eq=False)
class File:
    """A non-directory item. ``mtime`` of None means the time is unknown."""

    name: str = ""
    size: int = 0
    usage: int = 0
    mtime: Optional[datetime] = None
    parent: Optional["Dir"] = field(default=None, repr=False)
    mli: int = 0
    flag: str = " "

    def path(self) -> str:
        """Full path of the item."""
        if self.parent is None:
            return self.name
        return _join(self.parent.path(), self.name)

    def is_dir(self) -> bool:
        return False

    def item_type(self) -> str:
        return "Other" if self.flag == "@" else "File"

    def item_count(self) -> int:
        return 1

    def files(self) -> Files:
        return Files()

    def set_files(self, files: Iterable["File"]) -> None:
        raise TypeError("set_files should not be called on file")

    def add_file(self, item: "File") -> None:
        raise TypeError("add_file should not be called on file")

    def _already_counted(self, linked_items: HardLinkedItems) -> bool:
        if self.mli <= 0:
            return False
        counted = self.mli in linked_items
        if counted:
            self.flag = "H"
        linked_items.setdefault(self.mli, Files()).append(self)
        return counted

    def get_item_stats(
        self, linked_items: Optional[HardLinkedItems]
    ) -> Tuple[int, int, int]:
        """Return item count, apparent size and usage of this file.

        A hard link already seen counts as an item but adds no size.
        """
        if linked_items is None:
            linked_items = {}
        if self._already_counted(linked_items):
            return 1, 0, 0
        return 1, self.size, self.usage

    def update_stats(self, linked_items: Optional[HardLinkedItems]) -> None:
        """Files have no stats to update."""

    def encode_json(self, writer: _Writer, top_level: bool) -> None:
        """Write the JSON representation of the file."""
        out = ['{"name":', _json_string(self.name)]
        if self.size > 0:
            out.append(f',"asize":{self.size}')
        if self.usage > 0:
            out.append(f',"dsize":{self.usage}')
        if self.mtime is not None:
            out.append(f',"mtime":{_unix(self.mtime)}')
        if self.flag == "@":
            out.append(',"notreg":true')
        if self.flag == "H":
            out.append(f',"ino":{self.mli},"hlnkc":true')
        out.append("}")
        writer.write("".join(out))


@dataclass(eq=False)
class Dir(File):
    """A directory holding other items."""

    base_path: str = ""
    entries: Files = field(default_factory=Files)
    count: int = 0

    def path(self) -> str:
        if self.base_path:
            return _join(self.base_path, self.name)
        if self.parent is not None:
            return _join(self.parent.path(), self.name)
        return self.name

    def is_dir(self) -> bool:
        return True

    def item_type(self) -> str:
        return "Directory"

    def item_count(self) -> int:
        return self.count

    def files(self) -> Files:
        return self.entries

    def set_files(self, files: Iterable[File]) -> None:
        self.entries = Files(files)

    def add_file(self, item: File) -> None:
        self.entries.append(item)

    def get_item_stats(
        self, linked_items: Optional[HardLinkedItems]
    ) -> Tuple[int, int, int]:
        self.update_stats(linked_items)
        return self.count, self.size, self.usage

    def update_stats(self, linked_items: Optional[HardLinkedItems]) -> None:
        """Recompute size, usage, item count, mtime and flag from the children."""
        if linked_items is None:
            linked_items = {}
        total_size = 4096
        total_usage = 4096
        item_count = 0
        for entry in self.entries:
            count, size, usage = entry.get_item_stats(linked_items)
            total_size += size
            total_usage += usage
            item_count += count

            if entry.mtime is not None and (
                self.mtime is None or entry.mtime > self.mtime
            ):
                self.mtime = entry.mtime

            if entry.flag in ("!", ".") and self.flag != "!":
                self.flag = "."

        self.count = item_count + 1
        self.size = total_size
        self.usage = total_usage

    def encode_json(self, writer: _Writer, top_level: bool) -> None:
        """Write the JSON representation of the directory and its children."""
        name = self.path() if top_level else self.name
        head = ['[{"name":', _json_string(name)]
        if self.mtime is not None:
            head.append(f',"mtime":{_unix(self.mtime)}')
        head.append("}")
        if self.entries:
            head.append(",")
        head.append("\n")
        writer.write("".join(head))

        for index, item in enumerate(self.entries):
            if index > 0:
                writer.write(",\n")
            item.encode_json(writer, False)

        writer.write("]")


def natural_key(name: str) -> tuple:
    """Sort key comparing runs of digits numerically."""
    key = []
    for chunk in _DIGITS.split(name):
        if not chunk:
            continue
        if chunk[0] in "0123456789":
            key.append(("0", int(chunk), chunk))
        else:
            key.append((chunk, 0, ""))
    return tuple(key)


def by_usage(item: File) -> tuple:
    """Sort key: disk usage, then name."""
    return item.usage, natural_key(item.name)


def by_apparent_size(item: File) -> tuple:
    """Sort key: apparent size, then name."""
    return item.size, natural_key(item.name)


def by_item_count(item: File) -> tuple:
    """Sort key: number of items, then name."""
    return item.item_count(), natural_key(item.name)


def by_name(item: File) -> tuple:
    """Sort key: natural order of names."""
    return natural_key(item.name)


def by_mtime(item: File) -> tuple:
    """Sort key: modification time (unknown first), then name."""
    stamp = item.mtime.timestamp() if item.mtime is not None else float("-inf")
    return stamp, natural_key(item.name)


def _remove_all(path: str) -> None:
    try:
        if os.path.isdir(path) and not os.path.islink(path):
            shutil.rmtree(path)
        else:
            os.remove(path)
    except FileNotFoundError:
        pass


def remove_item_from_dir(directory: Dir, item: File) -> None:
    """Delete ``item`` from disk and from ``directory``, updating ancestors."""
    _remove_all(item.path())

    directory.set_files(directory.files().remove_item(item))

    current: Optional[Dir] = directory
    while current is not None:
        current.count -= item.item_count()
        current.size -= item.size
        current.usage -= item.usage
        current = current.parent


def empty_file_from_dir(directory: Dir, file: File) -> None:
    """Truncate ``file`` on disk and replace it in ``directory`` with an empty one."""
    os.truncate(file.path(), 0)

    current: Optional[Dir] = directory
    while current is not None:
        current.size -= file.size
        current.usage -= file.usage
        current = current.parent

    directory.set_files(directory.files().remove_item(file))
    directory.add_file(
        File(name=file.name, flag=file.flag, size=0, parent=directory)
    )