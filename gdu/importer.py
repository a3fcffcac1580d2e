"""Reading a previously exported analysis."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import IO, Any, List

from gdu.items import Dir, File


class AnalysisFormatError(ValueError):
    """Raised when the JSON does not have the layout of an exported analysis."""


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _timestamp(value: Any) -> datetime:
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def read_analysis(stream: IO) -> Dir:
    """Read an analysis report in JSON from ``stream`` and return its root directory."""
    data = json.loads(stream.read())

    if not isinstance(data, list):
        raise AnalysisFormatError("JSON file does not contain top level array")
    if len(data) < 4:
        raise AnalysisFormatError("Top level array must have at least 4 items")

    items = data[3]
    if not isinstance(items, list):
        raise AnalysisFormatError(
            "Array of maps not found in the top level array on 4th position"
        )

    return _process_dir(items)


def _process_file(item: dict, parent: Dir) -> File:
    name = item.get("name")
    if not isinstance(name, str):
        raise AnalysisFormatError("File name is not a string")

    file = File(name=name, parent=parent)
    if _is_number(item.get("asize")):
        file.size = int(item["asize"])
    if _is_number(item.get("dsize")):
        file.usage = int(item["dsize"])
    if _is_number(item.get("mtime")):
        file.mtime = _timestamp(item["mtime"])
    file.flag = "@" if isinstance(item.get("notreg"), bool) else " "
    if _is_number(item.get("ino")):
        file.mli = int(item["ino"])
    if isinstance(item.get("hlnkc"), bool):
        file.flag = "H"
    return file


def _process_dir(items: List[Any]) -> Dir:
    directory = Dir(flag=" ")

    if not items or not isinstance(items[0], dict):
        raise AnalysisFormatError("Directory item is not a map")
    head = items[0]

    name = head.get("name")
    if not isinstance(name, str):
        raise AnalysisFormatError("Directory name is not a string")
    if _is_number(head.get("mtime")):
        directory.mtime = _timestamp(head["mtime"])

    slash = name.rfind("/")
    if slash > -1:
        directory.name = name[slash + 1:]
        directory.base_path = name[:slash + 1]
    else:
        directory.name = name

    for value in items[1:]:
        if isinstance(value, dict):
            directory.add_file(_process_file(value, directory))
        elif isinstance(value, list):
            subdir = _process_dir(value)
            subdir.parent = directory
            directory.add_file(subdir)

    return directory