"""Helpers for displaying file system paths."""

from __future__ import annotations


def shorten_path(path: str, max_len: int) -> str:
    """Drop middle path components so that the path fits into ``max_len``.

    The last component is always kept; leading components are kept for as
    long as they fit and the rest is replaced by ``.../``.
    """
    if len(path) <= max_len:
        return path

    pieces = path.split("/")
    parts = [piece + "/" for piece in pieces[:-1]] + [pieces[-1]]
    last = parts[-1]

    result = []
    current_len = len(last)
    for part in parts[:-1]:
        current_len += len(part)
        if current_len > max_len:
            result.append(".../")
            break
        result.append(part)

    result.append(last)
    return "".join(result)