"""Mounted devices and their disk usage."""

from __future__ import annotations

import io
import re
import shutil
import subprocess
import sys
from dataclasses import dataclass
from typing import Iterable, List, NoReturn, Protocol, Tuple

_MOUNT_LINE = re.compile(r"^(.*) on (/.*) \(([^)]+)\)$")
_MOUNT_LINE_WITH_TYPE = re.compile(r"^(.*) on (/.*) type (.*) \(([^)]+)\)$")

_NETWORK_FSTYPES = ("zfs", "nfs", "nfs4")


class UnsupportedPlatformError(RuntimeError):
    """Raised when devices cannot be listed on the current platform."""


@dataclass
class Device:
    """A mounted file system."""

    name: str = ""
    mount_point: str = ""
    fstype: str = ""
    size: int = 0
    free: int = 0

    def usage(self) -> int:
        """Used space of the device."""
        return self.size - self.free


class DevicesInfoGetter(Protocol):
    def get_mounts(self) -> List[Device]: ...

    def get_devices_info(self) -> List[Device]: ...


def by_used_size(device: Device) -> int:
    """Sort key: used space."""
    return device.usage()


def by_name(device: Device) -> str:
    """Sort key: device name."""
    return device.name


def get_nested_mountpoints_paths(path: str, mounts: Iterable[Device]) -> List[str]:
    """Return mount points lying below ``path`` (but not ``path`` itself)."""
    return [
        mount.mount_point
        for mount in mounts
        if mount.mount_point.startswith(path) and mount.mount_point != path
    ]


def unescape_string(text: str) -> str:
    """Decode escaped spaces used in mount tables."""
    return text.replace("\\040", " ")


def _lines(stream: Iterable) -> Iterable[str]:
    for line in stream:
        if isinstance(line, bytes):
            line = line.decode("utf-8", errors="replace")
        yield line.rstrip("\r\n")


def read_mounts_file(stream: Iterable) -> List[Device]:
    """Parse a mount table in the format of /proc/mounts."""
    mounts = []
    for line in _lines(stream):
        parts = line.split()
        if not parts:
            continue
        if len(parts) < 3:
            raise ValueError(f"Cannot parse mounts line: {line!r}")
        mounts.append(
            Device(
                name=parts[0],
                mount_point=unescape_string(parts[1]),
                fstype=parts[2],
            )
        )
    return mounts


def read_mount_output(stream: Iterable, with_type: bool) -> List[Device]:
    """Parse the output of the BSD ``mount`` command.

    ``with_type`` selects the "dev on /path type fs (opts)" format used by
    NetBSD and OpenBSD instead of "dev on /path (fs, opts)".
    """
    pattern = _MOUNT_LINE_WITH_TYPE if with_type else _MOUNT_LINE
    mounts = []
    for line in _lines(stream):
        match = pattern.match(line)
        if match is None:
            raise ValueError("Cannot parse mount output")
        fstype = match.group(3).split(",")[0].strip()
        mounts.append(
            Device(name=match.group(1), mount_point=match.group(2), fstype=fstype)
        )
    return mounts


def _disk_space(mount_point: str) -> Tuple[int, int]:
    usage = shutil.disk_usage(mount_point)
    return usage.total, usage.free


def process_mounts(
    mounts: Iterable[Device], ignore_errors: bool, linux: bool
) -> List[Device]:
    """Keep real devices and fill in their size and free space.

    On Linux, snap mounts are skipped and NFS mounts are kept as well.
    """
    devices = []
    for mount in mounts:
        if linux and "/snap/" in mount.mount_point:
            continue

        accepted_types = _NETWORK_FSTYPES if linux else ("zfs",)
        if not (mount.name.startswith("/dev") or mount.fstype in accepted_types):
            continue

        try:
            size, free = _disk_space(mount.mount_point)
        except OSError:
            if not ignore_errors:
                raise
            size, free = 0, 0

        mount.size = size
        mount.free = free
        devices.append(mount)
    return devices


@dataclass
class LinuxDevicesInfoGetter:
    """Reads mounted devices from a /proc/mounts style file."""

    mounts_path: str = "/proc/mounts"

    def get_mounts(self) -> List[Device]:
        with open(self.mounts_path, encoding="utf-8", errors="replace") as handle:
            return read_mounts_file(handle)

    def get_devices_info(self) -> List[Device]:
        return process_mounts(self.get_mounts(), False, True)


@dataclass
class BSDDevicesInfoGetter:
    """Reads mounted devices from the output of the ``mount`` command."""

    mount_cmd: str = "/sbin/mount"
    with_type: bool = False

    def get_mounts(self) -> List[Device]:
        result = subprocess.run(
            [self.mount_cmd], capture_output=True, check=True
        )
        text = result.stdout.decode("utf-8", errors="replace")
        return read_mount_output(io.StringIO(text), self.with_type)

    def get_devices_info(self) -> List[Device]:
        return process_mounts(self.get_mounts(), False, False)


def _unsupported(what: str) -> NoReturn:
    raise UnsupportedPlatformError(f"Only Linux platform is supported for listing {what}")


@dataclass
class OtherDevicesInfoGetter:
    """Getter for platforms where devices cannot be listed."""

    def get_mounts(self) -> List[Device]:
        return _unsupported("mount points")

    def get_devices_info(self) -> List[Device]:
        return _unsupported("devices")


def default_getter() -> DevicesInfoGetter:
    """Return the devices getter suited to the running platform."""
    platform = sys.platform
    if platform.startswith("linux"):
        return LinuxDevicesInfoGetter("/proc/mounts")
    if platform.startswith(("netbsd", "openbsd")):
        return BSDDevicesInfoGetter("/sbin/mount", with_type=True)
    if platform.startswith(("freebsd", "darwin")):
        return BSDDevicesInfoGetter("/sbin/mount", with_type=False)
    return OtherDevicesInfoGetter()