# SPDX-License-Identifier: LGPL-2.1-or-later

import logging
import os
import re
import subprocess
from collections.abc import Sequence
from pathlib import Path

from mkrecipe.log import die
from mkrecipe.run import Command, run
from mkrecipe.util import PathString

SIZE_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([kmgtp]?)(i?)b?\s*$", re.IGNORECASE)
SIZE_EXPONENTS = {"": 0, "k": 1, "m": 2, "g": 3, "t": 4, "p": 5}


def parse_size(value: str, *, binary: bool = False) -> int:
    """
    Parse a human readable size. "kB", "MB", ... are powers of 1000 and "KiB", "MiB", ... powers of
    1024. With binary=True the suffixes without "i" are powers of 1024 as well.
    """
    m = SIZE_RE.match(str(value))
    if not m:
        die(f"Invalid size: {value!r}")

    number, unit, i = m.groups()
    base = 1024 if i or binary else 1000
    exponent = SIZE_EXPONENTS[unit.lower()]

    # Do the math in integers so large sizes do not lose precision.
    integral, _, fraction = number.partition(".")
    scale = 10 ** len(fraction)
    size, remainder = divmod(int(integral + fraction) * base**exponent, scale)
    if remainder:
        die(f"Size {value!r} is not a whole number of bytes")

    return size


def create_image(path: Path, size: int) -> None:
    with path.open("ab") as f:
        f.truncate(size)


def filesystem_driver(fs: str) -> str:
    """The name the kernel and fstab know the filesystem by."""
    return {
        "fat32": "vfat",
        "hfsx": "hfsplus",
    }.get(fs, fs)


def parted_filesystem(fs: str) -> list[str]:
    if fs == "none":
        return []

    return [{"vfat": "fat32", "hfsplus": "hfs+"}.get(fs, fs)]


def mkfs_cmdline(fs: str, label: str, device: PathString, features: Sequence[str] = ()) -> list[PathString]:
    if fs == "none":
        return []

    opts = ["-O", ",".join(features)] if features else []

    if fs == "vfat":
        cmdline = ["mkfs.vfat", "-F32", "-n", label]
    elif fs == "btrfs":
        # Force formatting so previously formatted devices do not make mkfs fail.
        cmdline = ["mkfs.btrfs", "-L", label, "-f", *opts]
    elif fs == "hfs":
        cmdline = ["mkfs.hfs", "-h", "-v", label]
    elif fs == "hfsplus":
        cmdline = ["mkfs.hfsplus", "-v", label]
    elif fs == "hfsx":
        cmdline = ["mkfs.hfsplus", "-s", "-v", label]
    else:
        cmdline = [f"mkfs.{fs}", "-L", label, *opts]

    return [*cmdline, device]


def format_device(
    fs: str,
    label: str,
    device: PathString,
    features: Sequence[str] = (),
    options: Sequence[str] = (),
) -> None:
    cmdline = mkfs_cmdline(fs, label, device, features)
    if not cmdline:
        return

    if options:
        cmdline = [*cmdline[:-1], *options, cmdline[-1]]

    Command().run(f"Formatting {device}", *cmdline)


def filesystem_uuid(device: PathString) -> str:
    return run(
        ["blkid", "-o", "value", "-s", "UUID", "-p", "-c", "none", device],
        stdout=subprocess.PIPE,
    ).stdout.strip()


def partition_device(image: PathString, number: int) -> Path:
    # Always look up the canonical device as udev might not generate symlinks while the image is locked.
    device = os.path.realpath(image)

    if device[-1].isdigit():
        return Path(f"{device}p{number}")

    return Path(f"{device}{number}")


def attach_loop(path: Path) -> Path:
    return Path(
        run(
            ["losetup", "--find", "--show", "--partscan", path],
            stdout=subprocess.PIPE,
        ).stdout.strip()
    )


def detach_loop(device: Path) -> None:
    if run(["losetup", "--detach", device], check=False).returncode != 0:
        logging.warning(f"Failed to detach loop device {device}")
