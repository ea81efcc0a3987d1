# SPDX-License-Identifier: LGPL-2.1-or-later

import functools
import re
import subprocess
from pathlib import Path

from mkrecipe.run import run
from mkrecipe.util import PathString


def parse_version(version: str) -> tuple[int, ...]:
    return tuple(int(x) for x in re.findall(r"\d+", version))


@functools.lru_cache(maxsize=1)
def cp_version() -> tuple[int, ...]:
    return parse_version(run(["cp", "--version"], stdout=subprocess.PIPE).stdout.splitlines()[0].split()[3])


def copy_tree(src: Path, dst: Path, *, dereference: bool = False) -> Path:
    """
    Copy src to dst preserving permissions, ownership, ACLs and extended attributes. If both are
    directories the contents of src are merged into dst.
    """
    src = src.absolute()
    dst = dst.absolute()

    cmdline: list[PathString] = [
        "cp",
        "--archive",
        "--dereference" if dereference else "--no-dereference",
        "--reflink=auto",
    ]

    if src.is_dir():
        cmdline += ["--no-target-directory"]
        if dst.is_dir() and any(dst.iterdir()) and cp_version() >= (9, 5):
            cmdline += ["--keep-directory-symlink"]

    run([*cmdline, src, dst])

    return dst


def rmtree(*paths: Path) -> None:
    filtered = sorted({p.absolute() for p in paths if p.exists() or p.is_symlink()})
    if filtered:
        run(["rm", "-rf", "--", *filtered])
