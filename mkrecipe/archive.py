# SPDX-License-Identifier: LGPL-2.1-or-later

import os
from pathlib import Path
from typing import Optional

from mkrecipe.log import die, log_step
from mkrecipe.run import find_binary, run
from mkrecipe.util import PathString, umask

TAR_COMPRESSION = {
    "bzip2": "--bzip2",
    "gz":    "--gzip",
    "lzip":  "--lzip",
    "lzma":  "--lzma",
    "lzop":  "--lzop",
    "xz":    "--xz",
    "zstd":  "--zstd",
    "auto":  "--auto-compress",
    "none":  "",
}  # fmt: skip


def check_compression(compression: str) -> None:
    if compression not in TAR_COMPRESSION:
        die(
            f"Option 'compression' has an unsupported type {compression!r}",
            hint=f"Possible types are {', '.join(TAR_COMPRESSION)}",
        )


def compression_options(compression: str) -> list[PathString]:
    check_compression(compression)

    # Parallel gzip is a lot faster when it is available.
    if compression == "gz" and find_binary("pigz"):
        return ["--use-compress-program=pigz"]

    return [TAR_COMPRESSION[compression]] if TAR_COMPRESSION[compression] else []


def tar_exclude_apivfs_tmp() -> list[str]:
    return [
        "--exclude", "./dev/*",
        "--exclude", "./proc/*",
        "--exclude", "./sys/*",
        "--exclude", "./tmp/*",
        "--exclude", "./run/*",
        "--exclude", "./var/tmp/*",
    ]  # fmt: skip


def make_tar(src: Path, dst: Path, *, compression: str = "gz") -> None:
    log_step(f"Creating tar archive {dst}…")

    run(
        [
            "tar",
            "--create",
            "--file", dst,
            "--directory", src,
            *compression_options(compression),
            "--acls",
            "--selinux",
            "--xattrs",
            "--sparse",
            "--force-local",
            *tar_exclude_apivfs_tmp(),
            ".",
        ],
    )  # fmt: skip


def can_extract_tar(src: Path) -> bool:
    return ".tar" in src.suffixes[-2:]


def extract_tar(src: Path, dst: Path, *, compression: Optional[str] = None) -> None:
    log_step(f"Extracting tar archive {src}…")

    with umask(~0o755):
        dst.mkdir(parents=True, exist_ok=True)

    run(
        [
            "tar",
            "--extract",
            "--file", src,
            "--directory", dst,
            *(compression_options(compression) if compression else []),
            "--keep-directory-symlink",
            "--no-overwrite-dir",
            "--same-permissions",
            "--same-owner" if os.getuid() == 0 else "--numeric-owner",
            "--acls",
            "--selinux",
            "--xattrs",
            "--force-local",
        ],
    )  # fmt: skip
