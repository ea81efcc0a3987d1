# SPDX-License-Identifier: LGPL-2.1-or-later

import hashlib
from pathlib import Path

import pytest

from mkrecipe.architecture import Architecture
from mkrecipe.util import hash_file, restricted_path


def test_restricted_path() -> None:
    root = Path("/scratch/root")

    assert restricted_path(root, "/") == root
    assert restricted_path(root, "/etc/fstab") == root / "etc/fstab"
    assert restricted_path(root, "etc/../usr") == root / "usr"

    with pytest.raises(SystemExit):
        restricted_path(root, "../outside")
    with pytest.raises(SystemExit):
        restricted_path(root, "/etc/../../outside")


def test_hash_file(tmp_path: Path) -> None:
    path = tmp_path / "file"
    path.write_bytes(b"abc" * 1000)

    assert hash_file(path) == hashlib.sha256(b"abc" * 1000).hexdigest()


def test_architecture() -> None:
    assert Architecture.parse("arm64") == Architecture.arm64
    assert Architecture.from_uname("x86_64") == Architecture.amd64
    assert Architecture.from_uname("aarch64") == Architecture.arm64
    assert Architecture.ppc64el.to_qemu_user() == "ppc64le"

    with pytest.raises(SystemExit):
        Architecture.parse("vax")


def test_architecture_emulation() -> None:
    assert Architecture.i386.qemu_user_binary(Architecture.amd64) is None
    assert Architecture.armhf.qemu_user_binary(Architecture.arm64) is None
    assert Architecture.arm64.qemu_user_binary(Architecture.amd64) == "/usr/bin/qemu-aarch64-static"
    assert Architecture.amd64.qemu_user_binary(Architecture.arm64) == "/usr/bin/qemu-x86_64-static"
