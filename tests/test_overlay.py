# SPDX-License-Identifier: LGPL-2.1-or-later

import pytest

from mkrecipe.actions.format import FormatImageAction
from mkrecipe.actions.overlay import OverlayAction
from mkrecipe.actions.pack import PackAction, UnpackAction
from mkrecipe.context import Context


def test_overlay(context: Context) -> None:
    (context.recipedir / "overlay/etc").mkdir(parents=True)
    (context.recipedir / "overlay/etc/motd").write_text("hello\n")
    (context.rootdir / "etc").mkdir(parents=True)
    (context.rootdir / "etc/hostname").write_text("test\n")

    action = OverlayAction(source="overlay")
    action.verify(context)
    action.run(context)

    assert (context.rootdir / "etc/motd").read_text() == "hello\n"
    assert (context.rootdir / "etc/hostname").read_text() == "test\n"


def test_overlay_destination(context: Context) -> None:
    (context.artifactdir / "config").mkdir()
    (context.artifactdir / "config/app.conf").write_text("x=1\n")
    context.rootdir.mkdir(parents=True)

    action = OverlayAction(origin="artifacts", source="config", destination="/opt/app")
    action.verify(context)
    action.run(context)

    assert (context.rootdir / "opt/app/app.conf").read_text() == "x=1\n"


def test_overlay_invalid(context: Context) -> None:
    with pytest.raises(SystemExit):
        OverlayAction().verify(context)
    with pytest.raises(SystemExit):
        OverlayAction(source="missing").verify(context)
    with pytest.raises(SystemExit):
        OverlayAction(origin="artifacts", source="x", destination="../../etc").verify(context)


def test_overlay_unknown_origin(context: Context) -> None:
    action = OverlayAction(origin="nope", source="x")
    action.verify(context)

    with pytest.raises(SystemExit):
        action.run(context)


def test_pack_verify(context: Context) -> None:
    PackAction(file="rootfs.tar.gz").verify(context)

    with pytest.raises(SystemExit):
        PackAction().verify(context)
    with pytest.raises(SystemExit):
        PackAction(file="rootfs.tar.rar", compression="rar").verify(context)


def test_unpack_verify(context: Context) -> None:
    UnpackAction(file="rootfs.tar.xz", compression="xz").verify(context)
    UnpackAction(origin="rootfs").verify(context)

    with pytest.raises(SystemExit):
        UnpackAction().verify(context)
    with pytest.raises(SystemExit):
        UnpackAction(file="rootfs.zip", compression="gz").verify(context)


def test_format_image_verify(context: Context) -> None:
    action = FormatImageAction(imagename="fs.img", imagesize="1GiB", fs="fat32", label="EFI")
    action.verify(context)
    assert action.fs == "vfat"
    assert action.size == 1024**3

    FormatImageAction(imagename="fs.img", imagesize="1GB", fs="ext4", label="root", blocksize=4096).verify(context)

    with pytest.raises(SystemExit):
        FormatImageAction(imagename="fs.img", imagesize="1GB", fs="ext4").verify(context)
    with pytest.raises(SystemExit):
        FormatImageAction(imagename="fs.img", imagesize="1GB", fs="btrfs", label="x", blocksize=4096).verify(context)
    with pytest.raises(SystemExit):
        FormatImageAction(imagename="fs.img", imagesize="1GB", fs="ext4", label="x", blocksize=512).verify(context)
