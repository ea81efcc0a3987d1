# SPDX-License-Identifier: LGPL-2.1-or-later

from pathlib import Path

from mkrecipe.context import Context, ImagePartition, ResourceKind


def test_origins(context: Context) -> None:
    assert context.origin("artifacts") == context.artifactdir
    assert context.origin("recipe") == context.recipedir
    assert context.origin("filesystem") == context.scratchdir / "root"
    assert context.origin("nope") is None

    context.rootdir = context.scratchdir / "mnt"
    assert context.origin("filesystem") == context.scratchdir / "mnt"


def test_nested_origins_are_private(context: Context, tmp_path: Path) -> None:
    nested = context.nested(tmp_path / "sub")
    nested.origins["download"] = tmp_path / "download"

    assert nested.origin("download") == tmp_path / "download"
    assert context.origin("download") is None
    assert nested.origin("artifacts") == context.artifactdir


def test_partition_lookup(context: Context) -> None:
    context.image_partitions.append(ImagePartition("root", Path("/dev/loop0p2")))

    assert context.partition("root") == ImagePartition("root", Path("/dev/loop0p2"))
    assert context.partition("boot") is None


def test_resources(context: Context) -> None:
    owner = object()
    other = object()

    a = context.acquire(ResourceKind.mount, Path("/a"), owner)
    b = context.acquire(ResourceKind.mount, Path("/b"), owner)
    c = context.acquire(ResourceKind.loop_device, Path("/dev/loop0"), owner)
    context.acquire(ResourceKind.mount, Path("/a"), other)

    assert context.acquired(owner) == [c, b, a]
    assert context.acquired(owner, ResourceKind.mount) == [b, a]

    context.release(b)
    assert context.acquired(owner, ResourceKind.mount) == [a]
    # Releasing one owner's token leaves an equal token of another owner alone.
    context.release(a)
    assert len(context.acquired(other)) == 1


def test_nested_shares_resources(context: Context, tmp_path: Path) -> None:
    owner = object()
    nested = context.nested(tmp_path)
    r = nested.acquire(ResourceKind.mount, Path("/a"), owner)

    assert context.acquired(owner) == [r]
    context.release(r)
    assert nested.acquired(owner) == []


def test_nested_sees_origins_added_later(context: Context, tmp_path: Path) -> None:
    nested = context.nested(tmp_path / "sub")
    context.origins["fw"] = tmp_path / "fw.bin"

    assert nested.origin("fw") == tmp_path / "fw.bin"

    nested.origins["fw"] = tmp_path / "override.bin"
    assert nested.origin("fw") == tmp_path / "override.bin"
    assert context.origin("fw") == tmp_path / "fw.bin"
