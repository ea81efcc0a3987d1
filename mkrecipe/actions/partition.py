# SPDX-License-Identifier: LGPL-2.1-or-later

import dataclasses
import logging
import os
from collections.abc import Mapping
from typing import Any, Optional

from mkrecipe.actions import require
from mkrecipe.actions.image import ImageAction
from mkrecipe.context import Context, ImagePartition, ResourceKind
from mkrecipe.image import (
    filesystem_driver,
    filesystem_uuid,
    format_device,
    parse_size,
    parted_filesystem,
    partition_device,
)
from mkrecipe.log import complete_step, die
from mkrecipe.run import Command
from mkrecipe.syscall import mount
from mkrecipe.util import flock, restricted_path


@dataclasses.dataclass
class Partition:
    name: str = ""
    start: str = ""
    end: str = ""
    fs: str = ""
    flags: list[str] = dataclasses.field(default_factory=list)
    features: list[str] = dataclasses.field(default_factory=list)
    fsck: bool = True
    number: int = dataclasses.field(default=0, init=False)
    uuid: str = dataclasses.field(default="", init=False)

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "Partition":
        known = {f.name for f in dataclasses.fields(cls) if f.init}
        if unknown := set(d) - known:
            die(f"Unknown partition properties: {', '.join(sorted(unknown))}")

        return cls(**{k: str(v) if k in ("start", "end") else v for k, v in d.items()})


@dataclasses.dataclass
class Mountpoint:
    mountpoint: str = ""
    partition: str = ""
    options: list[str] = dataclasses.field(default_factory=list)
    buildtime: bool = False
    part: Optional[Partition] = dataclasses.field(default=None, init=False, repr=False)

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "Mountpoint":
        known = {f.name for f in dataclasses.fields(cls) if f.init}
        if unknown := set(d) - known:
            die(f"Unknown mountpoint properties: {', '.join(sorted(unknown))}")

        return cls(**d)


def generate_fstab(mountpoints: list[Mountpoint]) -> str:
    lines = []

    for m in mountpoints:
        if m.buildtime:
            continue

        assert m.part
        if not m.part.uuid:
            die(f"Missing filesystem UUID for partition {m.part.name}")

        passno = 0
        if m.part.fsck:
            passno = 1 if m.mountpoint == "/" else 2

        options = ",".join(["defaults", *m.options])
        lines += [f"UUID={m.part.uuid}\t{m.mountpoint}\t{m.part.fs}\t{options}\t0\t{passno}\n"]

    return "".join(lines)


def generate_kernel_root(mountpoints: list[Mountpoint]) -> str:
    root = next((m for m in mountpoints if m.mountpoint == "/"), None)
    if not root:
        die("No mountpoint for the root filesystem")

    assert root.part
    if not root.part.uuid:
        die(f"Missing filesystem UUID for root partition {root.part.name}")

    return f"root=UUID={root.part.uuid}"


@dataclasses.dataclass
class ImagePartitionAction(ImageAction):
    """Create an image file, partition it, format the partitions and mount them."""

    kind = "image-partition"

    partitiontype: str = ""
    gpt_gap: str = ""
    partitions: list[Partition] = dataclasses.field(default_factory=list)
    mountpoints: list[Mountpoint] = dataclasses.field(default_factory=list)

    def __post_init__(self) -> None:
        self.partitions = [p if isinstance(p, Partition) else Partition.from_dict(p) for p in self.partitions]
        self.mountpoints = [
            m if isinstance(m, Mountpoint) else Mountpoint.from_dict(m) for m in self.mountpoints
        ]

    def describe(self) -> list[str]:
        return [
            *super().describe(),
            f"partitiontype: {self.partitiontype}",
            *([f"gpt_gap: {self.gpt_gap}"] if self.gpt_gap else []),
            *(f"partition: {p.name} {p.fs} {p.start}-{p.end}" for p in self.partitions),
            *(f"mountpoint: {m.mountpoint} -> {m.partition}" for m in self.mountpoints),
        ]

    def verify(self, context: Context) -> None:
        if self.partitiontype not in ("gpt", "msdos"):
            die(f"Unsupported partition table type {self.partitiontype!r}, expected gpt or msdos")

        if self.gpt_gap:
            logging.warning("A version of parted supporting an offset for mklabel is needed for gpt_gap")
            if self.partitiontype != "gpt":
                die("gpt_gap can only be used with a gpt partition table")
            parse_size(self.gpt_gap)

        if not self.partitions:
            die("At least one partition is needed")

        for number, p in enumerate(self.partitions, start=1):
            p.number = number

            if not p.name:
                die("Partition without a name")
            if not p.start:
                die(f"Partition {p.name} is missing start")
            if not p.end:
                die(f"Partition {p.name} is missing end")
            if not p.fs:
                die(f"Partition {p.name} is missing fs type")

            if p.fs == "fat32":
                p.fs = "vfat"

        for m in self.mountpoints:
            require(self, m.mountpoint, "mountpoint")
            m.part = next((p for p in self.partitions if p.name == m.partition), None)
            if not m.part:
                die(f"Couldn't find partition for {m.mountpoint}")

        super().verify(context)

    def format_partition(self, context: Context, p: Partition) -> None:
        assert context.image
        device = partition_device(context.image, p.number)

        with complete_step(f"Formatting partition {p.number}"):
            format_device(p.fs, p.name, device, p.features)

        # hfsx is a case sensitive hfsplus, the kernel only knows the latter.
        p.fs = filesystem_driver(p.fs)

        if p.fs != "none":
            p.uuid = filesystem_uuid(device)

    def partition_image(self, context: Context) -> None:
        assert context.image

        Command().run(
            "parted",
            "parted", "-s", context.image, "mklabel", self.partitiontype,
            *([self.gpt_gap] if self.gpt_gap else []),
        )  # fmt: skip

        for p in self.partitions:
            name = p.name if self.partitiontype == "gpt" else "primary"

            Command().run(
                "parted",
                "parted", "-a", "none", "-s", "--", context.image, "mkpart", name,
                *parted_filesystem(p.fs),
                p.start, p.end,
            )  # fmt: skip

            for flag in p.flags:
                Command().run("parted", "parted", "-s", context.image, "set", str(p.number), flag, "on")

            self.format_partition(context, p)
            context.image_partitions.append(ImagePartition(p.name, partition_device(context.image, p.number)))

    def mount_partitions(self, context: Context) -> None:
        assert context.image and context.image_mntdir

        for m in self.mountpoints:
            assert m.part
            device = partition_device(context.image, m.part.number)
            path = restricted_path(context.image_mntdir, m.mountpoint)
            path.mkdir(parents=True, exist_ok=True)

            try:
                mount(os.fspath(device), os.fspath(path), m.part.fs)
            except OSError as e:
                die(f"Mounting partition {m.part.name} on {m.mountpoint} failed: {e}")

            context.acquire(ResourceKind.mount, path, self)

    def run(self, context: Context) -> None:
        if not context.image:
            die("No image to partition")

        context.image_mntdir = context.scratchdir / "mnt"
        context.image_mntdir.mkdir(parents=True, exist_ok=True)

        # Keep udev from rescanning partitions behind our back until everything is mounted.
        with flock(context.image):
            self.partition_image(context)
            self.mount_partitions(context)

        context.image_fstab = generate_fstab(self.mountpoints)

        if any(m.mountpoint == "/" for m in self.mountpoints):
            context.image_kernel_root = generate_kernel_root(self.mountpoints)

    def cleanup(self, context: Context) -> None:
        if not context.image_mntdir:
            return

        mntdir = context.image_mntdir
        self.unmount(context, {restricted_path(mntdir, m.mountpoint) for m in self.mountpoints if m.buildtime})
