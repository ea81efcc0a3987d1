# SPDX-License-Identifier: LGPL-2.1-or-later

import dataclasses
import os

from mkrecipe.actions.image import ImageAction
from mkrecipe.context import Context, ResourceKind
from mkrecipe.image import filesystem_driver, format_device
from mkrecipe.log import die
from mkrecipe.syscall import mount


@dataclasses.dataclass
class FormatImageAction(ImageAction):
    """Create an image holding a single filesystem without a partition table and mount it."""

    kind = "format-image"

    fs: str = ""
    label: str = ""
    blocksize: int = 0

    def describe(self) -> list[str]:
        return [
            *super().describe(),
            f"fs: {self.fs}",
            f"label: {self.label}",
            *([f"blocksize: {self.blocksize}"] if self.blocksize else []),
        ]

    def verify(self, context: Context) -> None:
        if not self.fs:
            die("Missing fs type")
        if self.fs == "fat32":
            self.fs = "vfat"

        if not self.label:
            die("Image without a label")

        if self.blocksize:
            if self.blocksize not in (1024, 2048, 4096):
                die(f"Invalid blocksize {self.blocksize}, expected 1024, 2048 or 4096")
            if not self.fs.startswith("ext"):
                die("A blocksize is only valid for ext filesystems")

        super().verify(context)

    def run(self, context: Context) -> None:
        if not context.image:
            die("No image to format")

        format_device(
            self.fs,
            self.label,
            context.image,
            options=["-b", str(self.blocksize)] if self.blocksize else [],
        )

        context.image_mntdir = context.scratchdir / "mnt"
        context.image_mntdir.mkdir(parents=True, exist_ok=True)

        try:
            mount(os.fspath(context.image), os.fspath(context.image_mntdir), filesystem_driver(self.fs))
        except OSError as e:
            die(f"Mounting {context.image} failed: {e}")

        context.acquire(ResourceKind.mount, context.image_mntdir, self)

    def cleanup(self, context: Context) -> None:
        self.unmount(context)
