# SPDX-License-Identifier: LGPL-2.1-or-later

import dataclasses
from pathlib import Path

from mkrecipe.actions import Action
from mkrecipe.archive import can_extract_tar, check_compression, extract_tar, make_tar
from mkrecipe.context import Context
from mkrecipe.log import die
from mkrecipe.util import restricted_path


@dataclasses.dataclass
class PackAction(Action):
    """Create a tarball of the root filesystem in the artifact directory."""

    kind = "pack"

    file: str = ""
    compression: str = "gz"
    subdir: str = ""

    def describe(self) -> list[str]:
        return [
            *super().describe(),
            f"file: {self.file}",
            f"compression: {self.compression}",
            *([f"subdir: {self.subdir}"] if self.subdir else []),
        ]

    def verify(self, context: Context) -> None:
        if not self.file:
            die("Property 'file' is mandatory for the pack action")
        check_compression(self.compression)

    def run(self, context: Context) -> None:
        src = context.rootdir
        if self.subdir:
            src = restricted_path(context.rootdir, self.subdir)
            if not src.exists():
                die(f"Subdir {self.subdir} does not exist in the root filesystem")

        make_tar(src, context.artifactdir / self.file, compression=self.compression)


@dataclasses.dataclass
class UnpackAction(Action):
    """Extract a tarball into the root filesystem."""

    kind = "unpack"

    origin: str = ""
    file: str = ""
    compression: str = ""

    def describe(self) -> list[str]:
        return [
            *super().describe(),
            f"origin: {self.origin or 'artifacts'}",
            f"file: {self.file}",
            *([f"compression: {self.compression}"] if self.compression else []),
        ]

    def verify(self, context: Context) -> None:
        if not self.origin and not self.file:
            die("Filename can't be empty, add the 'file' and/or 'origin' property")

        if self.compression:
            if self.file and not can_extract_tar(Path(self.file)):
                die("Option 'compression' is supported for tar archives only")
            check_compression(self.compression)

    def run(self, context: Context) -> None:
        origin = context.artifactdir
        if self.origin:
            found = context.origin(self.origin)
            if not found:
                die(f"Origin not found {self.origin!r}")
            origin = found

        src = restricted_path(origin, self.file) if self.file else origin
        extract_tar(src, context.rootdir, compression=self.compression or None)
