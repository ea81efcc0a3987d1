# SPDX-License-Identifier: LGPL-2.1-or-later

import dataclasses
import logging
import os
from pathlib import Path
from typing import Union

from mkrecipe.actions import Action, require
from mkrecipe.context import Context
from mkrecipe.log import die


def parse_offset(offset: Union[str, int], sector_size: int) -> int:
    """Parse a byte offset, a "s" suffix counts sectors instead of bytes."""
    s = str(offset).strip()
    if not s:
        return 0

    sectors = s.endswith("s")
    s = s.removesuffix("s")

    try:
        value = int(s, 0)
    except ValueError:
        die(f"Couldn't parse offset {offset!r}")

    if value < 0:
        die(f"Offset {offset!r} is negative")

    return value * sector_size if sectors else value


def write_at(device: Path, content: bytes, offset: int) -> None:
    fd = os.open(device, os.O_WRONLY | os.O_CLOEXEC)
    try:
        written = os.pwrite(fd, content, offset)
        if written != len(content):
            die(f"Couldn't write complete data to {device}, wrote {written} of {len(content)} bytes")
        os.fsync(fd)
    finally:
        os.close(fd)


@dataclasses.dataclass
class RawAction(Action):
    """Write a file verbatim at an offset of the image or one of its partitions."""

    kind = "raw"

    origin: str = ""
    source: str = ""
    offset: Union[str, int] = ""
    partition: str = ""
    # Deprecated: "source" used to name the origin and "path" the file.
    path: str = ""
    byte_offset: int = dataclasses.field(default=0, init=False, repr=False)

    def describe(self) -> list[str]:
        return [
            *super().describe(),
            f"origin: {self.origin or 'recipe'}",
            f"source: {self.source}",
            *([f"offset: {self.offset}"] if self.offset != "" else []),
            *([f"partition: {self.partition}"] if self.partition else []),
        ]

    def check_deprecated_syntax(self) -> None:
        if not self.path:
            return

        logging.warning("Usage of the 'source' and 'path' properties is deprecated, use 'origin' and 'source'")

        if self.origin:
            die("Can't mix the 'origin' and deprecated 'path' properties")
        if not self.source:
            die("The 'source' and 'path' properties can't be empty")

        self.origin, self.source, self.path = self.source, self.path, ""

    def verify(self, context: Context) -> None:
        self.check_deprecated_syntax()
        require(self, self.source, "source")
        self.byte_offset = parse_offset(self.offset, context.sector_size)

    def run(self, context: Context) -> None:
        origin = context.origin(self.origin or "recipe")
        if not origin:
            die(f"Origin {self.origin!r} doesn't exist")

        source = origin / self.source
        try:
            content = source.read_bytes()
        except OSError as e:
            die(f"Failed to read {source}: {e}")

        if self.partition:
            partition = context.partition(self.partition)
            if not partition:
                die(f"Failed to find partition named {self.partition}")
            device = partition.device
        elif context.image:
            device = context.image
        else:
            die("No image to write to")

        write_at(device, content, self.byte_offset)
