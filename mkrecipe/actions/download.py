# SPDX-License-Identifier: LGPL-2.1-or-later

import dataclasses
import logging
import re
import urllib.parse
from pathlib import Path, PurePosixPath

from mkrecipe.actions import Action, require
from mkrecipe.archive import can_extract_tar, check_compression, extract_tar
from mkrecipe.context import Context
from mkrecipe.curl import curl
from mkrecipe.log import die
from mkrecipe.util import hash_file


@dataclasses.dataclass
class DownloadAction(Action):
    """Download a file over HTTP(S) and export it, optionally unpacked, as an origin."""

    kind = "download"

    url: str = ""
    name: str = ""
    filename: str = ""
    unpack: bool = False
    compression: str = ""
    sha256sum: str = ""

    def describe(self) -> list[str]:
        return [
            *super().describe(),
            f"url: {self.url}",
            f"name: {self.name}",
            *([f"filename: {self.filename}"] if self.filename else []),
            f"unpack: {str(self.unpack).lower()}",
            *([f"sha256sum: {self.sha256sum}"] if self.sha256sum else []),
        ]

    def target(self, context: Context) -> Path:
        url = urllib.parse.urlparse(self.url)
        if url.scheme not in ("http", "https"):
            die(f"Unsupported URL {self.url!r}, only http and https are supported")

        filename = PurePosixPath(self.filename or url.path).name
        if not filename or filename in (".", ".."):
            die(f"Incorrect filename provided for {self.url!r}")

        return context.downloaddir / filename

    def verify(self, context: Context) -> None:
        require(self, self.name, "name")
        require(self, self.url, "url")

        target = self.target(context)

        if self.unpack:
            if not can_extract_tar(target):
                die(f"Don't know how to unpack {target.name}, only tar archives are supported")
            if self.compression:
                check_compression(self.compression)

        if self.sha256sum:
            if len(self.sha256sum) != 64:
                die(f"Invalid length for property 'sha256sum', expected 64 characters, got {len(self.sha256sum)}")
            if not re.fullmatch(r"[0-9a-fA-F]{64}", self.sha256sum):
                die("Invalid characters in property 'sha256sum'")

    def run(self, context: Context) -> None:
        target = self.target(context)

        curl(self.url, target, environment=context.environment)

        checksum = hash_file(target)
        logging.info(f"Downloaded file '{target}': sha256sum = {checksum}")

        if self.sha256sum and checksum != self.sha256sum.lower():
            target.unlink(missing_ok=True)
            context.origins.pop(self.name, None)
            die(f"SHA256 sum mismatch for {target}, expected {self.sha256sum} but got {checksum}")

        origin = target
        if self.unpack:
            origin = target.with_name(f"{target.name}.d")
            extract_tar(target, origin, compression=self.compression or None)

        context.origins[self.name] = origin
