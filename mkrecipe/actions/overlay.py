# SPDX-License-Identifier: LGPL-2.1-or-later

import dataclasses
import logging

from mkrecipe.actions import Action
from mkrecipe.context import Context
from mkrecipe.log import die
from mkrecipe.tree import copy_tree
from mkrecipe.util import restricted_path, umask


@dataclasses.dataclass
class OverlayAction(Action):
    """Copy a directory tree or file into the root filesystem."""

    kind = "overlay"

    origin: str = ""
    source: str = ""
    destination: str = "/"

    def describe(self) -> list[str]:
        return [
            *super().describe(),
            f"origin: {self.origin or 'recipe'}",
            f"source: {self.source}",
            f"destination: {self.destination}",
        ]

    def verify(self, context: Context) -> None:
        restricted_path(context.rootdir, self.destination)

        if not self.source and not self.origin:
            die("The 'source' and 'origin' properties can't both be empty")

        # Other origins only come into existence while building.
        if self.origin in ("", "recipe") and not (context.recipedir / self.source).exists():
            die(f"Overlay source {context.recipedir / self.source} does not exist")

    def run(self, context: Context) -> None:
        origin = context.origin(self.origin or "recipe")
        if not origin:
            die(f"Origin not found {self.origin!r}")

        source = origin / self.source
        destination = restricted_path(context.rootdir, self.destination)

        with umask(~0o755):
            destination.parent.mkdir(parents=True, exist_ok=True)

        logging.info(f"Overlaying {source} on {destination}")
        copy_tree(source, destination)
