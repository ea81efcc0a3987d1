# SPDX-License-Identifier: LGPL-2.1-or-later

import dataclasses
from pathlib import Path
from typing import Any

from mkrecipe.actions import Action
from mkrecipe.architecture import Architecture
from mkrecipe.context import Context
from mkrecipe.machine import Machine


def make_context(tmp_path: Path, **kwargs: Any) -> Context:
    scratchdir = tmp_path / "scratch"
    artifactdir = tmp_path / "artifacts"
    recipedir = tmp_path / "recipe"

    for d in (scratchdir, artifactdir, recipedir):
        d.mkdir(exist_ok=True)

    return Context(
        scratchdir=scratchdir,
        artifactdir=artifactdir,
        recipedir=recipedir,
        architecture=kwargs.pop("architecture", Architecture.amd64),
        **kwargs,
    )


@dataclasses.dataclass
class RecordingAction(Action):
    """Records every phase it goes through in a log shared with other actions."""

    kind = "recording"

    log: list[str] = dataclasses.field(default_factory=list)
    fail: str = ""

    def record(self, phase: str) -> None:
        self.log.append(f"{self.description}:{phase}")
        if phase == self.fail:
            raise RuntimeError(f"{self.description} failed at {phase}")

    def verify(self, context: Context) -> None:
        self.record("verify")

    def pre_machine(self, context: Context, machine: Machine, args: list[str]) -> None:
        self.record("pre_machine")

    def pre_no_machine(self, context: Context) -> None:
        self.record("pre_no_machine")

    def run(self, context: Context) -> None:
        self.record("run")

    def cleanup(self, context: Context) -> None:
        self.record("cleanup")

    def post_machine(self, context: Context) -> None:
        self.record("post_machine")

    def post_machine_cleanup(self, context: Context) -> None:
        self.record("post_machine_cleanup")


@dataclasses.dataclass
class StubMachine:
    returncode: int = 0
    images: list[tuple[Path, int]] = dataclasses.field(default_factory=list)
    volumes: list[Path] = dataclasses.field(default_factory=list)
    argv: list[str] = dataclasses.field(default_factory=list)

    def create_image(self, path: Path, size: int) -> Path:
        self.images.append((path, size))
        return Path(f"/dev/vd{chr(ord('a') + len(self.images) - 1)}")

    def add_volume(self, path: Path) -> None:
        self.volumes.append(path)

    def run(self, argv: list[str]) -> int:
        self.argv = list(argv)
        return self.returncode
