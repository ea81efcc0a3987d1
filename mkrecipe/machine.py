# SPDX-License-Identifier: LGPL-2.1-or-later

import dataclasses
import enum
import logging
import os
from collections.abc import Sequence
from pathlib import Path
from typing import Optional, Protocol

from mkrecipe.run import find_binary, run
from mkrecipe.util import StrEnum, flatten

# Scratch space inside the build machine.
MACHINE_SCRATCHDIR = Path("/scratch")


class MachineBackend(StrEnum):
    auto = enum.auto()
    kvm  = enum.auto()
    uml  = enum.auto()
    qemu = enum.auto()


class Machine(Protocol):
    def create_image(self, path: Path, size: int) -> Path: ...

    def add_volume(self, path: Path) -> None: ...

    def run(self, argv: Sequence[str]) -> int: ...


def in_machine() -> bool:
    return os.getenv("IN_FAKE_MACHINE") == "yes"


def machine_supported(backend: MachineBackend = MachineBackend.auto) -> bool:
    if not find_binary("fakemachine"):
        logging.info("fakemachine is not installed")
        return False

    if backend == MachineBackend.kvm and not os.access("/dev/kvm", os.R_OK | os.W_OK):
        logging.info("/dev/kvm is not accessible")
        return False

    return True


@dataclasses.dataclass
class FakeMachine:
    """Runs a command in a throwaway virtual machine through the fakemachine tool."""

    backend: MachineBackend = MachineBackend.auto
    memory: int = 2048
    cpus: int = 2
    scratchsize: Optional[int] = None
    show_boot: bool = False
    quiet: bool = True
    environment: dict[str, str] = dataclasses.field(default_factory=dict)
    images: list[tuple[Path, int]] = dataclasses.field(default_factory=list)
    volumes: list[Path] = dataclasses.field(default_factory=list)

    def create_image(self, path: Path, size: int) -> Path:
        self.images.append((path, size))
        return Path(f"/dev/disk/by-fakemachine-label/fakedisk-{len(self.images) - 1}")

    def add_volume(self, path: Path) -> None:
        if path not in self.volumes:
            self.volumes.append(path)

    def cmdline(self, argv: Sequence[str]) -> list[str]:
        return [
            "fakemachine",
            "--backend", str(self.backend),
            "--memory", str(self.memory),
            "--cpus", str(self.cpus),
            *(["--scratchsize", str(self.scratchsize)] if self.scratchsize else []),
            *(["--show-boot"] if self.show_boot else []),
            *(["--quiet"] if self.quiet else []),
            *flatten(("--volume", os.fspath(v)) for v in self.volumes),
            *flatten(("--image", f"{p}:{size}") for p, size in self.images),
            *flatten(("--environ-var", f"{k}:{v}") for k, v in self.environment.items()),
            "--",
            "python3", "-m", "mkrecipe",
            *argv,
        ]  # fmt: skip

    def run(self, argv: Sequence[str]) -> int:
        return run(self.cmdline(argv), check=False).returncode
