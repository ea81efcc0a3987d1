# SPDX-License-Identifier: LGPL-2.1-or-later

import copy
import dataclasses
import enum
from pathlib import Path
from typing import Optional

from mkrecipe.architecture import Architecture
from mkrecipe.util import StrEnum


class State(StrEnum):
    success = enum.auto()
    failed  = enum.auto()


class ResourceKind(StrEnum):
    image_file  = enum.auto()
    loop_device = enum.auto()
    mount       = enum.auto()


@dataclasses.dataclass(frozen=True)
class ImagePartition:
    name: str
    device: Path


@dataclasses.dataclass(frozen=True)
class Resource:
    kind: ResourceKind
    path: Path
    owner: object = dataclasses.field(compare=False, repr=False)


@dataclasses.dataclass
class ImageState:
    """State shared between a recipe and every recipe it includes."""

    rootdir: Path
    image: Optional[Path] = None
    image_partitions: list[ImagePartition] = dataclasses.field(default_factory=list)
    image_mntdir: Optional[Path] = None
    image_fstab: str = ""
    image_kernel_root: str = ""
    state: State = State.success
    resources: list[Resource] = dataclasses.field(default_factory=list)


class Context:
    """Build state threaded through every phase of every action."""

    def __init__(
        self,
        *,
        scratchdir: Path,
        artifactdir: Path,
        recipedir: Path,
        architecture: Architecture,
        sector_size: int = 512,
        environment: Optional[dict[str, str]] = None,
        debug_shell: Optional[str] = None,
        verbose: bool = False,
        print_recipe: bool = False,
        image: Optional[Path] = None,
    ) -> None:
        self.scratchdir = scratchdir
        self.artifactdir = artifactdir
        self.downloaddir = scratchdir
        self.recipedir = recipedir
        self.architecture = architecture
        self.sector_size = sector_size
        self.environment = dict(environment or {})
        self.debug_shell = debug_shell
        self.verbose = verbose
        self.print_recipe = print_recipe
        self.parent: Optional["Context"] = None

        self.shared = ImageState(rootdir=scratchdir / "root", image=image)
        self.origins: dict[str, Path] = {
            "artifacts": artifactdir,
            "filesystem": self.rootdir,
            "recipe": recipedir,
        }

    @property
    def rootdir(self) -> Path:
        return self.shared.rootdir

    @rootdir.setter
    def rootdir(self, value: Path) -> None:
        self.shared.rootdir = value

    @property
    def image(self) -> Optional[Path]:
        return self.shared.image

    @image.setter
    def image(self, value: Optional[Path]) -> None:
        self.shared.image = value

    @property
    def image_partitions(self) -> list[ImagePartition]:
        return self.shared.image_partitions

    @property
    def image_mntdir(self) -> Optional[Path]:
        return self.shared.image_mntdir

    @image_mntdir.setter
    def image_mntdir(self, value: Optional[Path]) -> None:
        self.shared.image_mntdir = value

    @property
    def image_fstab(self) -> str:
        return self.shared.image_fstab

    @image_fstab.setter
    def image_fstab(self, value: str) -> None:
        self.shared.image_fstab = value

    @property
    def image_kernel_root(self) -> str:
        return self.shared.image_kernel_root

    @image_kernel_root.setter
    def image_kernel_root(self, value: str) -> None:
        self.shared.image_kernel_root = value

    @property
    def state(self) -> State:
        return self.shared.state

    @state.setter
    def state(self, value: State) -> None:
        self.shared.state = value

    @property
    def resources(self) -> list[Resource]:
        return self.shared.resources

    def origin(self, name: str) -> Optional[Path]:
        if name == "recipe":
            return self.recipedir
        # Follows the root directory when the filesystem gets deployed into an image.
        if name == "filesystem":
            return self.rootdir

        if name in self.origins:
            return self.origins[name]

        # Origins the parent recipe defines while building stay visible to included recipes.
        return self.parent.origin(name) if self.parent else None

    def nested(self, recipedir: Path) -> "Context":
        """
        Returns a context for an included recipe. The image state is shared with this context, the
        included recipe sees the origins of its parent, but origins it defines itself stay private.
        """
        other = copy.copy(self)
        other.recipedir = recipedir
        other.parent = self
        other.origins = {"recipe": recipedir}
        return other

    def partition(self, name: str) -> Optional[ImagePartition]:
        return next((p for p in self.image_partitions if p.name == name), None)

    def acquire(self, kind: ResourceKind, path: Path, owner: object) -> Resource:
        resource = Resource(kind, path, owner)
        self.resources.append(resource)
        return resource

    def acquired(self, owner: object, kind: Optional[ResourceKind] = None) -> list[Resource]:
        """Resources held by owner, most recently acquired first."""
        return [
            r for r in reversed(self.resources)
            if r.owner is owner and (kind is None or r.kind == kind)
        ]  # fmt: skip

    def release(self, resource: Resource) -> None:
        self.shared.resources = [r for r in self.resources if r is not resource]
