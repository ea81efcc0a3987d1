# SPDX-License-Identifier: LGPL-2.1-or-later

import dataclasses
import logging
import os
from pathlib import Path

from mkrecipe.actions import Action, require
from mkrecipe.context import Context, ResourceKind, State
from mkrecipe.image import attach_loop, create_image, detach_loop, parse_size
from mkrecipe.log import log_step
from mkrecipe.machine import Machine
from mkrecipe.syscall import umount2


@dataclasses.dataclass
class ImageAction(Action):
    """
    Base for actions that create the image. On the host the image is a file in the artifact directory
    attached to a loop device, in the build machine it is a disk of the machine backed by that file.
    """

    imagename: str = ""
    imagesize: str = ""
    size: int = dataclasses.field(default=0, init=False, repr=False)

    def describe(self) -> list[str]:
        return [
            *super().describe(),
            f"imagename: {self.imagename}",
            f"imagesize: {self.imagesize}",
        ]

    def verify(self, context: Context) -> None:
        require(self, self.imagename, "imagename")
        require(self, self.imagesize, "imagesize")
        self.size = parse_size(self.imagesize)

    def image_path(self, context: Context) -> Path:
        return context.artifactdir / self.imagename

    def pre_machine(self, context: Context, machine: Machine, args: list[str]) -> None:
        path = self.image_path(context)
        context.acquire(ResourceKind.image_file, path, self)

        context.image = machine.create_image(path, self.size)
        args += ["--internal-image", os.fspath(context.image)]

    def pre_no_machine(self, context: Context) -> None:
        path = self.image_path(context)

        context.acquire(ResourceKind.image_file, path, self)
        create_image(path, self.size)

        device = attach_loop(path)
        context.acquire(ResourceKind.loop_device, device, self)
        context.image = device

    def unmount(self, context: Context, removable: set[Path] = set()) -> None:
        """Unmount everything this action mounted, most recent mount first."""
        for resource in context.acquired(self, ResourceKind.mount):
            log_step(f"Unmounting {resource.path}")
            try:
                umount2(os.fspath(resource.path))
            except OSError as e:
                logging.warning(f"Failed to unmount {resource.path}, the image may be incomplete: {e}")
                continue

            context.release(resource)

            if resource.path in removable:
                try:
                    resource.path.rmdir()
                except OSError as e:
                    logging.warning(f"Failed to remove temporary mount point {resource.path}: {e}")

    def post_machine_cleanup(self, context: Context) -> None:
        for resource in context.acquired(self, ResourceKind.loop_device):
            detach_loop(resource.path)
            context.release(resource)

        for resource in context.acquired(self, ResourceKind.image_file):
            # Never leave a half-built image behind.
            if context.state != State.success and resource.path.exists():
                logging.info(f"Removing incomplete image {resource.path}")
                resource.path.unlink()
            context.release(resource)
