# SPDX-License-Identifier: LGPL-2.1-or-later

import dataclasses
import logging

from mkrecipe.actions import Action
from mkrecipe.context import Context
from mkrecipe.log import complete_step, die
from mkrecipe.tree import copy_tree
from mkrecipe.util import umask


@dataclasses.dataclass
class FilesystemDeployAction(Action):
    """Copy the assembled root filesystem into the mounted image and make the image bootable from it."""

    kind = "filesystem-deploy"

    description: str = "Deploying filesystem"
    setup_fstab: bool = True
    setup_kernel_cmdline: bool = True
    append_kernel_cmdline: str = ""

    def describe(self) -> list[str]:
        return [
            *super().describe(),
            f"setup-fstab: {str(self.setup_fstab).lower()}",
            f"setup-kernel-cmdline: {str(self.setup_kernel_cmdline).lower()}",
            *([f"append-kernel-cmdline: {self.append_kernel_cmdline}"] if self.append_kernel_cmdline else []),
        ]

    def write_fstab(self, context: Context) -> None:
        if not context.image_fstab:
            die("fstab not generated, missing image-partition action?")

        logging.info("Setting up /etc/fstab")

        with umask(~0o755):
            (context.rootdir / "etc").mkdir(parents=True, exist_ok=True)

        (context.rootdir / "etc/fstab").write_text(context.image_fstab)

    def write_kernel_cmdline(self, context: Context) -> None:
        if not context.image_kernel_root:
            die("Kernel root not generated, missing a root mountpoint in the image-partition action?")

        logging.info("Setting up /etc/kernel/cmdline")

        with umask(~0o755):
            (context.rootdir / "etc/kernel").mkdir(parents=True, exist_ok=True)

        path = context.rootdir / "etc/kernel/cmdline"
        current = path.read_text().strip() if path.exists() else ""

        # Appended verbatim, repeated arguments such as console= included.
        cmdline = [current, context.image_kernel_root, self.append_kernel_cmdline.strip()]
        path.write_text(" ".join(arg for arg in cmdline if arg) + "\n")

    def run(self, context: Context) -> None:
        if not context.image_mntdir:
            die("No mounted image to deploy to, missing image-partition action?")

        with complete_step(f"Deploying {context.rootdir} to {context.image_mntdir}"):
            copy_tree(context.rootdir, context.image_mntdir)

        context.rootdir = context.image_mntdir
        context.origins["filesystem"] = context.image_mntdir

        if self.setup_fstab:
            self.write_fstab(context)
        if self.setup_kernel_cmdline:
            self.write_kernel_cmdline(context)
