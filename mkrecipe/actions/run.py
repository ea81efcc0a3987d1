# SPDX-License-Identifier: LGPL-2.1-or-later

import dataclasses
import logging
import os
from pathlib import Path

from mkrecipe.actions import Action
from mkrecipe.context import Context
from mkrecipe.log import die
from mkrecipe.machine import Machine
from mkrecipe.run import Command, chroot_command

MAX_LABEL_LENGTH = 40


def command_label(command: str) -> str:
    lines = command.strip().splitlines()
    label = lines[0] if lines else ""

    # Make it obvious a long or multi-line command is running.
    if len(label) > MAX_LABEL_LENGTH:
        return label[:MAX_LABEL_LENGTH].strip() + "..."
    if len(lines) > 1:
        return label + "..."

    return label


@dataclasses.dataclass
class RunAction(Action):
    """Run a command or script on the host, in the root filesystem or after the build machine exited."""

    kind = "run"

    chroot: bool = False
    postprocess: bool = False
    script: str = ""
    command: str = ""
    label: str = ""

    def describe(self) -> list[str]:
        return [
            *super().describe(),
            *([f"script: {self.script}"] if self.script else []),
            *([f"command: {command_label(self.command)}"] if self.command else []),
            f"chroot: {str(self.chroot).lower()}",
            f"postprocess: {str(self.postprocess).lower()}",
        ]

    def script_args(self, context: Context) -> tuple[Path, list[str]]:
        # The script path itself can't contain spaces, everything after the first space are arguments.
        path, *args = self.script.split(" ")
        return Path(os.path.normpath(context.recipedir / path)), args

    def verify(self, context: Context) -> None:
        if self.postprocess and self.chroot:
            die("Cannot run postprocessing in the chroot")

        if not self.script and not self.command:
            die("Need to set 'script' or 'command'")

        if self.script:
            path, _ = self.script_args(context)
            if not path.is_file():
                die(f"Script {path} is not a regular file or valid symlink")
            if not os.access(path, os.R_OK):
                die(f"Script {path} is not readable")
            if not os.access(path, os.X_OK):
                die(f"Script {path} is not executable")

    def pre_machine(self, context: Context, machine: Machine, args: list[str]) -> None:
        if self.script and not self.postprocess:
            path, _ = self.script_args(context)
            machine.add_volume(path.parent)

    def execute(self, context: Context) -> None:
        cmd = chroot_command(context) if self.chroot else Command()

        if self.script:
            path, args = self.script_args(context)
            script = os.fspath(path)

            if self.chroot:
                cmd.add_bind_mount(path.parent, "/tmp/script")
                script = f"/tmp/script/{path.name}"

            cmdline = " ".join([script, *args])
            label = Path(self.script.split(" ")[0]).name
        else:
            cmdline = self.command
            label = command_label(self.command)

        label = self.label or label

        if context.verbose:
            logging.info(f'Running command "{cmdline}"')

        if not self.chroot:
            cmd.add_env("RECIPEDIR", os.fspath(context.recipedir))
            cmd.add_env("ARTIFACTDIR", os.fspath(context.artifactdir))

        if not self.postprocess:
            if not self.chroot:
                cmd.add_env("ROOTDIR", os.fspath(context.rootdir))
                if context.image_mntdir:
                    cmd.add_env("IMAGEMNTDIR", os.fspath(context.image_mntdir))
            if context.image:
                cmd.add_env("IMAGE", os.fspath(context.image))

        for k, v in context.environment.items():
            cmd.add_env(k, v)

        cmd.run(label, "sh", "-e", "-c", cmdline)

    def run(self, context: Context) -> None:
        if not self.postprocess:
            self.execute(context)

    def post_machine(self, context: Context) -> None:
        if self.postprocess:
            self.execute(context)
