# SPDX-License-Identifier: LGPL-2.1-or-later

import argparse
import dataclasses
import functools
import logging
import os
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any, Optional

from mkrecipe._version import __version__
from mkrecipe.log import die
from mkrecipe.machine import MachineBackend

# Picked up from the host in both lower and upper case and forwarded to every command we run.
PROXY_VARIABLES = (
    "http_proxy",
    "https_proxy",
    "ftp_proxy",
    "rsync_proxy",
    "all_proxy",
    "no_proxy",
)


@dataclasses.dataclass(frozen=True)
class Args:
    recipe: Path
    artifactdir: Path
    internal_image: Optional[Path]
    template_vars: dict[str, str]
    environ_vars: dict[str, str]
    debug: bool
    debug_shell: bool
    shell: str
    fakemachine_backend: MachineBackend
    disable_fakemachine: bool
    memory: Optional[str]
    cpus: int
    scratchsize: Optional[str]
    show_boot: bool
    verbose: bool
    print_recipe: bool
    dry_run: bool

    @classmethod
    @functools.lru_cache(maxsize=1)
    def fields(cls) -> dict[str, dataclasses.Field[Any]]:
        return {f.name: f for f in dataclasses.fields(cls)}

    @classmethod
    def from_namespace(cls, ns: dict[str, Any]) -> "Args":
        return cls(**{k: v for k, v in ns.items() if k in cls.fields()})

    def forwarded(self) -> list[str]:
        """The arguments the build machine needs to repeat this build from the inside."""
        return [
            "--artifactdir", os.fspath(self.artifactdir),
            *(a for k, v in self.template_vars.items() for a in ("--template-var", f"{k}:{v}")),
            *(a for k, v in self.environ_vars.items() for a in ("--environ-var", f"{k}:{v}")),
            os.fspath(self.recipe),
            *(["--debug-shell", "--shell", self.shell] if self.debug_shell else []),
            *(["--verbose"] if self.verbose else []),
        ]  # fmt: skip


def parse_key_value(value: str) -> tuple[str, str]:
    key, sep, val = value.partition(":")
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"Expected KEY:VALUE, got {value!r}")

    return key, val


class KeyValueAction(argparse.Action):
    def __call__(
        self,
        parser: argparse.ArgumentParser,
        namespace: argparse.Namespace,
        values: Any,
        option_string: Optional[str] = None,
    ) -> None:
        d = dict(getattr(namespace, self.dest) or {})
        key, val = values
        d[key] = val
        setattr(namespace, self.dest, d)


def create_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mkrecipe",
        description="Build OS images from a recipe of actions",
        allow_abbrev=False,
    )

    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s " + __version__,
    )
    parser.add_argument(
        "recipe",
        type=Path,
        help="Recipe to build",
        metavar="RECIPE",
    )
    parser.add_argument(
        "--artifactdir",
        type=Path,
        default=Path.cwd(),
        help="Directory for the produced images and archives (default: current directory)",
        metavar="PATH",
    )
    parser.add_argument(
        "--internal-image",
        type=Path,
        default=None,
        help=argparse.SUPPRESS,
    )
    parser.add_argument(
        "-t", "--template-var",
        dest="template_vars",
        type=parse_key_value,
        action=KeyValueAction,
        default={},
        help="Template variables",
        metavar="KEY:VALUE",
    )  # fmt: skip
    parser.add_argument(
        "-e", "--environ-var",
        dest="environ_vars",
        type=parse_key_value,
        action=KeyValueAction,
        default={},
        help="Environment variables, an empty value unsets the variable",
        metavar="KEY:VALUE",
    )  # fmt: skip
    parser.add_argument(
        "--debug-shell",
        action="store_true",
        default=False,
        help="Fall into an interactive shell on error",
    )
    parser.add_argument(
        "-s", "--shell",
        default="/bin/bash",
        help="Interactive shell binary used by --debug-shell",
        metavar="SHELL",
    )  # fmt: skip
    parser.add_argument(
        "-b", "--fakemachine-backend",
        type=MachineBackend,
        choices=list(MachineBackend),
        default=MachineBackend.auto,
        help="Build machine backend to use",
    )  # fmt: skip
    parser.add_argument(
        "--disable-fakemachine",
        action="store_true",
        default=False,
        help="Do not use a build machine",
    )
    parser.add_argument(
        "-m", "--memory",
        default=None,
        help="Amount of memory for the build machine (default: 2Gb)",
        metavar="SIZE",
    )  # fmt: skip
    parser.add_argument(
        "-c", "--cpus",
        type=int,
        default=2,
        help="Number of CPUs of the build machine",
    )  # fmt: skip
    parser.add_argument(
        "--scratchsize",
        default=None,
        help="Size of the disk-backed scratch space of the build machine",
        metavar="SIZE",
    )
    parser.add_argument(
        "--show-boot",
        action="store_true",
        default=False,
        help="Show boot messages of the build machine",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        default=False,
        help="Verbose output",
    )  # fmt: skip
    parser.add_argument(
        "--print-recipe",
        action="store_true",
        default=False,
        help="Print the recipe after template expansion",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        default=False,
        help="Parse and verify the recipe without doing any work",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=False,
        help="Turn on debugging output",
    )

    return parser


def parse_args(argv: Sequence[str]) -> Args:
    ns = create_argument_parser().parse_args(argv)

    if ns.disable_fakemachine and ns.fakemachine_backend != MachineBackend.auto:
        die("--disable-fakemachine and --fakemachine-backend are mutually exclusive")

    if not ns.recipe.exists():
        die(f"Recipe {ns.recipe} does not exist")

    ns.recipe = ns.recipe.absolute()
    ns.artifactdir = ns.artifactdir.absolute()

    if not ns.artifactdir.is_dir():
        die(f"Artifact directory {ns.artifactdir} does not exist or is not a directory")

    return Args.from_namespace(vars(ns))


def finalize_environment(overrides: Mapping[str, str], host: Mapping[str, str] = os.environ) -> dict[str, str]:
    env = {}

    for var in PROXY_VARIABLES:
        for name in (var.lower(), var.upper()):
            if host.get(name):
                env[name] = host[name]

    for k, v in overrides.items():
        if v:
            env[k] = v
        else:
            env.pop(k, None)

    return env


def warn_localhost(environment: Mapping[str, str]) -> None:
    for k, v in environment.items():
        if any(s in v for s in ("localhost", "127.0.0.1", "::1")):
            logging.warning(
                f"Environment variable {k} contains a reference to localhost. This may not work from "
                "within the build machine, consider using an address that is valid on your network."
            )
