# SPDX-License-Identifier: LGPL-2.1-or-later

import contextlib
import logging
import stat
import tempfile
from collections.abc import Iterator, Sequence
from pathlib import Path
from typing import Optional

from mkrecipe.actions import Action, release
from mkrecipe.config import Args, finalize_environment, warn_localhost
from mkrecipe.context import Context, State
from mkrecipe.debug import debug_shell
from mkrecipe.image import parse_size
from mkrecipe.log import ARG_DEBUG, complete_step, die, log_step
from mkrecipe.machine import MACHINE_SCRATCHDIR, FakeMachine, Machine, MachineBackend, in_machine, machine_supported
from mkrecipe.recipe import parse_recipe
from mkrecipe.tree import rmtree
from mkrecipe.util import umask


@contextlib.contextmanager
def action_phase(context: Context, action: Action, stage: str, *, shell: bool = True) -> Iterator[None]:
    try:
        yield
    except BaseException:
        context.state = State.failed
        logging.error(f"Action '{action}' failed at stage {stage}")
        if shell:
            debug_shell(context)
        raise


def verify_actions(context: Context, actions: Sequence[Action]) -> None:
    for a in actions:
        with action_phase(context, a, "Verify", shell=False):
            a.verify(context)


def run_actions(context: Context, actions: Sequence[Action]) -> None:
    with contextlib.ExitStack() as stack:
        for a in actions:
            log_step(f"==== {a} ====")
            # Cleanup is owed as soon as run starts, whether it succeeds or not.
            stack.callback(release, a, "Cleanup", a.cleanup, context)
            with action_phase(context, a, "Run"):
                a.run(context)


def post_machine(context: Context, actions: Sequence[Action]) -> None:
    for a in actions:
        with action_phase(context, a, "PostMachine"):
            a.post_machine(context)


def build_on_host(context: Context, actions: Sequence[Action]) -> None:
    with contextlib.ExitStack() as stack:
        if not in_machine():
            for a in actions:
                stack.callback(release, a, "PostMachineCleanup", a.post_machine_cleanup, context)
                with action_phase(context, a, "PreNoMachine"):
                    a.pre_no_machine(context)

        with umask(~0o755):
            context.rootdir.mkdir(parents=True, exist_ok=True)

        run_actions(context, actions)

        if not in_machine():
            post_machine(context, actions)


def build_in_machine(context: Context, actions: Sequence[Action], machine: Machine, args: list[str]) -> None:
    with contextlib.ExitStack() as stack:
        for a in actions:
            stack.callback(release, a, "PostMachineCleanup", a.post_machine_cleanup, context)
            with action_phase(context, a, "PreMachine"):
                a.pre_machine(context, machine, args)

        with complete_step("Running the build machine"):
            rc = machine.run(args)

        if rc != 0:
            context.state = State.failed
            die(f"Build machine failed with non-zero exit code {rc}")

        post_machine(context, actions)


def finalize_machine(args: Args, environment: dict[str, str]) -> Optional[FakeMachine]:
    if args.disable_fakemachine or in_machine():
        return None

    if not machine_supported(args.fakemachine_backend):
        if args.fakemachine_backend != MachineBackend.auto:
            die(f"Build machine backend {args.fakemachine_backend} is not supported on this host")
        logging.info("Build machine not available, running on the host")
        return None

    memory = parse_size(args.memory or "2Gb", binary=True) // 1024**2
    if memory < 256:
        logging.warning(f"Memory size of {memory}MB is less than the recommended minimum of 256MB")

    scratchsize = None
    if args.scratchsize:
        scratchsize = parse_size(args.scratchsize)
        if scratchsize // 1000**2 < 512:
            logging.warning(
                f"Scratch size of {scratchsize // 1000**2}MB is less than the recommended minimum of 512MB"
            )

    warn_localhost(environment)

    machine = FakeMachine(
        backend=args.fakemachine_backend,
        memory=memory,
        cpus=args.cpus,
        scratchsize=scratchsize,
        show_boot=args.show_boot,
        quiet=not args.verbose,
        environment=environment,
    )
    machine.add_volume(args.artifactdir)
    machine.add_volume(args.recipe.parent)

    return machine


@contextlib.contextmanager
def setup_scratchdir(machine: Optional[Machine]) -> Iterator[Path]:
    # The outer run never uses the scratch space when building in a machine.
    if machine or in_machine():
        yield MACHINE_SCRATCHDIR
        return

    with contextlib.ExitStack() as stack:
        scratchdir = Path(tempfile.mkdtemp(dir=Path.cwd(), prefix=".mkrecipe-"))
        # Discard setuid/setgid bits as these are inherited and can leak into the image.
        scratchdir.chmod(stat.S_IMODE(scratchdir.stat().st_mode) & ~(stat.S_ISGID | stat.S_ISUID))
        stack.callback(rmtree, scratchdir)
        yield scratchdir


def run_recipe(args: Args) -> None:
    ARG_DEBUG.set(args.debug)

    recipe = parse_recipe(
        args.recipe,
        args.template_vars,
        print_recipe=args.print_recipe,
        verbose=args.verbose,
    )

    environment = finalize_environment(args.environ_vars)
    machine = finalize_machine(args, environment)

    with setup_scratchdir(machine) as scratchdir:
        context = Context(
            scratchdir=scratchdir,
            artifactdir=args.artifactdir,
            recipedir=args.recipe.parent,
            architecture=recipe.architecture,
            sector_size=recipe.sector_size,
            environment=environment,
            debug_shell=args.shell if args.debug_shell else None,
            verbose=args.verbose,
            print_recipe=args.print_recipe,
            image=args.internal_image,
        )

        verify_actions(context, recipe.actions)

        if args.dry_run:
            log_step("==== Recipe done (Dry run) ====")
            return

        if machine:
            build_in_machine(context, recipe.actions, machine, args.forwarded())
        else:
            build_on_host(context, recipe.actions)

    if not in_machine():
        log_step("==== Recipe done ====")
