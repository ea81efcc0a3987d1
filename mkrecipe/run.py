# SPDX-License-Identifier: LGPL-2.1-or-later

import contextlib
import dataclasses
import enum
import logging
import os
import shlex
import shutil
import signal
import subprocess
import sys
from collections.abc import Iterable, Iterator, Mapping, Sequence
from pathlib import Path
from types import TracebackType
from typing import TYPE_CHECKING, Callable, NoReturn, Optional

from mkrecipe.architecture import Architecture
from mkrecipe.log import ARG_DEBUG, die
from mkrecipe.util import _FILE, PathString, StrEnum, umask

if TYPE_CHECKING:
    from mkrecipe.context import Context

# These types are only generic during type checking and not at runtime, leading
# to a TypeError during compilation.
if TYPE_CHECKING:
    CompletedProcess = subprocess.CompletedProcess[str]
    Popen = subprocess.Popen[str]
else:
    CompletedProcess = subprocess.CompletedProcess
    Popen = subprocess.Popen


POLICY_HELPER = Path("usr/sbin/policy-rc.d")


def ensure_exc_info() -> tuple[type[BaseException], BaseException, TracebackType]:
    exctype, exc, tb = sys.exc_info()
    assert exctype
    assert exc
    assert tb
    return (exctype, exc, tb)


@contextlib.contextmanager
def uncaught_exception_handler(exit: Callable[[int], NoReturn] = sys.exit) -> Iterator[None]:
    rc = 0
    try:
        yield
    except SystemExit as e:
        rc = e.code if isinstance(e.code, int) else 1

        if ARG_DEBUG.get():
            sys.excepthook(*ensure_exc_info())
    except KeyboardInterrupt:
        rc = 1

        if ARG_DEBUG.get():
            sys.excepthook(*ensure_exc_info())
        else:
            logging.error("Interrupted")
    except subprocess.CalledProcessError as e:
        # We always log when subprocess.CalledProcessError is raised, so we don't log again here.
        rc = e.returncode

        # The build machine already reported its own failure, no point in a stacktrace for it.
        if ARG_DEBUG.get() and e.cmd and str(e.cmd[0]) != "fakemachine":
            sys.excepthook(*ensure_exc_info())
    except BaseException:
        sys.excepthook(*ensure_exc_info())
        rc = 1
    finally:
        sys.stdout.flush()
        sys.stderr.flush()
        exit(rc)


def log_process_failure(cmdline: Sequence[str], returncode: int) -> None:
    if -returncode in (signal.SIGINT, signal.SIGTERM):
        logging.error(f"Interrupted by {signal.Signals(-returncode).name} signal")
    elif returncode < 0:
        logging.error(f'"{shlex.join(cmdline)}" was killed by {signal.Signals(-returncode).name} signal.')
    elif returncode == 127:
        logging.error(f"{cmdline[0]} not found.")
    else:
        logging.error(f'"{shlex.join(cmdline)}" returned non-zero exit code {returncode}.')


def run(
    cmdline: Sequence[PathString],
    check: bool = True,
    stdin: _FILE = None,
    stdout: _FILE = None,
    stderr: _FILE = None,
    input: Optional[str] = None,
    env: Mapping[str, str] = {},
    cwd: Optional[Path] = None,
    log: bool = True,
) -> CompletedProcess:
    if input is not None:
        assert stdin is None  # stdin and input cannot be specified together
        stdin = subprocess.PIPE

    with spawn(
        cmdline,
        check=check,
        stdin=stdin,
        stdout=stdout,
        stderr=stderr,
        env=env,
        cwd=cwd,
        log=log,
    ) as process:
        out, err = process.communicate(input)

    return CompletedProcess(cmdline, process.returncode, out, err)


@contextlib.contextmanager
def spawn(
    cmdline: Sequence[PathString],
    check: bool = True,
    stdin: _FILE = None,
    stdout: _FILE = None,
    stderr: _FILE = None,
    env: Mapping[str, str] = {},
    cwd: Optional[Path] = None,
    log: bool = True,
) -> Iterator[Popen]:
    cmd = [os.fspath(x) for x in cmdline]

    if ARG_DEBUG.get():
        logging.info(f"+ {shlex.join(cmd)}")

    if not stdout and not stderr:
        # Unless explicit redirection is done, print all subprocess output on stderr, since we do so as well
        # for our own output.
        stdout = sys.stderr

    if stdin is None:
        stdin = subprocess.DEVNULL

    env = {
        "PATH": os.environ["PATH"],
        "TERM": os.getenv("TERM", "vt220"),
        "LANG": "C.UTF-8",
        **{k: v for k, v in env.items() if k != "LANG" and not k.startswith("LC_")},
    }

    if "TMPDIR" in os.environ:
        env["TMPDIR"] = os.environ["TMPDIR"]

    if "HOME" not in env:
        env["HOME"] = "/"

    try:
        proc = subprocess.Popen(
            cmd,
            stdin=stdin,
            stdout=stdout,
            stderr=stderr,
            text=True,
            env=env,
            cwd=cwd,
        )
    except FileNotFoundError as e:
        die(f"{e.filename} not found.")

    try:
        yield proc
        proc.wait()
    except KeyboardInterrupt:
        proc.send_signal(signal.SIGINT)
        raise
    except BaseException:
        proc.terminate()
        raise
    finally:
        returncode = proc.wait()

    if check and returncode != 0:
        if log:
            log_process_failure(cmd, returncode)
        raise subprocess.CalledProcessError(returncode, cmdline)


def find_binary(*names: PathString) -> Optional[Path]:
    for name in names:
        if binary := shutil.which(name):
            return Path(binary)

    return None


def log_output(label: str, stream: Iterable[str]) -> None:
    """Log every line of stream prefixed with label, including a final line without a newline."""
    for line in stream:
        line = line.removesuffix("\n")
        logging.info(f"{label} | {line}")


@contextlib.contextmanager
def stage_interpreter(root: Path, architecture: Architecture) -> Iterator[None]:
    """Copy the static qemu-user interpreter into root for the duration of the block."""
    interpreter = architecture.qemu_user_binary()
    if not interpreter:
        yield
        return

    target = root / interpreter.lstrip("/")
    target.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(interpreter, target)
    target.chmod(0o755)

    try:
        yield
    finally:
        target.unlink(missing_ok=True)


@contextlib.contextmanager
def deny_services(root: Path) -> Iterator[None]:
    """Stop maintainer scripts in root from starting or stopping services."""
    helper = root / POLICY_HELPER

    if helper.exists():
        logging.warning(f"Policy helper /{POLICY_HELPER} exists already, leaving it in place")
        yield
        return

    if not helper.parent.is_dir():
        yield
        return

    with umask(~0o755):
        helper.write_text("#!/bin/sh\n\nexit 101\n")
    helper.chmod(0o755)

    try:
        yield
    finally:
        helper.unlink(missing_ok=True)


class ChrootMethod(StrEnum):
    none   = enum.auto()
    chroot = enum.auto()
    nspawn = enum.auto()


@dataclasses.dataclass
class Command:
    architecture: Optional[Architecture] = None
    chroot: Optional[Path] = None
    method: ChrootMethod = ChrootMethod.none
    directory: Optional[Path] = None
    bind_mounts: list[str] = dataclasses.field(default_factory=list)
    environment: dict[str, str] = dataclasses.field(default_factory=dict)

    def add_bind_mount(self, source: PathString, target: Optional[PathString] = None) -> None:
        self.bind_mounts.append(f"{source}:{target}" if target else os.fspath(source))

    def add_env(self, key: str, value: str) -> None:
        self.environment[key] = value

    def cmdline(self, cmdline: Sequence[PathString]) -> list[PathString]:
        if self.method == ChrootMethod.none:
            return list(cmdline)

        assert self.chroot

        if self.method == ChrootMethod.chroot:
            return ["chroot", self.chroot, *cmdline]

        return [
            "systemd-nspawn", "-q",
            "-D", self.chroot,
            *(f"--setenv={k}={v}" for k, v in self.environment.items()),
            *(f"--bind={b}" for b in self.bind_mounts),
            *cmdline,
        ]  # fmt: skip

    def run(self, label: str, *cmdline: PathString) -> None:
        env: dict[str, str] = {}
        if self.method != ChrootMethod.nspawn:
            env = {**os.environ, **self.environment}

        with contextlib.ExitStack() as stack:
            if self.chroot and self.architecture:
                stack.enter_context(stage_interpreter(self.chroot, self.architecture))
            if self.chroot and self.method != ChrootMethod.none:
                stack.enter_context(deny_services(self.chroot))

            with spawn(
                self.cmdline(cmdline),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                env=env,
                cwd=self.directory,
            ) as proc:
                assert proc.stdout
                log_output(label, proc.stdout)


def chroot_command(context: "Context") -> Command:
    cmd = Command(architecture=context.architecture, chroot=context.rootdir, method=ChrootMethod.nspawn)

    if context.image:
        cmd.add_bind_mount(os.path.realpath(context.image))
        for p in context.image_partitions:
            cmd.add_bind_mount(os.path.realpath(p.device))
        cmd.add_bind_mount("/dev/disk")

    return cmd
