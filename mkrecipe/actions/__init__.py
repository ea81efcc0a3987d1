# SPDX-License-Identifier: LGPL-2.1-or-later

import dataclasses
import logging
from collections.abc import Mapping
from typing import Any, Callable, ClassVar, TypeVar

from mkrecipe.context import Context
from mkrecipe.log import die
from mkrecipe.machine import Machine

A = TypeVar("A", bound="Action")


@dataclasses.dataclass
class Action:
    """
    A single step of a recipe. The engine drives every action through the same phases:

    verify -> pre_machine | pre_no_machine -> run -> cleanup -> post_machine -> post_machine_cleanup

    verify is called for all actions before any other phase. cleanup is owed to every action whose run
    started and post_machine_cleanup to every action whose pre phase started.
    """

    kind: ClassVar[str] = ""
    # Recipe keys that do not map onto field names by replacing "-" with "_".
    aliases: ClassVar[dict[str, str]] = {}

    description: str = ""

    @classmethod
    def from_dict(cls: type[A], d: Mapping[str, Any]) -> A:
        fields = {f.name for f in dataclasses.fields(cls) if f.init}
        kwargs = {}

        for key, value in d.items():
            if key == "action":
                continue

            name = cls.aliases.get(key, key.replace("-", "_"))
            if name not in fields:
                die(f"Unknown property {key!r} for action {cls.kind}")

            kwargs[name] = value

        return cls(**kwargs)

    def __str__(self) -> str:
        return self.description or self.kind

    def describe(self) -> list[str]:
        lines = [f"action: {self.kind}"]
        if self.description:
            lines += [f"description: {self.description}"]
        return lines

    def verify(self, context: Context) -> None:
        pass

    def pre_machine(self, context: Context, machine: Machine, args: list[str]) -> None:
        pass

    def pre_no_machine(self, context: Context) -> None:
        pass

    def run(self, context: Context) -> None:
        pass

    def cleanup(self, context: Context) -> None:
        pass

    def post_machine(self, context: Context) -> None:
        pass

    def post_machine_cleanup(self, context: Context) -> None:
        pass


def release(action: Action, stage: str, fn: Callable[[Context], None], context: Context) -> None:
    """Run a release phase. Failures are logged so the remaining releases still happen."""
    try:
        fn(context)
    except SystemExit:
        # die() already logged the reason.
        logging.warning(f"Action '{action}' failed at stage {stage}, continuing")
    except Exception as e:
        logging.warning(f"Action '{action}' failed at stage {stage}, continuing: {e}")


def require(action: Action, value: object, name: str) -> None:
    if value is None or value == "":
        die(f"Property {name!r} of action {action.kind} is mandatory")
