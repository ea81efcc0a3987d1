# SPDX-License-Identifier: LGPL-2.1-or-later

import dataclasses
import os
from pathlib import Path
from typing import Optional

from mkrecipe.actions import Action, release, require
from mkrecipe.context import Context
from mkrecipe.log import die, log_step
from mkrecipe.machine import Machine


@dataclasses.dataclass
class RecipeAction(Action):
    """Include the actions of another recipe, forwarding every phase to them in order."""

    kind = "recipe"

    recipe: str = ""
    variables: dict[str, str] = dataclasses.field(default_factory=dict)
    recipe_actions: list[Action] = dataclasses.field(default_factory=list, init=False, repr=False)
    nested: Optional[Context] = dataclasses.field(default=None, init=False, repr=False)
    # How many children entered their pre phase and their run phase, these are owed a release.
    pre_started: int = dataclasses.field(default=0, init=False, repr=False)
    run_started: int = dataclasses.field(default=0, init=False, repr=False)

    def describe(self) -> list[str]:
        return [
            *super().describe(),
            f"recipe: {self.recipe}",
            *(f"variable: {k}={v}" for k, v in self.variables.items()),
        ]

    def verify(self, context: Context) -> None:
        from mkrecipe.recipe import parse_recipe

        require(self, self.recipe, "recipe")

        path = Path(os.path.normpath(context.recipedir / self.recipe))
        if not path.exists():
            die(f"Recipe {path} does not exist")

        variables = {
            "included_recipe": "true",
            "architecture": str(context.architecture),
            **{k: str(v) for k, v in self.variables.items()},
        }

        recipe = parse_recipe(path, variables, print_recipe=context.print_recipe, verbose=context.verbose)
        if recipe.architecture != context.architecture:
            die(f"Expect architecture '{context.architecture}' but got '{recipe.architecture}'")

        self.nested = context.nested(path.parent)
        self.nested.sector_size = recipe.sector_size
        self.recipe_actions = recipe.actions

        for a in self.recipe_actions:
            a.verify(self.nested)

    def pre_machine(self, context: Context, machine: Machine, args: list[str]) -> None:
        assert self.nested
        for a in self.recipe_actions:
            self.pre_started += 1
            a.pre_machine(self.nested, machine, args)

    def pre_no_machine(self, context: Context) -> None:
        assert self.nested
        for a in self.recipe_actions:
            self.pre_started += 1
            a.pre_no_machine(self.nested)

    def run(self, context: Context) -> None:
        assert self.nested
        for a in self.recipe_actions:
            log_step(f"==== {a} ====")
            self.run_started += 1
            a.run(self.nested)

    def cleanup(self, context: Context) -> None:
        assert self.nested
        for a in reversed(self.recipe_actions[: self.run_started]):
            release(a, "Cleanup", a.cleanup, self.nested)

    def post_machine(self, context: Context) -> None:
        assert self.nested
        for a in self.recipe_actions:
            a.post_machine(self.nested)

    def post_machine_cleanup(self, context: Context) -> None:
        assert self.nested
        for a in reversed(self.recipe_actions[: self.pre_started]):
            release(a, "PostMachineCleanup", a.post_machine_cleanup, self.nested)
