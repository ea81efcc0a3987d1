# SPDX-License-Identifier: LGPL-2.1-or-later

import dataclasses
import json
import logging
import re
import shlex
import uuid
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any, Callable, Optional

import yaml

from mkrecipe.actions import Action
from mkrecipe.actions.deploy import FilesystemDeployAction
from mkrecipe.actions.download import DownloadAction
from mkrecipe.actions.format import FormatImageAction
from mkrecipe.actions.overlay import OverlayAction
from mkrecipe.actions.pack import PackAction, UnpackAction
from mkrecipe.actions.partition import ImagePartitionAction
from mkrecipe.actions.raw import RawAction
from mkrecipe.actions.recipe import RecipeAction
from mkrecipe.actions.run import RunAction
from mkrecipe.architecture import Architecture
from mkrecipe.log import die

ACTIONS: dict[str, type[Action]] = {
    "download":          DownloadAction,
    "filesystem-deploy": FilesystemDeployAction,
    "format-image":      FormatImageAction,
    "image-partition":   ImagePartitionAction,
    "overlay":           OverlayAction,
    "pack":              PackAction,
    "raw":               RawAction,
    "recipe":            RecipeAction,
    "run":               RunAction,
    "unpack":            UnpackAction,
}  # fmt: skip

TEMPLATE_RE = re.compile(r"{{\s*(.*?)\s*}}", re.DOTALL)
LTRIM_RE = re.compile(r"\s*{{-\s")
RTRIM_RE = re.compile(r"\s-}}\s*")
TOKEN_RE = re.compile(r'"(?:[^"\\]|\\.)*"|\S+')


@dataclasses.dataclass(frozen=True)
class Recipe:
    path: Path
    architecture: Architecture
    sector_size: int
    actions: list[Action]


def sector(s: Any) -> int:
    return int(s) * 512


def escape(s: Any) -> str:
    return shlex.quote(str(s))


def uuid5(namespace: Any, data: Any) -> str:
    return str(uuid.uuid5(uuid.UUID(str(namespace)), str(data)))


def or_(*args: Any) -> Any:
    for a in args:
        if a:
            return a
    return args[-1] if args else None


TEMPLATE_FUNCTIONS: dict[str, Callable[..., Any]] = {
    "sector": sector,
    "escape": escape,
    "uuid5":  uuid5,
    "or":     or_,
}  # fmt: skip


class Template:
    """
    Expands the template actions of a recipe: "{{ .var }}", "{{ $var }}", "{{ $var := expr }}",
    "{{ func arg... }}" and the whitespace trimming markers "{{-" and "-}}".
    """

    def __init__(self, variables: Mapping[str, str]) -> None:
        self.variables = dict(variables)
        self.locals: dict[str, Any] = {}

    def operand(self, token: str) -> Any:
        if token.startswith('"'):
            return json.loads(token)
        if token.startswith("."):
            return self.variables.get(token[1:])
        if token.startswith("$"):
            if token[1:] not in self.locals:
                die(f"Undefined template variable {token}")
            return self.locals[token[1:]]
        if re.fullmatch(r"-?\d+", token):
            return int(token)
        if token in ("true", "false"):
            return token == "true"

        die(f"Can't parse template argument {token!r}")

    def evaluate(self, tokens: Sequence[str]) -> Any:
        if not tokens:
            die("Empty template action")

        head, *rest = tokens
        if head in TEMPLATE_FUNCTIONS:
            return TEMPLATE_FUNCTIONS[head](*(self.operand(t) for t in rest))
        if rest:
            die(f"Unknown template function {head!r}")

        return self.operand(head)

    def action(self, body: str) -> str:
        tokens = TOKEN_RE.findall(body)

        if len(tokens) >= 2 and tokens[0].startswith("$") and tokens[1] == ":=":
            self.locals[tokens[0][1:]] = self.evaluate(tokens[2:])
            return ""

        value = self.evaluate(tokens)
        if value is None:
            die(f"Template {{{{ {body} }}}} has no value")
        if isinstance(value, bool):
            return str(value).lower()

        return str(value)

    def expand(self, text: str) -> str:
        text = LTRIM_RE.sub("{{ ", text)
        text = RTRIM_RE.sub(" }}", text)
        return TEMPLATE_RE.sub(lambda m: self.action(m.group(1)), text)


def describe_actions(actions: Sequence[Action], depth: int = 0) -> None:
    indent = "  " * depth

    for a in actions:
        first, *rest = a.describe()
        logging.info(f"{indent}- {first}")
        for line in rest:
            logging.info(f"{indent}  {line}")

        if isinstance(a, RecipeAction) and a.recipe_actions:
            describe_actions(a.recipe_actions, depth + 1)


def parse_actions(entries: Any) -> list[Action]:
    if not isinstance(entries, list) or not entries:
        die("Recipe file must have at least one action")

    actions = []
    for entry in entries:
        if not isinstance(entry, dict) or "action" not in entry:
            die(f"Recipe action must be a mapping with an 'action' property, got {entry!r}")

        cls = ACTIONS.get(entry["action"])
        if not cls:
            die(f"Unknown action: {entry['action']}")

        actions += [cls.from_dict(entry)]

    return actions


def parse_recipe(
    path: Path,
    variables: Mapping[str, str] = {},
    *,
    print_recipe: bool = False,
    verbose: bool = False,
) -> Recipe:
    try:
        text = path.read_text()
    except OSError as e:
        die(f"Failed to read recipe {path}: {e}")

    text = Template(variables).expand(text)

    if print_recipe or verbose:
        logging.info(f"Recipe '{path}':")
    if print_recipe:
        logging.info(text)

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        die(f"Failed to parse recipe {path}: {e}")

    if not isinstance(data, dict):
        die(f"Recipe {path} must be a mapping")

    if not data.get("architecture"):
        die("Recipe file must have 'architecture' property")

    unknown = set(data) - {"architecture", "sectorsize", "actions"}
    if unknown:
        die(f"Unknown recipe properties: {', '.join(sorted(unknown))}")

    sector_size: Optional[int] = data.get("sectorsize", 512)
    if not isinstance(sector_size, int) or sector_size <= 0:
        die(f"Invalid sector size {sector_size!r}")

    recipe = Recipe(
        path=path,
        architecture=Architecture.parse(str(data["architecture"])),
        sector_size=sector_size,
        actions=parse_actions(data.get("actions")),
    )

    if verbose:
        logging.info(f"architecture: {recipe.architecture}")
        describe_actions(recipe.actions)

    return recipe
