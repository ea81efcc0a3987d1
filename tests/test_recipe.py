# SPDX-License-Identifier: LGPL-2.1-or-later

import logging
import textwrap
from pathlib import Path

import pytest

from mkrecipe.actions.partition import ImagePartitionAction
from mkrecipe.actions.recipe import RecipeAction
from mkrecipe.actions.run import RunAction
from mkrecipe.architecture import Architecture
from mkrecipe.context import Context
from mkrecipe.recipe import Template, parse_recipe


def write_recipe(path: Path, text: str) -> Path:
    path.write_text(textwrap.dedent(text))
    return path


def test_template_variables() -> None:
    t = Template({"image": "debian.img", "size": "4GB"})
    assert t.expand("imagename: {{ .image }}\nimagesize: {{.size}}") == "imagename: debian.img\nimagesize: 4GB"


def test_template_locals_and_or() -> None:
    t = Template({})
    text = '{{ $suite := or .suite "bookworm" }}suite: {{ $suite }}'
    assert t.expand(text) == "suite: bookworm"

    t = Template({"suite": "trixie"})
    assert t.expand(text) == "suite: trixie"


def test_template_functions() -> None:
    t = Template({"cmd": "it's"})

    assert t.expand("{{ sector 2048 }}") == str(2048 * 512)
    assert t.expand("{{ escape .cmd }}") == "'it'\"'\"'s'"
    assert (
        t.expand('{{ uuid5 "6ba7b810-9dad-11d1-80b4-00c04fd430c8" "python.org" }}')
        == "886313e1-3b8a-5372-9b90-0c9aee199e5d"
    )


def test_template_trim() -> None:
    t = Template({"x": "1"})
    assert t.expand("items: [\n  {{- .x -}}\n]") == "items: [1]"


@pytest.mark.parametrize("text", ["{{ .missing }}", "{{ $undefined }}", "{{ frobnicate 1 }}", "{{ }}"])
def test_template_errors(text: str) -> None:
    with pytest.raises(SystemExit):
        Template({}).expand(text)


def test_parse_recipe(tmp_path: Path) -> None:
    path = write_recipe(
        tmp_path / "recipe.yaml",
        """\
        {{- $image := or .image "debian.img" -}}
        architecture: arm64
        sectorsize: 4096

        actions:
          - action: run
            description: Say hello
            command: echo hello

          - action: image-partition
            imagename: {{ $image }}
            imagesize: 1GB
            partitiontype: gpt
            partitions:
              - name: root
                fs: ext4
                start: 0%
                end: 100%
            mountpoints:
              - mountpoint: /
                partition: root
        """,
    )

    recipe = parse_recipe(path)

    assert recipe.architecture == Architecture.arm64
    assert recipe.sector_size == 4096
    assert [type(a) for a in recipe.actions] == [RunAction, ImagePartitionAction]
    assert str(recipe.actions[0]) == "Say hello"

    partition = recipe.actions[1]
    assert isinstance(partition, ImagePartitionAction)
    assert partition.imagename == "debian.img"
    assert partition.partitions[0].end == "100%"

    recipe = parse_recipe(path, {"image": "custom.img"})
    assert isinstance(recipe.actions[1], ImagePartitionAction)
    assert recipe.actions[1].imagename == "custom.img"


def test_parse_recipe_verbose(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    path = write_recipe(
        tmp_path / "recipe.yaml",
        """\
        architecture: amd64
        actions:
          - action: run
            command: echo {{ .greeting }}
        """,
    )

    with caplog.at_level(logging.INFO):
        parse_recipe(path, {"greeting": "hi"}, print_recipe=True, verbose=True)

    assert "command: echo hi" in caplog.text
    assert "- action: run" in caplog.text


@pytest.mark.parametrize(
    "text",
    [
        "actions:\n  - action: run\n    command: 'true'\n",
        "architecture: amd64\n",
        "architecture: amd64\nactions: []\n",
        "architecture: vax\nactions:\n  - action: run\n    command: 'true'\n",
        "architecture: amd64\nactions:\n  - action: debootstrap\n",
        "architecture: amd64\nactions:\n  - action: run\n    commmand: 'true'\n",
        "architecture: amd64\nfoo: bar\nactions:\n  - action: run\n    command: 'true'\n",
        "architecture: amd64\nsectorsize: 0\nactions:\n  - action: run\n    command: 'true'\n",
        "architecture: amd64\nactions:\n  - run\n",
        "architecture: [amd64\n",
    ],
)
def test_parse_recipe_invalid(tmp_path: Path, text: str) -> None:
    with pytest.raises(SystemExit):
        parse_recipe(write_recipe(tmp_path / "recipe.yaml", text))


def test_parse_recipe_missing(tmp_path: Path) -> None:
    with pytest.raises(SystemExit):
        parse_recipe(tmp_path / "nope.yaml")


def test_included_recipe(context: Context) -> None:
    (context.recipedir / "sub").mkdir()
    write_recipe(
        context.recipedir / "sub/included.yaml",
        """\
        architecture: {{ .architecture }}
        sectorsize: 4096
        actions:
          - action: run
            command: echo {{ .included_recipe }} {{ .flavour }}
        """,
    )

    action = RecipeAction(recipe="sub/included.yaml", variables={"flavour": "minimal"})
    action.verify(context)

    assert action.nested
    assert action.nested.recipedir == context.recipedir / "sub"
    assert action.nested.sector_size == 4096
    assert context.sector_size == 512

    child = action.recipe_actions[0]
    assert isinstance(child, RunAction)
    assert child.command == "echo true minimal"


def test_included_recipe_architecture_mismatch(context: Context) -> None:
    write_recipe(
        context.recipedir / "other.yaml",
        """\
        architecture: riscv64
        actions:
          - action: run
            command: 'true'
        """,
    )

    with pytest.raises(SystemExit):
        RecipeAction(recipe="other.yaml").verify(context)


def test_included_recipe_missing(context: Context) -> None:
    with pytest.raises(SystemExit):
        RecipeAction(recipe="missing.yaml").verify(context)
