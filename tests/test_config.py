# SPDX-License-Identifier: LGPL-2.1-or-later

import argparse
import logging
from pathlib import Path

import pytest

from mkrecipe.config import finalize_environment, parse_args, parse_key_value, warn_localhost
from mkrecipe.machine import MachineBackend


@pytest.fixture
def recipe(tmp_path: Path) -> Path:
    path = tmp_path / "recipe.yaml"
    path.write_text("architecture: amd64\n")
    return path


def test_parse_args_defaults(recipe: Path, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    args = parse_args([str(recipe)])

    assert args.recipe == recipe
    assert args.artifactdir == Path.cwd()
    assert args.template_vars == {}
    assert args.fakemachine_backend == MachineBackend.auto
    assert args.cpus == 2
    assert not args.disable_fakemachine
    assert not args.dry_run


def test_parse_args(recipe: Path, tmp_path: Path) -> None:
    artifacts = tmp_path / "out"
    artifacts.mkdir()

    args = parse_args([
        "--artifactdir", str(artifacts),
        "-t", "suite:bookworm",
        "-t", "image:debian.img",
        "--template-var", "url:http://deb.debian.org",
        "-e", "http_proxy:http://proxy:3128",
        "-b", "kvm",
        "-m", "4G",
        "--debug-shell",
        "--shell", "/bin/zsh",
        str(recipe),
    ])  # fmt: skip

    assert args.artifactdir == artifacts
    assert args.template_vars == {"suite": "bookworm", "image": "debian.img", "url": "http://deb.debian.org"}
    assert args.environ_vars == {"http_proxy": "http://proxy:3128"}
    assert args.fakemachine_backend == MachineBackend.kvm
    assert args.memory == "4G"
    assert args.debug_shell
    assert args.shell == "/bin/zsh"

    assert args.forwarded() == [
        "--artifactdir", str(artifacts),
        "--template-var", "suite:bookworm",
        "--template-var", "image:debian.img",
        "--template-var", "url:http://deb.debian.org",
        "--environ-var", "http_proxy:http://proxy:3128",
        str(recipe),
        "--debug-shell", "--shell", "/bin/zsh",
    ]  # fmt: skip


def test_parse_args_invalid(recipe: Path, tmp_path: Path) -> None:
    with pytest.raises(SystemExit):
        parse_args([str(tmp_path / "missing.yaml")])
    with pytest.raises(SystemExit):
        parse_args(["--disable-fakemachine", "-b", "uml", str(recipe)])
    with pytest.raises(SystemExit):
        parse_args(["--artifactdir", str(tmp_path / "missing"), str(recipe)])
    with pytest.raises(SystemExit):
        parse_args(["-t", "novalue", str(recipe)])


def test_parse_key_value() -> None:
    assert parse_key_value("a:b") == ("a", "b")
    assert parse_key_value("url:http://x:80") == ("url", "http://x:80")
    assert parse_key_value("a:") == ("a", "")

    with pytest.raises(argparse.ArgumentTypeError):
        parse_key_value(":b")


def test_finalize_environment() -> None:
    host = {"http_proxy": "http://proxy", "HTTPS_PROXY": "https://proxy", "HOME": "/root"}

    assert finalize_environment({}, host) == {"http_proxy": "http://proxy", "HTTPS_PROXY": "https://proxy"}
    assert finalize_environment({"FOO": "bar", "http_proxy": ""}, host) == {
        "HTTPS_PROXY": "https://proxy",
        "FOO": "bar",
    }


def test_warn_localhost(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING):
        warn_localhost({"http_proxy": "http://127.0.0.1:3142"})

    assert "http_proxy" in caplog.text
