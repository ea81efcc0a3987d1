# SPDX-License-Identifier: LGPL-2.1-or-later

import hashlib
from collections.abc import Mapping
from pathlib import Path

import pytest

from mkrecipe import build_on_host
from mkrecipe.actions.download import DownloadAction
from mkrecipe.actions.overlay import OverlayAction
from mkrecipe.actions.recipe import RecipeAction
from mkrecipe.context import Context

CONTENT = b"firmware blob\n"


@pytest.fixture
def fetched(monkeypatch: pytest.MonkeyPatch) -> list[str]:
    urls: list[str] = []

    def curl(url: str, output: Path, *, environment: Mapping[str, str] = {}) -> None:
        urls.append(url)
        output.write_bytes(CONTENT)

    monkeypatch.setattr("mkrecipe.actions.download.curl", curl)
    return urls


def test_download(context: Context, fetched: list[str]) -> None:
    action = DownloadAction(
        url="https://example.org/files/firmware.bin",
        name="firmware",
        sha256sum=hashlib.sha256(CONTENT).hexdigest(),
    )
    action.verify(context)
    action.run(context)

    assert fetched == ["https://example.org/files/firmware.bin"]
    assert context.origin("firmware") == context.downloaddir / "firmware.bin"
    assert (context.downloaddir / "firmware.bin").read_bytes() == CONTENT


def test_download_filename(context: Context, fetched: list[str]) -> None:
    action = DownloadAction(url="https://example.org/download?id=1", name="blob", filename="blob.bin")
    action.verify(context)
    action.run(context)

    assert context.origin("blob") == context.downloaddir / "blob.bin"


def test_download_checksum_mismatch(context: Context, fetched: list[str]) -> None:
    action = DownloadAction(url="https://example.org/firmware.bin", name="firmware", sha256sum="0" * 64)
    action.verify(context)

    with pytest.raises(SystemExit):
        action.run(context)

    assert not (context.downloaddir / "firmware.bin").exists()
    assert context.origin("firmware") is None


@pytest.mark.parametrize(
    "kwargs",
    [
        {"url": "https://example.org/a.bin"},
        {"name": "a"},
        {"url": "ftp://example.org/a.bin", "name": "a"},
        {"url": "https://example.org/", "name": "a"},
        {"url": "https://example.org/a.zip", "name": "a", "unpack": True},
        {"url": "https://example.org/a.tar.gz", "name": "a", "unpack": True, "compression": "rar"},
        {"url": "https://example.org/a.bin", "name": "a", "sha256sum": "abc"},
        {"url": "https://example.org/a.bin", "name": "a", "sha256sum": "z" * 64},
    ],
)
def test_download_verify_invalid(context: Context, kwargs: dict[str, object]) -> None:
    with pytest.raises(SystemExit):
        DownloadAction(**kwargs).verify(context)  # type: ignore


def test_download_verify_unpack(context: Context) -> None:
    DownloadAction(url="https://example.org/rootfs.tar.xz", name="rootfs", unpack=True).verify(context)


def test_download_visible_to_included_recipe(context: Context, fetched: list[str]) -> None:
    download = DownloadAction(url="https://example.org/firmware.bin", name="fw")
    overlay = OverlayAction(origin="fw", destination="/lib/firmware/firmware.bin")

    include = RecipeAction(recipe="sub/included.yaml")
    include.nested = context.nested(context.recipedir / "sub")
    include.recipe_actions = [overlay]

    download.verify(context)
    overlay.verify(include.nested)

    build_on_host(context, [download, include])

    assert (context.rootdir / "lib/firmware/firmware.bin").read_bytes() == CONTENT
