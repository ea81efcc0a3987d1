# SPDX-License-Identifier: LGPL-2.1-or-later

from collections.abc import Iterator
from pathlib import Path

import pytest

from mkrecipe.context import Context
from mkrecipe.log import ARG_DEBUG

from . import make_context


@pytest.fixture(autouse=True)
def outside_machine(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    monkeypatch.delenv("IN_FAKE_MACHINE", raising=False)
    token = ARG_DEBUG.set(False)
    yield
    ARG_DEBUG.reset(token)


@pytest.fixture
def context(tmp_path: Path) -> Context:
    return make_context(tmp_path)
