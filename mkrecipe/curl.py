# SPDX-License-Identifier: LGPL-2.1-or-later

from collections.abc import Mapping
from pathlib import Path

from mkrecipe.run import run


def curl(url: str, output: Path, *, environment: Mapping[str, str] = {}) -> None:
    # Proxy settings are picked up by curl from the environment.
    run(
        [
            "curl",
            "--location",
            "--output", output,
            "--no-progress-meter",
            "--fail",
            "--proto", "=http,https",
            url,
        ],
        env=environment,
    )  # fmt: skip
