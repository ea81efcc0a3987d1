# SPDX-License-Identifier: LGPL-2.1-or-later

import faulthandler
import signal
import sys
from types import FrameType
from typing import Optional

from mkrecipe import run_recipe
from mkrecipe.config import parse_args
from mkrecipe.log import log_setup
from mkrecipe.run import uncaught_exception_handler


def onsigterm(signal: int, frame: Optional[FrameType]) -> None:
    raise KeyboardInterrupt()


@uncaught_exception_handler()
def main() -> None:
    signal.signal(signal.SIGTERM, onsigterm)

    log_setup()
    args = parse_args(sys.argv[1:])

    if args.debug:
        faulthandler.enable()

    run_recipe(args)


if __name__ == "__main__":
    main()
