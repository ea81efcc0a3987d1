# SPDX-License-Identifier: LGPL-2.1-or-later

import logging
import subprocess
import sys

from mkrecipe.context import Context


def debug_shell(context: Context) -> None:
    if not context.debug_shell:
        return

    logging.info(">>> Starting a debug shell")

    try:
        subprocess.run(
            [context.debug_shell],
            check=False,
            stdin=sys.stdin,
            stdout=sys.stdout,
            stderr=sys.stderr,
            cwd=context.scratchdir,
        )
    except OSError as e:
        logging.error(f"Failed to start debug shell {context.debug_shell}: {e}")
