# SPDX-License-Identifier: LGPL-2.1-or-later

import ctypes
import os

libc = ctypes.CDLL(None, use_errno=True)

libc.mount.argtypes = (ctypes.c_char_p, ctypes.c_char_p, ctypes.c_char_p, ctypes.c_ulong, ctypes.c_char_p)
libc.umount2.argtypes = (ctypes.c_char_p, ctypes.c_int)


def oserror(syscall: str, filename: str = "", errno: int = 0) -> None:
    errno = abs(errno) or ctypes.get_errno()
    raise OSError(errno, f"{syscall}: {os.strerror(errno)}", filename or None)


def mount(src: str, dst: str, type: str, flags: int = 0, options: str = "") -> None:
    srcb = src.encode() if src else None
    typeb = type.encode() if type else None
    optionsb = options.encode() if options else None
    if libc.mount(srcb, dst.encode(), typeb, flags, optionsb) < 0:
        oserror("mount", dst)


def umount2(path: str, flags: int = 0) -> None:
    if libc.umount2(path.encode(), flags) < 0:
        oserror("umount2", path)
