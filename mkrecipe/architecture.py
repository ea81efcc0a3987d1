# SPDX-License-Identifier: LGPL-2.1-or-later

import enum
import platform
from typing import Optional

from mkrecipe.log import die
from mkrecipe.util import StrEnum


class Architecture(StrEnum):
    """Target architectures, named the way Debian names them."""

    amd64     = enum.auto()
    arm       = enum.auto()
    arm64     = enum.auto()
    armel     = enum.auto()
    armhf     = enum.auto()
    i386      = enum.auto()
    mips      = enum.auto()
    mipsel    = enum.auto()
    mips64    = enum.auto()
    mips64el  = enum.auto()
    powerpc   = enum.auto()
    powerpc64 = enum.auto()
    ppc64el   = enum.auto()
    riscv64   = enum.auto()
    s390x     = enum.auto()

    @staticmethod
    def from_uname(s: str) -> "Architecture":
        a = {
            "aarch64"  : Architecture.arm64,
            "armv8l"   : Architecture.armhf,
            "armv7l"   : Architecture.armhf,
            "armv6l"   : Architecture.armel,
            "armv5tel" : Architecture.armel,
            "x86_64"   : Architecture.amd64,
            "i686"     : Architecture.i386,
            "i586"     : Architecture.i386,
            "i386"     : Architecture.i386,
            "mips64"   : Architecture.mips64el,
            "mips"     : Architecture.mipsel,
            "ppc64le"  : Architecture.ppc64el,
            "ppc64"    : Architecture.powerpc64,
            "ppc"      : Architecture.powerpc,
            "riscv64"  : Architecture.riscv64,
            "s390x"    : Architecture.s390x,
        }.get(s)  # fmt: skip

        if not a:
            die(f"Architecture {s} is not supported")

        return a

    @staticmethod
    def parse(s: str) -> "Architecture":
        try:
            return Architecture(s)
        except ValueError:
            die(f"Unknown architecture {s}", hint=f"Expected one of {', '.join(Architecture.values())}")

    @classmethod
    def native(cls) -> "Architecture":
        return cls.from_uname(platform.machine())

    def to_qemu_user(self) -> str:
        return {
            Architecture.amd64     : "x86_64",
            Architecture.arm       : "arm",
            Architecture.arm64     : "aarch64",
            Architecture.armel     : "arm",
            Architecture.armhf     : "arm",
            Architecture.i386      : "i386",
            Architecture.mips      : "mips",
            Architecture.mipsel    : "mipsel",
            Architecture.mips64    : "mips64",
            Architecture.mips64el  : "mips64el",
            Architecture.powerpc   : "ppc",
            Architecture.powerpc64 : "ppc64",
            Architecture.ppc64el   : "ppc64le",
            Architecture.riscv64   : "riscv64",
            Architecture.s390x     : "s390x",
        }[self]  # fmt: skip

    def can_run_natively(self, host: Optional["Architecture"] = None) -> bool:
        host = host or Architecture.native()

        if self == host:
            return True

        compatible = {
            Architecture.amd64: (Architecture.i386,),
            Architecture.arm64: (Architecture.arm, Architecture.armel, Architecture.armhf),
            Architecture.armhf: (Architecture.arm, Architecture.armel),
            Architecture.mips64el: (Architecture.mipsel,),
            Architecture.mips64: (Architecture.mips,),
        }

        return self in compatible.get(host, ())

    def qemu_user_binary(self, host: Optional["Architecture"] = None) -> Optional[str]:
        """
        Returns the path of the static qemu-user interpreter needed to run binaries of this architecture
        on the host, or None if the host runs them directly.
        """
        if self.can_run_natively(host):
            return None

        return f"/usr/bin/qemu-{self.to_qemu_user()}-static"
