from dataclasses import dataclass
from typing import Dict, Optional

from .errors import UnsupportedArchitecture


@dataclass(frozen=True)
class Toolchain:
    goarch: str
    goarm: Optional[str] = None  # ABI variant, arm only
    cc: Optional[str] = None  # cross compiler, None builds with the host compiler
    cgo_enabled: bool = True

    @property
    def is_cross(self) -> bool:
        return self.cc is not None

    def env(self) -> Dict[str, str]:
        """Variables the go build needs to target this toolchain."""
        env = {
            "GOARCH": self.goarch,
            "CGO_ENABLED": "1" if self.cgo_enabled else "0",
        }
        if self.goarm:
            env["GOARM"] = self.goarm
        if self.cc:
            env["CC"] = self.cc
        return env


TOOLCHAINS: Dict[str, Toolchain] = {
    "x86_64": Toolchain(goarch="amd64"),
    "i686": Toolchain(goarch="386", cgo_enabled=False),
    "i386": Toolchain(goarch="386", cgo_enabled=False),
    "aarch64": Toolchain(goarch="arm64", cc="aarch64-linux-gnu-gcc"),
    "armv7l": Toolchain(goarch="arm", goarm="7", cc="arm-linux-gnueabihf-gcc"),
    "ppc64le": Toolchain(goarch="ppc64le", cc="powerpc64le-linux-gnu-gcc"),
    "s390x": Toolchain(goarch="s390x", cc="s390x-linux-gnu-gcc"),
    "riscv64": Toolchain(goarch="riscv64", cc="riscv64-linux-gnu-gcc"),
}

# known, but no longer built for
REJECTED: Dict[str, str] = {
    "armv6l": "armv6 boards are no longer supported, move the target to an armv7l (armhf) image",
}


def resolve_toolchain(arch: str) -> Toolchain:
    arch = arch.strip()
    if arch in REJECTED:
        raise UnsupportedArchitecture(f"architecture {arch} is not supported", hint=REJECTED[arch])
    try:
        return TOOLCHAINS[arch]
    except KeyError:
        known = ", ".join(sorted(TOOLCHAINS))
        raise UnsupportedArchitecture(
            f"unknown architecture {arch!r}", hint=f"known architectures: {known}"
        ) from None
