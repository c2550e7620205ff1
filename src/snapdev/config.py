import os
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional, Sequence, Tuple

from .errors import ConfigError


BINARY_PREFIX = "hack-"
SNAPD_SOCKET = "/run/snapd.socket"
SNAPD_UNITS = ("snapd.socket", "snapd.service")
VM_HOST = "localhost"
VM_SSH_PORT = 8022

# systemd-socket-activate arguments that point snapd at the staging store
STAGING_OVERRIDES = (
    "--setenv=SNAPPY_USE_STAGING_STORE=1",
    "--setenv=SNAPPY_FORCE_API_URL=https://api.staging.snapcraft.io/",
    "--setenv=SNAPPY_FORCE_SAS_URL=https://login.staging.ubuntu.com/api/v2/",
)


class VirtualMachine(str, Enum):
    PC = "pc"
    I386 = "i386"

    @property
    def arch(self) -> str:
        return {VirtualMachine.PC: "x86_64", VirtualMachine.I386: "i686"}[self]


class Command(str, Enum):
    SNAP = "snap"
    SNAPD = "snapd"
    SETUP = "setup"
    RESTORE = "restore"
    INSPECT = "inspect"
    RUN_SNAPD = "run-snapd"
    USE_STAGING = "use-staging"


@dataclass(frozen=True)
class RuntimeConfig:
    """Settings for one invocation, never changed after parsing.

    host:
      - None: everything runs on this machine
      - "host" or "user@host": commands run over ssh, binaries are copied
        with SFTP

    The ssh transport never consults or updates a known-hosts file and
    accepts unknown host keys; the targets are throwaway VMs and test boxes.
    """

    arch: Optional[str] = None
    host: Optional[str] = None
    vm: Optional[VirtualMachine] = None
    commands: Tuple[Command, ...] = ()
    dry_run: bool = False

    # SSH transport
    ssh_user: Optional[str] = None
    ssh_key_path: Optional[str] = None
    ssh_port: int = 22
    connect_timeout: int = 10

    build_dir: str = "/tmp"
    go: str = "go"

    @property
    def is_remote(self) -> bool:
        return bool(self.host)

    @property
    def target_name(self) -> str:
        if not self.is_remote:
            return "local machine"
        if self.ssh_port != 22:
            return f"{self.host}:{self.ssh_port}"
        return self.host


def _int_setting(env: Mapping[str, str], key: str, default: int) -> int:
    value = env.get(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigError(f"{key} must be a number, got {value!r}") from None


def build_config(
    commands: Sequence[Command] = (),
    vm: Optional[VirtualMachine] = None,
    host: Optional[str] = None,
    dry_run: bool = False,
    environ: Optional[Mapping[str, str]] = None,
) -> RuntimeConfig:
    """Merge CLI options with SNAPDEV_* environment defaults."""
    env = os.environ if environ is None else environ

    host = host or env.get("SNAPDEV_HOST") or None
    ssh_port = _int_setting(env, "SNAPDEV_SSH_PORT", 22)
    arch = None
    if vm is not None:
        arch = vm.arch
        host = VM_HOST
        ssh_port = VM_SSH_PORT

    return RuntimeConfig(
        arch=arch,
        host=host,
        vm=vm,
        commands=tuple(commands),
        dry_run=dry_run,
        ssh_user=env.get("SNAPDEV_SSH_USER") or None,
        ssh_key_path=env.get("SNAPDEV_SSH_KEY_PATH") or None,
        ssh_port=ssh_port,
        connect_timeout=_int_setting(env, "SNAPDEV_CONNECT_TIMEOUT", 10),
        build_dir=env.get("SNAPDEV_BUILD_DIR", "/tmp"),
        go=env.get("SNAPDEV_GO", "go"),
    )
