import os
import signal
from contextlib import contextmanager
from typing import Callable, Dict, List, Sequence

from .config import (
    SNAPD_SOCKET,
    SNAPD_UNITS,
    STAGING_OVERRIDES,
    Command,
    RuntimeConfig,
)
from .errors import BuildFailed
from .toolchain import Toolchain, resolve_toolchain
from .visual import render_execution_output, render_notice, render_settings, render_step


@contextmanager
def interrupt_once(on_interrupt: Callable[[], None]):
    """Catch the first SIGINT inside the block, later ones behave as before.

    The previous handler is put back on the first interrupt and again when
    the block exits.
    """
    previous = signal.getsignal(signal.SIGINT)

    def handler(signum, frame):
        signal.signal(signal.SIGINT, previous)
        render_notice("caught interrupt, stopping snapd (press Ctrl-C again to abort snapdev)")
        on_interrupt()

    signal.signal(signal.SIGINT, handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


def resolve_target(config: RuntimeConfig, executor) -> Toolchain:
    """Check that the target answers and pick the toolchain for it."""
    executor.check_connection()
    arch = config.arch or executor.query_arch()
    toolchain = resolve_toolchain(arch)
    render_settings(config.target_name, arch, toolchain)
    return toolchain


def build_dispatcher(config: RuntimeConfig, executor, toolchain: Toolchain):
    """Return a function that runs a command list, in order, against the target.

    use-staging is the only command that leaves state behind, for the
    run-snapd commands that follow it.
    """

    staging: List[str] = []

    def systemctl(*args: str, sudo: bool = True):
        argv = ["systemctl", *args, *SNAPD_UNITS]
        if sudo:
            argv.insert(0, "sudo")
        return executor.run(argv)

    def build_binary(name: str):
        render_step(f"building {name}")
        output = os.path.join(config.build_dir, name)
        code, stdout, stderr = executor.run_local(
            [config.go, "build", "-o", output, f"./cmd/{name}"],
            env=toolchain.env(),
        )
        if code != 0:
            raise BuildFailed(f"cannot build {name}", output=(stdout + stderr))
        if config.is_remote:
            render_step(f"copying {name} to {config.target_name}")
            executor.copy(output, name)

    def setup_node():
        render_step("stopping snapd")
        # the units may already be stopped or disabled
        systemctl("stop")
        systemctl("disable")

    def inspect_node():
        render_step("inspecting snapd")
        code, stdout, stderr = systemctl("status", "--no-pager", sudo=False)
        if not config.dry_run:
            render_execution_output(code, stdout, stderr)

    def restore_node():
        render_step("restoring snapd")
        systemctl("enable")
        systemctl("start")

    def use_staging_node():
        render_step("using the staging store")
        staging[:] = STAGING_OVERRIDES

    def run_snapd_node():
        render_step("running snapd")
        argv = [
            "sudo",
            "systemd-socket-activate",
            "-l",
            SNAPD_SOCKET,
            *staging,
            executor.binary_path("snapd"),
        ]
        with interrupt_once(executor.interrupt):
            code, _, stderr = executor.run_foreground(argv)
        if code != 0:
            render_notice(f"snapd exited with status {code}")
        if stderr:
            render_notice(stderr.rstrip())

    handlers: Dict[Command, Callable[[], None]] = {
        Command.SNAP: lambda: build_binary("snap"),
        Command.SNAPD: lambda: build_binary("snapd"),
        Command.SETUP: setup_node,
        Command.INSPECT: inspect_node,
        Command.RESTORE: restore_node,
        Command.USE_STAGING: use_staging_node,
        Command.RUN_SNAPD: run_snapd_node,
    }

    def dispatch(commands: Sequence[Command]):
        for command in commands:
            handlers[command]()

    return dispatch
