from __future__ import annotations

import os
import sys

import pytest

from snapdev import shell
from snapdev.config import VirtualMachine, build_config
from snapdev.errors import ConnectionFailed
from snapdev.shell import ShellExecutor


def test_mode_follows_config() -> None:
    assert ShellExecutor(build_config(environ={})).env_mode == "local"
    assert ShellExecutor(build_config(host="box", environ={})).env_mode == "ssh"
    assert ShellExecutor(build_config(host="box", dry_run=True, environ={})).env_mode == "dry_run"


def test_dry_run_echoes_instead_of_running(capsys) -> None:
    executor = ShellExecutor(build_config(host="box", dry_run=True, environ={}))

    assert executor.run(["sudo", "systemctl", "stop", "snapd.socket"]) == (0, "", "")
    assert executor.run_local(["go", "build"], env={"GOARCH": "arm64"}) == (0, "", "")
    assert executor.copy("/tmp/snapd", "snapd") == "~/hack-snapd"

    out = capsys.readouterr().out
    assert "+ sudo systemctl stop snapd.socket" in out
    assert "+ GOARCH=arm64 go build" in out
    assert "sftp put /tmp/snapd" in out
    assert "hack-snapd" in out


def test_local_run_passes_toolchain_env() -> None:
    executor = ShellExecutor(build_config(environ={}))

    code, out, _ = executor.run_local(
        [sys.executable, "-c", "import os; print(os.environ['GOARCH'])"],
        env={"GOARCH": "riscv64"},
    )

    assert code == 0
    assert out.strip() == "riscv64"


def test_local_run_reports_missing_program() -> None:
    executor = ShellExecutor(build_config(environ={}))
    code, _, err = executor.run(["snapdev-no-such-program"])
    assert code == 127
    assert "snapdev-no-such-program" in err


def test_local_binary_path() -> None:
    executor = ShellExecutor(build_config(environ={"SNAPDEV_BUILD_DIR": "/srv/build"}))
    assert executor.binary_path("snap") == "/srv/build/snap"


def test_local_target_needs_no_connection() -> None:
    ShellExecutor(build_config(environ={})).check_connection()


def test_unreachable_host_raises_with_ssh_hint() -> None:
    config = build_config(
        host="127.0.0.1",
        environ={"SNAPDEV_SSH_PORT": "1", "SNAPDEV_CONNECT_TIMEOUT": "2"},
    )
    with ShellExecutor(config) as executor:
        with pytest.raises(ConnectionFailed) as excinfo:
            executor.check_connection()
    assert "ssh 127.0.0.1" in excinfo.value.hint


def test_unreachable_vm_suggests_starting_it(monkeypatch) -> None:
    def refuse(self):
        raise OSError("Connection refused")

    monkeypatch.setattr(ShellExecutor, "_connect", refuse)
    executor = ShellExecutor(build_config(vm=VirtualMachine.PC, environ={}))

    with pytest.raises(ConnectionFailed) as excinfo:
        executor.check_connection()
    assert "Connection refused" in excinfo.value.message
    assert "pc virtual machine running" in excinfo.value.hint
    assert "8022" in excinfo.value.hint


class FakeChannel:
    def __init__(self, chunks: list[bytes]) -> None:
        self.chunks = chunks
        self.sent: list[bytes] = []

    def recv(self, size: int) -> bytes:
        return self.chunks.pop(0) if self.chunks else b""

    def send(self, data: bytes) -> int:
        self.sent.append(data)
        return len(data)


def test_pump_shows_prompts_and_forwards_keyboard(monkeypatch, capsys) -> None:
    monkeypatch.setattr(shell.select, "select", lambda r, w, x, timeout: (list(r), [], []))
    channel = FakeChannel([b"[sudo] password for dev: ", b"\nsnapd started\n"])
    read_fd, write_fd = os.pipe()
    os.write(write_fd, b"secret\n")
    os.close(write_fd)

    try:
        ShellExecutor(build_config(host="box", environ={}))._pump(channel, read_fd)
    finally:
        os.close(read_fd)

    out = capsys.readouterr().out
    assert "[sudo] password for dev: " in out
    assert "snapd started" in out
    assert channel.sent == [b"secret\n"]


def test_pump_joins_split_utf8(monkeypatch, capsys) -> None:
    monkeypatch.setattr(shell.select, "select", lambda r, w, x, timeout: (list(r), [], []))
    encoded = "snapd ✓\n".encode("utf-8")
    channel = FakeChannel([encoded[:7], encoded[7:]])

    ShellExecutor(build_config(host="box", environ={}))._pump(channel, None)

    assert "snapd ✓" in capsys.readouterr().out
