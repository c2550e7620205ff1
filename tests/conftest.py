from __future__ import annotations

import os
from typing import Any

import pytest

from snapdev import cli
from snapdev.errors import ConnectionFailed, CopyFailed


class FakeExecutor:
    """Stands in for ShellExecutor and records what would have run."""

    def __init__(self) -> None:
        self.config = None
        self.arch = "x86_64"
        self.connect_error = False
        self.build_code = 0
        self.run_code = 0
        self.copy_error = False
        self.calls: list[tuple[Any, ...]] = []

    def bind(self, config):
        self.config = config
        return self

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.calls.append(("close",))

    def check_connection(self) -> None:
        if self.connect_error:
            raise ConnectionFailed("cannot connect to box", hint="check ssh")

    def query_arch(self) -> str:
        self.calls.append(("query_arch",))
        return self.arch

    def run(self, argv):
        self.calls.append(("run", list(argv)))
        return self.run_code, "", ""

    def run_local(self, argv, env=None):
        self.calls.append(("build", list(argv), dict(env or {})))
        return self.build_code, "", "cmd/snapd/main.go:1: syntax error" if self.build_code else ""

    def copy(self, local_path, name):
        self.calls.append(("copy", local_path, name))
        if self.copy_error:
            raise CopyFailed(f"cannot copy {local_path} to box", hint="No space left on device")
        return self.binary_path(name)

    def binary_path(self, name):
        if self.config.is_remote:
            return f"/home/dev/hack-{name}"
        return os.path.join(self.config.build_dir, name)

    def run_foreground(self, argv):
        self.calls.append(("foreground", list(argv)))
        return 0, "", ""

    def interrupt(self):
        self.calls.append(("interrupt",))

    def kinds(self) -> list[str]:
        return [c[0] for c in self.calls if c[0] not in ("close", "query_arch")]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in list(os.environ):
        if key.startswith("SNAPDEV_"):
            monkeypatch.delenv(key)
    monkeypatch.setattr(cli, "load_dotenv", lambda: None)


@pytest.fixture
def fake(monkeypatch) -> FakeExecutor:
    executor = FakeExecutor()
    monkeypatch.setattr(cli, "ShellExecutor", executor.bind)
    return executor
