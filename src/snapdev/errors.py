from typing import Optional


class SnapdevError(Exception):
    """Fatal error: the run stops and the process exits with status 1."""

    title = "error"

    def __init__(self, message: str, hint: Optional[str] = None, output: str = ""):
        super().__init__(message)
        self.message = message
        self.hint = hint
        self.output = output


class ConnectionFailed(SnapdevError):
    title = "cannot connect"


class UnsupportedArchitecture(SnapdevError):
    title = "unsupported architecture"


class BuildFailed(SnapdevError):
    title = "build failed"


class CopyFailed(SnapdevError):
    title = "copy failed"


class ConfigError(SnapdevError):
    title = "bad configuration"
