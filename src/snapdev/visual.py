import shlex
from typing import Mapping, Optional, Sequence

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text


console = Console()
err_console = Console(stderr=True)


def render_step(step: str):
    console.print(Text(f"- {step}", style="bold"))


def render_notice(message: str):
    console.print(Text(message, style="yellow"))


def render_command(argv: Sequence[str], env: Optional[Mapping[str, str]] = None):
    """Echo a command the way a shell trace would."""
    words = [f"{k}={shlex.quote(v)}" for k, v in (env or {}).items()]
    words.append(shlex.join(argv))
    console.print(Text("+ " + " ".join(words), style="dim"))


def render_settings(target: str, arch: str, toolchain):
    table = Table(title="snapdev", show_header=False)
    table.add_column("key", style="bold")
    table.add_column("value")
    table.add_row("target", Text(target))
    table.add_row("arch", Text(arch))
    table.add_row("cross compile", "yes" if toolchain.is_cross else "no")
    for key, value in toolchain.env().items():
        table.add_row(key, Text(value))
    console.print(table)


def render_execution_output(code: int, stdout: str, stderr: str):
    table = Table(title="command output", expand=True)
    table.add_column("key")
    table.add_column("value")
    table.add_row("returncode", str(code))
    table.add_row("stdout", Text(stdout) if stdout else "<empty>")
    table.add_row("stderr", Text(stderr) if stderr else "<empty>")
    console.print(Panel(table, border_style="green" if code == 0 else "yellow"))


def render_error(title: str, message: str, hint: Optional[str] = None, output: str = ""):
    body = Text()
    body.append(message, style="bold")
    if output:
        body.append("\n\n")
        body.append(output.rstrip())
    if hint:
        body.append("\n\n")
        body.append(hint, style="cyan")
    err_console.print(Panel(body, title=title, border_style="red"))


def render_usage_error(message: str, prog: str):
    err_console.print(Text(f"error: {message}", style="bold red"))
    err_console.print(Text(f"run '{prog} --help' for usage"))
