import sys
from typing import List, Optional

import typer
from dotenv import load_dotenv

from snapdev import __version__
from snapdev.actions import build_dispatcher, resolve_target
from snapdev.config import Command, VirtualMachine, build_config
from snapdev.errors import SnapdevError
from snapdev.shell import ShellExecutor
from snapdev.visual import console, render_error, render_usage_error


def _click_class(cls, name: str):
    return next(base for base in cls.__mro__ if base.__name__ == name)


# typer may parse with a click of its own, so take the error types from typer
ClickException = _click_class(typer.BadParameter, "ClickException")


PROG_NAME = "snapdev"

app = typer.Typer(add_completion=False)


def _version_callback(value: bool):
    if value:
        console.print(f"{PROG_NAME} {__version__}")
        raise typer.Exit()


@app.command(
    help=(
        "Build snap and snapd, deploy them to a test machine and drive the "
        "snapd service there. Commands run in the order given."
    ),
)
def run(
    ctx: typer.Context,
    commands: Optional[List[Command]] = typer.Argument(
        None, help="Commands to run, in order", show_default=False
    ),
    vm: Optional[VirtualMachine] = typer.Option(
        None, "--vm", help="Target the local virtual machine (ssh on localhost:8022)"
    ),
    host: Optional[str] = typer.Option(None, "--host", help="Target HOST over ssh"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Print commands instead of running them"),
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show the version and exit"
    ),
):
    if not commands:
        typer.echo(ctx.get_help())
        return

    try:
        config = build_config(commands, vm=vm, host=host, dry_run=dry_run)
        with ShellExecutor(config) as executor:
            toolchain = resolve_target(config, executor)
            dispatch = build_dispatcher(config, executor, toolchain)
            dispatch(config.commands)
    except SnapdevError as e:
        render_error(e.title, e.message, e.hint, e.output)
        raise typer.Exit(code=1)


def main(argv: Optional[List[str]] = None) -> int:
    """Parse argv, run it and return the exit status."""
    # .env in the working tree supplies SNAPDEV_* defaults
    load_dotenv()
    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        args = ["--help"]

    command = typer.main.get_command(app)
    try:
        rv = command.main(args=args, prog_name=PROG_NAME, standalone_mode=False)
    except ClickException as e:
        render_usage_error(e.format_message(), PROG_NAME)
        return 1
    except typer.Abort:
        render_usage_error("aborted", PROG_NAME)
        return 1
    # rv is the command's return value, or the code of a typer.Exit
    return rv if isinstance(rv, int) else 0


def cli():
    sys.exit(main())


if __name__ == "__main__":
    cli()
