"""chunkstash CLI: operator console for reading and writing stashes."""

from __future__ import annotations

from typing import Optional

import typer

from chunkstash.cli import info, objects, sync_cmd

app = typer.Typer(
    name="stash",
    help="chunkstash CLI: read, write and inspect versioned keys in object storage.",
    no_args_is_help=True,
)


class _State:
    """Global CLI state shared across subcommands."""

    storage_uri: str | None = None
    json_output: bool = False
    log_level: str | None = None


state = _State()


def _version_callback(value: bool) -> None:
    if not value:
        return
    from chunkstash import __version__

    print(f"stash {__version__}")
    raise typer.Exit()


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    storage_uri: Optional[str] = typer.Option(
        None,
        "--storage-uri",
        "-s",
        envvar="CHUNKSTASH_STORAGE_URI",
        help="Backend storage URI (file:///path, s3://bucket/prefix or memory://)",
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output when supported"),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        envvar="CHUNKSTASH_LOG_LEVEL",
        help="Log level for engine diagnostics (DEBUG, INFO, WARNING, ERROR)",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version", is_eager=True, callback=_version_callback
    ),
) -> None:
    """Global options for all stash commands."""
    from chunkstash.errors import ChunkStashError
    from chunkstash.logging_config import setup_logging
    from chunkstash.storage import parse_storage_target

    if storage_uri:
        try:
            parse_storage_target(storage_uri)
        except ChunkStashError as e:
            raise typer.BadParameter(str(e))

    state.storage_uri = storage_uri
    state.json_output = json_output
    state.log_level = log_level
    setup_logging(log_level)
    if ctx.invoked_subcommand is None and not version:
        print(ctx.get_help())
        raise typer.Exit()


app.command(name="put")(objects.put_cmd)
app.command(name="get")(objects.get_cmd)
app.command(name="rm")(objects.rm_cmd)
app.command(name="ls")(objects.ls_cmd)
app.command(name="versions")(objects.versions_cmd)
app.command(name="stat")(objects.stat_cmd)
app.command(name="info")(info.info_cmd)
app.command(name="sync")(sync_cmd.sync_cmd)


def main() -> None:
    """Entry point for the stash CLI."""
    app()
