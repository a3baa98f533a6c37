"""Typer application and console-script entry point for restcache.

The root app carries the global output flags; the command groups live in
:mod:`restcache.commands` and are attached here:

* ``fetch``, ``lookup``, ``stats`` -- use and inspect the cache.
* ``jobs`` -- run the background jobs once, or start the scheduler.
* ``config`` -- view and modify the global configuration.
* ``exclusions`` -- manage hosts that are never cached.

:func:`main` is the ``restcache`` console script.  A
:class:`~restcache.exceptions.RestCacheError` exits with its
``exit_code``; any other exception writes a crash log under the data
directory and exits with a generic failure.
"""

from __future__ import annotations

import signal
import sys
import traceback
from datetime import datetime
from typing import Any

import typer

from restcache import __version__
from restcache.exit_codes import EXIT_GENERIC_FAILURE

app = typer.Typer(
    name="restcache",
    help="Transparent caching for outbound HTTP requests.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

# ------------------------------------------------------------------ #
# Command groups
# ------------------------------------------------------------------ #

from restcache.commands.cache import (  # noqa: E402
    exclusions_app,
    fetch_command,
    lookup_command,
    stats_command,
)
from restcache.commands.config import config_app  # noqa: E402
from restcache.commands.jobs import jobs_app  # noqa: E402

app.command("fetch")(fetch_command)
app.command("lookup")(lookup_command)
app.command("stats")(stats_command)
app.add_typer(jobs_app, name="jobs", help="Run background jobs or the scheduler.")
app.add_typer(config_app, name="config", help="Configuration management.")
app.add_typer(exclusions_app, name="exclusions", help="Hosts that are never cached.")


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"restcache {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    plain_output: bool = typer.Option(False, "--plain", help="Plain text output."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress non-essential output."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug output."),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmations."),
) -> None:
    """Root callback executed before every sub-command.

    Installs the global :class:`~restcache.output.OutputManager` and keeps
    ``force`` in ``ctx.obj`` for the sub-commands.
    """
    from restcache.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    set_output(OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose))

    ctx.ensure_object(dict)
    ctx.obj["force"] = force


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log() -> str:
    """Write the current traceback under ``<data_dir>/logs`` and return the path."""
    from restcache.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    log_path = logs_dir / f"crash-{datetime.now().strftime('%Y%m%d-%H%M%S')}.log"
    log_path.write_text(traceback.format_exc(), encoding="utf-8")
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``restcache`` console script.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from restcache.exceptions import RestCacheError
        from restcache.output import error

        if isinstance(exc, RestCacheError):
            error(str(exc))
            sys.exit(exc.exit_code)
        log_path = _write_crash_log()
        error(f"Unexpected error. Debug log: {log_path}")
        sys.exit(EXIT_GENERIC_FAILURE)
