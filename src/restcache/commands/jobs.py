"""Job commands -- run maintenance once, run the scheduler, read job logs.

``restcache jobs refresh|expired|trash`` run one job once and print its
summary, which suits an external cron.  ``restcache jobs run`` starts the
in-process scheduler and blocks until interrupted.
"""

from __future__ import annotations

import threading
from dataclasses import asdict
from datetime import date
from typing import Optional

import typer

from restcache.exceptions import RestCacheError
from restcache.exit_codes import EXIT_GENERIC_FAILURE, EXIT_INVALID_USAGE
from restcache.output import error, format_response, info, print_data, print_table, warning

jobs_app = typer.Typer(no_args_is_help=True)


def _run_once(name: str) -> None:
    from restcache.config import resolve_config
    from restcache.runtime import Runtime

    try:
        with Runtime(resolve_config()) as runtime:
            summary = runtime.run_job(name)
    except RestCacheError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    format_response(asdict(summary))
    if summary.skipped:
        warning(f"{name} did not run (disabled or already running).")
    if summary.failed:
        error(f"{name} finished with {summary.failed} failure(s).")
        raise typer.Exit(code=EXIT_GENERIC_FAILURE)


@jobs_app.command("refresh")
def jobs_refresh() -> None:
    """Re-fetch records that were served stale."""
    _run_once("refresh")


@jobs_app.command("expired")
def jobs_expired() -> None:
    """Delete records that expired beyond the retention window."""
    _run_once("expired")


@jobs_app.command("trash")
def jobs_trash() -> None:
    """Delete records nobody requested recently, then compact the store."""
    _run_once("trash")


@jobs_app.command("run")
def jobs_run(
    once: bool = typer.Option(False, "--once", help="Run every job once and exit."),
) -> None:
    """Start the scheduler and run the jobs on their intervals until Ctrl-C.

    Example::

        restcache jobs run
        restcache jobs run --once
    """
    from restcache.config import resolve_config
    from restcache.runtime import JOB_NAMES, Runtime
    from restcache.scheduler import JobScheduler

    config = resolve_config()
    with Runtime(config) as runtime:
        if once:
            rows = []
            for name in JOB_NAMES:
                summary = runtime.run_job(name)
                rows.append(
                    [
                        name,
                        str(summary.attempted),
                        str(summary.succeeded),
                        str(summary.failed),
                        str(summary.deleted),
                        "yes" if summary.skipped else "no",
                    ]
                )
            print_table(
                ["Job", "Attempted", "Succeeded", "Failed", "Deleted", "Skipped"],
                rows,
                title="Job runs",
            )
            return

        scheduler = JobScheduler(config.jobs, runtime.run_job)
        scheduler.start()
        jobs = config.jobs
        info(
            f"Scheduler started: refresh every {jobs.refresh.interval_minutes}m, "
            f"expired every {jobs.expired.interval_hours}h, "
            f"trash every {jobs.trash.interval_hours}h. Press Ctrl-C to stop."
        )
        try:
            threading.Event().wait()
        finally:
            scheduler.shutdown(wait=False)


@jobs_app.command("logs")
def jobs_logs(
    name: str = typer.Argument(help="Job name: refresh, expired or trash."),
    day: Optional[str] = typer.Option(
        None, "--day", help="Date as YYYY-MM-DD. Defaults to today (UTC)."
    ),
) -> None:
    """Print a job's run log for one day."""
    from restcache.config import get_data_dir, resolve_config
    from restcache.expiration import utcnow
    from restcache.joblog import logging_key, read_stored_log

    try:
        when = date.fromisoformat(day) if day else utcnow().date()
    except ValueError:
        error(f"Invalid date: {day}")
        raise typer.Exit(code=EXIT_INVALID_USAGE) from None

    mode = resolve_config().logging.mode
    data_dir = get_data_dir()
    log_file = data_dir / "logs" / f"{logging_key(name, when)}.log"

    lines: list[str] = []
    if log_file.is_file():
        lines = log_file.read_text(encoding="utf-8").splitlines()
    elif (data_dir / "joblogs").is_dir():
        lines = read_stored_log(data_dir / "joblogs", name, when)

    if not lines:
        if mode in ("off", "console"):
            info(f"Job logs are not persisted in '{mode}' mode.")
        else:
            info(f"No {name} log for {when.isoformat()}.")
        return
    for line in lines:
        print_data(line)
