"""Config commands -- view and modify the global configuration.

Settings live in ``config.json`` in the restcache config directory and
cover the live cache, outgoing requests, the three background jobs and
job logging (:class:`~restcache.models.GlobalConfig`).
"""

from __future__ import annotations

from typing import Any

import typer
from pydantic import ValidationError

from restcache.exit_codes import EXIT_INVALID_USAGE
from restcache.output import error, format_response, info, success

config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show(
    effective: bool = typer.Option(
        False, "--effective", help="Apply RESTCACHE_* environment overrides."
    ),
) -> None:
    """Show the current configuration.

    Example::

        restcache config show
        restcache config show --effective --json
    """
    from restcache.config import get_config_dir, load_global_config, resolve_config

    config = resolve_config() if effective else load_global_config()
    info(f"Config directory: {get_config_dir()}")
    format_response(config.model_dump(mode="json"))


def _coerce(current: Any, value: str) -> Any:
    """Convert the CLI string *value* to the type of the *current* setting."""
    if value.lower() in ("null", "none") and not isinstance(current, (bool, list)):
        return None
    if isinstance(current, bool):
        return value.lower() in ("true", "1", "yes", "on")
    if isinstance(current, int):
        return int(value)
    if isinstance(current, list):
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


@config_app.command("set")
def config_set(
    key: str = typer.Argument(help="Config key in dot notation, e.g. 'jobs.trash.older_than_days'."),
    value: str = typer.Argument(help="Value to set. Lists take comma-separated items."),
) -> None:
    """Set a configuration value.

    The value is converted to the type of the existing setting and the
    whole configuration is validated before it is saved.  Numeric job
    settings that make no sense (zero intervals, negative limits) are
    replaced by their defaults.

    Example::

        restcache config set jobs.refresh.interval_minutes 10
        restcache config set cache.exclusions api.one.com,api.two.com
        restcache config set logging.mode file
    """
    from restcache.config import load_global_config, save_global_config
    from restcache.models import GlobalConfig

    data = load_global_config().model_dump(mode="json")

    parts = key.split(".")
    target = data
    for part in parts[:-1]:
        if not isinstance(target.get(part), dict):
            error(f"Invalid config key: {key}")
            raise typer.Exit(code=EXIT_INVALID_USAGE)
        target = target[part]

    final = parts[-1]
    if final not in target or isinstance(target[final], dict):
        error(f"Unknown config key: {key}")
        raise typer.Exit(code=EXIT_INVALID_USAGE)

    try:
        coerced = _coerce(target[final], value)
    except ValueError:
        error(f"Expected integer for {key}, got: {value}")
        raise typer.Exit(code=EXIT_INVALID_USAGE) from None
    target[final] = coerced

    try:
        new_config = GlobalConfig.model_validate(data)
    except ValidationError as exc:
        error(f"Validation error: {exc}")
        raise typer.Exit(code=EXIT_INVALID_USAGE) from None

    save_global_config(new_config)
    stored: Any = new_config.model_dump(mode="json")
    for part in parts:
        stored = stored[part]
    success(f"Set {key} = {stored}")


@config_app.command("reset")
def config_reset(ctx: typer.Context) -> None:
    """Reset the configuration to defaults.

    Asks for confirmation unless ``--force`` is given.

    Example::

        restcache --force config reset
    """
    from restcache.config import save_global_config
    from restcache.models import GlobalConfig

    force = ctx.obj.get("force", False) if ctx.obj else False
    if not force and not typer.confirm("Reset all config to defaults?"):
        info("Cancelled.")
        raise typer.Exit()

    save_global_config(GlobalConfig())
    success("Configuration reset to defaults.")
