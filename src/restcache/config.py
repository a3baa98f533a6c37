"""Where restcache keeps its files, and how its settings are loaded.

Three directories are used, each created on first access:

* config -- ``config.json`` holding the :class:`~restcache.models.GlobalConfig`.
* cache -- the default record store (overridable per config).
* data -- job logs, run locks and crash logs.

On Linux and the BSDs these follow the XDG base directory variables; other
platforms keep everything under ``~/.restcache/``.  The config file is
replaced atomically on save, and :func:`resolve_config` lays the
``RESTCACHE_*`` environment variables over whatever was saved.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path

from restcache.exceptions import ConfigError
from restcache.models import GlobalConfig, LoggingConfig

_APP_NAME = "restcache"

ENV_CACHE_DIR = "RESTCACHE_CACHE_DIR"
ENV_LOG_MODE = "RESTCACHE_LOG_MODE"
ENV_EXCLUSIONS = "RESTCACHE_EXCLUSIONS"

# kind -> (XDG variable, default under $HOME, subdirectory of ~/.restcache)
_DIRS = {
    "config": ("XDG_CONFIG_HOME", ".config", ""),
    "cache": ("XDG_CACHE_HOME", ".cache", "cache"),
    "data": ("XDG_DATA_HOME", ".local/share", "data"),
}


# --- Directories ---


def _is_xdg_platform() -> bool:
    system = platform.system()
    return system == "Linux" or system.endswith("BSD")


def _app_dir(kind: str) -> Path:
    env_var, home_default, fallback = _DIRS[kind]
    if _is_xdg_platform():
        root = Path(os.environ.get(env_var) or Path.home() / home_default)
        path = root / _APP_NAME
    else:
        path = Path.home() / f".{_APP_NAME}" / fallback
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_config_dir() -> Path:
    """Directory holding ``config.json`` (``~/.config/restcache`` by default)."""
    return _app_dir("config")


def get_cache_dir() -> Path:
    """Default record store directory (``~/.cache/restcache`` by default)."""
    return _app_dir("cache")


def get_data_dir() -> Path:
    """Directory for job logs, run locks and crash logs.

    Defaults to ``~/.local/share/restcache`` on XDG platforms and
    ``~/.restcache/data`` elsewhere.
    """
    return _app_dir("data")


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Replace *path* with *data* without ever leaving a partial file.

    The text goes to a sibling temp file first, is synced, and is then
    renamed over *path*.  The temp file is removed if anything fails.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    handle, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(handle, "w", encoding="utf-8") as tmp:
            tmp.write(data)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


# --- Global config ---


def _config_file() -> Path:
    return get_config_dir() / "config.json"


def load_global_config() -> GlobalConfig:
    """Read the saved configuration.

    A missing file yields the defaults.

    Raises:
        ConfigError: The file is not valid JSON or does not validate.
    """
    path = _config_file()
    if not path.is_file():
        return GlobalConfig()
    try:
        return GlobalConfig.model_validate_json(path.read_text(encoding="utf-8"))
    except ValueError as exc:
        raise ConfigError(f"Cannot read config {path}: {exc}") from exc


def save_global_config(config: GlobalConfig) -> None:
    _atomic_write(_config_file(), json.dumps(config.model_dump(mode="json"), indent=2) + "\n")


# --- Precedence resolution ---


def resolve_config() -> GlobalConfig:
    """Resolve the effective configuration.

    Precedence (high to low):
        1. Environment variables (``RESTCACHE_CACHE_DIR``,
           ``RESTCACHE_LOG_MODE``, ``RESTCACHE_EXCLUSIONS``)
        2. User config (``~/.config/restcache/config.json``)
        3. Defaults
    """
    config = load_global_config()

    cache_dir = os.environ.get(ENV_CACHE_DIR)
    if cache_dir:
        config.cache_dir = cache_dir

    log_mode = os.environ.get(ENV_LOG_MODE)
    if log_mode:
        config.logging = LoggingConfig(mode=log_mode)

    exclusions = os.environ.get(ENV_EXCLUSIONS)
    if exclusions is not None:
        config.cache.exclusions = [h.strip() for h in exclusions.split(",") if h.strip()]

    return config


def store_dir(config: GlobalConfig) -> Path:
    """Return the record store directory for *config*."""
    if config.cache_dir:
        path = Path(config.cache_dir).expanduser()
        path.mkdir(parents=True, exist_ok=True)
        return path
    return get_cache_dir()
