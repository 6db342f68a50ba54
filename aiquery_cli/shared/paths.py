"""Utilities for resolving application paths."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Callable, Mapping

try:  # POSIX only; Windows falls through to the USER guess
    import pwd
except ImportError:  # pragma: no cover - platform dependent
    pwd = None  # type: ignore[assignment]

CONFIG_FILE_NAME = ".aiquery.config"


def _expand(path_str: str) -> Path:
    """Return a Path with user and environment variables expanded."""
    return Path(os.path.expandvars(path_str)).expanduser()


def _password_db_home() -> str:
    if pwd is None:  # pragma: no cover - platform dependent
        return ""
    try:
        entry = pwd.getpwuid(os.geteuid())
    except (KeyError, AttributeError):
        return ""
    return entry.pw_dir or ""


def home_directory(
    env: Mapping[str, str] | None = None,
    password_lookup: Callable[[], str] = _password_db_home,
) -> str:
    """Return the user's home directory, or an empty string when undeterminable.

    Resolution order: ``$HOME``, the password database entry for the effective
    user, then a ``/home/$USER`` guess.
    """
    env = os.environ if env is None else env
    home = env.get("HOME")
    if home:
        return home
    looked_up = password_lookup()
    if looked_up:
        return looked_up
    user = env.get("USER")
    if user:
        return f"/home/{user}"
    return ""


def default_config_path(
    env: Mapping[str, str] | None = None,
    password_lookup: Callable[[], str] = _password_db_home,
) -> Path | None:
    """Return ``<home>/.aiquery.config`` or None when no home can be resolved."""
    home = home_directory(env=env, password_lookup=password_lookup)
    if not home:
        return None
    return Path(home) / CONFIG_FILE_NAME


def resolve_path(path_str: str | Path) -> Path:
    """Expand user and environment variables for arbitrary paths."""
    return _expand(str(path_str))
