"""
The govtalk settings file, ``~/.govtalk/config.json``.

It holds the chosen Gateway (profile name, URL, timeout), the sender ID
and email, and the password when no system keychain is usable.  Reads
return only recognised, well-typed settings.  Writes replace the whole
file atomically, readable by the owner only; settings this version does
not recognise are dropped on the next write.
"""

from __future__ import annotations

__all__ = [
    "CONFIG_DIR",
    "CONFIG_FILE",
    "ConfigDict",
    "clear_config",
    "read_config",
    "update_config",
]

import json
import logging
import os
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import TypedDict, cast
from urllib.parse import urlparse

from ..constants import MAX_TIMEOUT, MIN_TIMEOUT

_logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".govtalk"
CONFIG_FILE = CONFIG_DIR / "config.json"


class ConfigDict(TypedDict, total=False):
    profile: str
    url: str
    timeout: int
    sender_id: str
    password: str
    email: str


def _non_empty_str(value: object) -> bool:
    return isinstance(value, str) and bool(value)


def _gateway_url(value: object) -> bool:
    if not isinstance(value, str):
        return False
    parsed = urlparse(value)
    return parsed.scheme == "https" and bool(parsed.hostname)


def _timeout(value: object) -> bool:
    return (
        isinstance(value, int)
        and not isinstance(value, bool)
        and MIN_TIMEOUT <= value <= MAX_TIMEOUT
    )


_SETTINGS: dict[str, Callable[[object], bool]] = {
    "profile": _non_empty_str,
    "url": _gateway_url,
    "timeout": _timeout,
    "sender_id": _non_empty_str,
    "password": _non_empty_str,
    "email": _non_empty_str,
}


def _load_file() -> dict[str, object]:
    try:
        text = CONFIG_FILE.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError as e:
        _logger.warning("Cannot read %s: %s", CONFIG_FILE, e)
        return {}
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        _logger.warning("Ignoring corrupted %s: %s", CONFIG_FILE, e)
        return {}
    if not isinstance(data, dict):
        _logger.warning("Ignoring %s: top level is not an object", CONFIG_FILE)
        return {}
    return data


def read_config() -> ConfigDict:
    """Return the saved settings that are recognised and valid."""
    settings: dict[str, object] = {}
    for key, value in _load_file().items():
        check = _SETTINGS.get(key)
        if check is None:
            _logger.debug("Ignoring unknown setting %r", key)
        elif check(value):
            settings[key] = value
        else:
            shown = "***" if key == "password" else repr(value)
            _logger.warning("Ignoring invalid setting %s=%s", key, shown)
    return cast("ConfigDict", settings)


def _write(settings: dict[str, object]) -> None:
    CONFIG_DIR.mkdir(parents=True, exist_ok=True, mode=0o700)
    content = json.dumps(settings, indent=2, ensure_ascii=False) + "\n"
    # mkstemp creates the file 0600, so the password is never world-readable
    fd, name = tempfile.mkstemp(dir=CONFIG_DIR, prefix=".config-", suffix=".json")
    tmp = Path(name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, CONFIG_FILE)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


def update_config(**changes: object) -> ConfigDict:
    """
    Change some settings and save the file.

    A value of None removes that setting.  The file is rewritten only
    when something actually changed.

    Returns:
        The settings now in effect.

    Raises:
        KeyError: If a setting name is not recognised.
        ValueError: If a value is not valid for its setting.
    """
    current = dict(read_config())
    updated = dict(current)
    for key, value in changes.items():
        check = _SETTINGS.get(key)
        if check is None:
            raise KeyError(f"Unknown setting: {key}")
        if value is None:
            updated.pop(key, None)
        elif check(value):
            updated[key] = value
        else:
            raise ValueError(f"Invalid value for {key}")
    if updated != current:
        _write(updated)
    return cast("ConfigDict", updated)


def clear_config() -> None:
    """Remove every saved setting."""
    _write({})
