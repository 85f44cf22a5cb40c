"""
SysIdent - Configuration

Runtime settings for the identification probes. Defaults cover a standard
host; a JSON file (passed explicitly or named by SYSIDENT_CONFIG) is
deep-merged over them.
"""

from __future__ import annotations

from dataclasses import dataclass
import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

from .probe import MIN_PROBE_BUFFER_SIZE, OSFamily


logger = logging.getLogger("sysident.core.config")

CONFIG_ENV_VAR = "SYSIDENT_CONFIG"

DEFAULT_SETTINGS: dict[str, Any] = {
    "paths": {
        "cpuinfo": "/proc/cpuinfo",
        "os_release": "/etc/os-release",
    },
    "probe": {
        "buffer_size": MIN_PROBE_BUFFER_SIZE,
    },
    "commands": {
        "timeout": 5,
    },
    "family_override": None,
}


@dataclass(frozen=True)
class ProbeConfig:
    """Settings consumed by the platform and CPU probes.

    Attributes:
        cpuinfo_path: Location of the kernel CPU info blob
        os_release_path: Location of the os-release file
        probe_buffer_size: Scratch buffer size for the uname probe
        command_timeout: Timeout in seconds for helper commands (sysctl)
        family_override: Skip detection and report this family
    """
    cpuinfo_path: str = "/proc/cpuinfo"
    os_release_path: str = "/etc/os-release"
    probe_buffer_size: int = MIN_PROBE_BUFFER_SIZE
    command_timeout: int = 5
    family_override: Optional[OSFamily] = None

    @classmethod
    def from_dict(cls, settings: dict[str, Any]) -> "ProbeConfig":
        """Build a config from a (merged) settings dictionary.

        Out-of-range or malformed values fall back to their defaults.

        Args:
            settings: Nested settings in the DEFAULT_SETTINGS layout

        Returns:
            ProbeConfig instance
        """
        paths = _section(settings, "paths")
        probe = _section(settings, "probe")
        commands = _section(settings, "commands")

        buffer_size = _as_int(probe.get("buffer_size"), MIN_PROBE_BUFFER_SIZE)
        timeout = _as_int(commands.get("timeout"), 5)

        return cls(
            cpuinfo_path=str(paths.get("cpuinfo", "/proc/cpuinfo")),
            os_release_path=str(paths.get("os_release", "/etc/os-release")),
            probe_buffer_size=max(buffer_size, MIN_PROBE_BUFFER_SIZE),
            command_timeout=max(timeout, 1),
            family_override=_parse_family(settings.get("family_override")),
        )


def load_config(file_path: Optional[str] = None) -> ProbeConfig:
    """Load probe settings.

    Args:
        file_path: JSON settings file (defaults to $SYSIDENT_CONFIG, then
            built-in defaults only)

    Returns:
        ProbeConfig instance
    """
    path = file_path or os.environ.get(CONFIG_ENV_VAR)
    overrides = _load_settings_file(path) if path else {}
    return ProbeConfig.from_dict(_deep_merge(DEFAULT_SETTINGS, overrides))


def _load_settings_file(file_path: str) -> dict[str, Any]:
    """Load a JSON settings file, or {} if it is missing or invalid."""
    path = Path(file_path)
    if not path.exists():
        logger.warning("Config file %s not found, using defaults", path)
        return {}

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
            if isinstance(data, dict):
                return data
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning("Cannot load config file %s: %s", path, e)
        return {}

    logger.warning("Config file %s is not a JSON object, ignoring", path)
    return {}


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge two dictionaries."""
    merged: dict[str, Any] = dict(base)

    for key, value in override.items():
        if (
            key in merged
            and isinstance(merged[key], dict)
            and isinstance(value, dict)
        ):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value

    return merged


def _section(settings: dict[str, Any], key: str) -> dict[str, Any]:
    value = settings.get(key)
    return value if isinstance(value, dict) else {}


def _as_int(value: Any, default: int) -> int:
    if isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return default


def _parse_family(value: Any) -> Optional[OSFamily]:
    if value is None or value == "":
        return None
    try:
        return OSFamily(str(value).lower())
    except ValueError:
        logger.warning("Ignoring unknown family_override %r", value)
        return None
