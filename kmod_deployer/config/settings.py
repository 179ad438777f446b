"""Settings storage for deployer configuration."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Callable

from loguru import logger


SETTINGS_PATH = Path(
    os.environ.get(
        "KMOD_DEPLOYER_SETTINGS_PATH",
        "/etc/kmod-deployer/settings.json",
    )
)

# Default values - use these constants instead of hardcoding values elsewhere
DEFAULT_FETCH_ATTEMPTS = 3
DEFAULT_FETCH_BASE_DELAY = 2.0
DEFAULT_SUPPORTED_ARCHITECTURES = ("x86_64", "i686", "aarch64", "armv7l")
# "{kernel}" is replaced with the running kernel release.
DEFAULT_BUILD_DEPENDENCIES = (
    "dkms",
    "git",
    "make",
    "gcc",
    "curl",
    "wget",
    "tar",
    "perl",
    "linux-headers-{kernel}",
    "build-essential",
    "libelf-dev",
)

DEFAULT_SETTINGS: dict[str, Any] = {
    "module_name": "88x2bu",
    "driver_version": "20210702",
    "repo_url": "https://github.com/morrownr/88x2bu-20210702.git",
    "repo_branch": "master",
    "log_file": "/var/log/88x2bu-installer.log",
    "lock_file": "/var/run/88x2bu-installer.lock",
    "backup_dir": "/var/lib/88x2bu/backup",
    "modules_root": "/lib/modules",
    "proc_modules": "/proc/modules",
    "efi_dir": "/sys/firmware/efi",
    "os_release": "/etc/os-release",
    "temp_root": None,
    "fetch_attempts": DEFAULT_FETCH_ATTEMPTS,
    "fetch_base_delay": DEFAULT_FETCH_BASE_DELAY,
    "use_sudo": None,
    "supported_architectures": list(DEFAULT_SUPPORTED_ARCHITECTURES),
    "build_dependencies": list(DEFAULT_BUILD_DEPENDENCIES),
}


@dataclass(frozen=True)
class DeployerSettings:
    module_name: str
    driver_version: str
    repo_url: str
    repo_branch: str
    log_file: Path
    lock_file: Path
    backup_dir: Path
    modules_root: Path
    proc_modules: Path
    efi_dir: Path
    os_release: Path
    temp_root: Path | None
    fetch_attempts: int
    fetch_base_delay: float
    use_sudo: bool
    supported_architectures: tuple[str, ...]
    build_dependencies: tuple[str, ...]

    @classmethod
    def from_dict(cls, values: dict[str, Any]) -> DeployerSettings:
        """Build settings from a merged mapping, coercing paths and types.

        Keys that are not settings are ignored. A value that cannot be
        coerced is replaced by its default with a warning.
        """
        coerced = {}
        for key, default in DEFAULT_SETTINGS.items():
            coerce = _COERCERS[key]
            if key in values:
                try:
                    coerced[key] = coerce(values[key])
                    continue
                except (TypeError, ValueError) as error:
                    logger.warning(
                        f"Invalid value for setting {key!r}: {values[key]!r} "
                        f"({error}); using default {default!r}"
                    )
            coerced[key] = coerce(default)
        return cls(**coerced)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        for item in fields(self):
            value = getattr(self, item.name)
            if isinstance(value, Path):
                value = str(value)
            elif isinstance(value, tuple):
                value = list(value)
            data[item.name] = value
        return data


def _string_tuple(value: Any) -> tuple[str, ...]:
    # A bare string would otherwise become a tuple of characters.
    if isinstance(value, str) or not isinstance(value, (list, tuple)):
        raise TypeError(f"expected a list of strings, got {type(value).__name__}")
    return tuple(str(item) for item in value)


def _optional_path(value: Any) -> Path | None:
    return Path(value) if value else None


def _use_sudo(value: Any) -> bool:
    if value is None:
        return os.geteuid() != 0
    if not isinstance(value, bool):
        raise TypeError(f"expected true, false or null, got {value!r}")
    return value


_COERCERS: dict[str, Callable[[Any], Any]] = {
    "module_name": str,
    "driver_version": str,
    "repo_url": str,
    "repo_branch": str,
    "log_file": Path,
    "lock_file": Path,
    "backup_dir": Path,
    "modules_root": Path,
    "proc_modules": Path,
    "efi_dir": Path,
    "os_release": Path,
    "temp_root": _optional_path,
    "fetch_attempts": lambda value: max(1, int(value)),
    "fetch_base_delay": lambda value: max(0.0, float(value)),
    "use_sudo": _use_sudo,
    "supported_architectures": _string_tuple,
    "build_dependencies": _string_tuple,
}


def read_settings_file(path: Path | None = None) -> dict[str, Any]:
    """Read raw settings overrides, returning {} when the file is unusable."""
    settings_path = path or SETTINGS_PATH
    if not settings_path.exists():
        return {}
    try:
        data = json.loads(settings_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as error:
        logger.warning(f"Ignoring unreadable settings file {settings_path}: {error}")
        return {}
    if not isinstance(data, dict):
        logger.warning(f"Ignoring settings file {settings_path}: not a JSON object")
        return {}
    return data


def load_settings(path: Path | None = None, **overrides: Any) -> DeployerSettings:
    """Load settings from defaults, the settings file, then keyword overrides."""
    values = read_settings_file(path)
    values.update(overrides)
    return DeployerSettings.from_dict(values)

