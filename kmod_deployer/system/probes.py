"""Read-only host introspection used by the pipeline stages."""

from __future__ import annotations

import platform
import shlex
from pathlib import Path

import psutil

from kmod_deployer.logging import LoggerFactory


log = LoggerFactory.for_system()


def kernel_release() -> str:
    """Running kernel release, e.g. "6.1.0-18-amd64" (``uname -r``)."""
    return platform.release()


def machine() -> str:
    """CPU architecture, e.g. "x86_64" (``uname -m``)."""
    return platform.machine()


def build_jobs() -> int:
    """Parallel job count for ``make -j``."""
    return psutil.cpu_count() or 1


def read_os_release(path: Path) -> dict[str, str]:
    """Parse an os-release file into a dict.

    Returns {} if the file is missing or unreadable.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError:
        return {}
    values: dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, raw_value = line.partition("=")
        try:
            parts = shlex.split(raw_value)
        except ValueError:
            parts = [raw_value.strip("\"'")]
        values[key.strip()] = parts[0] if parts else ""
    return values


def loaded_modules(proc_modules: Path) -> set[str]:
    """Names of modules currently loaded into the kernel."""
    try:
        text = proc_modules.read_text(encoding="utf-8")
    except OSError as error:
        log.debug(f"Unable to read {proc_modules}: {error}")
        return set()
    return {line.split()[0] for line in text.splitlines() if line.strip()}


def is_module_loaded(proc_modules: Path, module_name: str) -> bool:
    # The kernel lists module names with underscores in place of dashes.
    normalized = module_name.replace("-", "_")
    return normalized in loaded_modules(proc_modules)


def network_interfaces() -> list[str]:
    """Names of network interfaces known to the kernel."""
    return sorted(psutil.net_if_addrs())
