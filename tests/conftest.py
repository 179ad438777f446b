"""
Pytest configuration and shared fixtures for kmod-deployer tests.

This module provides a fake command runner standing in for the host, isolated
settings rooted in tmp_path, and helpers for capturing loguru output.
"""

import shutil
import subprocess
from pathlib import Path
from typing import Callable, List, Optional

import pytest
from loguru import logger

from kmod_deployer.config.settings import load_settings
from kmod_deployer.core.actions import ActionStack
from kmod_deployer.domain.models import DeploymentContext, DriverSpec


KERNEL_RELEASE = "6.1.0-18-amd64"
MODULE_NAME = "88x2bu"
PROC_MODULES_LINE = f"{MODULE_NAME} 3407872 0 - Live 0x0000000000000000\n"


# ==============================================================================
# Command Runner Double
# ==============================================================================


class FakeRunner:
    """CommandRunner double with prefix-matched canned results.

    Commands that match no rule succeed with empty output. Later rules win
    over earlier ones. An ``effect`` callable receives (args, cwd) and may
    return a CompletedProcess to override the canned result.
    """

    def __init__(self, available=()):
        self.calls: List[tuple] = []
        self.rules: List[tuple] = []
        self.available = set(available)

    def on(
        self,
        *prefix: str,
        returncode: int = 0,
        stdout: str = "",
        stderr: str = "",
        effect: Optional[Callable] = None,
    ) -> "FakeRunner":
        self.rules.append((tuple(prefix), returncode, stdout, stderr, effect))
        return self

    def run(self, args, *, cwd=None):
        args = list(args)
        self.calls.append((args, cwd))
        for prefix, returncode, stdout, stderr, effect in reversed(self.rules):
            if tuple(args[: len(prefix)]) != prefix:
                continue
            if effect is not None:
                result = effect(args, cwd)
                if result is not None:
                    return result
            return subprocess.CompletedProcess(
                args, returncode, stdout=stdout, stderr=stderr
            )
        return subprocess.CompletedProcess(args, 0, stdout="", stderr="")

    def which(self, name):
        return f"/usr/bin/{name}" if name in self.available else None

    @property
    def commands(self) -> List[List[str]]:
        return [args for args, _ in self.calls]

    def ran(self, *prefix: str) -> bool:
        return any(tuple(args[: len(prefix)]) == prefix for args in self.commands)


@pytest.fixture
def runner() -> FakeRunner:
    """Fixture providing a FakeRunner with no optional tools installed."""
    return FakeRunner()


@pytest.fixture
def make_runner():
    """Factory fixture for FakeRunners with optional tools on PATH."""
    return FakeRunner


# ==============================================================================
# Settings and Context Fixtures
# ==============================================================================


@pytest.fixture
def settings(tmp_path):
    """
    Fixture providing settings whose every path lives under tmp_path.

    Returns:
        DeployerSettings with sudo disabled and zero backoff delay.
    """
    return load_settings(
        tmp_path / "settings.json",
        repo_url="https://example.invalid/88x2bu.git",
        log_file=str(tmp_path / "log" / "installer.log"),
        lock_file=str(tmp_path / "run" / "installer.lock"),
        backup_dir=str(tmp_path / "backup"),
        modules_root=str(tmp_path / "lib" / "modules"),
        proc_modules=str(tmp_path / "proc_modules"),
        efi_dir=str(tmp_path / "efi"),
        os_release=str(tmp_path / "os-release"),
        temp_root=str(tmp_path / "tmp"),
        fetch_base_delay=0.0,
        use_sudo=False,
    )


@pytest.fixture
def make_context(settings, runner):
    """Factory fixture building a DeploymentContext around the fake runner."""

    def _make(**overrides) -> DeploymentContext:
        values = dict(
            driver=DriverSpec(
                module_name=MODULE_NAME,
                version="20210702",
                repo_url=settings.repo_url,
                branch="master",
            ),
            settings=settings,
            runner=runner,
            actions=ActionStack(),
            kernel_release=KERNEL_RELEASE,
            machine="x86_64",
            log_file=settings.log_file,
        )
        values.update(overrides)
        return DeploymentContext(**values)

    return _make


@pytest.fixture
def ctx(make_context) -> DeploymentContext:
    return make_context()


@pytest.fixture
def interfaces(mocker):
    """Fixture pinning the host's network interfaces to lo and a Wi-Fi NIC."""
    return mocker.patch(
        "kmod_deployer.system.probes.psutil.net_if_addrs",
        return_value={"lo": [], "wlx00c0cab1": []},
    )


@pytest.fixture
def fake_host(runner, settings, interfaces) -> FakeRunner:
    """
    Fixture configuring the fake runner as a host where every step works.

    git clone creates a buildable DKMS-capable source tree, modprobe
    makes the module show up in the fake /proc/modules, and mkdir and cp
    act on the tmp_path tree.
    """

    def clone(args, _cwd):
        target = Path(args[-1])
        target.mkdir(parents=True)
        (target / "Makefile").write_text("all:\n")
        (target / "dkms.conf").write_text(f'PACKAGE_NAME="{MODULE_NAME}"\n')

    def make_dirs(args, _cwd):
        Path(args[-1]).mkdir(parents=True, exist_ok=True)

    def copy_file(args, _cwd):
        shutil.copyfile(args[-2], args[-1])

    def modprobe(args, _cwd):
        if "-r" in args:
            settings.proc_modules.write_text("")
        else:
            settings.proc_modules.write_text(PROC_MODULES_LINE)

    runner.on("git", "clone", effect=clone)
    runner.on("mkdir", "-p", effect=make_dirs)
    runner.on("cp", "-f", effect=copy_file)
    runner.on("modprobe", effect=modprobe)
    return runner


# ==============================================================================
# Log Capture Fixtures
# ==============================================================================


@pytest.fixture(autouse=True)
def reset_logger():
    """Start and finish every test with no loguru sinks attached."""
    logger.remove()
    yield
    logger.remove()


@pytest.fixture
def log_messages():
    """
    Fixture capturing loguru records as (level, message) tuples.

    Returns:
        List that fills up as the code under test logs.
    """
    records: list = []

    def sink(message):
        record = message.record
        records.append((record["level"].name, record["message"]))

    logger.add(sink, level="DEBUG", format="{message}")
    return records
