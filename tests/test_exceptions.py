"""Tests for deployment exception classes."""

import signal

import pytest

from kmod_deployer.exceptions import (
    AlreadyRunningError,
    BuildError,
    DependencyInstallError,
    DeployError,
    DeploymentInterrupted,
    ExhaustedRetriesError,
    FetchExhaustedError,
    InstallError,
    ModuleLoadError,
    RestoreError,
    UnsupportedPlatformError,
    VerificationError,
)


class TestExceptionHierarchy:
    """Test exception inheritance hierarchy."""

    @pytest.mark.parametrize(
        "error",
        [
            AlreadyRunningError(1234),
            UnsupportedPlatformError("bad arch"),
            DependencyInstallError(["gcc"]),
            FetchExhaustedError("https://example.invalid", 3),
            BuildError("boom"),
            InstallError("boom"),
            ModuleLoadError("88x2bu"),
            VerificationError("88x2bu", ["module not loaded"]),
            RestoreError("cp failed"),
            DeploymentInterrupted(signal.SIGTERM),
        ],
    )
    def test_stage_errors_inherit_from_deploy_error(self, error):
        """Test every stage failure is a DeployError."""
        assert isinstance(error, DeployError)
        assert error.exit_code != 0

    def test_exhausted_retries_is_not_a_stage_error(self):
        """Test ExhaustedRetriesError is left for the caller to translate."""
        assert not isinstance(ExhaustedRetriesError(3), DeployError)

    def test_zero_exit_code_is_promoted_to_one(self):
        """Test a failure can never report success."""
        assert BuildError("boom", exit_code=0).exit_code == 1


class TestTaxonomyKinds:
    """Test the names reported in failure log lines."""

    @pytest.mark.parametrize(
        "cls,kind",
        [
            (AlreadyRunningError, "AlreadyRunning"),
            (UnsupportedPlatformError, "UnsupportedPlatform"),
            (DependencyInstallError, "DependencyInstallFailure"),
            (FetchExhaustedError, "FetchExhausted"),
            (BuildError, "BuildFailure"),
            (InstallError, "InstallFailure"),
            (ModuleLoadError, "ModuleLoadFailure"),
            (VerificationError, "VerificationFailure"),
            (RestoreError, "RestoreFailure"),
        ],
    )
    def test_kind(self, cls, kind):
        assert cls.kind == kind


class TestErrorDetails:
    """Test exception attributes and messages."""

    def test_already_running_reports_pid(self):
        """Test AlreadyRunningError carries the holder pid."""
        error = AlreadyRunningError(1234, "/var/run/x.lock")
        assert error.pid == 1234
        assert error.lock_path == "/var/run/x.lock"
        assert error.stage == "locking"
        assert "1234" in str(error)

    def test_already_running_unknown_pid(self):
        """Test AlreadyRunningError without a readable pid."""
        assert "unknown" in str(AlreadyRunningError(None))

    def test_dependency_install_error(self):
        """Test DependencyInstallError lists packages and reason."""
        error = DependencyInstallError(["gcc", "make"], "E: Unable to locate", 100)
        assert error.packages == ["gcc", "make"]
        assert error.exit_code == 100
        assert "gcc make" in str(error)
        assert "Unable to locate" in str(error)

    def test_fetch_exhausted_error(self):
        """Test FetchExhaustedError reports attempts."""
        error = FetchExhaustedError("https://example.invalid/x.git", 3, "timeout")
        assert error.attempts == 3
        assert error.stage == "fetch"
        assert "after 3 attempts" in str(error)
        assert "timeout" in str(error)

    def test_build_error_keeps_exit_code(self):
        """Test BuildError propagates the build tool's exit status."""
        error = BuildError("make failed", exit_code=2)
        assert error.exit_code == 2
        assert error.stage == "compile"

    def test_module_load_error(self):
        """Test ModuleLoadError message includes the module."""
        error = ModuleLoadError("88x2bu", "Exec format error")
        assert error.module_name == "88x2bu"
        assert "88x2bu" in str(error)
        assert "Exec format error" in str(error)

    def test_verification_error_lists_checks(self):
        """Test VerificationError names each failed check."""
        error = VerificationError("88x2bu", ["module metadata unavailable", "module not loaded"])
        assert error.failed_checks == ["module metadata unavailable", "module not loaded"]
        assert "module not loaded" in str(error)

    def test_interrupted_exit_code_follows_signal_convention(self):
        """Test DeploymentInterrupted exits with 128 + signum."""
        error = DeploymentInterrupted(signal.SIGTERM, "SIGTERM")
        assert error.exit_code == 128 + signal.SIGTERM
        assert "SIGTERM" in str(error)

    def test_exhausted_retries_error(self):
        """Test ExhaustedRetriesError keeps the last error."""
        last = RuntimeError("connection reset")
        error = ExhaustedRetriesError(3, last)
        assert error.attempts == 3
        assert error.last_error is last
        assert "connection reset" in str(error)
