"""Concrete stage bodies of the driver deployment pipeline.

Each stage takes the run's DeploymentContext, raises a DeployError subclass
on failure, and registers rollback or cleanup actions for anything it changes.

Stages:
    - validate_platform(): Kernel release, architecture, secure boot warning
    - check_dependencies(): Install missing build packages
    - backup_existing_driver(): Snapshot the current module and DKMS state
    - fetch_source(): Clone the driver repository with retries
    - compile_driver(): Build the module with make
    - install_driver(): DKMS or direct install, then initramfs refresh
    - load_driver_module(): Replace the running module instance
    - verify_driver_operation(): Metadata, loaded state, interfaces

Rollback:
    - restore_backup(): Copy a saved module back and rerun depmod
"""

from .backup import backup_existing_driver, create_backup, restore_backup
from .dependencies import check_dependencies, missing_dependencies, required_dependencies
from .install import install_driver, refresh_initramfs
from .module import load_driver_module, unload_module, verify_driver_operation
from .platform import validate_platform
from .source import compile_driver, fetch_source


__all__ = [
    "backup_existing_driver",
    "check_dependencies",
    "compile_driver",
    "create_backup",
    "fetch_source",
    "install_driver",
    "load_driver_module",
    "missing_dependencies",
    "refresh_initramfs",
    "required_dependencies",
    "restore_backup",
    "unload_module",
    "validate_platform",
    "verify_driver_operation",
]
