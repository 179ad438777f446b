import argparse
import sys

from loguru import logger

from kmod_deployer.__version__ import __version__
from kmod_deployer.config.settings import SETTINGS_PATH, load_settings
from kmod_deployer.deployer import Deployer
from kmod_deployer.logging import setup_logging


def build_parser():
    parser = argparse.ArgumentParser(
        prog="kmod-deployer",
        description=(
            "Build, install and load an out-of-tree kernel driver module with "
            "automatic rollback on failure."
        ),
        epilog=f"Settings are read from {SETTINGS_PATH} when present.",
    )
    parser.add_argument(
        "-d", "--debug", action="store_true", help="Enable debug mode"
    )
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"%(prog)s v{__version__}",
        help="Show version information",
    )
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    settings = load_settings()
    try:
        setup_logging(debug=args.debug, log_file=settings.log_file)
    except OSError as error:
        logger.error(f"Unable to open log file {settings.log_file}: {error}")
        return 1
    return Deployer(settings, debug=args.debug).run()


if __name__ == "__main__":
    sys.exit(main())
