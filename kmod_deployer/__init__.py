"""Transactional installer for out-of-tree kernel driver modules."""

from .__version__ import __version__

__all__ = ["__version__"]
