"""SpecGraph command line interface."""

from specgraph import __version__

__all__ = ["__version__"]
