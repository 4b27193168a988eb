"""
streamswap — continuous-distribution token sale accounting.

A stream accepts deposits of an input denom over a fixed time window and
releases a fixed supply of an output denom to depositors in proportion to
their shares at each instant. Accounting uses a single per-share index so
every call is O(1) in the number of subscribers.

This package exposes only lightweight metadata at import time. Import the
contract surface explicitly:

    from streamswap.contract import StreamSwap
    from streamswap.types import Context
"""

from .version import __version__, version_metadata

__all__ = ["__version__", "version_metadata"]
