"""
streamswap.version — semantic version string.

Kept tiny and dependency-free so it can be imported during packaging and by the
CLI before anything heavy is loaded.

Usage:
    from streamswap.version import __version__, version_metadata
"""

from __future__ import annotations

import os
from typing import Dict

# Bump this when making a tagged release. Use semver (major.minor.patch).
__version__ = "0.3.0"

# Storage layout version. Bump when the CBOR record shape of Stream/Position changes.
STATE_VERSION = 1


def version_metadata() -> Dict[str, object]:
    """
    Return a small dict describing this build.

    `STREAMSWAP_BUILD` may be set by packaging to tag a build (e.g. a commit id).
    """
    return {
        "version": __version__,
        "state_version": STATE_VERSION,
        "build": os.getenv("STREAMSWAP_BUILD", "local"),
    }


__all__ = ["__version__", "STATE_VERSION", "version_metadata"]
