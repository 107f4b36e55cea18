"""dapsync

Core package for choosing which parts of a media library get synced onto a
portable audio player (DAP), and for writing the artifacts the external sync
script consumes.
"""

__all__ = [
    "__version__",
]

# Keep in sync with pyproject.toml
__version__ = "0.1.0"
