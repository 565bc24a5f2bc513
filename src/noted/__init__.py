"""
Noted - a personal note store with ranked full-text search.

This package implements the storage engine, the FTS5 search index, the
synchronous engine boundary and the client-side query pipeline of the
Noted note manager.

This version uses synchronous operations.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("noted-engine")
except PackageNotFoundError:
    __version__ = "0.3.0"
