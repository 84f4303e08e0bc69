"""Lavender: consistency checking and garbage collection for lavendelized docroots.

Published assets are served under content-derived paths and described by
per-module index files. ``Lavender.fsck`` verifies that every replica of a
docroot agrees on those indexes, that every reference resolves to a file,
that the aggregate index is correct and, optionally, that file content still
matches its recorded digest, before reclaiming unreferenced files.
"""

__version__ = "0.4.0"

__all__ = ["__version__"]
