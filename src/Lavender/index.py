# === NAVMAP v1 ===
# {
#   "module": "Lavender.index",
#   "purpose": "Content-addressed labels and the ordered index collection with its text format",
#   "sections": [
#     {"id": "lavendelize", "name": "lavendelize", "anchor": "function-lavendelize", "kind": "function"},
#     {"id": "label", "name": "Label", "anchor": "class-label", "kind": "class"},
#     {"id": "index", "name": "Index", "anchor": "class-index", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Labels and indexes describing published assets.

A :class:`Label` ties the source-relative path of an asset to the
content-derived path it is served under and to the MD5 digest of its bytes.
An :class:`Index` is the ordered collection of labels written for one module
(``<module>.idx``) or folded together for a whole docroot (``.all.idx``).

Serialized indexes are UTF-8 text::

    # lavender index
    <lavendelized path>\\t<original path>\\t<hex digest>

Lines starting with ``#`` that contain no tab are comments.

Lines keep insertion order so that writing the same index twice yields the
same bytes; equality between indexes ignores order.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Set

from .errors import DuplicateLabelError, IndexCorruptError, IndexFormatError

__all__ = [
    "ALL_IDX",
    "HASH_LENGTH",
    "INDEX_HEADER",
    "INDEX_SUFFIX",
    "Index",
    "Label",
    "lavendelize",
]

ALL_IDX = ".all.idx"
INDEX_SUFFIX = ".idx"
INDEX_HEADER = "# lavender index"
HASH_LENGTH = 16

# everything str.splitlines() breaks on, plus the field separator
_FORBIDDEN_PATH_CHARS = ("\t", "\n", "\r", "\x0b", "\x0c", "\x1c", "\x1d", "\x1e", "\x85", "\u2028", "\u2029")
_HEX_DIGEST = re.compile(r"[0-9a-fA-F]{32}")


def lavendelize(original_path: str, content_hash: bytes) -> str:
    """Return the served path for ``original_path`` with digest ``content_hash``.

    The first three hex digits become a fan-out directory so that no single
    directory on the docroot collects every published file.

    Examples:
        >>> lavendelize("img/logo.png", bytes(range(16)))
        '000/102030405060708090a0b0c0d0e0f/img/logo.png'
    """

    digest = content_hash.hex()
    return f"{digest[:3]}/{digest[3:]}/{original_path}"


def _check_path(kind: str, path: str) -> None:
    if not path:
        raise IndexFormatError(f"{kind} must not be empty")
    for char in _FORBIDDEN_PATH_CHARS:
        if char in path:
            raise IndexFormatError(f"{kind} contains a tab or line break: {path!r}")


@dataclass(frozen=True)
class Label:
    """One published asset reference.

    Attributes:
        lavendelized_path: Path the asset is served under; unique per index.
        original_path: Source-relative path before hashing.
        content_hash: MD5 digest of the asset bytes at publish time.
    """

    lavendelized_path: str
    original_path: str
    content_hash: bytes

    def __post_init__(self) -> None:
        _check_path("lavendelized path", self.lavendelized_path)
        _check_path("original path", self.original_path)
        if not isinstance(self.content_hash, (bytes, bytearray)):
            raise IndexFormatError("content hash must be bytes")
        if len(self.content_hash) != HASH_LENGTH:
            raise IndexFormatError(
                f"content hash must be {HASH_LENGTH} bytes, got {len(self.content_hash)}"
            )
        object.__setattr__(self, "content_hash", bytes(self.content_hash))

    @property
    def hex_hash(self) -> str:
        """Lowercase hex encoding of :attr:`content_hash`."""
        return self.content_hash.hex()

    @classmethod
    def for_content(cls, original_path: str, data: bytes) -> "Label":
        """Hash ``data`` and build the lavendelized label for ``original_path``."""
        digest = hashlib.md5(data).digest()
        return cls(lavendelize(original_path, digest), original_path, digest)

    @classmethod
    def reference(cls, path: str, content_hash: bytes) -> "Label":
        """Build a hash-only reference whose original path is the served path."""
        return cls(path, path, content_hash)


class Index:
    """Ordered collection of labels keyed by lavendelized path."""

    __hash__ = None  # type: ignore[assignment]

    def __init__(self, labels: Optional[List[Label]] = None) -> None:
        self._labels: Dict[str, Label] = {}
        for label in labels or ():
            self.add(label)

    # -- mutation --------------------------------------------------------

    def add(self, label: Label) -> bool:
        """Add ``label``; return ``False`` if an identical label was present.

        Raises:
            DuplicateLabelError: If a different label already uses the same
                lavendelized path.
        """
        existing = self._labels.get(label.lavendelized_path)
        if existing is not None:
            if existing == label:
                return False
            raise DuplicateLabelError(label.lavendelized_path)
        self._labels[label.lavendelized_path] = label
        return True

    def add_reference(self, path: str, content_hash: bytes) -> bool:
        """Add a hash-only reference, as used when folding an aggregate."""
        return self.add(Label.reference(path, content_hash))

    # -- queries ---------------------------------------------------------

    def __len__(self) -> int:
        return len(self._labels)

    def __iter__(self) -> Iterator[Label]:
        return iter(list(self._labels.values()))

    def __contains__(self, path: object) -> bool:
        return path in self._labels

    def get(self, path: str) -> Optional[Label]:
        return self._labels.get(path)

    def references(self) -> Set[str]:
        """Return the set of lavendelized paths referenced by this index."""
        return set(self._labels)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Index):
            return NotImplemented
        return self._labels == other._labels

    def __repr__(self) -> str:
        return f"Index(size={len(self._labels)})"

    # -- serialization ---------------------------------------------------

    def serialize(self) -> str:
        """Render the index in its line format, preserving insertion order."""
        lines = [INDEX_HEADER]
        for label in self._labels.values():
            lines.append(f"{label.lavendelized_path}\t{label.original_path}\t{label.hex_hash}")
        return "\n".join(lines) + "\n"

    @classmethod
    def parse(cls, text: str, *, source: Optional[str] = None) -> "Index":
        """Parse serialized ``text`` into an index.

        Args:
            text: Serialized index content.
            source: Location reported in errors (host and path of the file).

        Raises:
            IndexCorruptError: If any line is malformed or two lines collide.
        """
        index = cls()
        for number, raw in enumerate(text.splitlines(), start=1):
            # label lines always carry tabs
            if not raw.strip() or (raw.startswith("#") and "\t" not in raw):
                continue
            parts = raw.split("\t")
            if len(parts) != 3:
                raise IndexCorruptError(
                    f"line {number}: expected 3 tab-separated fields, got {len(parts)}",
                    location=source,
                )
            lavendelized, original, digest = parts
            if not _HEX_DIGEST.fullmatch(digest):
                raise IndexCorruptError(
                    f"line {number}: invalid hex digest {digest!r}", location=source
                )
            content_hash = bytes.fromhex(digest)
            try:
                index.add(Label(lavendelized, original, content_hash))
            except IndexFormatError as exc:
                raise IndexCorruptError(f"line {number}: {exc}", location=source) from exc
        return index
