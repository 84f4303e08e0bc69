"""Tests for labels, indexes and their text format."""

from __future__ import annotations

import hashlib

import pytest
from hypothesis import given
from hypothesis import strategies as st

from Lavender.errors import DuplicateLabelError, IndexCorruptError, IndexFormatError
from Lavender.index import INDEX_HEADER, Index, Label, lavendelize

H1 = hashlib.md5(b"one").digest()
H2 = hashlib.md5(b"two").digest()


class TestLabel:
    """Label construction and validation."""

    def test_lavendelize_prefixes_hash(self) -> None:
        path = lavendelize("css/site.css", H1)
        hexdigest = H1.hex()
        assert path == f"{hexdigest[:3]}/{hexdigest[3:]}/css/site.css"

    def test_for_content_is_deterministic(self) -> None:
        first = Label.for_content("js/app.js", b"run()")
        second = Label.for_content("js/app.js", b"run()")
        assert first == second
        assert first.content_hash == hashlib.md5(b"run()").digest()
        assert first.lavendelized_path.endswith("/js/app.js")

    def test_reference_uses_path_twice(self) -> None:
        label = Label.reference("abc/def/x.css", H1)
        assert label.original_path == label.lavendelized_path == "abc/def/x.css"

    def test_rejects_wrong_hash_length(self) -> None:
        with pytest.raises(IndexFormatError):
            Label("a", "a", b"short")

    @pytest.mark.parametrize("path", ["", "with\ttab", "with\nnewline"])
    def test_rejects_unserializable_paths(self, path: str) -> None:
        with pytest.raises(IndexFormatError):
            Label(path, "orig", H1)


class TestIndex:
    """Index collection semantics."""

    def test_add_keeps_insertion_order(self) -> None:
        index = Index()
        index.add_reference("b", H1)
        index.add_reference("a", H2)
        assert [label.lavendelized_path for label in index] == ["b", "a"]
        assert len(index) == 2
        assert "a" in index and "c" not in index

    def test_identical_label_is_collapsed(self) -> None:
        index = Index()
        assert index.add_reference("a", H1) is True
        assert index.add_reference("a", H1) is False
        assert len(index) == 1

    def test_conflicting_label_raises(self) -> None:
        index = Index()
        index.add_reference("a", H1)
        with pytest.raises(DuplicateLabelError):
            index.add_reference("a", H2)

    def test_equality_ignores_order(self) -> None:
        left = Index([Label.reference("a", H1), Label.reference("b", H2)])
        right = Index([Label.reference("b", H2), Label.reference("a", H1)])
        assert left == right
        assert left != Index([Label.reference("a", H1)])

    def test_index_is_unhashable(self) -> None:
        with pytest.raises(TypeError):
            hash(Index())

    def test_references(self) -> None:
        index = Index([Label.reference("a", H1), Label.reference("b", H2)])
        assert index.references() == {"a", "b"}
        assert index.get("a") == Label.reference("a", H1)
        assert index.get("zzz") is None


class TestSerialization:
    """Text format."""

    def test_serialize_format(self) -> None:
        index = Index([Label("x/y/a.css", "a.css", H1)])
        assert index.serialize() == f"{INDEX_HEADER}\nx/y/a.css\ta.css\t{H1.hex()}\n"

    def test_parse_skips_comments_and_blank_lines(self) -> None:
        text = f"{INDEX_HEADER}\n\n# note\nx\ty\t{H1.hex()}\n"
        assert Index.parse(text) == Index([Label("x", "y", H1)])

    def test_parse_rejects_wrong_field_count(self) -> None:
        with pytest.raises(IndexCorruptError) as excinfo:
            Index.parse(f"{INDEX_HEADER}\nonly\ttwo\n", source="web1:srv/indexes/web/app.idx")
        assert "web1:srv/indexes/web/app.idx" in str(excinfo.value)
        assert "line 2" in str(excinfo.value)

    def test_parse_rejects_bad_hex(self) -> None:
        with pytest.raises(IndexCorruptError, match="invalid hex digest"):
            Index.parse("a\tb\tnot-hex\n")

    def test_parse_rejects_short_digest(self) -> None:
        with pytest.raises(IndexCorruptError):
            Index.parse("a\tb\tabcd\n")

    @pytest.mark.parametrize(
        "digest",
        [
            " ".join(H1.hex()[i : i + 2] for i in range(0, 32, 2)),
            H1.hex() + " ",
            "0x" + H1.hex()[2:],
        ],
    )
    def test_parse_rejects_non_canonical_digest(self, digest: str) -> None:
        with pytest.raises(IndexCorruptError, match="invalid hex digest"):
            Index.parse(f"a\tb\t{digest}\n")

    def test_hash_prefixed_paths_survive_reload(self) -> None:
        index = Index([Label("#x.css", "#x.css", H1), Label("# lavender index", "a", H2)])
        assert Index.parse(index.serialize()) == index

    def test_parse_rejects_conflicting_lines(self) -> None:
        text = f"a\ta\t{H1.hex()}\na\ta\t{H2.hex()}\n"
        with pytest.raises(IndexCorruptError):
            Index.parse(text)


_path = st.text(
    alphabet=st.characters(blacklist_categories=("Cs", "Cc", "Zl", "Zp")),
    min_size=1,
    max_size=24,
)
_label = st.builds(Label, _path, _path, st.binary(min_size=16, max_size=16))


@given(st.lists(_label, max_size=20, unique_by=lambda label: label.lavendelized_path))
def test_parse_serialize_round_trip(labels) -> None:
    """Serializing then parsing yields an equal index."""
    index = Index(labels)
    assert Index.parse(index.serialize()) == index
