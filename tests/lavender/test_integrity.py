"""Tests for batched content hashing on replicas."""

from __future__ import annotations

import pytest

from Lavender.errors import RemoteOutputError
from Lavender.fsck.aggregate import build_aggregate
from Lavender.fsck.integrity import (
    HashMismatch,
    HashTool,
    batched,
    parse_digest,
    verify_batch,
    verify_integrity,
)
from Lavender.fsck.outcomes import ProblemKind
from Lavender.replica.base import join

from .fakes import DOCROOT, SITE, md5_hex, publish

ROOT = DOCROOT.docroot


def _files(replica, contents):
    for path, data in contents.items():
        replica.put(join(ROOT, path), data)
    return list(contents), [md5_hex(data) for data in contents.values()]


class TestBatched:
    def test_caps_batch_size(self) -> None:
        assert [len(b) for b in batched(range(1001), 500)] == [500, 500, 1]

    def test_empty(self) -> None:
        assert list(batched([], 3)) == []

    def test_rejects_zero(self) -> None:
        with pytest.raises(ValueError):
            list(batched([1], 0))


class TestParseDigest:
    def test_md5sum_line(self) -> None:
        assert parse_digest(HashTool.MD5SUM, "ABCDEF  some/path") == "abcdef"

    def test_md5sum_escaped_line(self) -> None:
        assert parse_digest(HashTool.MD5SUM, "\\abcdef  some\\nfile") == "abcdef"

    def test_md5_quiet_line(self) -> None:
        assert parse_digest(HashTool.MD5, "abcdef\n") == "abcdef"


class TestVerifyBatch:
    """One command per batch, positional pairing."""

    def test_all_match(self, replica) -> None:
        paths, expected = _files(replica, {"a": b"1", "b": b"2", "c": b"3"})
        assert verify_batch(replica, ROOT, paths, expected) == []
        assert len(replica.commands) == 1
        assert replica.commands[0] == (ROOT, ("md5sum", "a", "b", "c"))

    def test_single_mismatch_reports_only_that_path(self, replica) -> None:
        paths, expected = _files(replica, {"a": b"1", "b": b"2", "c": b"3"})
        expected[1] = md5_hex(b"other")
        mismatches = verify_batch(replica, ROOT, paths, expected)
        assert mismatches == [HashMismatch("b", md5_hex(b"other"), md5_hex(b"2"))]

    def test_md5_quiet_tool(self, replica) -> None:
        paths, expected = _files(replica, {"a": b"1", "b": b"2"})
        assert verify_batch(replica, ROOT, paths, expected, HashTool.MD5) == []
        assert replica.commands[0][1][:2] == ("md5", "-q")

    def test_line_count_mismatch_is_fatal(self, replica) -> None:
        paths, expected = _files(replica, {"a": b"1", "b": b"2"})
        replica.output_hook = lambda output: output.splitlines()[0] + "\n"
        with pytest.raises(RemoteOutputError, match="1 lines for 2 paths"):
            verify_batch(replica, ROOT, paths, expected)

    def test_blank_lines_are_ignored(self, replica) -> None:
        paths, expected = _files(replica, {"a": b"1"})
        replica.output_hook = lambda output: "\n" + output + "\n\n"
        assert verify_batch(replica, ROOT, paths, expected) == []

    def test_empty_batch_runs_nothing(self, replica) -> None:
        assert verify_batch(replica, ROOT, [], []) == []
        assert replica.commands == []


class TestVerifyIntegrity:
    """Whole-aggregate verification."""

    def test_clean_docroot(self, replica) -> None:
        publish(replica, SITE)
        built = build_aggregate(replica, DOCROOT)
        assert verify_integrity(replica, ROOT, "web", built.aggregate) == []

    def test_batches_are_bounded(self, replica) -> None:
        publish(replica, SITE)
        built = build_aggregate(replica, DOCROOT)
        verify_integrity(replica, ROOT, "web", built.aggregate, batch_size=2)
        assert [len(argv) - 1 for _, argv in replica.commands] == [2, 1]

    def test_corrupted_file_is_one_problem(self, replica) -> None:
        publish(replica, SITE)
        built = build_aggregate(replica, DOCROOT)
        first, second = list(built.aggregate)[:2]
        replica.files[join(ROOT, first.lavendelized_path)] = b"tampered"
        replica.files[join(ROOT, second.lavendelized_path)] = b"tampered too"
        problems = verify_integrity(replica, ROOT, "web", built.aggregate)
        assert [p.kind for p in problems] == [ProblemKind.CONTENT_MISMATCH] * 2
        assert [p.paths for p in problems] == [(first.lavendelized_path,), (second.lavendelized_path,)]

    def test_skip_excludes_paths(self, replica) -> None:
        publish(replica, SITE)
        built = build_aggregate(replica, DOCROOT)
        gone = next(iter(built.aggregate)).lavendelized_path
        del replica.files[join(ROOT, gone)]
        assert verify_integrity(replica, ROOT, "web", built.aggregate, skip=[gone]) == []
