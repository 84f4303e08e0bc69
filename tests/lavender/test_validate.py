"""Tests for the aggregate index check and its policies."""

from __future__ import annotations

import pytest

from Lavender.errors import IndexCorruptError
from Lavender.fsck.aggregate import build_aggregate
from Lavender.fsck.outcomes import ProblemKind
from Lavender.fsck.validate import validate_aggregate
from Lavender.index import ALL_IDX, Index, Label
from Lavender.replica.base import join
from Lavender.settings import AggregatePolicy

from .fakes import DOCROOT, SITE, publish

ALL_PATH = join(DOCROOT.indexes, ALL_IDX)
REPAIRED = "srv/repaired-indexes/web/.all.idx"


def _stale(replica) -> bytes:
    """Replace the persisted aggregate with one missing a reference."""
    persisted = Index.parse(replica.files[ALL_PATH].decode())
    labels = list(persisted)[1:]
    data = Index(labels).serialize().encode()
    replica.files[ALL_PATH] = data
    return data


class TestValidateAggregate:
    """validate_aggregate outcomes."""

    def test_matching_aggregate(self, replica) -> None:
        publish(replica, SITE)
        built = build_aggregate(replica, DOCROOT)
        outcome = validate_aggregate(replica, DOCROOT, built.aggregate)
        assert outcome.matches
        assert outcome.problems == []
        assert outcome.written is None
        assert outcome.index == built.aggregate

    def test_mismatch_is_a_problem_by_default(self, replica) -> None:
        publish(replica, SITE)
        stale = _stale(replica)
        built = build_aggregate(replica, DOCROOT)
        outcome = validate_aggregate(replica, DOCROOT, built.aggregate)
        assert not outcome.matches
        assert [p.kind for p in outcome.problems] == [ProblemKind.AGGREGATE_MISMATCH]
        assert outcome.written == REPAIRED
        assert Index.parse(replica.files[REPAIRED].decode()) == built.aggregate
        assert replica.files[ALL_PATH] == stale

    def test_quarantine_policy_reports_no_problem(self, replica) -> None:
        publish(replica, SITE)
        _stale(replica)
        built = build_aggregate(replica, DOCROOT)
        outcome = validate_aggregate(replica, DOCROOT, built.aggregate, AggregatePolicy.QUARANTINE)
        assert outcome.problems == []
        assert outcome.written == REPAIRED
        assert REPAIRED in replica.files

    def test_repair_policy_overwrites(self, replica) -> None:
        publish(replica, SITE)
        _stale(replica)
        built = build_aggregate(replica, DOCROOT)
        outcome = validate_aggregate(replica, DOCROOT, built.aggregate, AggregatePolicy.REPAIR)
        assert outcome.problems == []
        assert outcome.written == ALL_PATH
        assert Index.parse(replica.files[ALL_PATH].decode()) == built.aggregate
        assert outcome.index == built.aggregate
        assert REPAIRED not in replica.files

    def test_missing_aggregate_counts_as_empty(self, replica) -> None:
        publish(replica, SITE, write_all=False)
        built = build_aggregate(replica, DOCROOT)
        outcome = validate_aggregate(replica, DOCROOT, built.aggregate)
        assert not outcome.matches
        assert outcome.index is None
        assert "no vs 3 references" in outcome.problems[0].message

    def test_corrupt_aggregate_is_fatal(self, replica) -> None:
        publish(replica, SITE)
        replica.files[ALL_PATH] = b"not an index\n"
        built = build_aggregate(replica, DOCROOT)
        with pytest.raises(IndexCorruptError):
            validate_aggregate(replica, DOCROOT, built.aggregate)


def test_extra_reference_in_persisted_aggregate(replica) -> None:
    """An aggregate listing more than the modules is a mismatch as well."""
    publish(replica, SITE)
    persisted = Index.parse(replica.files[ALL_PATH].decode())
    persisted.add(Label.reference("zzz/old.css", bytes(16)))
    replica.files[ALL_PATH] = persisted.serialize().encode()
    built = build_aggregate(replica, DOCROOT)
    assert not validate_aggregate(replica, DOCROOT, built.aggregate).matches
