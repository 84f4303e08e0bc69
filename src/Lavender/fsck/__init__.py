"""Consistency checking, integrity verification and garbage collection."""

from .aggregate import AggregateResult, aggregate_of, build_aggregate
from .gc import GcResult, collect_garbage, ensure_gc_allowed
from .integrity import HashMismatch, HashTool, batched, verify_batch, verify_integrity
from .orchestrator import Fsck, compare_indexes, run_fsck
from .outcomes import DocrootReport, FsckReport, Problem, ProblemKind, ReplicaReport
from .reconcile import find_dangling, find_unreferenced, quarantine_dangling
from .validate import AggregateOutcome, validate_aggregate

__all__ = [
    "AggregateOutcome",
    "AggregateResult",
    "DocrootReport",
    "Fsck",
    "FsckReport",
    "GcResult",
    "HashMismatch",
    "HashTool",
    "Problem",
    "ProblemKind",
    "ReplicaReport",
    "aggregate_of",
    "batched",
    "build_aggregate",
    "collect_garbage",
    "compare_indexes",
    "ensure_gc_allowed",
    "find_dangling",
    "find_unreferenced",
    "quarantine_dangling",
    "run_fsck",
    "validate_aggregate",
    "verify_batch",
    "verify_integrity",
]
