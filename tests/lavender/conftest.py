"""Shared fixtures for the Lavender test suite."""

from __future__ import annotations

import logging
from typing import Dict, Iterator, List

import pytest

from Lavender.observability import clear_context, register_sink, unregister_sink

from .fakes import FakeReplica


class CollectingSink:
    """Event sink remembering every event it receives."""

    def __init__(self) -> None:
        self.events: List = []

    def emit(self, event) -> None:
        self.events.append(event)

    def types(self) -> List[str]:
        return [event.type for event in self.events]


@pytest.fixture(autouse=True)
def _reset_lavender_logging() -> Iterator[None]:
    """Undo handler and propagation changes made by ``setup_logging``."""
    yield
    logger = logging.getLogger("Lavender")
    for handler in list(logger.handlers):
        if getattr(handler, "_lavender_managed", False):
            logger.removeHandler(handler)
            handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
    clear_context()


@pytest.fixture
def events() -> Iterator[CollectingSink]:
    sink = CollectingSink()
    register_sink(sink)
    yield sink
    unregister_sink(sink)


@pytest.fixture
def replica() -> FakeReplica:
    return FakeReplica("web1")


@pytest.fixture
def replicas() -> Dict[str, FakeReplica]:
    """Three empty replicas keyed by host name."""
    return {name: FakeReplica(name) for name in ("web1", "web2", "web3")}


