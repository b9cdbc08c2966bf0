"""Shared fixtures for unit tests."""

from __future__ import annotations

import pytest

from cdc_search_sync.sync.dispatcher import SyncDispatcher
from cdc_search_sync.sync.processor import SyncProcessor

from .helpers import InMemoryIndex


@pytest.fixture
def memory_index() -> InMemoryIndex:
    return InMemoryIndex()


@pytest.fixture
def processor(memory_index: InMemoryIndex) -> SyncProcessor:
    return SyncProcessor(SyncDispatcher(memory_index, write_timeout=1.0))
