"""Shared pytest fixtures for ZapCRM tests."""
import sys
sys.dont_write_bytecode = True

import pytest  # noqa: E402

from .helpers import InMemoryStore  # noqa: E402


@pytest.fixture
def store(monkeypatch):
    """In-memory participant store installed over the repository modules.

    Domain code calls participants_repository / dependents_repository
    functions through the module, so swapping the module attributes routes
    every query to this store. The cursor argument is ignored.
    """
    memory = InMemoryStore()
    memory.install(monkeypatch)
    return memory


@pytest.fixture
def cur():
    """Placeholder cursor for domain calls backed by the in-memory store."""
    from unittest.mock import MagicMock

    return MagicMock(name="cursor")
