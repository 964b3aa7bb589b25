"""
Pytest configuration and shared fixtures for kernel tests.
"""
import os
import tempfile

import pytest

from omnilith.adapters import build_memory_deps
from omnilith.content_types import default_registry
from omnilith.kernel import SequentialIdentityGenerator

START_MS = 1_700_000_000_000


@pytest.fixture
def temp_db():
    """Create a temporary database file for testing."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name

    yield db_path

    # Cleanup
    if os.path.exists(db_path):
        os.unlink(db_path)


@pytest.fixture
def identity():
    """Deterministic ids with a clock frozen at START_MS."""
    return SequentialIdentityGenerator(now=START_MS)


@pytest.fixture
def registry():
    return default_registry()


@pytest.fixture
def deps(identity, registry):
    """Fresh in-memory kernel; every organism counts as surfaced."""
    return build_memory_deps(content_types=registry, identity=identity)
