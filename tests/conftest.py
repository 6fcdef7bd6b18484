"""
Shared pytest fixtures for the Koffee Karma migration tests.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from tests.fake_firestore import FakeFirestoreClient  # noqa: E402


@pytest.fixture(scope="session")
def repo_root() -> Path:
    """Return the repository root directory."""
    return REPO_ROOT


@pytest.fixture
def fake_client() -> FakeFirestoreClient:
    """Empty in-memory Firestore client."""
    return FakeFirestoreClient()
