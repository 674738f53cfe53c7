"""Shared fixtures for the streamhub test suite."""

from __future__ import annotations

import pytest

from fakes import TEST_HASH_ITERATIONS, FakeHelix, MemoryKV, make_subscription
from streamhub.auth.store import CredentialStore


@pytest.fixture
def kv() -> MemoryKV:
    return MemoryKV()


@pytest.fixture
def helix() -> FakeHelix:
    return FakeHelix()


@pytest.fixture
def credential_store(kv) -> CredentialStore:
    return CredentialStore(kv, hash_iterations=TEST_HASH_ITERATIONS)


@pytest.fixture
def subscription_factory():
    """Factory for Helix subscription dicts (see fakes.make_subscription)."""
    return make_subscription
