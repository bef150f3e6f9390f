"""Shared test fixtures for profile-tree."""

import pytest
from fastapi.testclient import TestClient

from profile_tree.main import app
from profile_tree.services import get_tree_store
from profile_tree.services.encryption import generate_keypair
from profile_tree.services.ipfs import MemoryContentStore
from profile_tree.services.tree_store import InsertionRequest, TreeStore


@pytest.fixture
def memory_store():
    """Empty in-process content store."""
    return MemoryContentStore()


@pytest.fixture
def tree_store(memory_store):
    """TreeStore storing leaves in the clear."""
    return TreeStore(memory_store)


@pytest.fixture
def keypair():
    """Fresh secp256k1 key pair as (private_hex, public_hex)."""
    return generate_keypair()


@pytest.fixture
def other_keypair():
    """A second, unrelated key pair."""
    return generate_keypair()


@pytest.fixture
def profile_insertions():
    """A small profile: a name leaf and a contact subtree."""
    return [
        InsertionRequest(label="profile.name", parent_label="root", data="Alice"),
        InsertionRequest(
            label="profile.contact",
            parent_label="root",
            children=[
                InsertionRequest(label="contact.email", data="alice@example.com"),
                InsertionRequest(label="contact.phone", data="+1-555-0100"),
            ],
        ),
    ]


@pytest.fixture
def api_client(tree_store):
    """HTTP client wired to an in-memory TreeStore."""
    app.dependency_overrides[get_tree_store] = lambda: tree_store
    yield TestClient(app)
    app.dependency_overrides.clear()
