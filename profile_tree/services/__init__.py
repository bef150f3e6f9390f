"""
Profile Tree Services Package
Provides the tree engine, codec, encryption, content stores and tree store.
"""

from functools import lru_cache

from profile_tree.config import Config, config
from profile_tree.services.encryption import LeafCipher, NullCipher, EciesCipher, build_cipher
from profile_tree.services.ipfs import (
    ContentStore,
    IPFSContentStore,
    MemoryContentStore,
    PinataContentStore,
)
from profile_tree.services.tree_store import InsertionRequest, TreeStore


def build_content_store(settings: Config = config) -> ContentStore:
    """Create the content store selected by STORE_BACKEND."""
    backend = settings.STORE_BACKEND.lower()
    if backend == "memory":
        return MemoryContentStore()
    if backend == "pinata":
        if not settings.is_pinata_configured():
            raise ValueError("STORE_BACKEND=pinata needs PINATA_JWT or PINATA_API_KEY and PINATA_SECRET_KEY")
        return PinataContentStore(
            pinata_api_key=settings.PINATA_API_KEY,
            pinata_secret_key=settings.PINATA_SECRET_KEY,
            pinata_jwt=settings.PINATA_JWT,
            gateway_url=settings.IPFS_GATEWAY,
            timeout=settings.IPFS_TIMEOUT
        )
    if backend == "ipfs":
        if not settings.is_ipfs_configured():
            raise ValueError("STORE_BACKEND=ipfs needs IPFS_API_URL")
        return IPFSContentStore(api_url=settings.IPFS_API_URL, timeout=settings.IPFS_TIMEOUT)
    raise ValueError(f"Unknown STORE_BACKEND: {settings.STORE_BACKEND}")


def build_tree_store(settings: Config = config) -> TreeStore:
    """Wire a TreeStore from configuration."""
    cipher = build_cipher(
        public_key=settings.LEAF_PUBLIC_KEY or None,
        private_key=settings.LEAF_PRIVATE_KEY or None
    )
    return TreeStore(build_content_store(settings), cipher)


@lru_cache(maxsize=1)
def get_tree_store() -> TreeStore:
    """Shared TreeStore instance for the API."""
    return build_tree_store(config)


__all__ = [
    'ContentStore',
    'IPFSContentStore',
    'PinataContentStore',
    'MemoryContentStore',
    'LeafCipher',
    'NullCipher',
    'EciesCipher',
    'InsertionRequest',
    'TreeStore',
    'build_content_store',
    'build_tree_store',
    'get_tree_store'
]
