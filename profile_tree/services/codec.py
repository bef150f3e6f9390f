"""
Profile Tree Codec
Translates between stored bytes and tree nodes / leaf payloads.

Tree format (compact JSON, UTF-8), one object per node:
    {"label": ..., "hash": ..., "contentAddress": ..., "dataHash": ..., "children": [...]}
``hash``, ``contentAddress`` and ``dataHash`` are written only when set;
``children`` is written whenever the node has the field, even when empty.
"""

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

from profile_tree.errors import DecodeError, DecryptionError
from profile_tree.services.encryption import (
    LeafCipher,
    NullCipher,
    compute_data_hash,
    generate_salt,
    hashes_match,
)
from profile_tree.services.ipfs import ContentStore
from profile_tree.services.tree_engine import ROOT_LABEL, TreeNode

_OPTIONAL_FIELDS = (
    ("hash", "hash"),
    ("contentAddress", "content_address"),
    ("dataHash", "data_hash"),
)


@dataclass
class LeafRecord:
    """Result of persisting a leaf payload."""
    address: str
    data_hash: Optional[str] = None


@dataclass
class LeafData:
    """A fetched leaf payload."""
    data: str
    salt: Optional[str] = None


def node_to_dict(node: TreeNode) -> Dict[str, Any]:
    """Convert a node (and its subtree) to its JSON-ready form."""
    result: Dict[str, Any] = {"label": node.label}
    for key, attr in _OPTIONAL_FIELDS:
        value = getattr(node, attr)
        if value is not None:
            result[key] = value
    if node.children is not None:
        result["children"] = [node_to_dict(child) for child in node.children]
    return result


def node_from_dict(obj: Any, path: str = "root") -> TreeNode:
    """Build a node (and its subtree) from its JSON form, validating shapes."""
    if not isinstance(obj, dict):
        raise DecodeError(f"Node at {path} is not an object")

    label = obj.get("label")
    if not isinstance(label, str):
        raise DecodeError(f"Node at {path} has no string label")

    values = {}
    for key, attr in _OPTIONAL_FIELDS:
        value = obj.get(key)
        if value is not None and not isinstance(value, str):
            raise DecodeError(f"Node '{label}' has a non-string {key}")
        values[attr] = value

    children = None
    if "children" in obj:
        raw_children = obj["children"]
        if not isinstance(raw_children, list):
            raise DecodeError(f"Node '{label}' has non-list children")
        if values["content_address"] is not None:
            raise DecodeError(f"Node '{label}' carries both children and a contentAddress")
        children = [
            node_from_dict(child, f"{path}/{label}[{i}]")
            for i, child in enumerate(raw_children)
        ]

    return TreeNode(label=label, children=children, **values)


def encode_tree(node: TreeNode) -> bytes:
    """Serialize a tree to its stored byte form."""
    return json.dumps(node_to_dict(node), separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def decode_tree(data: bytes) -> TreeNode:
    """
    Parse a stored tree.

    Raises:
        DecodeError: if the bytes are not a well-formed tree
    """
    try:
        obj = json.loads(data)
        root = node_from_dict(obj)
    except RecursionError as e:
        raise DecodeError("Tree is nested too deeply") from e
    except (UnicodeDecodeError, ValueError) as e:
        raise DecodeError(f"Tree is not valid JSON: {e}") from e

    if root.label != ROOT_LABEL:
        raise DecodeError(f"Top-level node is labeled '{root.label}', not '{ROOT_LABEL}'")
    return root


class TreeCodec:
    """Persists and fetches leaf payloads through a content store and a cipher."""

    def __init__(self, store: ContentStore, cipher: LeafCipher = None):
        self.store = store
        self.cipher = cipher or NullCipher()

    async def encode_leaf(self, plaintext: str) -> LeafRecord:
        """
        Store a leaf payload.

        With an encrypting cipher the payload is wrapped with a fresh salt,
        encrypted, and its salted hash returned for later verification.

        Args:
            plaintext: Leaf value

        Returns:
            LeafRecord with the content address (and data hash when encrypted)
        """
        if not self.cipher.encrypts:
            address = await self.store.put(plaintext.encode("utf-8"))
            return LeafRecord(address=address)

        salt = generate_salt()
        envelope = json.dumps({"data": plaintext, "salt": salt})
        ciphertext = await asyncio.to_thread(self.cipher.encrypt, envelope)
        address = await self.store.put(ciphertext.encode("utf-8"))
        return LeafRecord(address=address, data_hash=compute_data_hash(plaintext, salt))

    async def decode_leaf(self, address: str, data_hash: Optional[str] = None) -> LeafData:
        """
        Fetch a leaf payload.

        Leaves carrying a ``data_hash`` were stored encrypted; they are
        decrypted and verified when the cipher holds a private key.
        Anything else is returned as the raw stored text.

        Raises:
            DecryptionError: wrong key, corrupt ciphertext or hash mismatch
            DecodeError: payload is not text, or the envelope is malformed
        """
        raw = await self.store.get(address)
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(f"Leaf {address} is not UTF-8 text") from e

        if data_hash is None or not self.cipher.decrypts:
            return LeafData(data=text)

        plaintext = await asyncio.to_thread(self.cipher.decrypt, text)
        try:
            envelope = json.loads(plaintext)
        except ValueError as e:
            raise DecodeError(f"Leaf {address} envelope is not JSON") from e
        if (
            not isinstance(envelope, dict)
            or not isinstance(envelope.get("data"), str)
            or not isinstance(envelope.get("salt"), str)
        ):
            raise DecodeError(f"Leaf {address} envelope is malformed")

        if not hashes_match(data_hash, compute_data_hash(envelope["data"], envelope["salt"])):
            raise DecryptionError(f"Leaf {address} does not match its data hash")

        return LeafData(data=envelope["data"], salt=envelope["salt"])
