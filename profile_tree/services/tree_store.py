"""
Profile Tree Store
Whole-tree read-modify-write against a content-addressed store.

Every mutation loads the tree stored at an address, applies the change
in memory and stores the result under a new address. Nothing is written
unless the whole mutation succeeded; the old address stays valid.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field

from profile_tree.errors import InvalidOperationError, NotFoundError, ProfileTreeError
from profile_tree.services.codec import LeafRecord, TreeCodec, decode_tree, encode_tree
from profile_tree.services.encryption import LeafCipher
from profile_tree.services.ipfs import ContentStore
from profile_tree.services import tree_engine
from profile_tree.services.tree_engine import ROOT_LABEL, TreeNode

logger = logging.getLogger(__name__)


class InsertionRequest(BaseModel):
    """
    A node to insert, optionally carrying a nested subtree.

    Nested children are always inserted under this node's label, whatever
    ``parent_label`` they carry. A node with children never stores ``data``.
    """
    model_config = ConfigDict(populate_by_name=True)

    label: str
    parent_label: Optional[str] = Field(default=None, alias="parentLabel")
    data: Optional[str] = None
    children: Optional[List["InsertionRequest"]] = None


InsertionRequest.model_rebuild()


@dataclass
class InsertError:
    """An insertion from a batch that could not be applied."""
    label: str
    parent_label: Optional[str]
    reason: str


@dataclass
class LeafFetchError:
    """A leaf whose payload could not be fetched or decoded."""
    label: str
    address: str
    error: ProfileTreeError

    @property
    def kind(self) -> str:
        return type(self.error).__name__


@dataclass
class MutationResult:
    """New tree address plus the batch items that were skipped."""
    address: str
    failures: List[InsertError] = field(default_factory=list)


@dataclass
class SearchResult:
    """Search hit (or None) plus per-leaf fetch failures."""
    node: Optional[TreeNode]
    failures: List[LeafFetchError] = field(default_factory=list)


class TreeStore:
    """Profile tree persistence over a content store."""

    def __init__(self, store: ContentStore, cipher: LeafCipher = None):
        """
        Initialize the tree store.

        Args:
            store: Content-addressed backend for nodes and leaves
            cipher: Leaf cipher; leaves are stored in the clear when omitted
        """
        self.store = store
        self.codec = TreeCodec(store, cipher)

    async def save_tree(self, root: TreeNode) -> str:
        """Persist a tree and return its address."""
        return await self.store.put(encode_tree(root))

    async def load_tree(self, address: str) -> TreeNode:
        """Fetch and decode the tree stored at an address."""
        return decode_tree(await self.store.get(address))

    async def create_tree(self, insertions: List[InsertionRequest] = None) -> MutationResult:
        """
        Create a tree, optionally seeded with an insertion batch.

        Args:
            insertions: Initial nodes (top-level items default to the root as parent)

        Returns:
            MutationResult with the tree address and skipped insertions
        """
        root = tree_engine.init_tree()
        failures = await self.apply_insertions(root, insertions or [])
        address = await self.save_tree(root)
        logger.info(f"Created profile tree {address} ({len(failures)} insertions skipped)")
        return MutationResult(address=address, failures=failures)

    async def apply_insertions(
        self,
        root: TreeNode,
        insertions: List[InsertionRequest],
        parent_label: Optional[str] = None
    ) -> List[InsertError]:
        """
        Apply an insertion batch to an in-memory tree.

        Leaf payloads of the whole batch (all nesting levels) are stored
        concurrently first. The structural inserts then run one at a time
        in document order, so each item sees the parents created before it.
        Items whose parent cannot be found are skipped and reported; a
        skipped item's nested children are not attempted.

        Args:
            root: Tree to mutate in place
            insertions: Batch to apply
            parent_label: Overrides every item's own ``parent_label``

        Returns:
            List of skipped insertions
        """
        records = await self._encode_leaves(insertions)
        failures: List[InsertError] = []
        self._apply(root, insertions, parent_label, records, failures)
        return failures

    async def _encode_leaves(self, insertions: List[InsertionRequest]) -> Dict[int, LeafRecord]:
        leaves: List[InsertionRequest] = []

        def collect(batch: List[InsertionRequest]) -> None:
            for insertion in batch:
                if insertion.children:
                    collect(insertion.children)
                elif insertion.data is not None:
                    leaves.append(insertion)

        collect(insertions)
        records = await asyncio.gather(
            *(self.codec.encode_leaf(leaf.data) for leaf in leaves)
        )
        return {id(leaf): record for leaf, record in zip(leaves, records)}

    def _apply(
        self,
        root: TreeNode,
        insertions: List[InsertionRequest],
        parent_label: Optional[str],
        records: Dict[int, LeafRecord],
        failures: List[InsertError]
    ) -> None:
        for insertion in insertions:
            parent = parent_label or insertion.parent_label or ROOT_LABEL
            record = records.get(id(insertion))

            if insertion.children and insertion.data is not None:
                logger.debug(f"Ignoring data on '{insertion.label}': node has children")

            try:
                result = tree_engine.insert_node(
                    root,
                    parent,
                    insertion.label,
                    record.address if record else None,
                    record.data_hash if record else None
                )
            except InvalidOperationError as e:
                result = None
                reason = str(e)
            else:
                reason = f"Parent '{parent}' not found"

            if result is None:
                logger.warning(f"Skipped insertion '{insertion.label}': {reason}")
                failures.append(InsertError(insertion.label, parent, reason))
                continue

            if insertion.children:
                self._apply(root, insertion.children, insertion.label, records, failures)

    async def insert_nodes(self, address: str, insertions: List[InsertionRequest]) -> MutationResult:
        """
        Insert a batch of nodes into a stored tree.

        Returns:
            MutationResult with the new tree address and skipped insertions
        """
        root = await self.load_tree(address)
        failures = await self.apply_insertions(root, insertions)
        new_address = await self.save_tree(root)
        logger.info(f"Inserted {len(insertions)} nodes: {address} -> {new_address}")
        return MutationResult(address=new_address, failures=failures)

    async def update_node(self, address: str, search_label: str, plaintext: str) -> str:
        """
        Replace a leaf's payload.

        Raises:
            NotFoundError: if no node carries the label
            InvalidOperationError: if the node is not a leaf
        """
        root = await self.load_tree(address)
        target = tree_engine.dfs(root, search_label)
        if target is None:
            raise NotFoundError(f"Node not found: {search_label}")
        if not target.is_leaf:
            raise InvalidOperationError(f"Node '{search_label}' is not a leaf")

        record = await self.codec.encode_leaf(plaintext)
        tree_engine.update_node(root, search_label, record.address, record.data_hash)

        new_address = await self.save_tree(root)
        logger.info(f"Updated '{search_label}': {address} -> {new_address}")
        return new_address

    async def remove_node(self, address: str, search_label: str) -> str:
        """
        Remove a node (and its subtree) from a stored tree.

        Raises:
            InvalidOperationError: if the label is the root
            NotFoundError: if no node carries the label
        """
        if search_label == ROOT_LABEL:
            raise InvalidOperationError("The root node cannot be removed")

        root = await self.load_tree(address)
        if tree_engine.remove_node(root, search_label) is None:
            raise NotFoundError(f"Node not found: {search_label}")

        new_address = await self.save_tree(root)
        logger.info(f"Removed '{search_label}': {address} -> {new_address}")
        return new_address

    async def search_node(
        self,
        address: str,
        search_label: str,
        fetch_leaf_data: bool = False
    ) -> SearchResult:
        """
        Find a node in a stored tree.

        Args:
            address: Tree address
            search_label: Label to look for (first pre-order match)
            fetch_leaf_data: Attach each reachable leaf's payload

        Returns:
            SearchResult with the node (or None) and per-leaf failures
        """
        root = await self.load_tree(address)
        node = tree_engine.dfs(root, search_label)
        if node is None or not fetch_leaf_data:
            return SearchResult(node=node)

        failures = await self.fetch_leaf_data(node)
        return SearchResult(node=node, failures=failures)

    async def fetch_leaf_data(self, node: TreeNode) -> List[LeafFetchError]:
        """
        Fetch the payload of every leaf under ``node`` concurrently.

        Successful leaves get ``data`` (and ``salt``) set. A failing leaf
        does not stop the others; its error is returned instead.
        """
        leaves = [
            leaf for leaf in tree_engine.iter_nodes(node)
            if leaf.is_leaf and leaf.content_address
        ]
        results = await asyncio.gather(
            *(self.codec.decode_leaf(leaf.content_address, leaf.data_hash) for leaf in leaves),
            return_exceptions=True
        )

        failures: List[LeafFetchError] = []
        for leaf, result in zip(leaves, results):
            if isinstance(result, ProfileTreeError):
                logger.warning(f"Could not fetch leaf '{leaf.label}' ({leaf.content_address}): {result}")
                failures.append(LeafFetchError(leaf.label, leaf.content_address, result))
            elif isinstance(result, BaseException):
                raise result
            else:
                leaf.data = result.data
                leaf.salt = result.salt
        return failures
