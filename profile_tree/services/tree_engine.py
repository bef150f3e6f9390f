"""
Profile Tree Engine
In-memory hash-linked tree of labeled nodes.

Implements:
- Depth-first (pre-order, first match) search by label
- Leaf insertion, update and removal
- Bottom-up hash propagation along the mutated path
"""

import hashlib
from dataclasses import dataclass, field
from typing import Iterator, List, Optional

from profile_tree.errors import InvalidOperationError

ROOT_LABEL = "root"


def compute_sha3(data: str) -> str:
    """Compute SHA3-256 hex digest of a string."""
    return hashlib.sha3_256(data.encode("utf-8")).hexdigest()


@dataclass
class TreeNode:
    """
    A node in the profile tree.

    A node without a ``children`` field is a leaf and may point at stored
    data through ``content_address``. A node with ``children`` (even an
    empty list) never holds a content address. A node whose children were
    all removed is treated as a leaf again; updating it drops the empty
    ``children`` field.
    """
    label: str
    hash: Optional[str] = None
    content_address: Optional[str] = None
    data_hash: Optional[str] = None
    children: Optional[List["TreeNode"]] = None
    # Fetched leaf payload, never persisted
    data: Optional[str] = field(default=None, compare=False, repr=False)
    salt: Optional[str] = field(default=None, compare=False, repr=False)

    @property
    def is_leaf(self) -> bool:
        return not self.children

    @property
    def digest(self) -> Optional[str]:
        """Value this node contributes to its parent's hash."""
        return self.hash or self.content_address


def init_tree() -> TreeNode:
    """Create a tree holding only its root node."""
    return TreeNode(label=ROOT_LABEL)


def renew_node_hash(node: TreeNode) -> TreeNode:
    """
    Recompute a node's hash from its children, in child order.

    Leaves are returned untouched. An internal node whose children carry
    no hash or content address gets ``hash = None``.
    """
    if node.children is None:
        return node
    joined = "".join(child.digest for child in node.children if child.digest)
    node.hash = compute_sha3(joined) if joined else None
    return node


def iter_nodes(node: TreeNode) -> Iterator[TreeNode]:
    """Yield every node of the subtree in pre-order."""
    yield node
    for child in node.children or []:
        yield from iter_nodes(child)


def dfs(node: TreeNode, search_label: str) -> Optional[TreeNode]:
    """
    Depth-first search.

    Returns the first node labeled ``search_label`` in pre-order, as a
    live reference into the tree, or None.
    """
    for candidate in iter_nodes(node):
        if candidate.label == search_label:
            return candidate
    return None


def _find_path(node: TreeNode, search_label: str) -> Optional[List[TreeNode]]:
    """Return the nodes from ``node`` down to the first match, inclusive."""
    if node.label == search_label:
        return [node]
    for child in node.children or []:
        path = _find_path(child, search_label)
        if path is not None:
            return [node] + path
    return None


def _renew_path(path: List[TreeNode]) -> None:
    for ancestor in reversed(path):
        renew_node_hash(ancestor)


def insert_node(
    node: TreeNode,
    parent_label: str,
    label: str,
    content_address: Optional[str] = None,
    data_hash: Optional[str] = None
) -> Optional[TreeNode]:
    """
    Insert a new leaf under the first node labeled ``parent_label``.

    Args:
        node: Subtree to search (usually the root)
        parent_label: Label of the parent node
        label: New node's label
        content_address: Address of the leaf data, if any
        data_hash: Salted hash of the leaf plaintext, if any

    Returns:
        ``node`` with the new leaf attached, or None when no parent matched

    Raises:
        InvalidOperationError: if the parent is a leaf that holds data
    """
    path = _find_path(node, parent_label)
    if path is None:
        return None

    parent = path[-1]
    if parent.content_address is not None:
        raise InvalidOperationError(
            f"Cannot insert '{label}' under '{parent_label}': node holds leaf data"
        )

    leaf = TreeNode(label=label, content_address=content_address, data_hash=data_hash)
    if parent.children is None:
        parent.children = [leaf]
    else:
        parent.children.append(leaf)

    _renew_path(path)
    return node


def update_node(
    node: TreeNode,
    search_label: str,
    content_address: str,
    data_hash: Optional[str] = None
) -> Optional[TreeNode]:
    """
    Point the first leaf labeled ``search_label`` at new data.

    Returns the updated leaf, or None if the label is absent or names a
    node that still has children.
    """
    path = _find_path(node, search_label)
    if path is None:
        return None

    target = path[-1]
    if not target.is_leaf:
        return None

    target.children = None
    target.hash = None
    target.content_address = content_address
    target.data_hash = data_hash
    _renew_path(path[:-1])
    return target


def remove_node(node: TreeNode, search_label: str) -> Optional[TreeNode]:
    """
    Detach the first node labeled ``search_label`` from its parent.

    The root can never be removed. Returns the removed subtree, or None.
    """
    if search_label == ROOT_LABEL:
        return None

    path = _find_path(node, search_label)
    if path is None or len(path) < 2:
        return None

    target, parent = path[-1], path[-2]
    # Siblings may compare equal, match by identity
    index = next(i for i, child in enumerate(parent.children) if child is target)
    del parent.children[index]

    _renew_path(path[:-1])
    return target


def verify_tree(node: TreeNode) -> bool:
    """Check every internal node's hash against its children's current hashes."""
    for candidate in iter_nodes(node):
        if candidate.children is None:
            continue
        if not verify_tree_node(candidate):
            return False
    return True


def verify_tree_node(node: TreeNode) -> bool:
    joined = "".join(child.digest for child in node.children or [] if child.digest)
    expected = compute_sha3(joined) if joined else None
    return node.hash == expected
