"""
Profile Tree API
Create, search and mutate stored profile trees.
"""

from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from profile_tree.errors import (
    DecodeError,
    DecryptionError,
    InvalidOperationError,
    NotFoundError,
    ProfileTreeError,
    StoreIOError,
)
from profile_tree.services import get_tree_store
from profile_tree.services.codec import node_to_dict
from profile_tree.services.tree_engine import TreeNode
from profile_tree.services.tree_store import InsertError, InsertionRequest, TreeStore


router = APIRouter()


# Error kind -> HTTP status
ERROR_STATUS = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    InvalidOperationError: status.HTTP_409_CONFLICT,
    DecodeError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    DecryptionError: status.HTTP_403_FORBIDDEN,
    StoreIOError: status.HTTP_502_BAD_GATEWAY,
}


class InsertionBatch(BaseModel):
    """Batch of nodes to insert."""
    insertions: List[InsertionRequest] = []


class LeafUpdate(BaseModel):
    """New payload for a leaf."""
    data: str


class InsertFailure(BaseModel):
    """Insertion skipped from a batch."""
    label: str
    parent_label: Optional[str] = None
    reason: str


class MutationResponse(BaseModel):
    """Mutation response model."""
    address: str
    failures: List[InsertFailure] = []


class LeafFailure(BaseModel):
    """Leaf whose payload could not be fetched."""
    label: str
    address: str
    kind: str
    message: str


class SearchResponse(BaseModel):
    """Search response model."""
    node: Dict[str, Any]
    failures: List[LeafFailure] = []


def to_http_error(error: ProfileTreeError) -> HTTPException:
    """Map a profile tree error to an HTTP error."""
    for kind, code in ERROR_STATUS.items():
        if isinstance(error, kind):
            return HTTPException(status_code=code, detail=str(error))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error))


def node_to_response(node: TreeNode) -> Dict[str, Any]:
    """Serialize a node with any fetched leaf payloads attached."""
    result = node_to_dict(node)
    if node.data is not None:
        result["data"] = node.data
    if node.salt is not None:
        result["salt"] = node.salt
    if node.children is not None:
        result["children"] = [node_to_response(child) for child in node.children]
    return result


def _failures(failures: List[InsertError]) -> List[InsertFailure]:
    return [
        InsertFailure(label=f.label, parent_label=f.parent_label, reason=f.reason)
        for f in failures
    ]


@router.post("/profiles", response_model=MutationResponse, status_code=status.HTTP_201_CREATED)
async def create_profile(batch: InsertionBatch, store: TreeStore = Depends(get_tree_store)):
    """
    Create a profile tree.
    
    Top-level insertions without a parent label go under the root.
    """
    try:
        result = await store.create_tree(batch.insertions)
    except ProfileTreeError as e:
        raise to_http_error(e)
    return MutationResponse(address=result.address, failures=_failures(result.failures))


@router.get("/profiles/{address}/nodes/{label}", response_model=SearchResponse)
async def search_profile_node(
    address: str,
    label: str,
    fetch_data: bool = False,
    store: TreeStore = Depends(get_tree_store)
):
    """
    Find a node in a profile tree.
    
    Args:
        address: Tree content address
        label: Node label (first depth-first match)
        fetch_data: Attach leaf payloads to every leaf of the result
    """
    try:
        result = await store.search_node(address, label, fetch_leaf_data=fetch_data)
    except ProfileTreeError as e:
        raise to_http_error(e)
    
    if result.node is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Node not found: {label}"
        )
    
    return SearchResponse(
        node=node_to_response(result.node),
        failures=[
            LeafFailure(label=f.label, address=f.address, kind=f.kind, message=str(f.error))
            for f in result.failures
        ]
    )


@router.post("/profiles/{address}/nodes", response_model=MutationResponse)
async def insert_profile_nodes(
    address: str,
    batch: InsertionBatch,
    store: TreeStore = Depends(get_tree_store)
):
    """Insert a batch of nodes into a profile tree."""
    try:
        result = await store.insert_nodes(address, batch.insertions)
    except ProfileTreeError as e:
        raise to_http_error(e)
    return MutationResponse(address=result.address, failures=_failures(result.failures))


@router.put("/profiles/{address}/nodes/{label}", response_model=MutationResponse)
async def update_profile_node(
    address: str,
    label: str,
    update: LeafUpdate,
    store: TreeStore = Depends(get_tree_store)
):
    """Replace a leaf's payload."""
    try:
        new_address = await store.update_node(address, label, update.data)
    except ProfileTreeError as e:
        raise to_http_error(e)
    return MutationResponse(address=new_address)


@router.delete("/profiles/{address}/nodes/{label}", response_model=MutationResponse)
async def remove_profile_node(
    address: str,
    label: str,
    store: TreeStore = Depends(get_tree_store)
):
    """Remove a node and its subtree."""
    try:
        new_address = await store.remove_node(address, label)
    except ProfileTreeError as e:
        raise to_http_error(e)
    return MutationResponse(address=new_address)
