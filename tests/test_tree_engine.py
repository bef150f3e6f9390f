"""Tests for the in-memory tree engine."""

import copy

import pytest

from profile_tree.errors import InvalidOperationError
from profile_tree.services.tree_engine import (
    ROOT_LABEL,
    TreeNode,
    compute_sha3,
    dfs,
    init_tree,
    insert_node,
    iter_nodes,
    remove_node,
    renew_node_hash,
    update_node,
    verify_tree,
)


def build_profile() -> TreeNode:
    """root -> [profile(-> name, email), settings(-> theme)]"""
    root = init_tree()
    insert_node(root, "root", "profile")
    insert_node(root, "profile", "name", "addr-name")
    insert_node(root, "profile", "email", "addr-email")
    insert_node(root, "root", "settings")
    insert_node(root, "settings", "theme", "addr-theme")
    return root


class TestInitTree:
    """Tests for tree creation."""

    def test_root_only(self):
        """A new tree is a bare root with no hash and no children field."""
        root = init_tree()
        assert root.label == ROOT_LABEL
        assert root.hash is None
        assert root.children is None
        assert root.is_leaf


class TestInsertNode:
    """Tests for leaf insertion."""

    def test_insert_then_find(self):
        """An inserted leaf is found with its address and no children."""
        root = init_tree()
        result = insert_node(root, "root", "a", "addr")

        assert result is root
        found = dfs(root, "a")
        assert found.content_address == "addr"
        assert found.children is None

    def test_create_and_insert_scenario(self):
        """The root hash is the digest of its only child's address."""
        root = init_tree()
        insert_node(root, "root", "profile.name", "addrX")

        assert root.children == [TreeNode(label="profile.name", content_address="addrX")]
        assert root.hash == compute_sha3("addrX")

    def test_missing_parent_leaves_tree_unchanged(self):
        """Inserting under an unknown label returns None and changes nothing."""
        root = build_profile()
        before = copy.deepcopy(root)

        assert insert_node(root, "nope", "x", "addr-x") is None
        assert root == before

    def test_insert_under_data_leaf_rejected(self):
        """A leaf holding data cannot become an internal node."""
        root = build_profile()
        with pytest.raises(InvalidOperationError):
            insert_node(root, "name", "first", "addr-first")

    def test_children_keep_insertion_order(self):
        """Children are appended in insertion order."""
        root = init_tree()
        for label in ("c", "a", "b"):
            insert_node(root, "root", label, f"addr-{label}")
        assert [child.label for child in root.children] == ["c", "a", "b"]
        assert root.hash == compute_sha3("addr-caddr-aaddr-b")

    def test_hash_propagates_to_every_ancestor(self):
        """A deep insert rehashes the whole path and no sibling subtree."""
        root = init_tree()
        insert_node(root, "root", "a")
        insert_node(root, "a", "b")
        insert_node(root, "b", "c")
        insert_node(root, "root", "t")
        insert_node(root, "t", "u", "addr-u")

        before = {node.label: node.hash for node in iter_nodes(root)}
        insert_node(root, "c", "d", "addr-d")

        for label in ("root", "a", "b", "c"):
            assert dfs(root, label).hash != before[label]
        assert dfs(root, "t").hash == before["t"]
        assert dfs(root, "u").hash == before["u"]

        c = dfs(root, "c")
        b = dfs(root, "b")
        a = dfs(root, "a")
        assert c.hash == compute_sha3("addr-d")
        assert b.hash == compute_sha3(c.hash)
        assert a.hash == compute_sha3(b.hash)
        assert root.hash == compute_sha3(a.hash + dfs(root, "t").hash)


class TestDfs:
    """Tests for depth-first search."""

    def test_missing_label(self):
        """Absent labels return None."""
        assert dfs(build_profile(), "missing") is None

    def test_returns_live_reference(self):
        """The result is the node inside the tree, not a copy."""
        root = build_profile()
        profile = dfs(root, "profile")
        assert profile is root.children[0]

    def test_first_match_in_pre_order(self):
        """With duplicate labels the first pre-order match wins, every time."""
        root = init_tree()
        insert_node(root, "root", "a")
        insert_node(root, "root", "dup", "addr-shallow")
        insert_node(root, "a", "dup", "addr-deep")

        first = dfs(root, "dup")
        assert first.content_address == "addr-deep"
        for _ in range(5):
            assert dfs(root, "dup") is first


class TestRenewNodeHash:
    """Tests for hash recomputation."""

    def test_idempotent(self):
        """Recomputing twice without changes yields the same hash."""
        root = build_profile()
        profile = dfs(root, "profile")
        first = renew_node_hash(profile).hash
        second = renew_node_hash(profile).hash
        assert first == second == compute_sha3("addr-nameaddr-email")

    def test_no_hashed_children(self):
        """Children without hash or address leave the parent hash empty."""
        node = TreeNode(label="p", children=[TreeNode(label="empty")])
        assert renew_node_hash(node).hash is None

    def test_leaf_untouched(self):
        """Leaves keep their fields."""
        leaf = TreeNode(label="leaf", content_address="addr")
        assert renew_node_hash(leaf).hash is None


class TestUpdateNode:
    """Tests for leaf updates."""

    def test_update_leaf(self):
        """Updating a leaf swaps its address and rehashes the path."""
        root = build_profile()
        old_root_hash = root.hash
        old_settings_hash = dfs(root, "settings").hash

        updated = update_node(root, "name", "addr-name-2", "dh")

        assert updated.content_address == "addr-name-2"
        assert updated.data_hash == "dh"
        assert dfs(root, "profile").hash == compute_sha3("addr-name-2addr-email")
        assert root.hash != old_root_hash
        assert dfs(root, "settings").hash == old_settings_hash

    def test_update_internal_node_fails(self):
        """Internal nodes are not updatable."""
        root = build_profile()
        before = copy.deepcopy(root)
        assert update_node(root, "profile", "addr") is None
        assert root == before

    def test_update_missing(self):
        """Absent labels are not updatable."""
        assert update_node(build_profile(), "missing", "addr") is None

    def test_update_emptied_node(self):
        """A node emptied of children becomes a plain leaf when updated."""
        root = build_profile()
        remove_node(root, "theme")

        updated = update_node(root, "settings", "addr-settings")

        assert updated.children is None
        assert updated.is_leaf
        assert updated.content_address == "addr-settings"
        assert root.hash == compute_sha3(dfs(root, "profile").hash + "addr-settings")
        assert verify_tree(root)


class TestRemoveNode:
    """Tests for node removal."""

    def test_root_protected(self):
        """The root is never removed."""
        root = build_profile()
        before = copy.deepcopy(root)
        assert remove_node(root, "root") is None
        assert root == before

    def test_remove_then_search(self):
        """A removed node is gone and its former parent is rehashed."""
        root = build_profile()
        profile = dfs(root, "profile")
        old_hash = profile.hash

        removed = remove_node(root, "name")

        assert removed.label == "name"
        assert dfs(root, "name") is None
        assert profile.hash != old_hash
        assert profile.hash == compute_sha3("addr-email")

    def test_remove_subtree(self):
        """Removing an internal node drops its whole subtree."""
        root = build_profile()
        remove_node(root, "settings")
        assert dfs(root, "theme") is None
        assert root.hash == compute_sha3(dfs(root, "profile").hash)

    def test_remove_last_child(self):
        """An emptied parent keeps an empty children list and loses its hash."""
        root = build_profile()
        remove_node(root, "theme")
        settings = dfs(root, "settings")
        assert settings.children == []
        assert settings.hash is None

    def test_remove_missing(self):
        """Absent labels return None."""
        assert remove_node(build_profile(), "missing") is None

    def test_remove_first_of_equal_siblings(self):
        """Equal siblings are told apart by identity."""
        root = init_tree()
        insert_node(root, "root", "dup", "same")
        insert_node(root, "root", "dup", "same")
        second = root.children[1]

        remove_node(root, "dup")

        assert len(root.children) == 1
        assert root.children[0] is second


class TestVerifyTree:
    """Tests for hash consistency checks."""

    def test_consistent_after_mutations(self):
        """Engine mutations keep every hash consistent."""
        root = build_profile()
        update_node(root, "theme", "addr-theme-2")
        remove_node(root, "email")
        insert_node(root, "settings", "lang", "addr-lang")
        assert verify_tree(root)

    def test_detects_tampering(self):
        """A leaf changed behind the engine's back is detected."""
        root = build_profile()
        dfs(root, "email").content_address = "forged"
        assert not verify_tree(root)
