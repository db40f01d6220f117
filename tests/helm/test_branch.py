"""Tests for read-only tree walks."""

from helm.branch import (
    branch_text,
    context_nodes,
    deepest_node,
    depth_of,
    has_bookmark_in_subtree,
    is_ancestor,
    lineage,
    node_start_offset,
    nodes_deepest_first,
    parent_branch_context,
    subtree_ids,
)


ROWS = [
    ("r", None, "Once"),
    ("a", "r", " upon"),
    ("b", "r", " there"),
    ("a1", "a", " a"),
    ("a2", "a", " the"),
    ("a1x", "a1", " time"),
]


class TestWalks:
    """Lineage, depth and subtree walks."""

    def test_lineage_is_root_first(self, make_tree):
        tree = make_tree(ROWS)
        assert lineage(tree, "a1x") == ["r", "a", "a1", "a1x"]

    def test_branch_text_concatenates_lineage(self, make_tree):
        tree = make_tree(ROWS)
        assert branch_text(tree, "a1x") == "Once upon a time"

    def test_node_start_offset(self, make_tree):
        tree = make_tree(ROWS)
        assert node_start_offset(tree, "r") == 0
        assert node_start_offset(tree, "a1") == len("Once upon")

    def test_is_ancestor_is_strict(self, make_tree):
        tree = make_tree(ROWS)
        assert is_ancestor(tree, "r", "a1x")
        assert is_ancestor(tree, "a", "a1")
        assert not is_ancestor(tree, "a1", "a1")
        assert not is_ancestor(tree, "b", "a1")

    def test_depth_of(self, make_tree):
        tree = make_tree(ROWS)
        assert depth_of(tree, "r") == 0
        assert depth_of(tree, "a1x") == 3

    def test_subtree_ids_pre_order(self, make_tree):
        tree = make_tree(ROWS)
        assert subtree_ids(tree, "a") == ["a", "a1", "a1x", "a2"]

    def test_nodes_deepest_first(self, make_tree):
        order = nodes_deepest_first(make_tree(ROWS))
        assert order[0] == "a1x"
        assert order[-1] == "r"

    def test_deepest_node_relative_to_start(self, make_tree):
        tree = make_tree(ROWS)
        assert deepest_node(tree, "r") == ("a1x", 3)
        assert deepest_node(tree, "b") == ("b", 0)

    def test_deepest_node_tie_goes_to_first_in_order(self, make_tree):
        tree = make_tree([("r", None, ""), ("x", "r", ""), ("y", "r", "")])
        assert deepest_node(tree, "r") == ("x", 1)

    def test_deep_chain_does_not_recurse(self, make_tree):
        rows = [("n0", None, "x")] + [(f"n{i}", f"n{i - 1}", "x") for i in range(1, 5000)]
        tree = make_tree(rows)
        assert deepest_node(tree, "n0") == ("n4999", 4999)
        assert len(branch_text(tree, "n4999")) == 5000


class TestBookmarksInSubtree:

    def test_detects_nested_bookmark(self, make_tree):
        tree = make_tree(ROWS, bookmarks=["a1x"])
        assert has_bookmark_in_subtree(tree, "a")
        assert has_bookmark_in_subtree(tree, "a1x")
        assert not has_bookmark_in_subtree(tree, "b")


class TestContext:
    """Vision-limited context for decision prompts."""

    def test_context_nodes_limited_by_vision(self, make_tree):
        tree = make_tree(ROWS)
        assert context_nodes(tree, "a1x", 2) == [" upon", " a"]
        assert context_nodes(tree, "a1x", 10) == ["Once", " upon", " a"]
        assert context_nodes(tree, "r", 3) == []

    def test_parent_branch_context_marks_boundaries(self, make_tree):
        tree = make_tree(ROWS)
        text = parent_branch_context(tree, "a1", 2)
        assert "upon a" in text
        assert "Once" not in text

    def test_parent_branch_context_for_missing_parent(self, make_tree):
        tree = make_tree(ROWS)
        assert parent_branch_context(tree, "gone", 3) == "No parent context available."
