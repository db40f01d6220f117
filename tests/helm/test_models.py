"""Tests for tree and agent config serialization."""

import pytest

from helm.errors import TreeFormatError
from helm.locks import LockReason
from helm.models import (
    DEFAULT_SCOUT_INSTRUCTIONS,
    DEFAULT_WITNESS_INSTRUCTIONS,
    AgentConfig,
    AgentType,
    CopilotConfig,
    Tree,
    TreeNode,
)


class TestTreeSerialization:
    """Tests for Tree.to_dict / Tree.from_dict."""

    def test_new_tree_has_single_root(self):
        tree = Tree.new("t", "t", root_text="Once")
        assert list(tree.nodes) == [tree.root_id]
        assert tree.current_node_id == tree.root_id
        assert tree.root.text == "Once"
        assert tree.root_id.startswith("node_")

    def test_round_trip_keeps_structure_and_bookmarks(self, make_tree):
        tree = make_tree(
            [("r", None, "A"), ("x", "r", "B"), ("y", "r", "C")],
            current="y", bookmarks=["x"],
        )
        restored = Tree.from_dict(tree.to_dict())

        assert restored.root_id == "r"
        assert restored.current_node_id == "y"
        assert restored.bookmarked_node_ids == ["x"]
        assert restored.nodes["r"].child_ids == ["x", "y"]
        assert restored.nodes["y"].parent_id == "r"

    def test_uses_camel_case_keys(self, make_tree):
        data = make_tree([("r", None, "A"), ("x", "r", "B")]).to_dict()
        assert {"rootId", "currentNodeId", "bookmarkedNodeIds"} <= set(data)
        assert data["nodes"][1]["parentId"] == "r"
        assert data["nodes"][0]["childIds"] == ["x"]

    def test_locks_are_cleared_on_load(self, make_tree):
        tree = make_tree([("r", None, "A"), ("x", "r", "B")])
        tree.nodes["x"].locked = True
        tree.nodes["x"].lock_reason = LockReason.SCOUT_ACTIVE

        data = tree.to_dict()
        assert data["nodes"][1]["lockReason"] == "scout-active"

        restored = Tree.from_dict(data)
        assert not restored.nodes["x"].locked
        assert restored.nodes["x"].lock_reason is None

    def test_missing_current_node_is_rejected(self, make_tree):
        data = make_tree([("r", None, "A")]).to_dict()
        data["currentNodeId"] = "gone"
        with pytest.raises(TreeFormatError):
            Tree.from_dict(data)

    def test_missing_root_is_rejected(self, make_tree):
        data = make_tree([("r", None, "A")]).to_dict()
        data["rootId"] = "gone"
        with pytest.raises(TreeFormatError):
            Tree.from_dict(data)

    def test_child_not_listed_by_parent_is_rejected(self, make_tree):
        tree = make_tree([("r", None, "A"), ("x", "r", "B")])
        tree.nodes["r"].child_ids = []
        with pytest.raises(TreeFormatError):
            Tree.from_dict(tree.to_dict())

    def test_child_listed_twice_is_rejected(self, make_tree):
        tree = make_tree([("r", None, "A"), ("x", "r", "B")])
        tree.nodes["r"].child_ids = ["x", "x"]
        with pytest.raises(TreeFormatError):
            Tree.from_dict(tree.to_dict())

    def test_missing_child_is_rejected(self, make_tree):
        tree = make_tree([("r", None, "A")])
        tree.nodes["r"].child_ids = ["gone"]
        with pytest.raises(TreeFormatError):
            Tree.from_dict(tree.to_dict())

    def test_missing_parent_is_rejected(self, make_tree):
        tree = make_tree([("r", None, "A"), ("x", "r", "B")])
        tree.nodes["x"].parent_id = "gone"
        with pytest.raises(TreeFormatError):
            Tree.from_dict(tree.to_dict())

    def test_root_with_parent_is_rejected(self, make_tree):
        tree = make_tree([("r", None, "A"), ("x", "r", "B")])
        tree.nodes["r"].parent_id = "x"
        with pytest.raises(TreeFormatError):
            Tree.from_dict(tree.to_dict())

    def test_cycle_through_root_is_rejected(self, make_tree):
        tree = make_tree([("r", None, "A"), ("a", "r", "B")])
        tree.nodes["a"].child_ids = ["r"]
        with pytest.raises(TreeFormatError):
            Tree.from_dict(tree.to_dict())

    def test_detached_cycle_is_rejected(self, make_tree):
        tree = make_tree([("r", None, "A"), ("x", "r", "B"), ("y", "x", "C")])
        tree.nodes["r"].child_ids = []
        tree.nodes["x"].parent_id = "y"
        tree.nodes["y"].child_ids = ["x"]
        with pytest.raises(TreeFormatError):
            Tree.from_dict(tree.to_dict())

    def test_missing_nodes_key_is_rejected(self):
        with pytest.raises(TreeFormatError):
            Tree.from_dict({"id": "t", "rootId": "r"})

    def test_dangling_and_duplicate_bookmarks_are_dropped(self, make_tree):
        data = make_tree([("r", None, "A"), ("x", "r", "B")]).to_dict()
        data["bookmarkedNodeIds"] = ["x", "gone", "x"]
        assert Tree.from_dict(data).bookmarked_node_ids == ["x"]

    def test_missing_bookmarks_default_to_empty(self, make_tree):
        data = make_tree([("r", None, "A")]).to_dict()
        del data["bookmarkedNodeIds"]
        assert Tree.from_dict(data).bookmarked_node_ids == []


class TestNodeSerialization:

    def test_unlocked_node_omits_lock_reason(self):
        assert "lockReason" not in TreeNode(id="n").to_dict()


class TestAgentConfig:
    """Tests for AgentConfig defaults and round trip."""

    def test_witness_gets_witness_default_instructions(self):
        config = AgentConfig.from_dict({"id": "w", "type": "Witness"})
        assert config.type == AgentType.WITNESS
        assert config.instructions == DEFAULT_WITNESS_INSTRUCTIONS

    def test_scout_defaults(self):
        config = AgentConfig.from_dict({"id": "s"})
        assert config.type == AgentType.SCOUT
        assert config.instructions == DEFAULT_SCOUT_INSTRUCTIONS
        assert (config.vision, config.range, config.depth) == (3, 2, 3)
        assert config.name == "s"

    def test_round_trip_keeps_campaign_overrides(self):
        config = AgentConfig(
            id="c", name="Campaign", type=AgentType.CAMPAIGN, cycles=5,
            campaign_scout_instructions="explore", campaign_witness_range=4,
        )
        restored = AgentConfig.from_dict(config.to_dict())
        assert restored.cycles == 5
        assert restored.campaign_scout_instructions == "explore"
        assert restored.campaign_witness_range == 4
        assert restored.campaign_scout_depth is None

    def test_runtime_state_is_not_persisted(self):
        config = AgentConfig(id="s", name="s", active=True, active_node_id="n", outputs=["x"])
        data = config.to_dict()
        assert "active" not in data
        assert "outputs" not in data
        assert not AgentConfig.from_dict(data).active


class TestCopilotConfig:

    def test_always_loads_disabled(self):
        config = CopilotConfig.from_dict({"enabled": True, "expansion_enabled": True})
        assert not config.enabled
        assert config.expansion_enabled

    def test_defaults(self):
        config = CopilotConfig.from_dict({})
        assert config.instructions == DEFAULT_SCOUT_INSTRUCTIONS
        assert (config.vision, config.range, config.depth) == (4, 2, 2)
