"""
Data models for Helm.

Trees serialize with camelCase keys so tree files stay readable by the
desktop editor. Agent and Copilot configs use snake_case like config.yaml.
"""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .errors import TreeFormatError
from .locks import LockReason

DEFAULT_SCOUT_INSTRUCTIONS = (
    "Choose to expand nodes that are interesting, and cull nodes that are boring."
)
DEFAULT_WITNESS_INSTRUCTIONS = "Choose the most interesting continuation."


def new_node_id() -> str:
    return f"node_{uuid.uuid4()}"


@dataclass
class TreeNode:
    """A text fragment in the tree."""
    id: str
    text: str = ""
    parent_id: Optional[str] = None
    child_ids: list[str] = field(default_factory=list)
    locked: bool = False
    lock_reason: Optional[LockReason] = None

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "text": self.text,
            "parentId": self.parent_id,
            "childIds": list(self.child_ids),
            "locked": self.locked,
        }
        if self.lock_reason is not None:
            data["lockReason"] = self.lock_reason.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "TreeNode":
        """Deserialize a node. Locks never survive a reload."""
        return cls(
            id=data["id"],
            text=data.get("text", ""),
            parent_id=data.get("parentId"),
            child_ids=list(data.get("childIds", [])),
        )


@dataclass
class Tree:
    """
    A branching document.

    nodes is the arena of all nodes keyed by id; structure lives in each
    node's parent_id/child_ids. bookmarked_node_ids keeps insertion order
    for cyclic navigation.
    """
    id: str
    name: str
    nodes: dict[str, TreeNode]
    root_id: str
    current_node_id: str
    bookmarked_node_ids: list[str] = field(default_factory=list)

    @classmethod
    def new(cls, tree_id: str, name: str, root_text: str = "") -> "Tree":
        """Create a tree holding a single root node."""
        root = TreeNode(id=new_node_id(), text=root_text)
        return cls(
            id=tree_id,
            name=name,
            nodes={root.id: root},
            root_id=root.id,
            current_node_id=root.id,
        )

    @property
    def root(self) -> TreeNode:
        return self.nodes[self.root_id]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "nodes": [node.to_dict() for node in self.nodes.values()],
            "rootId": self.root_id,
            "currentNodeId": self.current_node_id,
            "bookmarkedNodeIds": list(self.bookmarked_node_ids),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Tree":
        """
        Deserialize a tree.

        All nodes come back unlocked and bookmarks pointing at missing nodes
        are dropped.

        Raises:
            TreeFormatError: if required fields are missing, rootId or
                currentNodeId do not name a node in the tree, or the
                parent/child links do not form a single tree under the root
        """
        try:
            nodes = {}
            for node_data in data["nodes"]:
                node = TreeNode.from_dict(node_data)
                nodes[node.id] = node
            root_id = data["rootId"]
            tree_id = data["id"]
        except (KeyError, TypeError) as e:
            raise TreeFormatError(f"Malformed tree data: missing {e}") from e

        if root_id not in nodes:
            raise TreeFormatError(f"Root node {root_id} is not in the tree")

        current_node_id = data.get("currentNodeId")
        if current_node_id not in nodes:
            raise TreeFormatError(f"Current node {current_node_id} is not in the tree")

        _check_structure(nodes, root_id)

        bookmarks = [
            node_id for node_id in data.get("bookmarkedNodeIds") or []
            if node_id in nodes
        ]

        return cls(
            id=tree_id,
            name=data.get("name", tree_id),
            nodes=nodes,
            root_id=root_id,
            current_node_id=current_node_id,
            bookmarked_node_ids=list(dict.fromkeys(bookmarks)),
        )


def _check_structure(nodes: dict[str, TreeNode], root_id: str) -> None:
    """Raise TreeFormatError unless parentId/childIds form one tree under root_id."""
    if nodes[root_id].parent_id is not None:
        raise TreeFormatError(f"Root node {root_id} has a parent")

    for node in nodes.values():
        for child_id in node.child_ids:
            if child_id not in nodes:
                raise TreeFormatError(f"Node {node.id} lists missing child {child_id}")
        if node.id == root_id:
            continue
        parent = nodes.get(node.parent_id) if node.parent_id else None
        if parent is None:
            raise TreeFormatError(f"Node {node.id} has missing parent {node.parent_id}")
        if parent.child_ids.count(node.id) != 1:
            raise TreeFormatError(f"Node {node.id} is not listed once by its parent {parent.id}")

    seen = {root_id}
    stack = [root_id]
    while stack:
        for child_id in nodes[stack.pop()].child_ids:
            if child_id in seen:
                raise TreeFormatError(f"Node {child_id} is reached twice from the root")
            seen.add(child_id)
            stack.append(child_id)
    if len(seen) != len(nodes):
        raise TreeFormatError(f"{len(nodes) - len(seen)} nodes are not reachable from the root")


class AgentType(str, Enum):
    """Kinds of autonomous agent."""
    SCOUT = "Scout"
    WITNESS = "Witness"
    CAMPAIGN = "Campaign"


@dataclass
class AgentConfig:
    """
    A configured Scout, Witness or Campaign.

    vision: how many ancestor nodes the assistant model sees
    range: continuations per expansion (Scout) or comparison chunk size (Witness)
    depth: expansion depth (Scout) or levels climbed (Witness)
    """
    id: str
    name: str
    type: AgentType = AgentType.SCOUT
    instructions: str = DEFAULT_SCOUT_INSTRUCTIONS
    vision: int = 3
    range: int = 2
    depth: int = 3
    cycles: int = 3

    # Campaign phase settings; blank or None falls back to the fields above
    campaign_scout_instructions: str = ""
    campaign_witness_instructions: str = ""
    campaign_scout_vision: Optional[int] = None
    campaign_scout_range: Optional[int] = None
    campaign_scout_depth: Optional[int] = None
    campaign_witness_vision: Optional[int] = None
    campaign_witness_range: Optional[int] = None

    # Runtime state, never persisted
    active: bool = False
    active_node_id: Optional[str] = None
    outputs: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "instructions": self.instructions,
            "vision": self.vision,
            "range": self.range,
            "depth": self.depth,
            "cycles": self.cycles,
            "campaign_scout_instructions": self.campaign_scout_instructions,
            "campaign_witness_instructions": self.campaign_witness_instructions,
            "campaign_scout_vision": self.campaign_scout_vision,
            "campaign_scout_range": self.campaign_scout_range,
            "campaign_scout_depth": self.campaign_scout_depth,
            "campaign_witness_vision": self.campaign_witness_vision,
            "campaign_witness_range": self.campaign_witness_range,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AgentConfig":
        """Deserialize a config. Agents always load inactive."""
        agent_type = AgentType(data.get("type", AgentType.SCOUT.value))
        default_instructions = (
            DEFAULT_WITNESS_INSTRUCTIONS if agent_type == AgentType.WITNESS
            else DEFAULT_SCOUT_INSTRUCTIONS
        )
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            type=agent_type,
            instructions=data.get("instructions") or default_instructions,
            vision=int(data.get("vision", 3)),
            range=int(data.get("range", 2)),
            depth=int(data.get("depth", 3)),
            cycles=int(data.get("cycles", 3)),
            campaign_scout_instructions=data.get("campaign_scout_instructions") or "",
            campaign_witness_instructions=data.get("campaign_witness_instructions") or "",
            campaign_scout_vision=data.get("campaign_scout_vision"),
            campaign_scout_range=data.get("campaign_scout_range"),
            campaign_scout_depth=data.get("campaign_scout_depth"),
            campaign_witness_vision=data.get("campaign_witness_vision"),
            campaign_witness_range=data.get("campaign_witness_range"),
        )


@dataclass
class CopilotConfig:
    """Settings for the decision hook run on manually expanded nodes."""
    enabled: bool = False
    expansion_enabled: bool = False
    instructions: str = DEFAULT_SCOUT_INSTRUCTIONS
    vision: int = 4
    range: int = 2
    depth: int = 2
    outputs: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "enabled": self.enabled,
            "expansion_enabled": self.expansion_enabled,
            "instructions": self.instructions,
            "vision": self.vision,
            "range": self.range,
            "depth": self.depth,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CopilotConfig":
        """Copilot always starts disabled; enabling it is a runtime choice."""
        return cls(
            enabled=False,
            expansion_enabled=bool(data.get("expansion_enabled", False)),
            instructions=data.get("instructions", DEFAULT_SCOUT_INSTRUCTIONS),
            vision=int(data.get("vision", 4)),
            range=int(data.get("range", 2)),
            depth=int(data.get("depth", 2)),
        )
