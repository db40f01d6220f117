"""
Helm - a branching-text tree editor core.

A tree of text fragments is grown by a base model and curated by agents
that consult an assistant model:

- TreeStore: the single writer for the loaded tree
- Scout / Witness / Campaign / Copilot: agents in helm.agents
- AgentRunner: start/stop controls and manual expansion
- Workspace: loading, saving and switching trees

Usage:
    from helm import Workspace, AgentRunner, load_config

    settings = load_config()
    workspace = Workspace(settings.trees_dir)
    workspace.select_tree("story")
"""

from .config import Settings, load_config
from .decisions import DecisionEngine
from .locks import LockReason
from .models import AgentConfig, AgentType, CopilotConfig, Tree, TreeNode
from .runner import AgentRunner
from .store import TreeStore
from .workspace import Workspace

__all__ = [
    "AgentConfig",
    "AgentRunner",
    "AgentType",
    "CopilotConfig",
    "DecisionEngine",
    "LockReason",
    "Settings",
    "Tree",
    "TreeNode",
    "TreeStore",
    "Workspace",
    "load_config",
]

__version__ = "0.1.0"
