"""
Agents that drive the tree through the assistant and continuation models.
"""

from .auto_bookmark import AutoBookmarkResult, run_auto_bookmark
from .campaign import run_campaign
from .context import AgentContext
from .copilot import run_copilot
from .expansion import ContinuationGenerator, expand_node
from .scout import run_scout
from .witness import run_witness

__all__ = [
    "AgentContext",
    "AutoBookmarkResult",
    "ContinuationGenerator",
    "expand_node",
    "run_auto_bookmark",
    "run_campaign",
    "run_copilot",
    "run_scout",
    "run_witness",
]
