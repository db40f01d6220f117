"""
Structured logging for Helm.

Writes JSON Lines with correlation, tree and agent ids so a single agent
run can be traced through the store, the decision engine and the LLM client.

Usage:
    from shared.logging import get_logger, agent_context

    log = get_logger("helm", "scout")

    with agent_context(agent_id=scout.id, tree_id=tree.id):
        log.info("helm.scout.child_culled", node_id=child_id)
"""

from .logger import get_logger, HelmLogger
from .context import (
    agent_context,
    correlation_context,
    get_agent_id,
    get_correlation_id,
    get_tree_id,
    set_correlation_id,
)

__all__ = [
    "get_logger",
    "HelmLogger",
    "agent_context",
    "correlation_context",
    "get_agent_id",
    "get_correlation_id",
    "get_tree_id",
    "set_correlation_id",
]
