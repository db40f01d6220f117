"""
Automatic bookmarking by free-text criteria.
"""

from dataclasses import dataclass

from shared.logging import get_logger

from .context import AgentContext

log = get_logger("helm", "auto_bookmark")


@dataclass
class AutoBookmarkResult:
    processed: int = 0
    bookmarked: int = 0
    total: int = 0


async def run_auto_bookmark(
    ctx: AgentContext,
    criteria: str,
    parents_to_include: int,
) -> AutoBookmarkResult:
    """
    Ask, node by node, whether each text meets criteria and bookmark
    the ones that do.

    Raises:
        ValueError: blank criteria or negative parents_to_include
    """
    if not criteria.strip():
        raise ValueError("Please enter criteria")
    if parents_to_include < 0:
        raise ValueError("Parents to Include must be a non-negative number")

    tree = ctx.store.get_tree()
    if tree is None:
        raise ValueError("No tree loaded")

    node_ids = list(tree.nodes)
    result = AutoBookmarkResult(total=len(node_ids))

    for node_id in node_ids:
        if ctx.should_stop():
            break
        tree = ctx.store.get_tree()
        if tree is None or node_id not in tree.nodes:
            continue

        decision = await ctx.engine.meets_criteria(tree, node_id, criteria, parents_to_include)
        ctx.emit(decision.response)
        result.processed += 1

        if decision.matched and not ctx.store.is_bookmarked(node_id):
            if ctx.store.toggle_bookmark(node_id):
                result.bookmarked += 1

    log.info("helm.auto_bookmark.finished", processed=result.processed,
             bookmarked=result.bookmarked, total=result.total)
    return result
