"""
Scout - depth-bounded expand-then-decide.

From the start node: lock, generate `range` children, ask for an
expand/cull decision on each child concurrently, delete culled children and
descend into expanded ones until `depth` generations have been created.
"""

import asyncio
from typing import Optional

from shared.logging import get_logger

from ..decisions import Decision, ExpansionDecision
from ..locks import LockReason
from ..models import AgentConfig
from .context import AgentContext
from .expansion import expand_node

log = get_logger("helm", "scout")


async def _decide(
    ctx: AgentContext,
    child_id: str,
    config: AgentConfig,
) -> Optional[ExpansionDecision]:
    if ctx.should_stop():
        return None
    tree = ctx.store.get_tree()
    if tree is None:
        return None
    result = await ctx.engine.decide_expansion(
        tree, child_id, config.instructions, config.vision, role="scout",
    )
    ctx.emit(result.response)
    return result


async def _visit(ctx: AgentContext, node_id: str, config: AgentConfig, depth: int) -> None:
    if ctx.should_stop() or depth > config.depth:
        return

    if not ctx.store.lock_node(node_id, LockReason.SCOUT_ACTIVE):
        log.debug("helm.scout.branch_abandoned", node_id=node_id, depth=depth)
        return

    try:
        child_ids = await expand_node(
            ctx.store, ctx.generator, node_id, config.range, LockReason.SCOUT_ACTIVE,
        )
        if ctx.should_stop():
            ctx.rollback(child_ids)
            return

        results = await asyncio.gather(*(_decide(ctx, c, config) for c in child_ids))

        undecided = [c for c, r in zip(child_ids, results) if r is None]
        if undecided:
            ctx.rollback(undecided)

        for result in results:
            if ctx.should_stop():
                break
            if result is None:
                continue
            if result.decision == Decision.CULL:
                if ctx.store.delete_node(result.node_id):
                    log.debug("helm.scout.child_culled", node_id=result.node_id, depth=depth)
            elif depth < config.depth:
                await _visit(ctx, result.node_id, config, depth + 1)
    except Exception as e:
        log.exception(e, "helm.scout.error", {"node_id": node_id, "depth": depth})
    finally:
        ctx.store.unlock_node(node_id)


async def run_scout(ctx: AgentContext, start_id: str, config: AgentConfig) -> None:
    """Explore from start_id. Returns when done or stopped."""
    log.info("helm.scout.started", node_id=start_id,
             vision=config.vision, range=config.range, depth=config.depth)
    await _visit(ctx, start_id, config, 1)
    log.info("helm.scout.finished", node_id=start_id, stopped=ctx.should_stop())
