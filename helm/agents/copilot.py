"""
Copilot - expand/cull decision for a freshly created node.
"""

from shared.logging import get_logger

from ..decisions import Decision
from ..locks import LockReason
from ..models import CopilotConfig
from .context import AgentContext
from .expansion import expand_node

log = get_logger("helm", "copilot")


async def _process(ctx: AgentContext, node_id: str, config: CopilotConfig, depth: int) -> None:
    if ctx.should_stop() or depth > config.depth:
        return

    if not ctx.store.lock_node(node_id, LockReason.COPILOT_DECIDING):
        return

    try:
        tree = ctx.store.get_tree()
        if tree is None:
            return
        result = await ctx.engine.decide_expansion(
            tree, node_id, config.instructions, config.vision, role="copilot",
        )
        ctx.emit(result.response)
        if ctx.should_stop():
            return

        tree = ctx.store.get_tree()
        is_current = tree is not None and tree.current_node_id == node_id

        if result.decision == Decision.CULL:
            if is_current:
                log.debug("helm.copilot.cull_suppressed", node_id=node_id)
            else:
                ctx.store.delete_node(node_id)
        elif config.expansion_enabled and depth < config.depth:
            child_ids = await expand_node(
                ctx.store, ctx.generator, node_id, config.range, LockReason.COPILOT_DECIDING,
            )
            if ctx.should_stop():
                ctx.rollback(child_ids)
                return
            for child_id in child_ids:
                if ctx.should_stop():
                    break
                await _process(ctx, child_id, config, depth + 1)
    except Exception as e:
        log.exception(e, "helm.copilot.error", {"node_id": node_id, "depth": depth})
    finally:
        ctx.store.unlock_node(node_id)


async def run_copilot(ctx: AgentContext, node_id: str, config: CopilotConfig) -> None:
    """Decide on node_id and, if allowed, keep expanding what it keeps."""
    await _process(ctx, node_id, config, 1)
