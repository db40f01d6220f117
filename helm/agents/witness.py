"""
Witness - bottom-up elimination of sibling branches.

Phase one prunes the start node's subtree: every level is reduced, deepest
first, by comparing siblings in chunks of max(2, range) and deleting the
losers; a level left with a single child is merged into its parent.
Phase two climbs up to `depth` ancestors, pruning the siblings of each one
the same way and merging a sole survivor into its parent.

A level whose children have a bookmark anywhere beneath them is left
untouched. Every node Witness touches is locked witness-active for the
whole run and released at the end.
"""

from typing import Optional

from shared.logging import get_logger

from ..branch import has_bookmark_in_subtree
from ..locks import LockReason
from ..models import AgentConfig
from .context import AgentContext

log = get_logger("helm", "witness")


class _WitnessRun:
    def __init__(self, ctx: AgentContext, config: AgentConfig):
        self.ctx = ctx
        self.config = config
        self.store = ctx.store
        self.chunk_size = max(2, config.range)
        self.locked: set[str] = set()

    def stopped(self) -> bool:
        return self.ctx.should_stop()

    def safe_lock(self, node_id: str) -> None:
        if node_id in self.locked:
            return
        if self.store.lock_node(node_id, LockReason.WITNESS_ACTIVE):
            self.locked.add(node_id)

    def unlock_all(self) -> None:
        for node_id in self.locked:
            self.store.unlock_node(node_id)
        self.locked.clear()

    def protected(self, child_ids: list[str]) -> bool:
        tree = self.store.get_tree()
        bookmarked = set(tree.bookmarked_node_ids)
        return any(has_bookmark_in_subtree(tree, c, bookmarked) for c in child_ids)

    # ==================== Sibling comparison ====================

    async def tournament(self, parent_id: str) -> bool:
        """
        Reduce parent_id's children to one by chunked comparison.

        Returns:
            False if a round could not delete any loser
        """
        children = self.store.children_of(parent_id)
        while len(children) > 1 and not self.stopped():
            chunk = children[:self.chunk_size]
            tree = self.store.get_tree()
            result = await self.ctx.engine.choose(
                tree, parent_id, chunk, self.config.instructions, self.config.vision,
            )
            self.ctx.emit(result.response)
            if self.stopped():
                break

            winner_id = result.selected_id if result.selected_id in chunk else chunk[0]
            deleted = 0
            for child_id in chunk:
                if child_id == winner_id:
                    continue
                if self.stopped():
                    break
                if self.store.delete_node(child_id):
                    deleted += 1
            log.debug("helm.witness.round", parent_id=parent_id,
                      compared=len(chunk), winner=winner_id, deleted=deleted)

            if self.store.get_node(parent_id) is None:
                return True
            children = self.store.children_of(parent_id)
            for child_id in children:
                self.safe_lock(child_id)
            if winner_id in children:
                children = [winner_id] + [c for c in children if c != winner_id]
            if deleted == 0:
                log.warning("helm.witness.stalled", parent_id=parent_id, remaining=len(children))
                return False
        return True

    # ==================== Descendant pruning ====================

    def prune_order(self, start_id: str) -> list[str]:
        """
        Nodes under start_id in post-order, locking each visited level.

        Does not descend below a level whose children carry a bookmark.
        """
        order: list[str] = []
        stack: list[tuple[str, bool]] = [(start_id, False)]
        while stack:
            node_id, expanded = stack.pop()
            if expanded:
                order.append(node_id)
                continue
            stack.append((node_id, True))
            children = self.store.children_of(node_id)
            if not children or self.protected(children):
                continue
            self.safe_lock(node_id)
            for child_id in children:
                self.safe_lock(child_id)
            for child_id in reversed(children):
                stack.append((child_id, False))
        return order

    async def prune_level(self, node_id: str) -> None:
        while not self.stopped():
            if self.store.get_node(node_id) is None:
                return
            children = self.store.children_of(node_id)
            if not children or self.protected(children):
                return
            self.safe_lock(node_id)
            for child_id in children:
                self.safe_lock(child_id)

            if len(children) == 1:
                if not self.store.merge_with_parent(children[0]):
                    return
                continue

            if not await self.tournament(node_id):
                return

    async def prune(self, start_id: str) -> None:
        for node_id in self.prune_order(start_id):
            if self.stopped():
                return
            await self.prune_level(node_id)

    # ==================== Climbing ====================

    async def process_upwards(self, start_id: str, levels: int) -> None:
        node_id: Optional[str] = start_id
        remaining = levels
        while remaining > 0 and not self.stopped():
            node = self.store.get_node(node_id)
            if node is None or node.parent_id is None:
                return
            parent_id = node.parent_id
            if self.store.get_node(parent_id) is None:
                return
            self.safe_lock(parent_id)

            siblings = self.store.children_of(parent_id)
            for sibling_id in siblings:
                if self.stopped():
                    break
                await self.prune(sibling_id)
            if self.stopped():
                return

            siblings = self.store.children_of(parent_id)
            if siblings and not self.protected(siblings):
                for sibling_id in siblings:
                    self.safe_lock(sibling_id)
                await self.tournament(parent_id)
                if self.stopped():
                    return

                survivors = self.store.children_of(parent_id)
                if len(survivors) == 1:
                    sole_id = survivors[0]
                    await self.prune(sole_id)
                    if self.stopped():
                        return
                    if self.store.get_node(sole_id) is not None:
                        self.safe_lock(sole_id)
                        self.store.merge_with_parent(sole_id)

            node_id = parent_id
            remaining -= 1


async def run_witness(ctx: AgentContext, start_id: str, config: AgentConfig) -> None:
    """Prune below start_id, then climb config.depth levels."""
    if config.depth <= 0:
        return

    run = _WitnessRun(ctx, config)
    log.info("helm.witness.started", node_id=start_id,
             vision=config.vision, range=config.range, depth=config.depth)
    try:
        await run.prune(start_id)
        if ctx.should_stop():
            return
        await run.process_upwards(start_id, config.depth)
    except Exception as e:
        log.exception(e, "helm.witness.error", {"node_id": start_id})
    finally:
        run.unlock_all()
        log.info("helm.witness.finished", node_id=start_id, stopped=ctx.should_stop())
