"""
Continuation generation and node expansion.
"""

import asyncio
from typing import Any, Awaitable, Callable

from llm import ContinuationSettings, with_retry
from shared.logging import get_logger

from ..branch import branch_text
from ..locks import LockReason
from ..store import TreeStore

log = get_logger("helm", "expansion")


class ContinuationGenerator:
    """
    Requests continuations of a branch from the base model.

    Args:
        client: Object with an async call_continuation_model(prompt, settings)
        settings: Continuation model settings
        max_attempts: Attempts per continuation, including the first
        base_delay: First retry delay in seconds, doubled per retry
    """

    def __init__(
        self,
        client: Any,
        settings: ContinuationSettings,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.client = client
        self.settings = settings
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._sleep = sleep

    async def _one(self, prompt: str) -> str:
        return await with_retry(
            lambda: self.client.call_continuation_model(prompt, self.settings),
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            sleep=self._sleep,
        )

    async def generate(self, prompt: str, count: int) -> list[str]:
        """
        Request count continuations concurrently.

        Failed or empty continuations are dropped; the rest are returned
        in request order.
        """
        results = await asyncio.gather(
            *(self._one(prompt) for _ in range(count)),
            return_exceptions=True,
        )
        texts = []
        for result in results:
            if isinstance(result, Exception):
                log.warning("helm.expansion.continuation_failed", error=str(result))
            elif isinstance(result, BaseException):
                raise result
            elif result:
                texts.append(result)
        return texts


async def expand_node(
    store: TreeStore,
    generator: ContinuationGenerator,
    node_id: str,
    count: int,
    reason: LockReason,
) -> list[str]:
    """
    Add up to count generated children under node_id.

    The node is locked for reason while the model runs and unlocked
    afterwards, even if the caller already held the same lock.

    Returns:
        Ids of the children added (empty if the node was locked by
        another reason or every request failed)
    """
    if not store.lock_node(node_id, reason):
        return []

    try:
        tree = store.get_tree()
        prompt = branch_text(tree, node_id)
        completions = await generator.generate(prompt, count)

        child_ids = []
        for text in completions:
            child_id = store.add_node(node_id, text)
            if child_id:
                child_ids.append(child_id)

        log.info("helm.expansion.expanded", node_id=node_id,
                 requested=count, added=len(child_ids), reason=reason.value)
        return child_ids
    finally:
        store.unlock_node(node_id)
