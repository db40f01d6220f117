"""
Capabilities handed to every agent run.
"""

from dataclasses import dataclass
from typing import Callable, Optional

from ..decisions import DecisionEngine
from ..store import TreeStore
from .expansion import ContinuationGenerator


def _never() -> bool:
    return False


@dataclass
class AgentContext:
    """
    What an agent may touch.

    store: the live tree store; agents re-read it after every await
    should_stop: polled at every step and after every model call
    on_output: receives assistant replies and progress narration
    """
    store: TreeStore
    engine: DecisionEngine
    generator: ContinuationGenerator
    should_stop: Callable[[], bool] = _never
    on_output: Optional[Callable[[str], None]] = None

    def emit(self, text: str) -> None:
        if self.on_output and text:
            self.on_output(text)

    def rollback(self, node_ids: list[str]) -> None:
        """Delete speculative children that were never decided on."""
        for node_id in node_ids:
            self.store.delete_node(node_id)
