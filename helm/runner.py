"""
Agent runner - the start/stop surface for Scout, Witness and Campaign
agents, plus manual expansion with the Copilot hook.

Runs are started against the store's current node. Each agent has its own
stop flag, polled by the agent between steps.
"""

from typing import Callable, Optional

from shared.logging import agent_context, get_logger

from .agents import (
    AgentContext,
    ContinuationGenerator,
    AutoBookmarkResult,
    expand_node,
    run_auto_bookmark,
    run_campaign,
    run_copilot,
    run_scout,
    run_witness,
)
from .decisions import DecisionEngine
from .locks import LockReason
from .models import AgentConfig, AgentType, CopilotConfig
from .store import TreeStore

log = get_logger("helm", "runner")

AUTO_BOOKMARK_ID = "auto-bookmark"

_RUNNERS = {
    AgentType.SCOUT: run_scout,
    AgentType.WITNESS: run_witness,
    AgentType.CAMPAIGN: run_campaign,
}


class AgentRunner:
    """
    Registry and controls for configured agents.

    Args:
        store: Tree store the agents mutate
        engine: Decision engine for assistant-model calls
        generator: Continuation generator for the base model
        copilot: Copilot settings (runtime-enabled only)
        agents: Initial agent configs
        on_output: Called with (agent_id, text) for every output line;
            Copilot lines use the id "copilot"
    """

    def __init__(
        self,
        store: TreeStore,
        engine: DecisionEngine,
        generator: ContinuationGenerator,
        copilot: Optional[CopilotConfig] = None,
        agents: Optional[list[AgentConfig]] = None,
        on_output: Optional[Callable[[str, str], None]] = None,
    ):
        self.store = store
        self.engine = engine
        self.generator = generator
        self.copilot = copilot or CopilotConfig()
        self._agents: dict[str, AgentConfig] = {}
        self._stop_flags: dict[str, bool] = {}
        self._on_output = on_output
        for agent in agents or []:
            self.add_agent(agent)

    # ==================== Registry ====================

    def add_agent(self, config: AgentConfig) -> None:
        self._agents[config.id] = config
        self._stop_flags[config.id] = False

    def update_agent(self, agent_id: str, **updates) -> Optional[AgentConfig]:
        config = self._agents.get(agent_id)
        if config is None:
            return None
        for key, value in updates.items():
            if not hasattr(config, key):
                raise AttributeError(f"AgentConfig has no field {key!r}")
            setattr(config, key, value)
        return config

    def delete_agent(self, agent_id: str) -> bool:
        self._stop_flags.pop(agent_id, None)
        return self._agents.pop(agent_id, None) is not None

    def get_agent(self, agent_id: str) -> Optional[AgentConfig]:
        return self._agents.get(agent_id)

    def list_agents(self) -> list[AgentConfig]:
        return list(self._agents.values())

    def add_output(self, agent_id: str, text: str) -> None:
        config = self._agents.get(agent_id)
        if config is not None and text:
            config.outputs.append(text)
            if self._on_output:
                self._on_output(agent_id, text)

    def add_copilot_output(self, text: str) -> None:
        if text:
            self.copilot.outputs.append(text)
            if self._on_output:
                self._on_output("copilot", text)

    def _emit_auto_bookmark(self, text: str) -> None:
        if text and self._on_output:
            self._on_output(AUTO_BOOKMARK_ID, text)

    # ==================== Controls ====================

    def _context(self, should_stop, on_output) -> AgentContext:
        return AgentContext(
            store=self.store,
            engine=self.engine,
            generator=self.generator,
            should_stop=should_stop,
            on_output=on_output,
        )

    async def start(self, agent_id: str) -> bool:
        """
        Run an agent from the current node until it finishes or is stopped.

        Returns:
            False if the agent is unknown or already running, no tree is
            loaded, or the current node is locked
        """
        config = self._agents.get(agent_id)
        if config is None:
            return False
        if config.active:
            log.warning("helm.runner.already_active", agent_id=agent_id)
            return False
        tree = self.store.get_tree()
        if tree is None:
            log.warning("helm.runner.no_tree", agent_id=agent_id)
            return False
        start_id = tree.current_node_id
        node = tree.nodes.get(start_id)
        if node is None or node.locked:
            log.warning("helm.runner.start_node_locked", agent_id=agent_id, node_id=start_id)
            return False

        self._stop_flags[agent_id] = False
        config.active = True
        config.active_node_id = start_id
        ctx = self._context(
            should_stop=lambda: self._stop_flags.get(agent_id, True),
            on_output=lambda text: self.add_output(agent_id, text),
        )
        run = _RUNNERS[config.type]

        with agent_context(agent_id=agent_id, tree_id=tree.id):
            log.info("helm.runner.started", agent_type=config.type.value, node_id=start_id)
            try:
                await run(ctx, start_id, config)
            finally:
                config.active = False
                config.active_node_id = None
                log.info("helm.runner.finished", agent_type=config.type.value,
                         stopped=self._stop_flags.get(agent_id, False))
        return True

    def stop(self, agent_id: str) -> None:
        if agent_id in self._stop_flags:
            self._stop_flags[agent_id] = True

    def stop_all(self) -> None:
        for agent_id in self._stop_flags:
            self._stop_flags[agent_id] = True
        self._stop_flags[AUTO_BOOKMARK_ID] = True
        self.copilot.enabled = False

    async def auto_bookmark(self, criteria: str, parents_to_include: int) -> AutoBookmarkResult:
        """
        Bookmark every node the assistant model says meets criteria.

        Raises:
            ValueError: blank criteria, negative parents_to_include or no tree
        """
        tree = self.store.get_tree()
        self._stop_flags[AUTO_BOOKMARK_ID] = False
        ctx = self._context(
            should_stop=lambda: self._stop_flags.get(AUTO_BOOKMARK_ID, True),
            on_output=self._emit_auto_bookmark,
        )
        with agent_context(agent_id=AUTO_BOOKMARK_ID, tree_id=tree.id if tree else None):
            try:
                return await run_auto_bookmark(ctx, criteria, parents_to_include)
            finally:
                self._stop_flags.pop(AUTO_BOOKMARK_ID, None)

    # ==================== Manual expansion ====================

    async def expand_current(self) -> list[str]:
        """
        Expand the current node by the branching factor.

        Focus moves to the first new child if the user is still on the
        expanded node. With Copilot enabled each new child then gets a
        Copilot decision, until Copilot is switched off.

        Returns:
            Ids of the children created
        """
        tree = self.store.get_tree()
        if tree is None:
            return []
        node_id = tree.current_node_id
        count = self.generator.settings.branching_factor

        with agent_context(agent_id="manual", tree_id=tree.id):
            child_ids = await expand_node(
                self.store, self.generator, node_id, count, LockReason.EXPANDING,
            )
            tree = self.store.get_tree()
            if child_ids and tree is not None and tree.current_node_id == node_id:
                self.store.set_current_node(child_ids[0])

            if self.copilot.enabled and self.copilot.instructions.strip() and child_ids:
                ctx = self._context(
                    should_stop=lambda: not self.copilot.enabled,
                    on_output=self.add_copilot_output,
                )
                for child_id in child_ids:
                    if not self.copilot.enabled:
                        break
                    await run_copilot(ctx, child_id, self.copilot)
        return child_ids
