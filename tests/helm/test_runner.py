"""Tests for AgentRunner."""

import pytest

from helm.locks import LockReason
from helm.models import AgentConfig, AgentType, CopilotConfig
from helm.runner import AUTO_BOOKMARK_ID, AgentRunner

EXPAND = "<decision>expand</decision>"
CULL = "<decision>cull</decision>"


@pytest.fixture
def tree(make_tree):
    return make_tree([("r", None, "Once")])


@pytest.fixture
def outputs():
    return []


@pytest.fixture
def runner(tree, make_ctx, outputs):
    ctx = make_ctx(tree)
    return AgentRunner(
        ctx.store, ctx.engine, ctx.generator,
        agents=[AgentConfig(id="s", name="Scout", depth=1, range=2)],
        on_output=lambda agent_id, text: outputs.append((agent_id, text)),
    )


class TestRegistry:
    """Tests for agent registration."""

    def test_list_and_get(self, runner):
        assert [a.id for a in runner.list_agents()] == ["s"]
        assert runner.get_agent("s").name == "Scout"

    def test_update_agent(self, runner):
        updated = runner.update_agent("s", depth=4, instructions="Go far.")
        assert (updated.depth, updated.instructions) == (4, "Go far.")

    def test_update_unknown_field_raises(self, runner):
        with pytest.raises(AttributeError):
            runner.update_agent("s", reach=3)

    def test_update_unknown_agent(self, runner):
        assert runner.update_agent("nobody", depth=1) is None

    def test_delete_agent(self, runner):
        assert runner.delete_agent("s") is True
        assert runner.delete_agent("s") is False
        assert runner.list_agents() == []


class TestStart:
    """Tests for starting and stopping agents."""

    @pytest.mark.asyncio
    async def test_runs_agent_from_current_node(self, runner, tree, llm_client, outputs):
        seen_active = []

        def reply(system, user):
            agent = runner.get_agent("s")
            seen_active.append((agent.active, agent.active_node_id))
            return EXPAND

        llm_client.assistant = reply

        assert await runner.start("s") is True

        agent = runner.get_agent("s")
        assert len(tree.nodes["r"].child_ids) == 2
        assert seen_active == [(True, "r"), (True, "r")]
        assert (agent.active, agent.active_node_id) == (False, None)
        assert agent.outputs == [EXPAND, EXPAND]
        assert outputs == [("s", EXPAND), ("s", EXPAND)]

    @pytest.mark.asyncio
    async def test_unknown_agent(self, runner):
        assert await runner.start("nobody") is False

    @pytest.mark.asyncio
    async def test_refused_on_locked_node(self, runner, llm_client):
        runner.store.lock_node("r", LockReason.WITNESS_ACTIVE)

        assert await runner.start("s") is False
        assert llm_client.continuation_prompts == []

    @pytest.mark.asyncio
    async def test_refused_without_tree(self, runner):
        runner.store.load(None)
        assert await runner.start("s") is False

    @pytest.mark.asyncio
    async def test_refused_while_active(self, runner):
        runner.get_agent("s").active = True
        assert await runner.start("s") is False

    @pytest.mark.asyncio
    async def test_stop_during_run(self, runner, tree, llm_client):
        runner.update_agent("s", depth=3)

        def reply(system, user):
            runner.stop("s")
            return EXPAND

        llm_client.assistant = reply

        assert await runner.start("s") is True

        children = tree.nodes["r"].child_ids
        assert len(children) == 1
        assert tree.nodes[children[0]].child_ids == []
        assert not any(n.locked for n in tree.nodes.values())

    @pytest.mark.asyncio
    async def test_restart_after_stop(self, runner, llm_client):
        llm_client.assistant = CULL
        runner.stop("s")

        assert await runner.start("s") is True
        assert len(llm_client.assistant_calls) == 2

    @pytest.mark.asyncio
    async def test_witness_agent(self, runner, make_tree, llm_client):
        tree = make_tree([("r", None, "R"), ("a", "r", " a"), ("b", "r", " b")])
        runner.store.load(tree)
        runner.add_agent(AgentConfig(id="w", name="Witness", type=AgentType.WITNESS, depth=1))
        llm_client.assistant = "<choice>2</choice>"

        assert await runner.start("w") is True
        assert tree.nodes["r"].text == "R b"

    def test_stop_all_disables_copilot(self, runner):
        runner.copilot.enabled = True
        runner.stop_all()

        assert runner.copilot.enabled is False


class TestExpandCurrent:
    """Tests for manual expansion with the Copilot hook."""

    @pytest.mark.asyncio
    async def test_focus_moves_to_first_child(self, runner, tree, llm_client):
        child_ids = await runner.expand_current()

        assert len(child_ids) == 2
        assert tree.current_node_id == child_ids[0]
        assert llm_client.assistant_calls == []
        assert not tree.nodes["r"].locked

    @pytest.mark.asyncio
    async def test_focus_stays_if_user_moved(self, runner, make_tree, llm_client):
        tree = make_tree([("r", None, "Once"), ("a", "r", " a")])
        runner.store.load(tree)

        def moving_continuation(prompt):
            tree.current_node_id = "a"
            return " more"

        llm_client.continuation = moving_continuation
        await runner.expand_current()

        assert tree.current_node_id == "a"

    @pytest.mark.asyncio
    async def test_copilot_culls_all_but_current(self, runner, tree, llm_client, outputs):
        runner.copilot = CopilotConfig(enabled=True, instructions="Be strict.")
        llm_client.assistant = CULL

        child_ids = await runner.expand_current()

        assert tree.nodes["r"].child_ids == [child_ids[0]]
        assert runner.copilot.outputs == [CULL, CULL]
        assert outputs == [("copilot", CULL), ("copilot", CULL)]

    @pytest.mark.asyncio
    async def test_copilot_needs_instructions(self, runner, llm_client):
        runner.copilot = CopilotConfig(enabled=True, instructions="  ")

        await runner.expand_current()
        assert llm_client.assistant_calls == []

    @pytest.mark.asyncio
    async def test_disabling_copilot_stops_it(self, runner, tree, llm_client):
        runner.copilot = CopilotConfig(enabled=True, instructions="Be strict.")

        def reply(system, user):
            runner.copilot.enabled = False
            return CULL

        llm_client.assistant = reply
        await runner.expand_current()

        assert len(llm_client.assistant_calls) == 1
        assert len(tree.nodes["r"].child_ids) == 2


class TestAutoBookmark:
    """Tests for AgentRunner.auto_bookmark."""

    @pytest.mark.asyncio
    async def test_reports_output_under_its_own_id(self, runner, tree, llm_client, outputs):
        llm_client.assistant = "<decision>Y</decision>"

        result = await runner.auto_bookmark("anything", 0)

        assert result.bookmarked == 1
        assert tree.bookmarked_node_ids == ["r"]
        assert outputs == [(AUTO_BOOKMARK_ID, "<decision>Y</decision>")]

    @pytest.mark.asyncio
    async def test_invalid_criteria_raises(self, runner):
        with pytest.raises(ValueError):
            await runner.auto_bookmark("", 0)
