"""Tests for continuation generation and node expansion."""

import pytest

from helm.agents import expand_node
from helm.locks import LockReason
from llm import LLMRequestError


class TestContinuationGenerator:
    """Tests for ContinuationGenerator.generate."""

    @pytest.mark.asyncio
    async def test_requests_count_continuations(self, make_tree, make_ctx, llm_client):
        ctx = make_ctx(make_tree([("r", None, "Once")]))
        texts = await ctx.generator.generate("Once", 3)

        assert sorted(texts) == [" c1", " c2", " c3"]
        assert llm_client.continuation_prompts == ["Once"] * 3

    @pytest.mark.asyncio
    async def test_failed_and_empty_results_are_dropped(self, make_tree, make_ctx, llm_client):
        replies = iter([LLMRequestError("bad", transient=False), "", " kept"])
        llm_client.continuation = lambda prompt: next(replies)
        ctx = make_ctx(make_tree([("r", None, "Once")]))

        assert await ctx.generator.generate("Once", 3) == [" kept"]

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self, make_tree, make_ctx, llm_client):
        replies = iter([LLMRequestError("busy", status=503), " ok"])
        llm_client.continuation = lambda prompt: next(replies)
        ctx = make_ctx(make_tree([("r", None, "Once")]))

        assert await ctx.generator.generate("Once", 1) == [" ok"]
        assert len(llm_client.continuation_prompts) == 2


class TestExpandNode:
    """Tests for expand_node."""

    @pytest.mark.asyncio
    async def test_adds_children_from_branch_text(self, make_tree, make_ctx, llm_client):
        tree = make_tree([("r", None, "Once"), ("a", "r", " upon")])
        ctx = make_ctx(tree)

        child_ids = await expand_node(ctx.store, ctx.generator, "a", 2, LockReason.EXPANDING)

        assert len(child_ids) == 2
        assert ctx.store.children_of("a") == child_ids
        assert llm_client.continuation_prompts == ["Once upon", "Once upon"]
        assert not tree.nodes["a"].locked

    @pytest.mark.asyncio
    async def test_refused_when_locked_by_other_reason(self, make_tree, make_ctx, llm_client):
        tree = make_tree([("r", None, "Once")])
        ctx = make_ctx(tree)
        ctx.store.lock_node("r", LockReason.WITNESS_ACTIVE)

        assert await expand_node(ctx.store, ctx.generator, "r", 2, LockReason.EXPANDING) == []
        assert llm_client.continuation_prompts == []
        assert tree.nodes["r"].lock_reason == LockReason.WITNESS_ACTIVE

    @pytest.mark.asyncio
    async def test_releases_lock_it_reentered(self, make_tree, make_ctx):
        tree = make_tree([("r", None, "Once")])
        ctx = make_ctx(tree)
        ctx.store.lock_node("r", LockReason.SCOUT_ACTIVE)

        await expand_node(ctx.store, ctx.generator, "r", 1, LockReason.SCOUT_ACTIVE)
        assert not tree.nodes["r"].locked

    @pytest.mark.asyncio
    async def test_node_is_locked_while_generating(self, make_tree, make_ctx, llm_client):
        tree = make_tree([("r", None, "Once")])
        ctx = make_ctx(tree)
        seen = []
        llm_client.continuation = lambda prompt: seen.append(tree.nodes["r"].lock_reason) or " x"

        await expand_node(ctx.store, ctx.generator, "r", 1, LockReason.EXPANDING)
        assert seen == [LockReason.EXPANDING]
