"""
Root-level shared fixtures for all Helm tests.

Module-specific fixtures should be defined in the test modules that use them.
"""

import os
import shutil
import tempfile
from pathlib import Path
from typing import Callable, Generator, Iterable, Optional

import pytest

# Keep test runs out of the project's logs/ directory
os.environ.setdefault("HELM_LOG_DIR", tempfile.mkdtemp(prefix="helm_test_logs_"))

from helm.agents import AgentContext, ContinuationGenerator  # noqa: E402
from helm.decisions import DecisionEngine  # noqa: E402
from helm.models import Tree, TreeNode  # noqa: E402
from helm.store import TreeStore  # noqa: E402
from llm import ContinuationSettings, ModelSettings  # noqa: E402


async def no_sleep(_seconds: float) -> None:
    return None


class ScriptedLLMClient:
    """
    Stands in for LLMClient.

    Continuations are numbered " c1", " c2", ... unless a continuation
    callable is given. Assistant replies come from `assistant`, which may be
    a string, a list consumed in order, or a callable(system, user). Any
    exception produced by either script is raised instead of returned.
    """

    def __init__(self, assistant=None, continuation: Optional[Callable[[str], str]] = None):
        self.assistant = assistant
        self.continuation = continuation
        self.continuation_prompts: list[str] = []
        self.assistant_calls: list[tuple[str, str]] = []
        self._count = 0

    async def call_continuation_model(self, prompt: str, settings) -> str:
        self.continuation_prompts.append(prompt)
        self._count += 1
        result = self.continuation(prompt) if self.continuation else f" c{self._count}"
        if isinstance(result, Exception):
            raise result
        return result

    async def call_assistant_model(self, system: str, user: str, settings) -> str:
        self.assistant_calls.append((system, user))
        reply = self.assistant
        if callable(reply):
            reply = reply(system, user)
        elif isinstance(reply, list):
            reply = reply.pop(0) if reply else ""
        if isinstance(reply, Exception):
            raise reply
        return reply or ""


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """
    Create a temporary directory for test data.

    Automatically cleaned up after test completion.
    """
    temp_path = Path(tempfile.mkdtemp(prefix="helm_test_"))
    yield temp_path
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def make_tree() -> Callable[..., Tree]:
    """
    Factory for trees built from (id, parent_id, text) rows.

    The first row with no parent is the root. Children keep row order.

    Usage:
        tree = make_tree([("r", None, "Once"), ("a", "r", " upon")], current="a")
    """
    def _make(
        rows: Iterable[tuple[str, Optional[str], str]],
        current: Optional[str] = None,
        bookmarks: Iterable[str] = (),
        tree_id: str = "test",
    ) -> Tree:
        nodes: dict[str, TreeNode] = {}
        root_id = None
        for node_id, parent_id, text in rows:
            nodes[node_id] = TreeNode(id=node_id, text=text, parent_id=parent_id)
            if parent_id is None:
                root_id = root_id or node_id
            else:
                nodes[parent_id].child_ids.append(node_id)
        return Tree(
            id=tree_id,
            name=tree_id,
            nodes=nodes,
            root_id=root_id,
            current_node_id=current or root_id,
            bookmarked_node_ids=list(bookmarks),
        )
    return _make


@pytest.fixture
def llm_client() -> ScriptedLLMClient:
    """Scripted client; set .assistant / .continuation per test."""
    return ScriptedLLMClient()


@pytest.fixture
def make_ctx(llm_client):
    """
    Factory for AgentContext over a tree and the scripted client.

    The returned context has an `outputs` list collecting emitted text.
    """
    def _make(tree: Tree, should_stop: Optional[Callable[[], bool]] = None) -> AgentContext:
        outputs: list[str] = []
        ctx = AgentContext(
            store=TreeStore(tree),
            engine=DecisionEngine(
                llm_client, ModelSettings(model_name="test/assistant"), sleep=no_sleep,
            ),
            generator=ContinuationGenerator(
                llm_client, ContinuationSettings(model_name="test/base"), sleep=no_sleep,
            ),
            on_output=outputs.append,
        )
        if should_stop is not None:
            ctx.should_stop = should_stop
        ctx.outputs = outputs
        return ctx
    return _make
