"""
Decision Engine - structured decisions from the assistant model.

Each call renders a prompt template, asks the assistant model (with retry)
and parses the reply for a tag. Malformed replies resolve through fallback
heuristics and failed calls resolve to a safe default, so callers always
get a definite answer:

- expand/cull: <decision>expand|cull</decision>, else the word "expand"
  anywhere, else cull. Failure -> cull.
- choice among N: <choice>K</choice>, else "choice K", else the first
  candidate. Failure -> first candidate.
- criteria: <decision>Y|N|Yes|No</decision>, else no. Failure -> no.
"""

import asyncio
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

import yaml

from llm import ModelSettings, with_retry
from shared.logging import get_logger

from .branch import context_nodes, parent_branch_context
from .models import Tree

log = get_logger("helm", "decisions")

PROMPTS_PATH = Path(__file__).parent / "prompts.yaml"

_EXPAND_TAG = re.compile(r"<decision>\s*expand\s*</decision>", re.IGNORECASE)
_CULL_TAG = re.compile(r"<decision>\s*cull\s*</decision>", re.IGNORECASE)
_CHOICE_TAG = re.compile(r"<choice>\s*(\d+)\s*</choice>", re.IGNORECASE)
_CHOICE_LOOSE = re.compile(r"choice\s*(\d+)", re.IGNORECASE)
_YES_NO_TAG = re.compile(r"<decision>\s*(Y|N|Yes|No)\s*</decision>", re.IGNORECASE)
_PROMPT_TAG = re.compile(r"<prompt>(.*?)</prompt>", re.DOTALL)
_PLACEHOLDER = re.compile(r"\{(\w+)\}")


class Decision(str, Enum):
    EXPAND = "expand"
    CULL = "cull"


@dataclass
class ExpansionDecision:
    node_id: str
    decision: Decision
    response: str
    error: Optional[str] = None


@dataclass
class ChoiceDecision:
    selected_id: Optional[str]
    response: str
    error: Optional[str] = None


@dataclass
class CriteriaDecision:
    node_id: str
    matched: bool
    response: str
    error: Optional[str] = None


@dataclass
class SeedPrompt:
    prompt: Optional[str]
    response: str
    error: Optional[str] = None


def load_prompts(path: Path = PROMPTS_PATH) -> dict[str, dict[str, str]]:
    return yaml.safe_load(path.read_text(encoding="utf-8"))


def render(template: str, **values: str) -> str:
    """
    Substitute {name} placeholders in one pass.

    Other braces, and placeholders appearing inside substituted values, are
    left alone.
    """
    return _PLACEHOLDER.sub(lambda m: values.get(m.group(1), m.group(0)), template)


def parse_decision(response: str) -> Decision:
    if _EXPAND_TAG.search(response):
        return Decision.EXPAND
    if _CULL_TAG.search(response):
        return Decision.CULL
    return Decision.EXPAND if "expand" in response.lower() else Decision.CULL


def parse_choice(response: str, count: int) -> int:
    """Zero-based index of the chosen candidate (0 when unparseable)."""
    for pattern in (_CHOICE_TAG, _CHOICE_LOOSE):
        match = pattern.search(response)
        if match:
            index = int(match.group(1)) - 1
            if 0 <= index < count:
                return index
    return 0


def parse_yes_no(response: str) -> bool:
    match = _YES_NO_TAG.search(response)
    if match:
        return match.group(1).upper() in ("Y", "YES")
    return False


def extract_prompt(response: str) -> str:
    match = _PROMPT_TAG.search(response)
    return match.group(1).strip() if match else response


class DecisionEngine:
    """
    Turns assistant-model replies into decisions.

    Args:
        client: Object with an async call_assistant_model(system, user, settings)
        settings: Assistant model settings
        prompts: Prompt templates (defaults to prompts.yaml)
        max_attempts: Attempts per call, including the first
        base_delay: First retry delay in seconds, doubled per retry
    """

    def __init__(
        self,
        client: Any,
        settings: ModelSettings,
        prompts: Optional[dict[str, dict[str, str]]] = None,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.client = client
        self.settings = settings
        self.prompts = prompts or load_prompts()
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._sleep = sleep

    async def _ask(self, kind: str, **values: str) -> str:
        prompt = self.prompts[kind]
        system = prompt["system"]
        user = render(prompt["user_template"], **values)
        return await with_retry(
            lambda: self.client.call_assistant_model(system, user, self.settings),
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            sleep=self._sleep,
        )

    async def decide_expansion(
        self,
        tree: Tree,
        node_id: str,
        instructions: str,
        vision: int,
        role: str = "scout",
    ) -> ExpansionDecision:
        """
        Ask whether node_id should be expanded or culled.

        role selects the prompt: "scout" or "copilot".
        """
        node = tree.nodes.get(node_id)
        if node is None:
            return ExpansionDecision(node_id, Decision.CULL, "Node not found")

        context = context_nodes(tree, node_id, vision)
        context_text = "\n\n".join(f"Node {i + 1}:\n{text}" for i, text in enumerate(context))

        try:
            response = await self._ask(
                role,
                instructions=instructions,
                context=context_text or "No previous context.",
                currentNode=node.text or "<empty>",
            )
        except Exception as e:
            log.warning("helm.decision.expansion_failed", node_id=node_id, role=role, error=str(e))
            return ExpansionDecision(node_id, Decision.CULL, f"Error: {e}", error=str(e))

        decision = parse_decision(response)
        log.debug("helm.decision.expansion", node_id=node_id, role=role, decision=decision.value)
        return ExpansionDecision(node_id, decision, response)

    async def choose(
        self,
        tree: Tree,
        parent_id: str,
        candidate_ids: list[str],
        instructions: str,
        vision: int,
    ) -> ChoiceDecision:
        """Pick the best of several sibling candidates."""
        if not candidate_ids:
            return ChoiceDecision(None, "No candidates available.")

        parent_context = parent_branch_context(tree, parent_id, vision)
        choices_text = "\n\n".join(
            f"Choice {i + 1} (Node {candidate_id}):\n"
            f"{(tree.nodes[candidate_id].text if candidate_id in tree.nodes else '') or '<empty>'}"
            for i, candidate_id in enumerate(candidate_ids)
        )

        try:
            response = await self._ask(
                "witness",
                instructions=instructions,
                parentBranch=parent_context,
                choices=choices_text or "No sibling continuations.",
            )
        except Exception as e:
            log.warning("helm.decision.choice_failed", parent_id=parent_id, error=str(e))
            return ChoiceDecision(candidate_ids[0], f"Error: {e}", error=str(e))

        index = parse_choice(response, len(candidate_ids))
        log.debug("helm.decision.choice", parent_id=parent_id,
                  candidates=len(candidate_ids), chosen=index + 1)
        return ChoiceDecision(candidate_ids[index], response)

    async def meets_criteria(
        self,
        tree: Tree,
        node_id: str,
        criteria: str,
        parents_to_include: int,
    ) -> CriteriaDecision:
        """Ask whether node_id's text meets free-text criteria."""
        node = tree.nodes.get(node_id)
        if node is None:
            return CriteriaDecision(node_id, False, "Node not found")

        if parents_to_include <= 0:
            previous = "None of the previous text has been provided."
        else:
            previous_text = "".join(context_nodes(tree, node_id, parents_to_include))
            previous = f"Previous Text:\n{previous_text}"

        try:
            response = await self._ask(
                "bookmark",
                previous=previous,
                continuation=node.text,
                criteria=criteria,
            )
        except Exception as e:
            log.warning("helm.decision.criteria_failed", node_id=node_id, error=str(e))
            return CriteriaDecision(node_id, False, f"Error: {e}", error=str(e))

        return CriteriaDecision(node_id, parse_yes_no(response), response)

    async def generate_seed_prompt(self, instructions: str) -> SeedPrompt:
        """Write an opening text for a base model from instructions."""
        try:
            response = await self._ask("seed", instructions=instructions)
        except Exception as e:
            log.warning("helm.decision.seed_failed", error=str(e))
            return SeedPrompt(None, f"Error: {e}", error=str(e))
        return SeedPrompt(extract_prompt(response), response)
