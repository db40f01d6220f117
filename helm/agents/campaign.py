"""
Campaign - alternating Scout and Witness cycles.
"""

from shared.logging import get_logger

from ..branch import deepest_node
from ..models import (
    DEFAULT_SCOUT_INSTRUCTIONS,
    DEFAULT_WITNESS_INSTRUCTIONS,
    AgentConfig,
    AgentType,
)
from .context import AgentContext
from .scout import run_scout
from .witness import run_witness

log = get_logger("helm", "campaign")


def _pick(override, fallback):
    return fallback if override is None else override


def phase_instructions(config: AgentConfig) -> tuple[str, str]:
    """Scout and Witness instructions: phase text, else base text, else defaults."""
    base = (config.instructions or "").strip()
    scout_fallback = config.instructions if base else DEFAULT_SCOUT_INSTRUCTIONS
    witness_fallback = config.instructions if base else DEFAULT_WITNESS_INSTRUCTIONS

    scout = config.campaign_scout_instructions
    witness = config.campaign_witness_instructions
    return (
        scout if scout and scout.strip() else scout_fallback,
        witness if witness and witness.strip() else witness_fallback,
    )


def scout_phase_config(config: AgentConfig) -> AgentConfig:
    """Private Scout settings for one Campaign round. Never registered."""
    instructions, _ = phase_instructions(config)
    return AgentConfig(
        id=f"{config.id}__scout",
        name="Campaign Scout (private)",
        type=AgentType.SCOUT,
        instructions=instructions,
        vision=_pick(config.campaign_scout_vision, config.vision),
        range=_pick(config.campaign_scout_range, config.range),
        depth=_pick(config.campaign_scout_depth, config.depth),
    )


def witness_phase_config(config: AgentConfig, depth: int) -> AgentConfig:
    """Private Witness settings climbing depth levels."""
    _, instructions = phase_instructions(config)
    return AgentConfig(
        id=f"{config.id}__witness",
        name="Campaign Witness (private)",
        type=AgentType.WITNESS,
        instructions=instructions,
        vision=_pick(config.campaign_witness_vision, config.vision),
        range=_pick(config.campaign_witness_range, config.range),
        depth=depth,
    )


def _plural(count: int) -> str:
    return f"{count} cycle{'s' if count != 1 else ''}"


async def run_campaign(ctx: AgentContext, start_id: str, config: AgentConfig) -> None:
    """
    Run config.cycles rounds of Scout then Witness from start_id.

    After each Scout phase the deepest node under start_id is found again
    and Witness climbs from it as many levels as it lies below start_id.
    The Witness phase is skipped when Scout left no children.
    """
    cycles = config.cycles or 1
    try:
        ctx.emit(f"Campaign starting: {_plural(cycles)} planned")
        log.info("helm.campaign.started", node_id=start_id, cycles=cycles)

        for cycle in range(1, cycles + 1):
            if ctx.should_stop():
                ctx.emit(f"Campaign stopped by user at cycle {cycle}/{cycles}")
                break

            ctx.emit(f"Campaign cycle {cycle}/{cycles} starting...")

            scout_config = scout_phase_config(config)
            ctx.emit(
                f"  Scout phase: exploring with vision={scout_config.vision}, "
                f"range={scout_config.range}, depth={scout_config.depth}"
            )
            await run_scout(ctx, start_id, scout_config)
            if ctx.should_stop():
                break

            tree = ctx.store.get_tree()
            if tree is None or start_id not in tree.nodes:
                log.warning("helm.campaign.start_node_gone", node_id=start_id)
                break
            deepest_id, max_depth = deepest_node(tree, start_id)
            if max_depth == 0:
                ctx.emit("  Witness phase: skipped (no children to merge)")
                continue

            ctx.emit(f"  Witness phase: starting from deepest node at depth={max_depth}")
            await run_witness(ctx, deepest_id, witness_phase_config(config, max_depth))

            if ctx.should_stop():
                ctx.emit(f"Campaign stopped by user after Witness at cycle {cycle}/{cycles}")
                break

            ctx.emit(f"Campaign cycle {cycle}/{cycles} completed.")
            log.info("helm.campaign.cycle_completed", cycle=cycle, cycles=cycles)

        ctx.emit(f"Campaign finished: {_plural(cycles)} completed.")
    except Exception as e:
        log.exception(e, "helm.campaign.error", {"node_id": start_id})
        ctx.emit(f"Campaign error: {e}")
