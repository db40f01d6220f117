#!/usr/bin/env python3
"""
Helm - branching text with Scout, Witness and Campaign agents

Usage:
    helm list                         # List stored trees
    helm new NAME                     # Create a tree and select it
    helm open NAME                    # Select a tree
    helm show                         # Show the tree and the current branch
    helm seed INSTRUCTIONS...         # Write the root text from instructions
    helm edit TEXT...                 # Replace the current node's text
    helm expand [copilot]             # Generate continuations of the current node
    helm split OFFSET                 # Split the current node at OFFSET
    helm delete [NODE]                # Delete a node and its subtree
    helm merge [NODE]                 # Merge an only child into its parent
    helm mass-merge                   # Merge every only child, deepest first
    helm cull                         # Reduce the tree to its bookmarks
    helm bookmark [NODE]              # Toggle a bookmark
    helm goto NODE|up|down|left|right # Move to a node or the next bookmark
    helm scout [AGENT] [key=value]    # Run a Scout from the current node
    helm witness [AGENT] [key=value]  # Run a Witness from the current node
    helm campaign [AGENT] [key=value] # Run a Campaign from the current node
    helm auto-bookmark CRITERIA... [parents=N]
    helm export PATH                  # Write the tree as JSON
    helm import PATH                  # Store a tree from exported JSON
    helm rename NAME                  # Rename the selected tree
    helm remove NAME                  # Delete a stored tree
    helm extract NAME                 # Copy the current subtree to a new tree

NODE is a node id or any unique prefix of one. Agent options are
vision, range, depth, cycles and instructions. Ctrl+C stops running agents.
"""

import asyncio
import signal
import sys
from dataclasses import replace
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.tree import Tree as RichTree

from helm import AgentConfig, AgentRunner, AgentType, DecisionEngine, Workspace, load_config
from helm.agents import ContinuationGenerator
from helm.branch import lineage
from helm.errors import PersistenceError
from helm.models import DEFAULT_WITNESS_INSTRUCTIONS
from helm.navigation import DOWN, LEFT, RIGHT, UP
from llm import LLMClient

console = Console()


class Session:
    """Everything one command needs, built from config.yaml."""

    def __init__(self):
        self.settings = load_config()
        self.workspace = Workspace(self.settings.trees_dir, self.settings.save_debounce_seconds)
        self.client = LLMClient(
            api_key=self.settings.api_key,
            base_url=self.settings.base_url,
            requests_per_minute=self.settings.requests_per_minute,
            timeout_seconds=self.settings.timeout_seconds,
        )
        self.engine = DecisionEngine(
            self.client,
            self.settings.assistant,
            max_attempts=self.settings.retry_max_attempts,
            base_delay=self.settings.retry_base_delay,
        )
        self.generator = ContinuationGenerator(
            self.client,
            self.settings.continuations,
            max_attempts=self.settings.retry_max_attempts,
            base_delay=self.settings.retry_base_delay,
        )
        self.runner = AgentRunner(
            self.workspace.store,
            self.engine,
            self.generator,
            copilot=self.settings.copilot,
            agents=self.settings.agents,
            on_output=print_output,
        )
        self.workspace.restore()

    @property
    def store(self):
        return self.workspace.store

    def require_tree(self):
        tree = self.workspace.tree
        if tree is None:
            console.print("[red]No tree selected. Use 'helm new NAME' or 'helm open NAME'.[/red]")
            sys.exit(1)
        return tree

    def resolve_node(self, ref: Optional[str]) -> str:
        tree = self.require_tree()
        if not ref:
            return tree.current_node_id
        if ref in tree.nodes:
            return ref
        matches = [n for n in tree.nodes if n.startswith(ref) or n.startswith(f"node_{ref}")]
        if len(matches) != 1:
            console.print(f"[red]{'No' if not matches else 'Ambiguous'} node matching {ref!r}[/red]")
            sys.exit(1)
        return matches[0]

    async def run(self, coro):
        """Await coro with Ctrl+C wired to stop every agent, then save."""
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, self.interrupt)
        except NotImplementedError:
            pass  # Windows event loops have no signal handlers
        try:
            return await coro
        finally:
            self.workspace.close()
            await self.client.close()

    def interrupt(self):
        console.print("\n[yellow]Stopping...[/yellow]")
        self.runner.stop_all()


def print_output(source: str, text: str):
    console.print(Panel(text.strip(), title=source, title_align="left", border_style="dim"))


def short(node_id: str) -> str:
    return node_id.removeprefix("node_")[:8]


def report(ok, success: str, failure: str):
    if ok:
        console.print(f"[green]✓[/green] {success}")
    else:
        console.print(f"[yellow]![/yellow] {failure}")


# ==================== Trees ====================

def cmd_list(session: Session, args: list[str]):
    """List stored trees."""
    current = session.workspace.tree
    trees = session.workspace.list_trees()
    if not trees:
        console.print("[yellow]No trees yet.[/yellow]")
    for tree_id in trees:
        marker = "[bold cyan]*[/bold cyan]" if current and current.id == tree_id else " "
        console.print(f" {marker} {tree_id}")


def cmd_new(session: Session, args: list[str]):
    tree = session.workspace.create_tree(" ".join(args))
    console.print(f"[green]✓[/green] Created tree [bold]{tree.id}[/bold]")


def cmd_open(session: Session, args: list[str]):
    tree = session.workspace.select_tree(" ".join(args))
    report(tree, f"Selected tree [bold]{' '.join(args)}[/bold]", "Could not load that tree")


def cmd_show(session: Session, args: list[str]):
    """Show the tree and the text of the current branch."""
    tree = session.require_tree()
    bookmarks = set(tree.bookmarked_node_ids)
    on_branch = set(lineage(tree, tree.current_node_id))

    def label(node_id: str) -> str:
        node = tree.nodes[node_id]
        preview = node.text.replace("\n", " ")[:60] or "<empty>"
        mark = "★ " if node_id in bookmarks else ""
        lock = f" [red]({node.lock_reason.value})[/red]" if node.locked else ""
        style = "bold cyan" if node_id == tree.current_node_id else ("cyan" if node_id in on_branch else "")
        text = f"{mark}[dim]{short(node_id)}[/dim] {preview}"
        return f"[{style}]{text}[/{style}]{lock}" if style else f"{text}{lock}"

    root = RichTree(label(tree.root_id))
    stack = [(tree.root_id, root)]
    while stack:
        node_id, branch = stack.pop()
        for child_id in reversed(tree.nodes[node_id].child_ids):
            stack.append((child_id, branch.add(label(child_id))))
    console.print(root)

    text = "".join(tree.nodes[n].text for n in lineage(tree, tree.current_node_id))
    console.print(Panel(text or "<empty>", title=f"{tree.name} @ {short(tree.current_node_id)}"))


def cmd_export(session: Session, args: list[str]):
    path = session.workspace.export_tree(args[0] if args else ".")
    console.print(f"[green]✓[/green] Exported to {path}")


def cmd_import(session: Session, args: list[str]):
    tree = session.workspace.import_tree(args[0])
    console.print(f"[green]✓[/green] Imported as [bold]{tree.id}[/bold]")


def cmd_rename(session: Session, args: list[str]):
    session.require_tree()
    tree = session.workspace.rename_tree(" ".join(args))
    console.print(f"[green]✓[/green] Renamed to [bold]{tree.id}[/bold]")


def cmd_remove(session: Session, args: list[str]):
    name = " ".join(args)
    session.workspace.delete_tree(name)
    console.print(f"[green]✓[/green] Deleted tree [bold]{name}[/bold]")


def cmd_extract(session: Session, args: list[str]):
    session.require_tree()
    tree = session.workspace.extract_subtree(" ".join(args))
    console.print(f"[green]✓[/green] Extracted {len(tree.nodes)} nodes to [bold]{tree.id}[/bold]")


# ==================== Editing ====================

def cmd_seed(session: Session, args: list[str]):
    """Ask the assistant model for an opening text and use it as the root."""
    tree = session.require_tree()

    async def seed():
        result = await session.engine.generate_seed_prompt(" ".join(args))
        if result.prompt is None:
            console.print(f"[red]Seed failed: {result.error}[/red]")
            return
        report(session.store.update_node_text(tree.root_id, result.prompt),
               "Root text written", "Root is locked")

    asyncio.run(session.run(seed()))


def cmd_edit(session: Session, args: list[str]):
    node_id = session.resolve_node(None)
    report(session.store.update_node_text(node_id, " ".join(args)),
           "Text updated", "Node is locked")


def cmd_expand(session: Session, args: list[str]):
    """Generate continuations of the current node."""
    session.require_tree()
    if args and args[0] == "copilot":
        session.runner.copilot.enabled = True

    async def expand():
        return await session.runner.expand_current()

    child_ids = asyncio.run(session.run(expand()))
    report(child_ids, f"Added {len(child_ids)} continuations", "No continuations were added")


def cmd_split(session: Session, args: list[str]):
    node_id = session.resolve_node(None)
    child_id = session.store.split_node_at(node_id, int(args[0]))
    report(child_id, f"Split into {short(node_id)} and {short(child_id or '')}", "Cannot split there")


def cmd_delete(session: Session, args: list[str]):
    node_id = session.resolve_node(args[0] if args else None)
    report(session.store.delete_node(node_id), f"Deleted {short(node_id)}",
           "Cannot delete that node (root, locked or bookmarked)")


def cmd_merge(session: Session, args: list[str]):
    node_id = session.resolve_node(args[0] if args else None)
    report(session.store.merge_with_parent(node_id), f"Merged {short(node_id)} into its parent",
           "Cannot merge that node (siblings, bookmark or lock)")


def cmd_mass_merge(session: Session, args: list[str]):
    session.require_tree()
    console.print(f"[green]✓[/green] Merged {session.store.mass_merge()} nodes")


def cmd_cull(session: Session, args: list[str]):
    session.require_tree()
    report(session.store.cull_and_merge_to_bookmarks(),
           "Culled and merged tree to bookmarked nodes",
           "No bookmarked nodes found. Bookmark at least one node first.")


def cmd_bookmark(session: Session, args: list[str]):
    node_id = session.resolve_node(args[0] if args else None)
    state = session.store.toggle_bookmark(node_id)
    console.print(f"{'★ Bookmarked' if state else 'Removed bookmark from'} {short(node_id)}")


def cmd_goto(session: Session, args: list[str]):
    tree = session.require_tree()
    target = args[0] if args else ""
    if target in (UP, DOWN, LEFT, RIGHT):
        if target in (UP, DOWN):
            node_id = session.store.get_next_bookmarked_node(tree.current_node_id, target)
        else:
            node_id = session.store.get_next_bookmarked_node_with_hierarchy(tree.current_node_id, target)
        if node_id is None:
            console.print("[yellow]No bookmarks.[/yellow]")
            return
    else:
        node_id = session.resolve_node(target)
    session.store.set_current_node(node_id)
    console.print(f"Now at {short(node_id)}")


# ==================== Agents ====================

_OPTION_TYPES = {"vision": int, "range": int, "depth": int, "cycles": int, "instructions": str}


def _agent_config(session: Session, agent_type: AgentType, args: list[str]) -> AgentConfig:
    """Configured agent named by the first argument, or a fresh one, with key=value overrides."""
    options = dict(a.split("=", 1) for a in args if "=" in a)
    names = [a for a in args if "=" not in a]

    config = session.runner.get_agent(names[0]) if names else None
    if config is None:
        config = AgentConfig(
            id=names[0] if names else agent_type.value.lower(),
            name=names[0] if names else agent_type.value,
            type=agent_type,
        )
        if agent_type == AgentType.WITNESS:
            config.instructions = DEFAULT_WITNESS_INSTRUCTIONS
    elif config.type != agent_type:
        console.print(f"[red]{config.id} is a {config.type.value}, not a {agent_type.value}[/red]")
        sys.exit(1)

    updates = {}
    for key, value in options.items():
        if key not in _OPTION_TYPES:
            console.print(f"[red]Unknown option {key!r}[/red]")
            sys.exit(1)
        updates[key] = _OPTION_TYPES[key](value)
    return replace(config, outputs=[], **updates)


def _run_agent(session: Session, agent_type: AgentType, args: list[str]):
    session.require_tree()
    config = _agent_config(session, agent_type, args)
    session.runner.delete_agent(config.id)
    session.runner.add_agent(config)

    console.print(f"\n[bold]{config.type.value} {config.name}[/bold] "
                  f"vision={config.vision} range={config.range} depth={config.depth}")
    console.print("Press Ctrl+C to stop.\n")

    started = asyncio.run(session.run(session.runner.start(config.id)))
    report(started, f"{config.type.value} finished", "Cannot start: the current node is locked")


def cmd_scout(session: Session, args: list[str]):
    _run_agent(session, AgentType.SCOUT, args)


def cmd_witness(session: Session, args: list[str]):
    _run_agent(session, AgentType.WITNESS, args)


def cmd_campaign(session: Session, args: list[str]):
    _run_agent(session, AgentType.CAMPAIGN, args)


def cmd_auto_bookmark(session: Session, args: list[str]):
    """Bookmark every node that meets free-text criteria."""
    session.require_tree()
    parents = 0
    words = []
    for arg in args:
        if arg.startswith("parents="):
            parents = int(arg.split("=", 1)[1])
        else:
            words.append(arg)

    result = asyncio.run(session.run(session.runner.auto_bookmark(" ".join(words), parents)))
    console.print(f"[green]✓[/green] Processed {result.processed} of {result.total} nodes. "
                  f"Bookmarked {result.bookmarked} nodes.")


def cmd_help(session: Optional[Session] = None, args: Optional[list[str]] = None):
    """Show help."""
    console.print(__doc__)


COMMANDS = {
    "list": cmd_list,
    "new": cmd_new,
    "open": cmd_open,
    "show": cmd_show,
    "seed": cmd_seed,
    "edit": cmd_edit,
    "expand": cmd_expand,
    "split": cmd_split,
    "delete": cmd_delete,
    "merge": cmd_merge,
    "mass-merge": cmd_mass_merge,
    "cull": cmd_cull,
    "bookmark": cmd_bookmark,
    "goto": cmd_goto,
    "scout": cmd_scout,
    "witness": cmd_witness,
    "campaign": cmd_campaign,
    "auto-bookmark": cmd_auto_bookmark,
    "export": cmd_export,
    "import": cmd_import,
    "rename": cmd_rename,
    "remove": cmd_remove,
    "extract": cmd_extract,
}


def main():
    if len(sys.argv) < 2 or sys.argv[1].lower() in ("help", "--help", "-h"):
        cmd_help()
        return

    cmd = sys.argv[1].lower()
    if cmd not in COMMANDS:
        console.print(f"[red]Unknown command: {cmd}[/red]")
        cmd_help()
        return

    session = Session()
    try:
        COMMANDS[cmd](session, sys.argv[2:])
    except (PersistenceError, ValueError, KeyError) as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)
    finally:
        session.workspace.close()


if __name__ == "__main__":
    main()
