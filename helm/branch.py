"""
Read-only walks over a tree.

Every walk is iterative so deep trees never hit the recursion limit.
Functions take the live Tree and node ids; they never hold nodes across calls.
"""

from typing import Iterable, Optional

from .models import Tree


def lineage(tree: Tree, node_id: str) -> list[str]:
    """Ids from the root down to node_id (inclusive)."""
    path = []
    current: Optional[str] = node_id
    while current is not None:
        node = tree.nodes.get(current)
        if node is None:
            break
        path.append(current)
        current = node.parent_id
    path.reverse()
    return path


def branch_text(tree: Tree, node_id: str) -> str:
    """Concatenated text from the root to node_id."""
    return "".join(tree.nodes[i].text for i in lineage(tree, node_id))


def node_start_offset(tree: Tree, node_id: str) -> int:
    """Offset at which node_id's own text begins inside its branch text."""
    path = lineage(tree, node_id)
    return sum(len(tree.nodes[i].text) for i in path[:-1])


def is_ancestor(tree: Tree, ancestor_id: str, node_id: str) -> bool:
    """True if ancestor_id is a strict ancestor of node_id."""
    node = tree.nodes.get(node_id)
    current = node.parent_id if node else None
    while current is not None:
        if current == ancestor_id:
            return True
        parent = tree.nodes.get(current)
        current = parent.parent_id if parent else None
    return False


def depth_of(tree: Tree, node_id: str) -> int:
    """Hops from the root to node_id."""
    return max(len(lineage(tree, node_id)) - 1, 0)


def walk(tree: Tree, start_id: str) -> Iterable[tuple[str, int]]:
    """Yield (node_id, depth below start) in pre-order, children in order."""
    if start_id not in tree.nodes:
        return
    stack = [(start_id, 0)]
    while stack:
        node_id, depth = stack.pop()
        node = tree.nodes.get(node_id)
        if node is None:
            continue
        yield node_id, depth
        for child_id in reversed(node.child_ids):
            stack.append((child_id, depth + 1))


def subtree_ids(tree: Tree, node_id: str) -> list[str]:
    return [i for i, _ in walk(tree, node_id)]


def has_bookmark_in_subtree(
    tree: Tree,
    node_id: str,
    bookmarked: Optional[set[str]] = None,
) -> bool:
    """True if node_id or any of its descendants is bookmarked."""
    if bookmarked is None:
        bookmarked = set(tree.bookmarked_node_ids)
    if not bookmarked:
        return False
    return any(i in bookmarked for i, _ in walk(tree, node_id))


def deepest_node(tree: Tree, start_id: str) -> tuple[str, int]:
    """
    Deepest node under start_id and its depth relative to start_id.

    Ties go to the first node reached in pre-order.
    """
    best_id, best_depth = start_id, 0
    for node_id, depth in walk(tree, start_id):
        if depth > best_depth:
            best_id, best_depth = node_id, depth
    return best_id, best_depth


def nodes_deepest_first(tree: Tree) -> list[str]:
    """All reachable node ids ordered by depth, deepest first."""
    ordered = sorted(walk(tree, tree.root_id), key=lambda item: -item[1])
    return [node_id for node_id, _ in ordered]


def context_nodes(tree: Tree, node_id: str, vision: int) -> list[str]:
    """Texts of up to vision ancestors of node_id, root-most first."""
    texts: list[str] = []
    node = tree.nodes.get(node_id)
    while node is not None and node.parent_id is not None and len(texts) < vision:
        parent = tree.nodes.get(node.parent_id)
        if parent is None:
            break
        texts.append(parent.text)
        node = parent
    texts.reverse()
    return texts


def parent_branch_context(tree: Tree, parent_id: str, vision: int) -> str:
    """
    Describe the branch leading to a set of sibling candidates.

    Includes parent_id and up to vision - 1 of its ancestors, first as one
    appended text and then node by node with boundaries marked.
    """
    chain: list[tuple[str, str]] = []
    current: Optional[str] = parent_id
    while current is not None and len(chain) < vision:
        node = tree.nodes.get(current)
        if node is None:
            break
        chain.append((node.id, node.text or "<empty>"))
        current = node.parent_id
    chain.reverse()

    if not chain:
        return "No parent context available."

    appended = "".join(text for _, text in chain)
    details = []
    for index, (node_id, text) in enumerate(chain):
        distance = len(chain) - index - 1
        if distance == 0:
            label = "Direct parent"
        else:
            label = f"Ancestor {distance} (further back in the branch)"
        details.append(f"{label} ({node_id}):\n{text}")

    return (
        "Appended parent branch text (root → current parent):\n"
        f"{appended or '<empty>'}\n\n"
        "Parent lineage with boundaries:\n" + "\n\n".join(details)
    )
