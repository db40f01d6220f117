"""
Bookmark navigation.

Bookmarks form a cyclic list in insertion order. Hierarchy-aware
navigation prefers bookmarks below (right) or above (left) the current node
before falling back to the cyclic order.
"""

from typing import Optional

from .branch import depth_of, is_ancestor
from .models import Tree

UP = "up"
DOWN = "down"
LEFT = "left"
RIGHT = "right"


def _cyclic(tree: Tree, current_id: str, step: int) -> Optional[str]:
    bookmarks = tree.bookmarked_node_ids
    if not bookmarks:
        return None
    if current_id not in bookmarks:
        # Not on a bookmark: always the first one, not the nearest
        return bookmarks[0]
    index = bookmarks.index(current_id)
    return bookmarks[(index + step) % len(bookmarks)]


def get_next_bookmarked_node(tree: Tree, current_id: str, direction: str) -> Optional[str]:
    """
    Next bookmark in list order ("down") or previous ("up"), wrapping around.

    Returns None when there are no bookmarks.
    """
    if direction not in (UP, DOWN):
        raise ValueError(f"direction must be 'up' or 'down', got {direction!r}")
    return _cyclic(tree, current_id, 1 if direction == DOWN else -1)


def get_next_bookmarked_node_with_hierarchy(
    tree: Tree,
    current_id: str,
    direction: str,
) -> Optional[str]:
    """
    "right": the shallowest bookmarked descendant of current_id.
    "left": the nearest bookmarked ancestor (deepest from the root).

    With no such bookmark, falls back to the next ("right") or previous
    ("left") bookmark in cyclic order.
    """
    if direction not in (LEFT, RIGHT):
        raise ValueError(f"direction must be 'left' or 'right', got {direction!r}")

    bookmarks = tree.bookmarked_node_ids
    if not bookmarks:
        return None

    if direction == RIGHT:
        descendants = [b for b in bookmarks if is_ancestor(tree, current_id, b)]
        if descendants:
            # min keeps the earliest bookmark among equal depths
            return min(descendants, key=lambda b: depth_of(tree, b))
        return _cyclic(tree, current_id, 1)

    ancestors = [b for b in bookmarks if is_ancestor(tree, b, current_id)]
    if ancestors:
        return max(ancestors, key=lambda b: depth_of(tree, b))
    return _cyclic(tree, current_id, -1)
