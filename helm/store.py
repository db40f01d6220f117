"""
Tree Store - the single writer for a loaded tree.

All structural mutation goes through this class. Refused operations
(structural violations, lock conflicts, bookmark anchors) are no-ops that
return None/False and leave a diagnostic in the log; they never raise.

Agents must not hold TreeNode objects across an await. They keep ids and
re-read through get_tree()/get_node() after every suspension point.
"""

from typing import Callable, Optional

from shared.logging import get_logger

from . import locks
from .branch import nodes_deepest_first, subtree_ids
from .locks import LockReason
from .models import Tree, TreeNode, new_node_id
from .navigation import get_next_bookmarked_node, get_next_bookmarked_node_with_hierarchy

log = get_logger("helm", "store")


class TreeStore:
    """
    In-memory tree with mutation primitives.

    Args:
        tree: Initially loaded tree (optional)
        on_change: Called with the tree after every committed change that
            should reach disk (lock changes excluded)
    """

    def __init__(
        self,
        tree: Optional[Tree] = None,
        on_change: Optional[Callable[[Tree], None]] = None,
    ):
        self._tree = tree
        self._on_change = on_change

    # ==================== Access ====================

    def get_tree(self) -> Optional[Tree]:
        """The live tree. Call again after any await."""
        return self._tree

    @property
    def tree(self) -> Optional[Tree]:
        return self._tree

    def load(self, tree: Optional[Tree]) -> None:
        """Replace the loaded tree (None unloads)."""
        self._tree = tree

    def get_node(self, node_id: str) -> Optional[TreeNode]:
        if self._tree is None:
            return None
        return self._tree.nodes.get(node_id)

    def children_of(self, node_id: str) -> list[str]:
        """Live child ids of node_id, in order."""
        node = self.get_node(node_id)
        if node is None:
            return []
        return [c for c in node.child_ids if c in self._tree.nodes]

    def is_bookmarked(self, node_id: str) -> bool:
        return self._tree is not None and node_id in self._tree.bookmarked_node_ids

    def _changed(self) -> None:
        if self._on_change and self._tree is not None:
            self._on_change(self._tree)

    def _refuse(self, operation: str, node_id: str, reason: str, **data) -> None:
        log.debug(f"helm.store.{operation}_refused", node_id=node_id, reason=reason, **data)

    # ==================== Locks ====================

    def lock_node(self, node_id: str, reason: LockReason) -> bool:
        """
        Lock a node for reason.

        Succeeds if the node is unlocked or already locked for the same
        reason; fails if another reason holds it.
        """
        node = self.get_node(node_id)
        if node is None:
            return False
        if not locks.acquire(node, reason):
            log.debug(
                "helm.store.lock_conflict",
                node_id=node_id,
                requested=reason.value,
                held=node.lock_reason.value if node.lock_reason else None,
            )
            return False
        return True

    def unlock_node(self, node_id: str) -> None:
        node = self.get_node(node_id)
        if node is not None:
            locks.release(node)

    # ==================== Node edits ====================

    def set_current_node(self, node_id: str) -> bool:
        if self.get_node(node_id) is None:
            return False
        self._tree.current_node_id = node_id
        self._changed()
        return True

    def update_node_text(self, node_id: str, text: str) -> bool:
        """Replace a node's text. Refused while the node is locked."""
        node = self.get_node(node_id)
        if node is None:
            return False
        if node.locked:
            self._refuse("update_text", node_id, "locked", lock_reason=node.lock_reason.value)
            return False
        node.text = text
        self._changed()
        return True

    def add_node(self, parent_id: str, text: str) -> Optional[str]:
        """
        Append a new unlocked child to parent_id.

        Returns:
            The new node id, or None if the parent is missing or held by a
            lock outside ADD_NODE_PERMITTED_LOCKS
        """
        parent = self.get_node(parent_id)
        if parent is None:
            self._refuse("add_node", parent_id, "missing_parent")
            return None
        if locks.is_blocked(parent, locks.ADD_NODE_PERMITTED_LOCKS):
            self._refuse("add_node", parent_id, "locked")
            return None

        node = TreeNode(id=new_node_id(), text=text, parent_id=parent_id)
        self._tree.nodes[node.id] = node
        parent.child_ids.append(node.id)
        self._changed()
        return node.id

    def split_node_at(
        self,
        node_id: str,
        offset: int,
        require_unlocked_children: bool = False,
    ) -> Optional[str]:
        """
        Split a node's text at offset.

        The node keeps text[:offset]; a new only child takes text[offset:]
        and adopts all of the node's previous children in order.

        Returns:
            The new child id, or None if refused
        """
        node = self.get_node(node_id)
        if node is None:
            return None
        if node.locked:
            self._refuse("split", node_id, "locked")
            return None
        if offset < 0 or offset > len(node.text):
            self._refuse("split", node_id, "offset_out_of_range", offset=offset)
            return None
        if require_unlocked_children and any(
            self._tree.nodes[c].locked for c in self.children_of(node_id)
        ):
            self._refuse("split", node_id, "child_locked")
            return None

        moved = list(node.child_ids)
        child = TreeNode(
            id=new_node_id(),
            text=node.text[offset:],
            parent_id=node_id,
            child_ids=moved,
        )
        node.text = node.text[:offset]
        node.child_ids = [child.id]
        for moved_id in moved:
            moved_node = self._tree.nodes.get(moved_id)
            if moved_node is not None:
                moved_node.parent_id = child.id
        self._tree.nodes[child.id] = child
        self._changed()
        return child.id

    # ==================== Removal ====================

    def delete_node(self, node_id: str) -> bool:
        """
        Delete a node and its whole subtree.

        Refused for the root, for a node or parent held by a lock outside
        DELETE_PERMITTED_LOCKS, and when the node or anything beneath it is
        bookmarked. If the current node is removed, focus moves to the
        previous sibling, else the first remaining sibling, else the parent.
        """
        tree = self._tree
        if tree is None or node_id == tree.root_id:
            return False
        node = tree.nodes.get(node_id)
        if node is None:
            return False
        parent = tree.nodes.get(node.parent_id) if node.parent_id else None
        if parent is None:
            return False
        if locks.is_blocked(node, locks.DELETE_PERMITTED_LOCKS):
            self._refuse("delete", node_id, "locked", lock_reason=node.lock_reason.value)
            return False
        if locks.is_blocked(parent, locks.DELETE_PERMITTED_LOCKS):
            self._refuse("delete", node_id, "parent_locked", lock_reason=parent.lock_reason.value)
            return False

        doomed = subtree_ids(tree, node_id)
        doomed_set = set(doomed)
        if any(b in doomed_set for b in tree.bookmarked_node_ids):
            self._refuse("delete", node_id, "bookmarked")
            return False

        if node_id not in parent.child_ids:
            self._refuse("delete", node_id, "not_listed_by_parent")
            return False
        index = parent.child_ids.index(node_id)
        parent.child_ids.remove(node_id)
        for doomed_id in doomed:
            del tree.nodes[doomed_id]
        tree.bookmarked_node_ids = [b for b in tree.bookmarked_node_ids if b not in doomed_set]

        if tree.current_node_id in doomed_set:
            siblings = parent.child_ids
            if index > 0 and len(siblings) >= index:
                tree.current_node_id = siblings[index - 1]
            elif siblings:
                tree.current_node_id = siblings[0]
            else:
                tree.current_node_id = parent.id

        log.debug("helm.store.node_deleted", node_id=node_id, removed=len(doomed))
        self._changed()
        return True

    def _can_merge(self, node_id: str, permitted: frozenset) -> bool:
        tree = self._tree
        if node_id == tree.root_id:
            return False
        node = tree.nodes.get(node_id)
        if node is None or locks.is_blocked(node, permitted):
            return False
        parent = tree.nodes.get(node.parent_id) if node.parent_id else None
        if parent is None or locks.is_blocked(parent, permitted):
            return False
        if any(c != node_id and c in tree.nodes for c in parent.child_ids):
            return False
        return node_id not in tree.bookmarked_node_ids

    def _absorb(self, node_id: str) -> None:
        """Fold node_id into its parent. Caller has checked _can_merge."""
        tree = self._tree
        node = tree.nodes[node_id]
        parent = tree.nodes[node.parent_id]

        parent.text = parent.text + node.text
        parent.child_ids = [c for c in parent.child_ids if c != node_id]
        for child_id in node.child_ids:
            child = tree.nodes.get(child_id)
            if child is not None:
                child.parent_id = parent.id
                parent.child_ids.append(child_id)
        del tree.nodes[node_id]

        if tree.current_node_id == node_id:
            tree.current_node_id = parent.id

    def merge_with_parent(self, node_id: str) -> bool:
        """
        Append an only child's text to its parent and remove the child.

        The child's children move up to the parent. Refused for the root,
        for nodes with siblings, for bookmarked nodes and when the node or
        parent holds a lock outside MERGE_PERMITTED_LOCKS.
        """
        if self._tree is None:
            return False
        if not self._can_merge(node_id, locks.MERGE_PERMITTED_LOCKS):
            self._refuse("merge", node_id, "not_mergeable")
            return False
        self._absorb(node_id)
        log.debug("helm.store.node_merged", node_id=node_id)
        self._changed()
        return True

    def _merge_passes(self, permitted: frozenset) -> int:
        merged = 0
        while True:
            merged_this_pass = 0
            for node_id in nodes_deepest_first(self._tree):
                if node_id in self._tree.nodes and self._can_merge(node_id, permitted):
                    self._absorb(node_id)
                    merged_this_pass += 1
            merged += merged_this_pass
            if merged_this_pass == 0:
                return merged

    def mass_merge(self) -> int:
        """
        Merge every mergeable only child into its parent, deepest first,
        until nothing more can merge. Blocked nodes are skipped.

        Returns:
            Number of nodes merged away
        """
        if self._tree is None:
            return 0
        merged = self._merge_passes(locks.MERGE_PERMITTED_LOCKS)
        if merged:
            log.info("helm.store.mass_merged", merged=merged)
            self._changed()
        return merged

    def _nodes_to_keep(self) -> set[str]:
        tree = self._tree
        bookmarked = set(tree.bookmarked_node_ids)
        keep: set[str] = set()

        for bookmark_id in tree.bookmarked_node_ids:
            current = bookmark_id
            while current is not None and current in tree.nodes:
                keep.add(current)
                current = tree.nodes[current].parent_id

        # Post-order pass: which nodes have a bookmark at or below them
        leads_to_bookmark: set[str] = set()
        for node_id in nodes_deepest_first(tree):
            node = tree.nodes[node_id]
            if node_id in bookmarked or any(c in leads_to_bookmark for c in node.child_ids):
                leads_to_bookmark.add(node_id)

        for bookmark_id in tree.bookmarked_node_ids:
            node = tree.nodes.get(bookmark_id)
            if node is None:
                continue
            nested = any(c in leads_to_bookmark for c in node.child_ids)
            for child_id in node.child_ids:
                if nested:
                    keep.update(
                        i for i in self._paths_to(child_id, leads_to_bookmark)
                    )
                else:
                    keep.update(subtree_ids(tree, child_id))
        return keep

    def _paths_to(self, start_id: str, leads_to_bookmark: set[str]) -> list[str]:
        """Nodes under start_id that lie on a path to a bookmark."""
        found = []
        stack = [start_id]
        while stack:
            node_id = stack.pop()
            if node_id not in leads_to_bookmark:
                continue
            found.append(node_id)
            stack.extend(self._tree.nodes[node_id].child_ids)
        return found

    def cull_and_merge_to_bookmarks(self) -> bool:
        """
        Reduce the tree to its bookmarks.

        Keeps every bookmark and its ancestors. Below a bookmark with no
        nested bookmarks the whole subtree stays; below one with nested
        bookmarks only the paths to them stay. Everything else is deleted
        and the survivors are mass-merged (any lock blocks that merge).

        Returns:
            False (no-op) if there are no bookmarks
        """
        tree = self._tree
        if tree is None or not tree.bookmarked_node_ids:
            return False

        keep = self._nodes_to_keep()
        doomed = [node_id for node_id in tree.nodes if node_id not in keep]
        for node_id in doomed:
            node = tree.nodes[node_id]
            parent = tree.nodes.get(node.parent_id) if node.parent_id else None
            if parent is not None and node_id in parent.child_ids:
                parent.child_ids.remove(node_id)
        for node_id in doomed:
            del tree.nodes[node_id]

        merged = self._merge_passes(locks.CULL_MERGE_PERMITTED_LOCKS)

        if tree.current_node_id not in tree.nodes:
            tree.current_node_id = tree.root_id

        log.info("helm.store.culled_to_bookmarks", deleted=len(doomed), merged=merged)
        self._changed()
        return True

    # ==================== Bookmarks ====================

    def toggle_bookmark(self, node_id: str) -> Optional[bool]:
        """
        Add or remove a bookmark.

        Returns:
            The new bookmarked state, or None if node_id is not in the tree
        """
        if self.get_node(node_id) is None:
            return None
        bookmarks = self._tree.bookmarked_node_ids
        if node_id in bookmarks:
            bookmarks.remove(node_id)
            state = False
        else:
            bookmarks.append(node_id)
            state = True
        self._changed()
        return state

    def get_next_bookmarked_node(self, current_id: str, direction: str) -> Optional[str]:
        if self._tree is None:
            return None
        return get_next_bookmarked_node(self._tree, current_id, direction)

    def get_next_bookmarked_node_with_hierarchy(
        self, current_id: str, direction: str,
    ) -> Optional[str]:
        if self._tree is None:
            return None
        return get_next_bookmarked_node_with_hierarchy(self._tree, current_id, direction)

    # ==================== Invariants ====================

    def check_invariants(self) -> list[str]:
        """Describe every structural invariant the loaded tree violates."""
        tree = self._tree
        if tree is None:
            return []
        problems = []
        if tree.root_id not in tree.nodes:
            problems.append(f"root {tree.root_id} missing")
            return problems
        if tree.current_node_id not in tree.nodes:
            problems.append(f"current node {tree.current_node_id} missing")
        for bookmark_id in tree.bookmarked_node_ids:
            if bookmark_id not in tree.nodes:
                problems.append(f"bookmark {bookmark_id} dangling")
        for node in tree.nodes.values():
            if node.locked != (node.lock_reason is not None):
                problems.append(f"{node.id} lock flag and reason disagree")
            for child_id in node.child_ids:
                if child_id not in tree.nodes:
                    problems.append(f"{node.id} lists dangling child {child_id}")
            if node.id == tree.root_id:
                if node.parent_id is not None:
                    problems.append("root has a parent")
                continue
            parent = tree.nodes.get(node.parent_id) if node.parent_id else None
            if parent is None:
                problems.append(f"{node.id} has no parent in the tree")
            elif parent.child_ids.count(node.id) != 1:
                problems.append(f"{node.id} appears {parent.child_ids.count(node.id)} times under its parent")
        seen: set[str] = set()
        stack = [tree.root_id]
        while stack:
            node_id = stack.pop()
            if node_id in seen:
                problems.append(f"{node_id} reachable twice from root")
                break
            seen.add(node_id)
            stack.extend(c for c in tree.nodes[node_id].child_ids if c in tree.nodes)
        else:
            if len(seen) != len(tree.nodes):
                problems.append(f"{len(tree.nodes) - len(seen)} nodes unreachable from root")
        return problems
