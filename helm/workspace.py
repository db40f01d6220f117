"""
Workspace - which tree is loaded, and the tree-level operations around it.

The loaded tree lives in a TreeStore wired to a TreeSaver, so every change
schedules a debounced save. Any pending save is flushed before another
tree is loaded, renamed or the workspace closes.
"""

from pathlib import Path
from typing import Optional

from shared.logging import get_logger

from .errors import PersistenceError, TreeNotFoundError
from .models import Tree
from .persistence import TreeRepository, TreeSaver
from .store import TreeStore

log = get_logger("helm", "workspace")

LAST_TREE_FILE = "current_tree.txt"


class Workspace:
    """
    Args:
        trees_dir: Directory holding one folder per tree
        save_debounce_seconds: Delay before a change is written
    """

    def __init__(self, trees_dir: str | Path, save_debounce_seconds: float = 0.5):
        self.repository = TreeRepository(trees_dir)
        self.saver = TreeSaver(self.repository, save_debounce_seconds)
        self.store = TreeStore(on_change=self.saver.schedule)

    @property
    def tree(self) -> Optional[Tree]:
        return self.store.get_tree()

    def _require_tree(self) -> Tree:
        tree = self.store.get_tree()
        if tree is None:
            raise TreeNotFoundError("No tree selected")
        return tree

    def _remember(self, tree_id: Optional[str]) -> None:
        path = self.repository.trees_dir / LAST_TREE_FILE
        if tree_id is None:
            path.unlink(missing_ok=True)
        else:
            path.write_text(tree_id, encoding="utf-8")

    # ==================== Selection ====================

    def list_trees(self) -> list[str]:
        return self.repository.list_trees()

    def select_tree(self, tree_id: str) -> Optional[Tree]:
        """
        Load a tree, keeping its saved current node.

        Returns:
            The loaded tree, or None if it could not be loaded (the
            workspace is then left with no tree)
        """
        self.saver.flush()
        try:
            tree = self.repository.load_tree(tree_id)
        except PersistenceError as e:
            log.error("helm.workspace.select_failed", tree_id=tree_id, error=str(e))
            self.store.load(None)
            self._remember(None)
            return None
        self.store.load(tree)
        self._remember(tree.id)
        return tree

    def restore(self) -> Optional[Tree]:
        """Reload the tree that was selected last, if it still exists."""
        path = self.repository.trees_dir / LAST_TREE_FILE
        if not path.exists():
            return None
        tree_id = path.read_text(encoding="utf-8").strip()
        if not tree_id or not self.repository.exists(tree_id):
            return None
        return self.select_tree(tree_id)

    def create_tree(self, name: str) -> Tree:
        """Create a tree and make it the loaded one."""
        self.saver.flush()
        tree = self.repository.create_tree(name)
        self.store.load(tree)
        self._remember(tree.id)
        return tree

    def rename_tree(self, new_name: str) -> Tree:
        """Rename the loaded tree."""
        old_id = self._require_tree().id
        self.saver.flush()
        tree = self.repository.rename_tree(old_id, new_name)
        self.store.load(tree)
        self._remember(tree.id)
        return tree

    def delete_tree(self, tree_id: str) -> None:
        """Delete a stored tree; unloads it if it is the loaded one."""
        self.saver.discard(tree_id)
        self.repository.delete_tree(tree_id)
        current = self.store.get_tree()
        if current is not None and current.id == tree_id:
            self.store.load(None)
            self._remember(None)

    def extract_subtree(self, new_name: str) -> Tree:
        """Store the subtree under the current node as a new tree."""
        tree = self._require_tree()
        return self.repository.extract_subtree(tree, tree.current_node_id, new_name)

    def export_tree(self, path: str | Path) -> Path:
        return self.repository.export_tree(self._require_tree(), path)

    def import_tree(self, path: str | Path) -> Tree:
        """Store an exported tree under a free id. The loaded tree is unchanged."""
        return self.repository.import_tree(path)

    def close(self) -> bool:
        """Flush any pending save. Returns False if it failed."""
        return self.saver.flush()
