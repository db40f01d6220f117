"""
Tree persistence.

Each tree lives in <trees_dir>/<tree_id>/tree.json. Writes are atomic
(.tmp -> fsync -> replace) so a crash never leaves a half-written tree.

TreeSaver decouples saving from mutation: the store schedules a debounced
write after every change and callers flush() before switching trees or
shutting down.
"""

import asyncio
import copy
import json
import os
import shutil
from datetime import datetime
from pathlib import Path
from typing import Optional

from shared.logging import get_logger

from .branch import subtree_ids
from .errors import (
    InvalidTreeNameError,
    TreeExistsError,
    TreeFormatError,
    TreeNotFoundError,
)
from .models import Tree, TreeNode

log = get_logger("helm", "persistence")

TREE_FILE = "tree.json"


def validate_tree_name(name: str) -> str:
    """
    Turn a user-supplied name into a tree id.

    Returns:
        The trimmed name

    Raises:
        InvalidTreeNameError: if the name is empty or could escape the trees directory
    """
    tree_id = (name or "").strip()
    if not tree_id or tree_id in (".", ".."):
        raise InvalidTreeNameError(f"Invalid tree name: {name!r}")
    if "/" in tree_id or "\\" in tree_id or "\0" in tree_id:
        raise InvalidTreeNameError(f"Tree name may not contain path separators: {name!r}")
    return tree_id


class TreeRepository:
    """Reads and writes trees under a directory."""

    def __init__(self, trees_dir: str | Path):
        self.trees_dir = Path(trees_dir)
        self.trees_dir.mkdir(parents=True, exist_ok=True)

    def _tree_path(self, tree_id: str) -> Path:
        return self.trees_dir / validate_tree_name(tree_id)

    def exists(self, tree_id: str) -> bool:
        return (self._tree_path(tree_id) / TREE_FILE).exists()

    def list_trees(self) -> list[str]:
        """Ids of all stored trees, sorted."""
        return sorted(
            p.name for p in self.trees_dir.iterdir()
            if p.is_dir() and (p / TREE_FILE).exists()
        )

    def load_tree(self, tree_id: str) -> Tree:
        """
        Load a tree with all locks cleared.

        Raises:
            TreeNotFoundError: if no such tree is stored
            TreeFormatError: if the file is not a valid tree (including a
                currentNodeId that is not one of its nodes)
        """
        path = self._tree_path(tree_id) / TREE_FILE
        if not path.exists():
            raise TreeNotFoundError(f'Tree "{tree_id}" does not exist')
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise TreeFormatError(f'Tree "{tree_id}" is not valid JSON: {e}') from e
        tree = Tree.from_dict(data)
        log.info("helm.persistence.tree_loaded", tree_id=tree.id, nodes=len(tree.nodes))
        return tree

    def _write_tree(self, tree: Tree) -> None:
        tree_dir = self._tree_path(tree.id)
        tree_dir.mkdir(parents=True, exist_ok=True)
        path = tree_dir / TREE_FILE
        temp_path = path.with_suffix(".tmp")
        try:
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(tree.to_dict(), f, indent=2, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, path)
        finally:
            if temp_path.exists():
                temp_path.unlink()

    def save_tree(self, tree: Tree) -> bool:
        """
        Write a tree to disk. Failures are logged, not raised.

        Returns:
            True if the tree was written
        """
        try:
            self._write_tree(tree)
        except (OSError, InvalidTreeNameError) as e:
            log.exception(e, "helm.persistence.save_failed", {"tree_id": tree.id})
            return False
        log.debug("helm.persistence.tree_saved", tree_id=tree.id, nodes=len(tree.nodes))
        return True

    def create_tree(self, name: str) -> Tree:
        """
        Create and store a tree holding an empty root.

        Raises:
            InvalidTreeNameError, TreeExistsError
        """
        tree_id = validate_tree_name(name)
        if self.exists(tree_id):
            raise TreeExistsError(f'A tree named "{tree_id}" already exists')
        tree = Tree.new(tree_id, tree_id)
        self._write_tree(tree)
        log.info("helm.persistence.tree_created", tree_id=tree_id)
        return tree

    def delete_tree(self, tree_id: str) -> None:
        path = self._tree_path(tree_id)
        if not path.exists():
            raise TreeNotFoundError(f'Tree "{tree_id}" does not exist')
        shutil.rmtree(path)
        log.info("helm.persistence.tree_deleted", tree_id=tree_id)

    def rename_tree(self, tree_id: str, new_name: str) -> Tree:
        """
        Move a stored tree to a new id.

        Raises:
            TreeNotFoundError, TreeExistsError, InvalidTreeNameError
        """
        new_id = validate_tree_name(new_name)
        if not self.exists(tree_id):
            raise TreeNotFoundError(f'Tree "{tree_id}" does not exist')
        if self.exists(new_id):
            raise TreeExistsError(f'A tree named "{new_id}" already exists')

        tree = self.load_tree(tree_id)
        tree.id = new_id
        tree.name = new_id
        self._write_tree(tree)
        shutil.rmtree(self._tree_path(tree_id))
        log.info("helm.persistence.tree_renamed", old_id=tree_id, new_id=new_id)
        return tree

    def extract_subtree(self, tree: Tree, node_id: str, new_name: str) -> Tree:
        """
        Store a copy of the subtree rooted at node_id as a new tree.

        Node ids and texts are kept; locks and bookmarks are not.

        Raises:
            KeyError: if node_id is not in tree
            InvalidTreeNameError, TreeExistsError
        """
        if node_id not in tree.nodes:
            raise KeyError(f"Node {node_id} not found")
        new_id = validate_tree_name(new_name)
        if self.exists(new_id):
            raise TreeExistsError(f'A tree named "{new_id}" already exists')

        nodes = {}
        for copied_id in subtree_ids(tree, node_id):
            source = tree.nodes[copied_id]
            nodes[copied_id] = TreeNode(
                id=copied_id,
                text=source.text,
                parent_id=None if copied_id == node_id else source.parent_id,
                child_ids=[c for c in source.child_ids if c in tree.nodes],
            )

        extracted = Tree(
            id=new_id,
            name=new_id,
            nodes=nodes,
            root_id=node_id,
            current_node_id=node_id,
        )
        self._write_tree(extracted)
        log.info("helm.persistence.subtree_extracted",
                 source_tree=tree.id, node_id=node_id, tree_id=new_id, nodes=len(nodes))
        return extracted

    def export_tree(self, tree: Tree, path: str | Path) -> Path:
        """
        Write a tree as JSON to path.

        If path is a directory, the file is named tree_<name>_<timestamp>.json.
        """
        target = Path(path)
        if target.is_dir():
            timestamp = datetime.now().strftime("%Y-%m-%dT%H-%M-%S")
            target = target / f"tree_{tree.name}_{timestamp}.json"
        target.write_text(json.dumps(tree.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
        log.info("helm.persistence.tree_exported", tree_id=tree.id, path=str(target))
        return target

    def import_tree(self, path: str | Path) -> Tree:
        """
        Store a tree from an exported JSON file.

        The tree's name becomes its id. On a collision the id and name
        become <name>_1, <name>_2, ...

        Raises:
            TreeFormatError, InvalidTreeNameError
        """
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise TreeFormatError(f"{path} is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise TreeFormatError(f"{path} does not contain a tree")

        data = copy.deepcopy(data)
        data.setdefault("id", data.get("name", ""))
        tree = Tree.from_dict(data)

        base_id = validate_tree_name(data.get("name") or tree.id)
        tree_id = base_id
        counter = 1
        while self.exists(tree_id):
            tree_id = f"{base_id}_{counter}"
            counter += 1

        tree.id = tree_id
        tree.name = tree_id
        self._write_tree(tree)
        log.info("helm.persistence.tree_imported", tree_id=tree_id, renamed=tree_id != base_id)
        return tree


class TreeSaver:
    """
    Debounced write-behind for the loaded tree.

    schedule() restarts a timer on every call; the tree is written once the
    timer expires. flush() writes any pending tree immediately and must be
    called before switching trees or exiting. Outside an event loop
    schedule() writes straight away.
    """

    def __init__(self, repository: TreeRepository, delay_seconds: float = 0.5):
        self.repository = repository
        self.delay_seconds = delay_seconds
        self._pending: Optional[Tree] = None
        self._timer: Optional[asyncio.Task] = None

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    def schedule(self, tree: Tree) -> None:
        if self._pending is not None and self._pending.id != tree.id:
            # A different tree is waiting; never let its save be dropped
            self.flush()
        self._pending = tree
        self._cancel_timer()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.flush()
            return
        self._timer = loop.create_task(self._save_later())

    async def _save_later(self) -> None:
        await asyncio.sleep(self.delay_seconds)
        self._timer = None
        self._write_pending()

    def _cancel_timer(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    def _write_pending(self) -> bool:
        tree, self._pending = self._pending, None
        if tree is None:
            return True
        return self.repository.save_tree(tree)

    def flush(self) -> bool:
        """
        Write the pending tree now.

        Returns:
            False if a pending write failed
        """
        self._cancel_timer()
        return self._write_pending()

    def discard(self, tree_id: Optional[str] = None) -> None:
        """Drop the pending write (only if it belongs to tree_id, when given)."""
        if self._pending is None:
            return
        if tree_id is not None and self._pending.id != tree_id:
            return
        self._cancel_timer()
        self._pending = None
