"""
Per-node advisory locks.

A node is either unlocked or locked(reason). Locking with the reason the
node already holds succeeds as a no-op so nested calls from one agent can
re-lock the nodes they own; locking with a different reason fails.

Each mutating operation on the tree tolerates a different set of lock
reasons. Those sets are spelled out below so the asymmetry between them
stays visible in one place.
"""

from enum import Enum
from typing import Optional, Protocol


class LockReason(str, Enum):
    """Why a node is locked."""
    EXPANDING = "expanding"
    SCOUT_ACTIVE = "scout-active"
    WITNESS_ACTIVE = "witness-active"
    COPILOT_DECIDING = "copilot-deciding"


class Lockable(Protocol):
    locked: bool
    lock_reason: Optional[LockReason]


# add_node: any agent lock on the parent still allows inserting children
ADD_NODE_PERMITTED_LOCKS = frozenset(LockReason)

# delete_node: scout-active and expanding block deletion of the node or under its parent
DELETE_PERMITTED_LOCKS = frozenset({
    LockReason.WITNESS_ACTIVE,
    LockReason.COPILOT_DECIDING,
})

# merge_with_parent and mass_merge
MERGE_PERMITTED_LOCKS = frozenset({LockReason.WITNESS_ACTIVE})

# Merge pass of cull_and_merge_to_bookmarks: any lock blocks
CULL_MERGE_PERMITTED_LOCKS: frozenset = frozenset()


def is_blocked(node: Lockable, permitted: frozenset) -> bool:
    """True if node holds a lock whose reason is not in permitted."""
    return node.locked and node.lock_reason not in permitted


def acquire(node: Lockable, reason: LockReason) -> bool:
    """
    Lock node for reason.

    Returns:
        True if the node is now locked for reason (including re-entry),
        False if another reason holds it
    """
    if node.locked:
        return node.lock_reason == reason
    node.locked = True
    node.lock_reason = reason
    return True


def release(node: Lockable) -> None:
    """Clear the lock unconditionally."""
    node.locked = False
    node.lock_reason = None
