"""Tests for per-node locks and the permitted-lock sets."""

import pytest

from helm import locks
from helm.locks import LockReason
from helm.models import TreeNode


class TestAcquireRelease:
    """Tests for the lock state machine."""

    def test_acquire_unlocked_node(self):
        node = TreeNode(id="n")
        assert locks.acquire(node, LockReason.SCOUT_ACTIVE)
        assert node.locked
        assert node.lock_reason == LockReason.SCOUT_ACTIVE

    def test_acquire_same_reason_twice_succeeds(self):
        node = TreeNode(id="n")
        assert locks.acquire(node, LockReason.WITNESS_ACTIVE)
        assert locks.acquire(node, LockReason.WITNESS_ACTIVE)
        assert node.lock_reason == LockReason.WITNESS_ACTIVE

    def test_acquire_different_reason_fails_and_keeps_lock(self):
        node = TreeNode(id="n")
        locks.acquire(node, LockReason.SCOUT_ACTIVE)
        assert not locks.acquire(node, LockReason.COPILOT_DECIDING)
        assert node.lock_reason == LockReason.SCOUT_ACTIVE

    def test_release_clears_flag_and_reason(self):
        node = TreeNode(id="n")
        locks.acquire(node, LockReason.EXPANDING)
        locks.release(node)
        assert not node.locked
        assert node.lock_reason is None


class TestPermittedSets:
    """The sets differ per operation; keep them pinned."""

    def test_add_node_permits_every_reason(self):
        assert locks.ADD_NODE_PERMITTED_LOCKS == frozenset(LockReason)

    def test_delete_permits_witness_and_copilot_only(self):
        assert locks.DELETE_PERMITTED_LOCKS == {
            LockReason.WITNESS_ACTIVE, LockReason.COPILOT_DECIDING,
        }

    def test_merge_permits_witness_only(self):
        assert locks.MERGE_PERMITTED_LOCKS == {LockReason.WITNESS_ACTIVE}

    def test_cull_merge_permits_nothing(self):
        assert locks.CULL_MERGE_PERMITTED_LOCKS == frozenset()

    @pytest.mark.parametrize("reason,blocked", [
        (LockReason.EXPANDING, True),
        (LockReason.SCOUT_ACTIVE, True),
        (LockReason.WITNESS_ACTIVE, False),
        (LockReason.COPILOT_DECIDING, False),
    ])
    def test_is_blocked_for_delete(self, reason, blocked):
        node = TreeNode(id="n", locked=True, lock_reason=reason)
        assert locks.is_blocked(node, locks.DELETE_PERMITTED_LOCKS) is blocked

    def test_unlocked_node_is_never_blocked(self):
        assert not locks.is_blocked(TreeNode(id="n"), frozenset())
