"""
Context ids for log attribution.

Uses ContextVar so concurrent agent tasks each carry their own ids.
"""

import uuid
from contextvars import ContextVar
from contextlib import contextmanager
from typing import Optional, Generator

_correlation_id: ContextVar[str] = ContextVar('correlation_id', default='')
_tree_id: ContextVar[str] = ContextVar('tree_id', default='')
_agent_id: ContextVar[str] = ContextVar('agent_id', default='')
_request_id: ContextVar[str] = ContextVar('request_id', default='')


def get_correlation_id() -> str:
    """Get current correlation ID, generating one if none exists."""
    cid = _correlation_id.get()
    if not cid:
        cid = str(uuid.uuid4())
        _correlation_id.set(cid)
    return cid


def set_correlation_id(cid: str) -> None:
    _correlation_id.set(cid)


def get_tree_id() -> Optional[str]:
    return _tree_id.get() or None


def get_agent_id() -> Optional[str]:
    return _agent_id.get() or None


def get_request_id() -> Optional[str]:
    return _request_id.get() or None


def set_request_id(rid: str) -> None:
    _request_id.set(rid)


@contextmanager
def correlation_context(
    correlation_id: Optional[str] = None,
    request_id: Optional[str] = None,
) -> Generator[str, None, None]:
    """
    Set a correlation id for the enclosed block.

    Yields:
        The correlation ID being used
    """
    old_cid = _correlation_id.get()
    old_rid = _request_id.get()

    try:
        if correlation_id:
            _correlation_id.set(correlation_id)
        elif not old_cid:
            _correlation_id.set(str(uuid.uuid4()))

        if request_id:
            _request_id.set(request_id)

        yield get_correlation_id()
    finally:
        _correlation_id.set(old_cid)
        _request_id.set(old_rid)


@contextmanager
def agent_context(
    agent_id: Optional[str] = None,
    tree_id: Optional[str] = None,
) -> Generator[str, None, None]:
    """
    Attribute every event in the block to one agent run.

    A fresh correlation id is issued per run so interleaved agents on the
    same tree stay separable in the log.

    Example:
        with agent_context(agent_id="scout_1", tree_id="story") as cid:
            await run_scout(ctx, start_id, config)
    """
    old_aid = _agent_id.get()
    old_tid = _tree_id.get()
    old_cid = _correlation_id.get()

    try:
        if agent_id:
            _agent_id.set(agent_id)
        if tree_id:
            _tree_id.set(tree_id)
        _correlation_id.set(str(uuid.uuid4()))
        yield _correlation_id.get()
    finally:
        _agent_id.set(old_aid)
        _tree_id.set(old_tid)
        _correlation_id.set(old_cid)
