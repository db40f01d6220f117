"""
Errors raised by explicit tree-level operations.

Structural refusals inside the store never raise; these cover persistence
and workspace calls a user makes directly.
"""


class PersistenceError(Exception):
    """Base class for tree storage errors."""


class TreeNotFoundError(PersistenceError):
    """No tree with this id exists."""


class TreeExistsError(PersistenceError):
    """A tree with this id already exists."""


class InvalidTreeNameError(PersistenceError):
    """The name cannot be used as a tree id."""


class TreeFormatError(PersistenceError):
    """Tree data is malformed or violates a load-time invariant."""
