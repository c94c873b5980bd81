"""
Core domain package.

This package contains the schema/migration machinery and the association
layer. It is independent of any UI layer (web, CLI) and keeps no networking
concerns.

We intentionally keep exports minimal; consumers should usually import from the
specific module they need (e.g. `playlister.core.resolver`).
"""

from __future__ import annotations

__all__: list[str] = [
    "CoreError",
    "NotFoundError",
    "MigrationError",
    "AssociationError",
    "InvalidAssociation",
    "UnknownAssociationTarget",
    "UnsupportedMutation",
    "RecordNotSaved",
    "UnknownColumnError",
]


class CoreError(Exception):
    """Base class for core-layer exceptions."""


class NotFoundError(CoreError):
    """Raised when a record type, record or association cannot be found."""


class MigrationError(CoreError):
    """
    Raised when a schema mutation fails.

    `version` / `name` identify the failing migration (None when the failure is
    about the migration list itself, e.g. duplicate sequence numbers).
    """

    def __init__(
        self,
        message: str,
        *,
        version: int | None = None,
        name: str | None = None,
    ) -> None:
        super().__init__(message)
        self.version = version
        self.name = name


class AssociationError(CoreError):
    """Base error for association declaration/resolution problems."""


class InvalidAssociation(AssociationError):
    """Raised when association declarations do not form a valid chain."""


class UnknownAssociationTarget(AssociationError):
    """Raised when an association's target type or table is not available."""


class UnsupportedMutation(AssociationError):
    """Raised when writing through an association that cannot be written."""


class RecordNotSaved(CoreError):
    """Raised when an operation needs a persisted record (one with an id)."""


class UnknownColumnError(CoreError, KeyError):
    """Raised when a column name is not part of the table schema."""

    def __str__(self) -> str:
        # KeyError would repr() the message otherwise.
        return str(self.args[0]) if self.args else ""
