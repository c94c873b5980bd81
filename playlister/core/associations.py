"""
Association declarations and the record type registry.

Associations are plain tagged values (`BelongsTo`, `HasMany`, `HasManyThrough`)
attached to a `RecordType`. Nothing is injected into record classes; the
`AssociationResolver` dispatches on the variant instead.

Naming conventions (overridable per declaration):
- `BelongsTo("artist", "Artist")` reads the foreign key `artist_id` on the owner.
- `HasMany("songs", "Song")` on `Artist` matches `songs.artist_id`.
- `HasManyThrough("genres", through="songs")` follows `songs`, then each song's
  `genre` association.

The `Registry` is built once at startup, frozen, and read-only afterwards.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterator, Mapping, Union

from playlister.core import InvalidAssociation, NotFoundError

logger = logging.getLogger(__name__)


def singularize(name: str) -> str:
    """Naive English singular: strips one trailing 's' (songs -> song)."""
    return name[:-1] if name.endswith("s") and len(name) > 1 else name


def default_table(type_name: str) -> str:
    return f"{type_name.lower()}s"


def default_foreign_key(type_name: str) -> str:
    return f"{type_name.lower()}_id"


@dataclass(frozen=True, slots=True)
class BelongsTo:
    """The owner holds `foreign_key`, pointing at one `target` record."""

    name: str
    target: str
    foreign_key: str = ""

    def __post_init__(self) -> None:
        if not self.foreign_key:
            object.__setattr__(self, "foreign_key", f"{self.name}_id")


@dataclass(frozen=True, slots=True)
class HasMany:
    """
    Many `source` records point at the owner through `foreign_key`.

    An empty `foreign_key` is filled in from the owner's type name when the
    declaration is registered.
    """

    name: str
    source: str
    foreign_key: str = ""


@dataclass(frozen=True, slots=True)
class HasManyThrough:
    """
    Read-only composition: follow the owner's `through` HasMany, then the
    `source` BelongsTo declared on the join type.
    """

    name: str
    through: str
    source: str = ""

    def __post_init__(self) -> None:
        if not self.source:
            object.__setattr__(self, "source", singularize(self.name))


Association = Union[BelongsTo, HasMany, HasManyThrough]


@dataclass(frozen=True, eq=False)
class RecordType:
    """A named entity backed by one table, plus its declared associations."""

    name: str
    table: str
    associations: Mapping[str, Association] = field(default_factory=dict)

    def association(self, name: str) -> Association:
        try:
            return self.associations[name]
        except KeyError:
            raise NotFoundError(f"{self.name} has no association named {name!r}") from None


class Registry:
    """
    Explicit registry of record types.

    Usage:
        registry = Registry()
        registry.define("Artist", HasMany("songs", "Song"))
        registry.define("Song", BelongsTo("artist", "Artist"))
        registry.freeze()
    """

    def __init__(self) -> None:
        self._types: dict[str, RecordType] = {}
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def define(self, name: str, *associations: Association, table: str | None = None) -> RecordType:
        if self._frozen:
            raise RuntimeError("Registry is frozen; define record types at startup.")
        if name in self._types:
            raise ValueError(f"Record type {name!r} is already defined")

        declared: dict[str, Association] = {}
        for assoc in associations:
            if assoc.name in declared:
                raise InvalidAssociation(f"{name} declares {assoc.name!r} twice")
            if isinstance(assoc, HasMany) and not assoc.foreign_key:
                assoc = HasMany(assoc.name, assoc.source, default_foreign_key(name))
            declared[assoc.name] = assoc

        record_type = RecordType(
            name=name,
            table=table or default_table(name),
            associations=MappingProxyType(declared),
        )
        self._types[name] = record_type
        return record_type

    def freeze(self) -> Registry:
        """Validate through-association chains and make the registry read-only."""
        for record_type in self._types.values():
            for assoc in record_type.associations.values():
                if isinstance(assoc, HasManyThrough):
                    self._check_through(record_type, assoc)
        self._frozen = True
        logger.debug("Registry frozen with %d record type(s)", len(self._types))
        return self

    def _check_through(self, owner: RecordType, assoc: HasManyThrough) -> None:
        through = owner.associations.get(assoc.through)
        if through is None:
            raise InvalidAssociation(
                f"{owner.name}.{assoc.name}: through association {assoc.through!r} is not declared"
            )
        if not isinstance(through, HasMany):
            raise InvalidAssociation(
                f"{owner.name}.{assoc.name}: through association {assoc.through!r} must be a HasMany"
            )

        join_type = self._types.get(through.source)
        if join_type is None:
            # Missing join type surfaces at resolution time as UnknownAssociationTarget.
            return
        source = join_type.associations.get(assoc.source)
        if not isinstance(source, BelongsTo):
            raise InvalidAssociation(
                f"{owner.name}.{assoc.name}: {join_type.name} has no BelongsTo named {assoc.source!r}"
            )

    def get(self, name: str) -> RecordType:
        try:
            return self._types[name]
        except KeyError:
            raise NotFoundError(f"Unknown record type {name!r}") from None

    def find(self, name: str) -> RecordType | None:
        return self._types.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._types

    def __iter__(self) -> Iterator[RecordType]:
        return iter(self._types.values())

    def __len__(self) -> int:
        return len(self._types)
