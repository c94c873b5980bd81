"""
Association resolver.

One dispatch point (`resolve`) over the three association variants:

- BelongsTo: owner's foreign key -> single target record (or None)
- HasMany: every source record whose foreign key equals the owner's id,
  in insertion order
- HasManyThrough: walk the intermediate HasMany, follow each join record's
  BelongsTo, dedupe targets by id keeping first-seen order

Writes go through `build` / `create` / `append` (HasMany) and `assign`
(BelongsTo). Through-associations are read-only: they have no foreign key of
their own to set.
"""

from __future__ import annotations

import logging
from contextlib import aclosing
from typing import Any, AsyncIterator

from playlister.core import RecordNotSaved, UnknownAssociationTarget, UnsupportedMutation
from playlister.core.associations import (
    Association,
    BelongsTo,
    HasMany,
    HasManyThrough,
    RecordType,
)
from playlister.core.db.records import Record, RecordStore

logger = logging.getLogger(__name__)


class AssociationResolver:
    """
    Resolves declared associations for record instances.

    Usage:
        resolver = AssociationResolver(store)
        songs = await resolver.resolve(prince, "songs")
        artist = await resolver.resolve(song, "artist")
    """

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    # ------------------------------------------------------------------
    # Target lookup
    # ------------------------------------------------------------------

    def _target_type(self, owner: RecordType, name: str, type_name: str, column: str) -> RecordType:
        """Record type on the far side of a direct association, checked against the schema."""
        target = self._store.registry.find(type_name)
        if target is None:
            raise UnknownAssociationTarget(
                f"{owner.name}.{name}: record type {type_name!r} is not registered"
            )
        table = self._store.table_schema(target)
        if table is None:
            raise UnknownAssociationTarget(
                f"{owner.name}.{name}: table {target.table!r} for {target.name} does not exist"
            )
        if not table.has_column(column):
            raise UnknownAssociationTarget(
                f"{owner.name}.{name}: column {target.table}.{column} does not exist"
            )
        return target

    def _check_owner_column(self, owner: RecordType, assoc: BelongsTo) -> None:
        table = self._store.table_schema(owner)
        if table is None or not table.has_column(assoc.foreign_key):
            raise UnknownAssociationTarget(
                f"{owner.name}.{assoc.name}: column {owner.table}.{assoc.foreign_key} does not exist"
            )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def resolve(self, owner: Record, name: str) -> Record | list[Record] | None:
        """
        Resolve association `name` on `owner`.

        Returns a single record (or None) for BelongsTo and a list for the
        collection variants. Raises NotFoundError for an undeclared name and
        UnknownAssociationTarget when the target is not migrated/registered.
        """
        assoc = owner.record_type.association(name)
        if isinstance(assoc, BelongsTo):
            return await self._resolve_belongs_to(owner, assoc)
        return [record async for record in self.iter_related(owner, name)]

    async def iter_related(self, owner: Record, name: str) -> AsyncIterator[Record]:
        """
        Lazy form of `resolve` for collection associations.

        A HasMany keeps a cursor open while it is iterated. Callers that may
        stop early should wrap the iterator in `contextlib.aclosing` so the
        cursor is released at once.
        """
        assoc = owner.record_type.association(name)
        if isinstance(assoc, HasMany):
            async with aclosing(self._iter_has_many(owner, assoc)) as records:
                async for record in records:
                    yield record
        elif isinstance(assoc, HasManyThrough):
            async with aclosing(self._iter_through(owner, assoc)) as records:
                async for record in records:
                    yield record
        else:
            raise TypeError(f"{owner.record_type.name}.{name} is not a collection association")

    async def count(self, owner: Record, name: str) -> int:
        assoc = owner.record_type.association(name)
        if isinstance(assoc, BelongsTo):
            return 0 if await self._resolve_belongs_to(owner, assoc) is None else 1
        if isinstance(assoc, HasMany):
            source = self._target_type(owner.record_type, assoc.name, assoc.source, assoc.foreign_key)
            if not owner.persisted:
                return 0
            return await self._store.count(source, **{assoc.foreign_key: owner.id})
        total = 0
        async for _ in self._iter_through(owner, assoc):
            total += 1
        return total

    async def _resolve_belongs_to(self, owner: Record, assoc: BelongsTo) -> Record | None:
        self._check_owner_column(owner.record_type, assoc)
        target = self._target_type(owner.record_type, assoc.name, assoc.target, "id")
        fk = owner.get(assoc.foreign_key)
        if fk is None:
            return None
        return await self._store.find(target, fk)

    async def _iter_has_many(self, owner: Record, assoc: HasMany) -> AsyncIterator[Record]:
        source = self._target_type(owner.record_type, assoc.name, assoc.source, assoc.foreign_key)
        if not owner.persisted:
            return
        rows = self._store.iter_where(source, **{assoc.foreign_key: owner.id})
        async with aclosing(rows):
            async for record in rows:
                yield record

    async def _iter_through(self, owner: Record, assoc: HasManyThrough) -> AsyncIterator[Record]:
        through = owner.record_type.association(assoc.through)
        if not isinstance(through, HasMany):
            raise UnknownAssociationTarget(
                f"{owner.record_type.name}.{assoc.name}: {assoc.through!r} is not a HasMany"
            )
        join_type = self._target_type(
            owner.record_type, through.name, through.source, through.foreign_key
        )
        source = join_type.association(assoc.source)
        if not isinstance(source, BelongsTo):
            raise UnknownAssociationTarget(
                f"{owner.record_type.name}.{assoc.name}: {join_type.name}.{assoc.source} is not a BelongsTo"
            )

        # Materialize join records first: the cursor must be closed before
        # issuing the per-record target lookups on the same connection.
        joins = [record async for record in self._iter_has_many(owner, through)]

        seen: set[int] = set()
        for join in joins:
            target = await self._resolve_belongs_to(join, source)
            if target is None or target.id in seen:
                continue
            seen.add(target.id)
            yield target

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _writable(self, owner: Record, name: str) -> HasMany:
        assoc: Association = owner.record_type.association(name)
        if isinstance(assoc, HasManyThrough):
            raise UnsupportedMutation(
                f"{owner.record_type.name}.{name} is a through-association and is read-only"
            )
        if isinstance(assoc, BelongsTo):
            raise UnsupportedMutation(
                f"{owner.record_type.name}.{name} is a BelongsTo; use assign() instead"
            )
        return assoc

    def build(self, owner: Record, name: str, /, **values: Any) -> Record:
        """New unsaved source record with its foreign key set to the owner's id."""
        assoc = self._writable(owner, name)
        if not owner.persisted:
            raise RecordNotSaved(
                f"Save the {owner.record_type.name} before building {name} through it"
            )
        source = self._target_type(owner.record_type, assoc.name, assoc.source, assoc.foreign_key)
        values[assoc.foreign_key] = owner.id
        return self._store.new(source, **values)

    async def create(self, owner: Record, name: str, /, **values: Any) -> Record:
        record = self.build(owner, name, **values)
        return await self._store.save(record)

    async def append(self, owner: Record, name: str, *records: Record) -> list[Record]:
        """Point every record's foreign key at the owner and persist them together."""
        assoc = self._writable(owner, name)
        if not owner.persisted:
            raise RecordNotSaved(
                f"Save the {owner.record_type.name} before appending to {name}"
            )
        source = self._target_type(owner.record_type, assoc.name, assoc.source, assoc.foreign_key)
        for record in records:
            if record.record_type.name != source.name:
                raise TypeError(
                    f"Cannot append {record.record_type.name} to {owner.record_type.name}.{name}; "
                    f"expected {source.name}"
                )

        snapshots = [record.to_dict() for record in records]
        try:
            async with self._store.transaction():
                for record in records:
                    record[assoc.foreign_key] = owner.id
                    await self._store.save(record)
        except BaseException:
            # The rows were rolled back; ids handed out by inserts in this
            # batch no longer exist, so every instance goes back to its snapshot.
            for record, values in zip(records, snapshots):
                record.restore(values)
            raise

        logger.debug(
            "Appended %d %s record(s) to %s %s",
            len(records),
            source.name,
            owner.record_type.name,
            owner.id,
        )
        return list(records)

    async def assign(self, owner: Record, name: str, target: Record | None) -> Record:
        """Set (or clear) a BelongsTo on the owner and persist the owner."""
        assoc = owner.record_type.association(name)
        if not isinstance(assoc, BelongsTo):
            raise UnsupportedMutation(
                f"{owner.record_type.name}.{name} is a collection; use append() instead"
            )
        self._check_owner_column(owner.record_type, assoc)
        target_type = self._target_type(owner.record_type, assoc.name, assoc.target, "id")
        if target is not None:
            if target.record_type.name != target_type.name:
                raise TypeError(
                    f"{owner.record_type.name}.{name} expects {target_type.name}, "
                    f"got {target.record_type.name}"
                )
            if not target.persisted:
                raise RecordNotSaved(f"Save the {target_type.name} before assigning it")

        owner[assoc.foreign_key] = target.id if target is not None else None
        return await self._store.save(owner)
