"""Local identity records and the store contract the resolver relies on."""

import asyncio
import copy
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

import structlog

logger = structlog.get_logger()

Validator = Callable[["IdentityRecord"], str | None]


class PersistenceError(Exception):
    """An identity record could not be saved."""

    pass


@dataclass
class IdentityRecord:
    """Local user record.

    ``webseal_attributes`` holds the attributes from the latest accepted
    gateway reply. It is transient: stores never persist it.
    """

    fields: dict[str, Any] = field(default_factory=dict)
    webseal_attributes: dict[str, Any] | None = field(default=None, compare=False)
    persisted: bool = field(default=False, compare=False)
    # Assigned by the store on first save.
    store_key: Any = field(default=None, compare=False, repr=False)

    def __getitem__(self, name: str) -> Any:
        return self.fields[name]

    def __setitem__(self, name: str, value: Any) -> None:
        self.fields[name] = value

    def get(self, name: str, default: Any = None) -> Any:
        return self.fields.get(name, default)


class IdentityStore(Protocol):
    """Protocol for identity record storage."""

    async def find_one_by(self, field_name: str, value: Any) -> IdentityRecord | None:
        """Return the record whose field equals value, or None."""
        ...

    def build(self, field_name: str, value: Any) -> IdentityRecord:
        """Return a new, unsaved record with one field preset."""
        ...

    async def save(self, record: IdentityRecord, validate: bool = True) -> bool:
        """Persist a record. Returns False when the record was not saved."""
        ...


class InMemoryIdentityStore:
    """Dict backed identity store.

    Find-or-create is not atomic here; callers serialize per key.
    """

    def __init__(
        self,
        unique_fields: tuple[str, ...] = (),
        validators: list[Validator] | None = None,
    ):
        self.unique_fields = unique_fields
        self.validators = validators or []
        self._records: dict[int, dict[str, Any]] = {}
        self._next_id = 1
        self._lock = asyncio.Lock()

    async def find_one_by(self, field_name: str, value: Any) -> IdentityRecord | None:
        for record_id, stored in self._records.items():
            if stored.get(field_name) == value:
                return IdentityRecord(
                    fields=copy.deepcopy(stored), persisted=True, store_key=record_id
                )
        return None

    def build(self, field_name: str, value: Any) -> IdentityRecord:
        return IdentityRecord(fields={field_name: value})

    async def save(self, record: IdentityRecord, validate: bool = True) -> bool:
        if validate:
            errors = [e for e in (v(record) for v in self.validators) if e]
            if errors:
                logger.info("Identity record failed validation", errors=errors)
                return False

        async with self._lock:
            record_id = record.store_key
            for unique_field in self.unique_fields:
                value = record.get(unique_field)
                # Like a SQL unique index, missing values never collide.
                if value is None:
                    continue
                for other_id, stored in self._records.items():
                    if other_id != record_id and stored.get(unique_field) == value:
                        logger.warning(
                            "Identity record violates unique field",
                            field=unique_field,
                        )
                        return False

            if record_id is None:
                record_id = self._next_id
                self._next_id += 1
                record.store_key = record_id

            self._records[record_id] = copy.deepcopy(record.fields)
            record.persisted = True
        return True

    def count(self) -> int:
        return len(self._records)

    def clear(self) -> None:
        self._records.clear()
