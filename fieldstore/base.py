"""
Storable base class: defines how Python objects serialize to/from JSONB.
Subclass with @dataclass to create persistable entity types.

Store metadata (set by EntityStore after writing / reading):
- entity_id: stable identity
- created_at / updated_at: server timestamps

The dataclass fields are the entity's declared base fields: they are what
filters, sorting and grouping may reference. Dynamic columns live in the
separate value store and are merged in at query time.
"""

import json
import uuid
import dataclasses
import typing
from datetime import datetime, date
from decimal import Decimal
from typing import Optional


class _JSONEncoder(json.JSONEncoder):
    """Handles datetime, date, Decimal, UUID, and dataclass serialization."""

    def default(self, obj):
        if isinstance(obj, datetime):
            return {"__type__": "datetime", "value": obj.isoformat()}
        if isinstance(obj, date):
            return {"__type__": "date", "value": obj.isoformat()}
        if isinstance(obj, Decimal):
            return {"__type__": "Decimal", "value": str(obj)}
        if isinstance(obj, uuid.UUID):
            return {"__type__": "UUID", "value": str(obj)}
        if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
            return dataclasses.asdict(obj)
        return super().default(obj)


def _json_decoder_hook(d):
    """Reconstruct special types from JSONB."""
    if "__type__" in d:
        t = d["__type__"]
        v = d["value"]
        if t == "datetime":
            return datetime.fromisoformat(v)
        if t == "date":
            return date.fromisoformat(v)
        if t == "Decimal":
            return Decimal(v)
        if t == "UUID":
            return uuid.UUID(v)
    return d


_NUMBER_TYPES = (int, float, Decimal)


class Storable:
    """
    Base class for entity documents kept in the ``entities`` table.

    Subclass as a dataclass:

        @dataclass
        class Donor(Storable):
            donor_name: str = ""
            total_donated: float = 0.0

    Then persist with EntityStore:

        store.write(Donor(donor_name="Ada"))
    """

    _store_entity_id: Optional[str] = None
    _store_created_at: Optional[datetime] = None
    _store_updated_at: Optional[datetime] = None

    # Base fields matched by free-text search
    _search_fields: tuple = ()

    def to_json(self) -> str:
        """Serialize this object to a JSON string for JSONB storage."""
        return json.dumps(self.to_data(), cls=_JSONEncoder)

    def to_data(self) -> dict:
        """Plain dict of the declared fields."""
        if dataclasses.is_dataclass(self):
            return dataclasses.asdict(self)
        return {
            k: v for k, v in self.__dict__.items()
            if not k.startswith("_store_")
        }

    @classmethod
    def from_json(cls, json_str: str) -> "Storable":
        """Deserialize from a JSON string back to a typed object."""
        data = json.loads(json_str, object_hook=_json_decoder_hook)
        return cls.from_data(data)

    @classmethod
    def from_data(cls, data: dict) -> "Storable":
        if dataclasses.is_dataclass(cls):
            # Filter to only fields the dataclass expects
            field_names = {f.name for f in dataclasses.fields(cls)}
            filtered = {k: v for k, v in data.items() if k in field_names}
            return cls(**filtered)
        obj = cls.__new__(cls)
        obj.__dict__.update(data)
        return obj

    @classmethod
    def type_name(cls) -> str:
        """The type identifier stored in the database."""
        return f"{cls.__module__}.{cls.__qualname__}"

    @classmethod
    def field_names(cls) -> list:
        """Declared base fields, in declaration order."""
        return [f.name for f in dataclasses.fields(cls)]

    @classmethod
    def field_kinds(cls) -> dict:
        """Map each base field to "number", "boolean" or "text"."""
        hints = typing.get_type_hints(cls)
        kinds = {}
        for name in cls.field_names():
            hint = hints.get(name, str)
            # Unwrap Optional[X] → X
            args = [a for a in typing.get_args(hint) if a is not type(None)]
            if args:
                hint = args[0]
            if hint is bool:
                kinds[name] = "boolean"
            elif isinstance(hint, type) and issubclass(hint, _NUMBER_TYPES):
                kinds[name] = "number"
            else:
                kinds[name] = "text"
        return kinds
