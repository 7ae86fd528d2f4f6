"""
Domain types: dynamic column definitions, column values and the Donor entity.
"""

import re
import dataclasses
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from fieldstore.base import Storable
from fieldstore.errors import ValidationError


COLUMN_TYPES = (
    "text", "number", "email", "phone", "date", "status",
    "checkbox", "dropdown", "file", "person", "link",
)

COLUMN_KEY_PATTERN = re.compile(r"^[a-z0-9_]+$")

TITLE_MAX_LENGTH = 100
MIN_WIDTH = 50
MAX_WIDTH = 800
DEFAULT_WIDTH = 150

# Fields a partial update may touch; column_key is immutable
UPDATABLE_FIELDS = (
    "title", "type", "options", "width", "order", "is_required", "is_active",
)

# Attribute → JSON key where the two differ
_WIRE_NAMES = {
    "is_required": "isRequired",
    "is_active": "isActive",
    "created_at": "createdAt",
    "updated_at": "updatedAt",
}


@dataclass
class ColumnDefinition:
    """Metadata describing one dynamic field."""

    column_key: str
    title: str
    type: str = "text"
    options: Any = None          # opaque, shape depends on type
    width: int = DEFAULT_WIDTH
    order: Optional[int] = None  # None → append after the current maximum
    is_required: bool = False
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def state(self) -> str:
        return "active" if self.is_active else "inactive"

    def to_dict(self) -> dict:
        d = dataclasses.asdict(self)
        return {_WIRE_NAMES.get(k, k): v for k, v in d.items()}

    @classmethod
    def from_row(cls, row) -> "ColumnDefinition":
        (column_key, title, type_, options, width, order,
         is_required, is_active, created_at, updated_at) = row
        return cls(
            column_key=column_key, title=title, type=type_, options=options,
            width=width, order=order, is_required=is_required,
            is_active=is_active, created_at=created_at, updated_at=updated_at,
        )


@dataclass
class ColumnValue:
    """The stored value of one dynamic field for one entity."""

    entity_id: str
    column_key: str
    value: Any = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        d = dataclasses.asdict(self)
        return {_WIRE_NAMES.get(k, k): v for k, v in d.items()}


# ── Validation ────────────────────────────────────────────────────

def _check_title(title, errors):
    if not isinstance(title, str) or not title.strip():
        errors["title"] = "Column title is required"
    elif len(title.strip()) > TITLE_MAX_LENGTH:
        errors["title"] = f"must be at most {TITLE_MAX_LENGTH} characters"


def _check_type(type_, errors):
    if type_ not in COLUMN_TYPES:
        errors["type"] = f"must be one of {list(COLUMN_TYPES)}"


def _check_width(width, errors):
    if isinstance(width, bool) or not isinstance(width, int):
        errors["width"] = "must be an integer"
    elif not MIN_WIDTH <= width <= MAX_WIDTH:
        errors["width"] = f"must be between {MIN_WIDTH} and {MAX_WIDTH}"


def _check_order(order, errors):
    if order is not None and (isinstance(order, bool) or not isinstance(order, int)):
        errors["order"] = "must be an integer"


def _check_flag(name, value, errors):
    if not isinstance(value, bool):
        errors[name] = "must be a boolean"


def _raise_if(errors):
    if errors:
        fields = ", ".join(sorted(errors))
        raise ValidationError(f"Invalid column definition ({fields})", errors)


def validate_definition(defn: ColumnDefinition) -> ColumnDefinition:
    """Normalise and validate a new column definition.

    Raises ValidationError with a field → message mapping.
    """
    errors = {}
    key = defn.column_key.strip() if isinstance(defn.column_key, str) else ""
    if not key:
        errors["column_key"] = "Column key is required"
    elif not COLUMN_KEY_PATTERN.match(key):
        errors["column_key"] = (
            "Column key must contain only lowercase letters, numbers, "
            "and underscores"
        )
    _check_title(defn.title, errors)
    _check_type(defn.type, errors)
    _check_width(defn.width, errors)
    _check_order(defn.order, errors)
    _check_flag("is_required", defn.is_required, errors)
    _check_flag("is_active", defn.is_active, errors)
    _raise_if(errors)
    return dataclasses.replace(defn, column_key=key, title=defn.title.strip())


def validate_update(changes: dict) -> dict:
    """Validate a partial column update; returns the normalised changes."""
    errors = {}
    if "column_key" in changes:
        errors["column_key"] = "column_key cannot be changed"
    for name in changes:
        if name != "column_key" and name not in UPDATABLE_FIELDS:
            errors[name] = "unknown field"

    cleaned = dict(changes)
    cleaned.pop("column_key", None)
    if "title" in cleaned:
        _check_title(cleaned["title"], errors)
        if "title" not in errors:
            cleaned["title"] = cleaned["title"].strip()
    if "type" in cleaned:
        _check_type(cleaned["type"], errors)
    if "width" in cleaned:
        _check_width(cleaned["width"], errors)
    if "order" in cleaned:
        if cleaned["order"] is None:
            errors["order"] = "must be an integer"
        else:
            _check_order(cleaned["order"], errors)
    for flag in ("is_required", "is_active"):
        if flag in cleaned:
            _check_flag(flag, cleaned[flag], errors)
    _raise_if(errors)
    return cleaned


# ── Entities ──────────────────────────────────────────────────────

DONOR_STATUSES = ("potential", "active", "inactive")


@dataclass
class Donor(Storable):
    """A donor record; custom fields hang off it via the value store."""
    donor_name: str = ""
    email: str = ""
    phone: Optional[str] = None
    total_donated: float = 0.0
    total_donations: int = 0
    status: str = "potential"  # "potential", "active", "inactive"

    _search_fields = ("donor_name", "email", "phone")

    @classmethod
    def type_name(cls) -> str:
        return "donor"


DONOR_NAME_MAX_LENGTH = 200
_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def validate_donor(data: dict, partial=False) -> dict:
    """Validate donor input; returns normalised fields.

    With ``partial`` only the supplied fields are checked and returned.
    Raises ValidationError with a field → message mapping.
    """
    if not isinstance(data, dict):
        raise ValidationError("Invalid donor", {"body": "must be an object"})
    errors = {}
    known = set(Donor.field_names())
    for name in data:
        if name not in known:
            errors[name] = "unknown field"

    cleaned = {}
    if "donor_name" in data or not partial:
        name = data.get("donor_name")
        if not isinstance(name, str) or not name.strip():
            errors["donor_name"] = "Donor name is required"
        elif len(name.strip()) > DONOR_NAME_MAX_LENGTH:
            errors["donor_name"] = (
                f"must be at most {DONOR_NAME_MAX_LENGTH} characters"
            )
        else:
            cleaned["donor_name"] = name.strip()

    if "email" in data or not partial:
        email = data.get("email")
        if not isinstance(email, str) or not _EMAIL_PATTERN.match(email.strip()):
            errors["email"] = "Invalid email format"
        else:
            cleaned["email"] = email.strip().lower()

    if "phone" in data:
        phone = data["phone"]
        if phone is not None and not isinstance(phone, str):
            errors["phone"] = "must be a string"
        else:
            cleaned["phone"] = phone.strip() if phone is not None else None

    if "total_donated" in data:
        amount = data["total_donated"]
        if isinstance(amount, bool) or not isinstance(amount, (int, float)):
            errors["total_donated"] = "must be a number"
        elif amount < 0:
            errors["total_donated"] = "must be >= 0"
        else:
            cleaned["total_donated"] = float(amount)

    if "total_donations" in data:
        count = data["total_donations"]
        if isinstance(count, bool) or not isinstance(count, int):
            errors["total_donations"] = "must be an integer"
        elif count < 0:
            errors["total_donations"] = "must be >= 0"
        else:
            cleaned["total_donations"] = count

    if "status" in data:
        if data["status"] not in DONOR_STATUSES:
            errors["status"] = f"must be one of {list(DONOR_STATUSES)}"
        else:
            cleaned["status"] = data["status"]

    if errors:
        fields = ", ".join(sorted(errors))
        raise ValidationError(f"Invalid donor ({fields})", errors)
    return cleaned
