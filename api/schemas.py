"""Pydantic schemas for API request bodies.

Schemas check shape and JSON types only; value rules (key pattern, width
range, email format, ...) are enforced by the field store so that API and
library callers get the same errors.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from fieldstore.models import ColumnDefinition


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")


# --- Column schemas ---


class ColumnCreate(_Body):
    """Body for creating a column (also used by add-to-right)."""

    column_key: str
    title: str
    type: str = "text"
    options: Any = None
    width: int = 150
    order: int | None = Field(default=None, description="Omit to append at the end")
    is_required: bool = Field(default=False, alias="isRequired")
    is_active: bool = Field(default=True, alias="isActive")

    def to_definition(self) -> ColumnDefinition:
        return ColumnDefinition(**self.model_dump())


class ColumnUpdate(_Body):
    """Partial column update; only supplied fields change."""

    # accepted so that an attempted key change is reported, not ignored
    column_key: str | None = None
    title: str | None = None
    type: str | None = None
    options: Any = None
    width: int | None = None
    order: int | None = None
    is_required: bool | None = Field(default=None, alias="isRequired")
    is_active: bool | None = Field(default=None, alias="isActive")

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class ColumnOrders(_Body):
    # items are validated one by one so a bad entry only fails itself
    column_orders: list[Any] = Field(alias="columnOrders")


class RetypeRequest(_Body):
    type: str
    options: Any = None

    def options_supplied(self) -> bool:
        return "options" in self.model_fields_set


class AutofillRequest(_Body):
    value: Any = None
    donor_ids: list[Any] | None = Field(
        default=None, description="Omit to fill every donor"
    )


# --- Donor schemas ---

DonorStatus = Literal["potential", "active", "inactive"]


class DonorCreate(_Body):
    donor_name: str
    email: str
    phone: str | None = None
    total_donated: float = 0
    total_donations: int = 0
    status: DonorStatus = "potential"


class DonorUpdate(_Body):
    donor_name: str | None = None
    email: str | None = None
    phone: str | None = None
    total_donated: float | None = None
    total_donations: int | None = None
    status: DonorStatus | None = None

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class CustomFieldUpdate(_Body):
    column_key: str
    value: Any = None


class SortSpec(_Body):
    field: str
    order: Literal["asc", "desc"] = "asc"


class FilterRequest(_Body):
    filters: list[Any] = Field(default_factory=list)
    page: int = 1
    limit: int | None = None
    sort: SortSpec | None = None
    include_inactive: bool = Field(default=False, alias="includeInactive")


class GroupByRequest(_Body):
    field: str | None = None
    filters: list[Any] | None = None


class SortRequest(_Body):
    field: str | None = None
    order: Literal["asc", "desc"] = "asc"
    page: int = 1
    limit: int | None = None
