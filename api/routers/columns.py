"""Dynamic column endpoints."""

from fastapi import APIRouter, Query

from api.deps import ServicesDep
from api.responses import ok
from api.schemas import (
    AutofillRequest, ColumnCreate, ColumnOrders, ColumnUpdate, RetypeRequest,
)

router = APIRouter(prefix="/columns")


@router.get("")
def list_columns(
    services: ServicesDep,
    include_inactive: bool = Query(default=False, alias="includeInactive"),
):
    """List columns sorted by order, then creation time."""
    columns = services.registry.list(include_inactive=include_inactive)
    return ok([c.to_dict() for c in columns], "Columns retrieved successfully")


@router.post("/add", status_code=201)
def create_column(body: ColumnCreate, services: ServicesDep):
    column = services.lifecycle.create(body.to_definition())
    return ok(column.to_dict(), "Column created successfully", 201)


# Registered before "/{key}" so "reorder" is not taken for a column key
@router.patch("/reorder")
def reorder_columns(body: ColumnOrders, services: ServicesDep):
    result = services.lifecycle.reorder(body.column_orders)
    message = (
        "Columns reordered successfully" if not result.failed
        else f"Reordered {result.succeeded} column(s), {result.failed} failed"
    )
    return ok(result.to_dict(), message)


@router.get("/{key}")
def get_column(key: str, services: ServicesDep):
    return ok(services.registry.get(key).to_dict(), "Column retrieved successfully")


@router.patch("/{key}")
def update_column(key: str, body: ColumnUpdate, services: ServicesDep):
    column = services.lifecycle.update(key, body.changes())
    return ok(column.to_dict(), "Column updated successfully")


@router.delete("/{key}")
def delete_column(
    key: str,
    services: ServicesDep,
    permanent: bool = Query(default=False),
):
    """Soft delete by default; ``permanent=true`` also removes all values."""
    column = services.lifecycle.delete(key, permanent=permanent)
    if permanent:
        return ok(column.to_dict(), "Column permanently deleted")
    return ok(column.to_dict(), "Column deactivated successfully")


@router.post("/{key}/restore")
def restore_column(key: str, services: ServicesDep):
    column = services.lifecycle.restore(key)
    return ok(column.to_dict(), "Column restored successfully")


@router.post("/{key}/duplicate", status_code=201)
def duplicate_column(key: str, services: ServicesDep):
    result = services.lifecycle.duplicate(key)
    return ok(result.to_dict(), "Column duplicated successfully", 201)


@router.patch("/{key}/type")
def retype_column(key: str, body: RetypeRequest, services: ServicesDep):
    if body.options_supplied():
        column = services.lifecycle.retype(key, body.type, body.options)
    else:
        column = services.lifecycle.retype(key, body.type)
    return ok(column.to_dict(), "Column type updated successfully")


@router.post("/{key}/autofill")
def autofill_column(key: str, body: AutofillRequest, services: ServicesDep):
    result = services.lifecycle.autofill(key, body.value, body.donor_ids)
    return ok(result.to_dict(), f"Autofilled {result.count} donor(s)")


@router.post("/{key}/add-right", status_code=201)
def add_column_right(key: str, body: ColumnCreate, services: ServicesDep):
    column = services.lifecycle.add_to_right(key, body.to_definition())
    return ok(column.to_dict(), "Column added successfully", 201)
