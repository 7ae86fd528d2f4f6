"""Donor endpoints: CRUD, custom field updates and advanced filtering."""

from typing import Literal

from fastapi import APIRouter, Query

from api.deps import ServicesDep
from api.responses import ok
from api.schemas import (
    CustomFieldUpdate, DonorCreate, DonorStatus, DonorUpdate, FilterRequest,
    GroupByRequest, SortRequest,
)
from fieldstore.errors import ValidationError

router = APIRouter(prefix="/donors")


def _page_data(page, **extra):
    data = {"donors": page.items, "pagination": page.pagination()}
    data.update(extra)
    return data


@router.get("")
def list_donors(
    services: ServicesDep,
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1),
    search: str | None = Query(default=None),
    sort_by: str = Query(default="createdAt", alias="sortBy"),
    order: Literal["asc", "desc"] = Query(default="desc"),
    status: DonorStatus | None = Query(default=None),
):
    """List donors with search, status filter, sorting and pagination."""
    result = services.donors.list(
        page=page, limit=limit, search=search, status=status,
        sort_by=sort_by, order=order,
    )
    return ok(_page_data(result), "Donors retrieved successfully")


@router.post("", status_code=201)
def create_donor(body: DonorCreate, services: ServicesDep):
    donor = services.donors.create(body.model_dump())
    return ok(donor, "Donor created successfully", 201)


# Static paths first so they are not captured by "/{donor_id}"
@router.post("/filter")
def filter_donors(body: FilterRequest, services: ServicesDep):
    """AND-combined ``{field, operator, value}`` filters over base fields
    and custom columns."""
    sort_by, order = (body.sort.field, body.sort.order) if body.sort else (None, "asc")
    result = services.query.query(
        filters=body.filters, sort_by=sort_by, order=order,
        page=body.page, limit=body.limit,
        include_inactive=body.include_inactive,
    )
    return ok(
        _page_data(result, appliedFilters=body.filters),
        "Filtered donors retrieved successfully",
    )


@router.post("/group-by")
def group_donors(body: GroupByRequest, services: ServicesDep):
    if not body.field:
        raise ValidationError.for_field("field", "Field is required for grouping")
    groups = services.query.group_by(body.field, filters=body.filters)
    return ok(
        {"field": body.field, "groups": [g.to_dict("donors") for g in groups]},
        "Donors grouped successfully",
    )


@router.post("/sort")
def sort_donors(body: SortRequest, services: ServicesDep):
    if not body.field:
        raise ValidationError.for_field("field", "Field is required for sorting")
    result = services.query.query(
        sort_by=body.field, order=body.order, page=body.page, limit=body.limit,
    )
    return ok(
        _page_data(result, sort={"field": body.field, "order": body.order}),
        "Donors sorted successfully",
    )


@router.get("/{donor_id}")
def get_donor(donor_id: str, services: ServicesDep):
    return ok(services.donors.get(donor_id), "Donor retrieved successfully")


@router.patch("/{donor_id}")
def update_donor(donor_id: str, body: DonorUpdate, services: ServicesDep):
    donor = services.donors.update(donor_id, body.changes())
    return ok(donor, "Donor updated successfully")


@router.delete("/{donor_id}")
def delete_donor(donor_id: str, services: ServicesDep):
    return ok(services.donors.delete(donor_id), "Donor deleted successfully")


@router.patch("/{donor_id}/custom")
def update_custom_field(donor_id: str, body: CustomFieldUpdate, services: ServicesDep):
    value = services.donors.set_custom_field(donor_id, body.column_key, body.value)
    return ok(value.to_dict(), "Custom field updated successfully")
