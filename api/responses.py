"""Response envelope shared by every endpoint.

Success:  {"success": true,  "message": ..., "data": ...}
Failure:  {"success": false, "message": ..., "error": ..., "details"?: ...}
"""

from typing import Any

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from fieldstore.errors import FieldStoreError


def ok(data: Any = None, message: str = "OK", status_code: int = 200) -> JSONResponse:
    """Wrap ``data`` in a success envelope."""
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder({"success": True, "message": message, "data": data}),
    )


def failure(
    message: str,
    error: str,
    status_code: int = 500,
    details: Any = None,
) -> JSONResponse:
    """Build a failure envelope."""
    body: dict[str, Any] = {"success": False, "message": message, "error": error}
    if details:
        body["details"] = details
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


def from_error(exc: FieldStoreError) -> JSONResponse:
    """Render a field store error with its own status code."""
    return failure(exc.message, exc.error, exc.status_code, exc.details)
