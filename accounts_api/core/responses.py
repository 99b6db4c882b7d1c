"""Standardized API response helpers.

Every endpoint answers with the same envelope:
    {"success": <bool>, "message": <str>, "data": <any>}

Failures carry an ``errors`` list instead of ``data``:
    {"success": false, "message": <str>, "errors": [...] | null}
"""

from typing import Any, Mapping, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


def success_response(message: str, data: Any = None, status_code: int = 200) -> JSONResponse:
    """Wrap *data* in the success envelope."""
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder({"success": True, "message": message, "data": data}),
    )


def error_response(
    message: str,
    status_code: int = 500,
    errors: Optional[list] = None,
    headers: Optional[Mapping[str, str]] = None,
) -> JSONResponse:
    """Wrap a failure in the error envelope."""
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder({"success": False, "message": message, "errors": errors}),
        headers=dict(headers) if headers else None,
    )
