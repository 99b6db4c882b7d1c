"""Pagination resolver.

Turns raw query-string values into a validated ``PaginationSpec``. The
``resolve_*`` functions are pure; the factories at the bottom bind
per-endpoint configuration (limits, sort allow-lists, filter specs) into
FastAPI dependencies at route registration.
"""

from dataclasses import dataclass
from typing import Annotated, Any, Mapping, Optional, Sequence

from fastapi import Query, Request

from accounts_api.core.exceptions import ValidationError
from accounts_api.schemas.pagination import PaginationSpec

DEFAULT_LIMIT = 10
MAX_LIMIT = 100
MAX_SEARCH_LENGTH = 100
SORT_ORDERS = ("asc", "desc")
# Largest OFFSET a BIGINT-backed store accepts
MAX_OFFSET = 2**63 - 1
FILTER_TYPES = ("number", "boolean", "array", "string")


@dataclass(frozen=True)
class FilterSpec:
    """How one filter key is coerced and which values it may take."""

    type: str = "string"
    values: Optional[Sequence[Any]] = None

    def __post_init__(self) -> None:
        if self.type not in FILTER_TYPES:
            raise ValueError(f"Unknown filter type: {self.type}")


def _parse_int(raw: Optional[str]) -> Optional[int]:
    if raw is None:
        return None
    try:
        return int(str(raw).strip())
    except ValueError:
        return None


def resolve_page_limit(
    page: Optional[str],
    limit: Optional[str],
    default_limit: int = DEFAULT_LIMIT,
    max_limit: int = MAX_LIMIT,
) -> PaginationSpec:
    """Validate page/limit and derive the offset.

    Missing or non-numeric values fall back to the defaults. A limit above
    *max_limit* is clamped, not rejected.
    """
    page_number = _parse_int(page)
    if page_number is None:
        page_number = 1
    limit_number = _parse_int(limit)
    if limit_number is None:
        limit_number = default_limit

    if page_number < 1:
        raise ValidationError("Page must be greater than 0")
    if limit_number < 1:
        raise ValidationError("Limit must be greater than 0")

    limit_number = min(limit_number, max_limit)
    offset = (page_number - 1) * limit_number
    if offset > MAX_OFFSET:
        raise ValidationError("Page is out of range")
    return PaginationSpec(page=page_number, limit=limit_number, offset=offset)


def resolve_search(q: Optional[str]) -> Optional[str]:
    """Trimmed search term, or None when blank."""
    if q is None:
        return None
    term = q.strip()
    if not term:
        return None
    if len(term) > MAX_SEARCH_LENGTH:
        raise ValidationError(f"Search query must be between 1 and {MAX_SEARCH_LENGTH} characters")
    return term


def resolve_sorting(
    sort: Optional[str],
    order: Optional[str],
    allowed_sort_fields: Sequence[str] = (),
    default_sort: str = "id",
    default_order: str = "desc",
) -> tuple[str, str]:
    sort_by = sort or default_sort
    sort_order = (order or default_order).lower()

    if allowed_sort_fields and sort_by not in allowed_sort_fields:
        raise ValidationError(
            f"Invalid sort field. Allowed fields: {', '.join(allowed_sort_fields)}"
        )
    if sort_order not in SORT_ORDERS:
        raise ValidationError("Order must be either asc or desc")
    return sort_by, sort_order


def _coerce_filter(raw: Any, spec: FilterSpec) -> tuple[bool, Any]:
    if spec.type == "number":
        values = raw if isinstance(raw, list) else [raw]
        number = _parse_int(values[0] if values else None)
        return number is not None, number
    if spec.type == "boolean":
        return True, (raw[0] if isinstance(raw, list) else raw) == "true"
    if spec.type == "array":
        return True, raw if isinstance(raw, list) else [raw]
    return True, raw[0] if isinstance(raw, list) else raw


def resolve_filters(query: Mapping[str, Any], allowed_filters: Mapping[str, FilterSpec]) -> dict[str, Any]:
    """Coerce the allowed filter keys present in *query*.

    A value that fails coercion or is outside the filter's allowed values is
    dropped silently; the request itself is never rejected here.
    """
    filters: dict[str, Any] = {}
    for key, spec in allowed_filters.items():
        if key not in query:
            continue
        getlist = getattr(query, "getlist", None)
        raw = getlist(key) if getlist is not None and spec.type == "array" else query[key]

        ok, value = _coerce_filter(raw, spec)
        if not ok:
            continue
        if spec.values is not None:
            candidates = value if spec.type == "array" else [value]
            if any(candidate not in spec.values for candidate in candidates):
                continue
        filters[key] = value
    return filters


# ----------------------------------------------------------------------
# FastAPI dependency factories
# ----------------------------------------------------------------------

PageParam = Annotated[Optional[str], Query(description="Page number, starting at 1")]
LimitParam = Annotated[Optional[str], Query(description="Items per page")]


def pagination(default_limit: int = DEFAULT_LIMIT, max_limit: int = MAX_LIMIT):
    def dependency(page: PageParam = None, limit: LimitParam = None) -> PaginationSpec:
        return resolve_page_limit(page, limit, default_limit, max_limit)

    return dependency


def search_pagination(default_limit: int = DEFAULT_LIMIT, max_limit: int = MAX_LIMIT):
    def dependency(
        page: PageParam = None,
        limit: LimitParam = None,
        q: Annotated[Optional[str], Query(description="Free-text search")] = None,
    ) -> PaginationSpec:
        spec = resolve_page_limit(page, limit, default_limit, max_limit)
        spec.search = resolve_search(q)
        return spec

    return dependency


def sortable_pagination(
    allowed_sort_fields: Sequence[str] = (),
    default_sort: str = "id",
    default_order: str = "desc",
    default_limit: int = DEFAULT_LIMIT,
    max_limit: int = MAX_LIMIT,
):
    def dependency(
        page: PageParam = None,
        limit: LimitParam = None,
        sort: Annotated[Optional[str], Query()] = None,
        order: Annotated[Optional[str], Query()] = None,
    ) -> PaginationSpec:
        spec = resolve_page_limit(page, limit, default_limit, max_limit)
        spec.sort_by, spec.order = resolve_sorting(
            sort, order, allowed_sort_fields, default_sort, default_order
        )
        return spec

    return dependency


def filterable_pagination(
    allowed_filters: Mapping[str, FilterSpec],
    default_limit: int = DEFAULT_LIMIT,
    max_limit: int = MAX_LIMIT,
):
    def dependency(request: Request, page: PageParam = None, limit: LimitParam = None) -> PaginationSpec:
        spec = resolve_page_limit(page, limit, default_limit, max_limit)
        spec.filters = resolve_filters(request.query_params, allowed_filters)
        return spec

    return dependency
