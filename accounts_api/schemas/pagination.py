"""Pagination schemas and utilities."""

import math
from typing import Any, Dict, Generic, List, Literal, Optional, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class PaginationMeta(BaseModel):
    """Page-count metadata returned next to every page of data."""

    currentPage: int
    totalPages: int
    totalItems: int
    itemsPerPage: int
    hasNextPage: bool
    hasPrevPage: bool

    @classmethod
    def create(cls, total: int, page: int, limit: int) -> "PaginationMeta":
        total_pages = math.ceil(total / limit)
        return cls(
            currentPage=page,
            totalPages=total_pages,
            totalItems=total,
            itemsPerPage=limit,
            hasNextPage=page < total_pages,
            hasPrevPage=page > 1,
        )


class SortingEcho(BaseModel):
    sortBy: str
    order: Literal["asc", "desc"]


class PaginatedResponse(BaseModel, Generic[T]):
    """Generic paginated response wrapper."""

    data: List[T]
    pagination: PaginationMeta
    search: Optional[str] = None
    sorting: Optional[SortingEcho] = None
    filters: Optional[Dict[str, Any]] = None

    def as_payload(self) -> Dict[str, Any]:
        """Dump to a dict, leaving out echoes that were not requested."""
        payload = self.model_dump(mode="json")
        for key in ("search", "sorting", "filters"):
            if payload[key] is None:
                del payload[key]
        return payload


class PaginationSpec(BaseModel):
    """Validated page window plus the optional search/sort/filter extras."""

    page: int = Field(ge=1)
    limit: int = Field(ge=1)
    offset: int = Field(ge=0)
    search: Optional[str] = None
    sort_by: Optional[str] = None
    order: Optional[Literal["asc", "desc"]] = None
    filters: Dict[str, Any] = Field(default_factory=dict)

    def envelope(self, data: List[Any], total: int) -> PaginatedResponse:
        """Wrap one page of *data* with metadata and the request echoes."""
        return PaginatedResponse(
            data=data,
            pagination=PaginationMeta.create(total, self.page, self.limit),
            search=self.search or None,
            sorting=SortingEcho(sortBy=self.sort_by, order=self.order) if self.sort_by else None,
            filters=self.filters or None,
        )
