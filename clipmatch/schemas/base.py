"""Base schema classes and generic types."""

from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, computed_field

T = TypeVar("T")


class BaseResponse(BaseModel):
    """Base for all response schemas with from_attributes config."""

    model_config = ConfigDict(from_attributes=True)


class PageResponse(BaseModel, Generic[T]):  # noqa: UP046
    """Generic page of items with pagination metadata."""

    items: list[T]
    total: int  # Total count of items matching the query (may exceed len(items))
    page: int
    page_size: int

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_pages(self) -> int:
        return -(-self.total // self.page_size) if self.page_size else 0
