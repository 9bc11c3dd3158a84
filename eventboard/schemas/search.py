from enum import Enum
from pydantic import BaseModel, Field, field_validator
from typing import List, Optional
from datetime import datetime

from eventboard.schemas.event import EventStatus


class SortKey(str, Enum):
    DATE_ASC = "date_asc"
    DATE_DESC = "date_desc"
    PRICE_ASC = "price_asc"
    PRICE_DESC = "price_desc"
    RECENT = "recent"


class EventSearchParams(BaseModel):
    """Every search option the event listing recognises."""

    q: Optional[str] = None
    search: Optional[str] = None
    categories: Optional[List[str]] = None
    status: Optional[EventStatus] = None
    dateFrom: Optional[datetime] = None
    dateTo: Optional[datetime] = None
    period: Optional[int] = Field(None, ge=1)
    location: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    minPrice: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    maxPrice: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    free: bool = False
    tags: Optional[List[str]] = None
    hasAvailability: bool = False
    sort: SortKey = SortKey.DATE_ASC
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1)

    @field_validator("categories", "tags", mode="before")
    @classmethod
    def split_comma_list(cls, value):
        if value is None:
            return None
        if isinstance(value, str):
            value = [value]
        items = []
        for chunk in value:
            items.extend(part.strip() for part in str(chunk).split(","))
        items = [item for item in items if item]
        return items or None

    @field_validator("q", "search", "location", "city", "state", "country", mode="before")
    @classmethod
    def blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("sort", mode="before")
    @classmethod
    def legacy_sort_alias(cls, value):
        # "date" is the old name of the default ordering; unknown keys fall back to it
        if isinstance(value, SortKey):
            return value
        if value not in {key.value for key in SortKey}:
            return SortKey.DATE_ASC
        return value
