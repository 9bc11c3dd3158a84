"""
Translate event search options into a store query.

Each recognised option is handled by one small function that returns a
condition fragment (or ``None`` when the option is absent); the fragments
are AND-ed together into a single DynamoDB filter expression. Visibility
rules are applied last, so callers can never widen them with their own
options.

Ordering, text relevance and paging happen after the store returns the
matching items, see :func:`rank_events`.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from functools import reduce
from typing import Callable, Dict, List, Optional

from boto3.dynamodb.conditions import Attr, ConditionBase

from eventboard.database.items import iso, to_decimal, utcnow
from eventboard.schemas.event import ApprovalStatus, EventStatus, SearchFilters
from eventboard.schemas.search import EventSearchParams, SortKey
from eventboard.schemas.user import Actor

RELEVANCE = "relevance"

# weight of a term hit per searchable field
TEXT_FIELDS = {"searchTitle": 2.0, "searchDescription": 1.0, "searchAddress": 1.0}

SORT_FIELDS = {
    SortKey.DATE_ASC: ("date", False),
    SortKey.DATE_DESC: ("date", True),
    SortKey.PRICE_ASC: ("price", False),
    SortKey.PRICE_DESC: ("price", True),
    SortKey.RECENT: ("createdAt", True),
}


@dataclass
class SortSpec:
    name: str
    field: str
    descending: bool


@dataclass
class EventQuery:
    condition: Optional[ConditionBase]
    sort: SortSpec
    page: int
    limit: int
    filters: SearchFilters
    text_terms: List[str] = field(default_factory=list)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def text_terms(params: EventSearchParams) -> List[str]:
    if not params.q:
        return []
    return re.findall(r"\w+", params.q.lower())


def any_of(conditions: List[ConditionBase]) -> Optional[ConditionBase]:
    if not conditions:
        return None
    return reduce(lambda left, right: left | right, conditions)


def all_of(conditions: List[Optional[ConditionBase]]) -> Optional[ConditionBase]:
    present = [c for c in conditions if c is not None]
    if not present:
        return None
    return reduce(lambda left, right: left & right, present)


def text_filter(params: EventSearchParams, now: datetime) -> Optional[ConditionBase]:
    terms = text_terms(params)
    if terms:
        return any_of(
            [Attr(attr).contains(term) for term in terms for attr in TEXT_FIELDS]
        )
    if params.search and not params.q:
        needle = params.search.lower()
        return Attr("searchTitle").contains(needle) | Attr("searchDescription").contains(
            needle
        )
    return None


def category_filter(params: EventSearchParams, now: datetime) -> Optional[ConditionBase]:
    if not params.categories:
        return None
    if len(params.categories) == 1:
        return Attr("categoryId").eq(params.categories[0])
    return Attr("categoryId").is_in(params.categories)


def status_filter(params: EventSearchParams, now: datetime) -> Optional[ConditionBase]:
    if params.status is None:
        return None
    return Attr("status").eq(params.status.value)


def has_date_range(params: EventSearchParams) -> bool:
    return params.dateFrom is not None or params.dateTo is not None


def date_filter(params: EventSearchParams, now: datetime) -> Optional[ConditionBase]:
    if has_date_range(params):
        if params.dateFrom is not None and params.dateTo is not None:
            return Attr("date").between(iso(params.dateFrom), iso(params.dateTo))
        if params.dateFrom is not None:
            return Attr("date").gte(iso(params.dateFrom))
        return Attr("date").lte(iso(params.dateTo))
    if params.period:
        return Attr("date").between(iso(now), iso(now + timedelta(days=params.period)))
    return None


def location_filter(params: EventSearchParams, now: datetime) -> Optional[ConditionBase]:
    if params.location:
        needle = params.location.lower()
        return any_of(
            [
                Attr("searchCity").contains(needle),
                Attr("searchState").contains(needle),
                Attr("searchCountry").contains(needle),
            ]
        )
    return all_of(
        [
            Attr("searchCity").contains(params.city.lower()) if params.city else None,
            Attr("searchState").contains(params.state.lower()) if params.state else None,
            Attr("searchCountry").contains(params.country.lower())
            if params.country
            else None,
        ]
    )


def price_filter(params: EventSearchParams, now: datetime) -> Optional[ConditionBase]:
    if params.free:
        return Attr("price").eq(to_decimal(0))
    return all_of(
        [
            Attr("price").gte(to_decimal(params.minPrice))
            if params.minPrice is not None
            else None,
            Attr("price").lte(to_decimal(params.maxPrice))
            if params.maxPrice is not None
            else None,
        ]
    )


def tags_filter(params: EventSearchParams, now: datetime) -> Optional[ConditionBase]:
    if not params.tags:
        return None
    return any_of([Attr("tags").contains(tag) for tag in params.tags])


def availability_filter(
    params: EventSearchParams, now: datetime
) -> Optional[ConditionBase]:
    if not params.hasAvailability:
        return None
    # seatsLeft is only stored for events with a finite capacity
    return Attr("seatsLeft").not_exists() | Attr("seatsLeft").gt(0)


FILTER_BUILDERS: List[Callable[[EventSearchParams, datetime], Optional[ConditionBase]]] = [
    text_filter,
    category_filter,
    status_filter,
    date_filter,
    location_filter,
    price_filter,
    tags_filter,
    availability_filter,
]


def visibility_filter(
    params: EventSearchParams, actor: Optional[Actor]
) -> Optional[ConditionBase]:
    """Anyone but an admin only sees approved events, and active ones unless
    they asked for a specific status."""
    if actor is not None and actor.is_admin:
        return None
    condition = Attr("approvalStatus").eq(ApprovalStatus.APPROVED.value)
    if params.status is None:
        condition = condition & Attr("status").eq(EventStatus.ACTIVE.value)
    return condition


def resolve_sort(params: EventSearchParams) -> SortSpec:
    if text_terms(params):
        return SortSpec(name=RELEVANCE, field="score", descending=True)
    field_name, descending = SORT_FIELDS[params.sort]
    return SortSpec(name=params.sort.value, field=field_name, descending=descending)


def applied_filters(
    params: EventSearchParams, actor: Optional[Actor], sort: SortSpec
) -> SearchFilters:
    status = params.status
    if status is None and not (actor is not None and actor.is_admin):
        status = EventStatus.ACTIVE
    general_location = params.location
    return SearchFilters(
        textSearch=bool(text_terms(params) or (params.search and not params.q)),
        category=params.categories,
        status=status,
        dateRange=has_date_range(params),
        period=params.period if not has_date_range(params) else None,
        location=general_location,
        city=params.city if not general_location else None,
        state=params.state if not general_location else None,
        country=params.country if not general_location else None,
        price=params.free or params.minPrice is not None or params.maxPrice is not None,
        free=params.free,
        tags=params.tags,
        hasAvailability=params.hasAvailability,
        sort=sort.name,
    )


def build_event_query(
    params: EventSearchParams,
    actor: Optional[Actor] = None,
    now: Optional[datetime] = None,
    max_limit: Optional[int] = None,
) -> EventQuery:
    now = now or utcnow()
    fragments = [builder(params, now) for builder in FILTER_BUILDERS]
    fragments.append(visibility_filter(params, actor))
    sort = resolve_sort(params)
    limit = min(params.limit, max_limit) if max_limit else params.limit
    return EventQuery(
        condition=all_of(fragments),
        sort=sort,
        page=params.page,
        limit=limit,
        filters=applied_filters(params, actor, sort),
        text_terms=text_terms(params),
    )


def relevance_score(item: Dict, terms: List[str]) -> float:
    score = 0.0
    for attr, weight in TEXT_FIELDS.items():
        text = item.get(attr) or ""
        for term in terms:
            score += weight * text.count(term)
    return score


def rank_events(items: List[Dict], query: EventQuery) -> List[Dict]:
    """Order matching items; ties are broken by start date, then id."""
    if query.sort.name == RELEVANCE:
        for item in items:
            item["score"] = relevance_score(item, query.text_terms)
    ordered = sorted(items, key=lambda item: (item["date"], item["id"]))
    return sorted(ordered, key=lambda item: item[query.sort.field], reverse=query.sort.descending)
