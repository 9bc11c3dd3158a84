from datetime import timedelta

import pytest

from eventboard.schemas.category import CategoryCreate
from eventboard.schemas.search import EventSearchParams


@pytest.fixture
def listing(event_service, category_service, make_event_data, actors, clock):
    """A small catalogue covering every visibility state"""
    sports = category_service.create_category(CategoryCreate(name="Sports"))
    admin = actors["admin"]
    events = {
        "jazz": event_service.create_event(
            make_event_data(title="Jazz Night", price=0, capacity=None), admin
        ),
        "rock": event_service.create_event(
            make_event_data(
                title="Rock Festival",
                description="Three stages of rock, with a jazz tent at the back",
                date=clock.now + timedelta(days=3),
                price=120,
                capacity=1,
                tags=["music", "festival"],
            ),
            admin,
        ),
        "run": event_service.create_event(
            make_event_data(
                title="City Marathon",
                description="Forty-two kilometres around the old town",
                date=clock.now + timedelta(days=40),
                category=sports.id,
                price=60,
                tags=["running"],
                location={
                    "address": "Avenida Paulista 1000",
                    "city": "Sao Paulo",
                    "state": "SP",
                    "country": "Brasil",
                },
            ),
            admin,
        ),
        "pending": event_service.create_event(
            make_event_data(title="Pending Jazz Jam"), actors["organizer"]
        ),
        "canceled": event_service.create_event(
            make_event_data(title="Canceled Concert"), admin
        ),
    }
    event_service.cancel_event(events["canceled"].id, admin)
    event_service.participate(events["rock"].id, actors["alice"])
    events["sports"] = sports
    return events


def ids(result):
    return [event.id for event in result.events]


def test_public_search_shows_approved_active_only(event_service, listing):
    result = event_service.search_events(EventSearchParams(), None)

    assert ids(result) == [listing["rock"].id, listing["jazz"].id, listing["run"].id]
    assert result.total == 3
    assert result.filters.status == "active"


def test_requested_status_is_respected(event_service, listing, actors):
    result = event_service.search_events(
        EventSearchParams(status="canceled"), actors["alice"]
    )
    assert ids(result) == [listing["canceled"].id]


def test_admin_sees_pending_and_canceled(event_service, listing, actors):
    result = event_service.search_events(EventSearchParams(), actors["admin"])
    assert result.total == 5


def test_text_search_ranks_title_hits_first(event_service, listing):
    result = event_service.search_events(EventSearchParams(q="jazz"), None)

    assert ids(result) == [listing["jazz"].id, listing["rock"].id]
    assert result.events[0].score > result.events[1].score
    assert result.filters.sort == "relevance"


def test_legacy_search_keeps_date_order(event_service, listing):
    result = event_service.search_events(EventSearchParams(search="JAZZ"), None)

    assert ids(result) == [listing["rock"].id, listing["jazz"].id]
    assert result.filters.sort == "date_asc"


def test_category_filter(event_service, listing):
    result = event_service.search_events(
        EventSearchParams(categories=listing["sports"].id), None
    )
    assert ids(result) == [listing["run"].id]


def test_free_and_price_range(event_service, listing):
    free = event_service.search_events(EventSearchParams(free=True), None)
    assert ids(free) == [listing["jazz"].id]

    mid = event_service.search_events(EventSearchParams(minPrice=50, maxPrice=100), None)
    assert ids(mid) == [listing["run"].id]


def test_tags_match_any(event_service, listing):
    result = event_service.search_events(EventSearchParams(tags="festival,running"), None)
    assert set(ids(result)) == {listing["rock"].id, listing["run"].id}


def test_has_availability(event_service, listing):
    """The full capacity-1 event drops out; the unlimited one stays"""
    result = event_service.search_events(EventSearchParams(hasAvailability=True), None)
    assert ids(result) == [listing["jazz"].id, listing["run"].id]


def test_location_filters(event_service, listing):
    general = event_service.search_events(EventSearchParams(location="paulo"), None)
    assert ids(general) == [listing["run"].id]

    by_state = event_service.search_events(EventSearchParams(state="pr"), None)
    assert ids(by_state) == [listing["rock"].id, listing["jazz"].id]


def test_period_window(event_service, listing):
    result = event_service.search_events(EventSearchParams(period=5), None)
    assert ids(result) == [listing["rock"].id]


def test_date_range(event_service, listing, clock):
    result = event_service.search_events(
        EventSearchParams(
            dateFrom=clock.now + timedelta(days=5), dateTo=clock.now + timedelta(days=50)
        ),
        None,
    )
    assert ids(result) == [listing["jazz"].id, listing["run"].id]
    assert result.filters.dateRange is True


def test_sort_by_price_desc(event_service, listing):
    result = event_service.search_events(EventSearchParams(sort="price_desc"), None)
    assert ids(result) == [listing["rock"].id, listing["run"].id, listing["jazz"].id]


def test_paging(event_service, listing):
    first = event_service.search_events(EventSearchParams(limit=2), None)
    second = event_service.search_events(EventSearchParams(limit=2, page=2), None)

    assert first.pages == 2
    assert first.total == 3
    assert len(first.events) == 2
    assert ids(second) == [listing["run"].id]

    beyond = event_service.search_events(EventSearchParams(limit=2, page=9), None)
    assert beyond.events == []
    assert beyond.total == 3
