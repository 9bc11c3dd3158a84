import pytest

from eventboard.exceptions import ConflictError, NotFoundError, ValidationError
from eventboard.schemas.category import CategoryCreate, CategoryUpdate


def test_create_category(category_service):
    """Test creating a category with defaults"""
    category = category_service.create_category(CategoryCreate(name="Theatre"))

    assert category.name == "Theatre"
    assert category.active is True
    assert category.description is None
    assert category.id


def test_duplicate_name_conflicts(category_service, category):
    with pytest.raises(ConflictError):
        category_service.create_category(CategoryCreate(name="Music"))

    # names are case-sensitive
    assert category_service.create_category(CategoryCreate(name="music")).name == "music"


def test_blank_name_rejected(category_service):
    with pytest.raises(ValidationError) as exc_info:
        category_service.create_category(CategoryCreate(name="   "))
    assert exc_info.value.fields == ["name"]


def test_rename_checks_uniqueness(category_service, category):
    other = category_service.create_category(CategoryCreate(name="Theatre"))

    with pytest.raises(ConflictError):
        category_service.update_category(other.id, CategoryUpdate(name="Music"))

    renamed = category_service.update_category(other.id, CategoryUpdate(name="Drama"))
    assert renamed.name == "Drama"

    # the old name is free again
    assert category_service.create_category(CategoryCreate(name="Theatre")).name == "Theatre"


def test_keep_own_name_on_update(category_service, category):
    updated = category_service.update_category(
        category.id, CategoryUpdate(name="Music", description="Live music")
    )
    assert updated.name == "Music"
    assert updated.description == "Live music"


def test_update_unknown_category(category_service):
    with pytest.raises(NotFoundError):
        category_service.update_category("missing", CategoryUpdate(active=False))


def test_rename_after_concurrent_delete_is_not_found(category_service, category, monkeypatch):
    stale = category_service._get_item(category.id)
    category_service.delete_category(category.id)

    real_get_item = category_service._get_item
    reads = iter([stale])
    monkeypatch.setattr(
        category_service,
        "_get_item",
        lambda category_id: next(reads, None) or real_get_item(category_id),
    )

    with pytest.raises(NotFoundError):
        category_service.update_category(category.id, CategoryUpdate(name="Concerts"))


def test_delete_unused_category(category_service, category):
    result = category_service.delete_category(category.id)

    assert result.deleted is True
    assert result.eventsCount == 0
    with pytest.raises(NotFoundError):
        category_service.get_category(category.id)
    assert category_service.create_category(CategoryCreate(name="Music")).name == "Music"


def test_delete_used_category_deactivates(
    category_service, event_service, make_event_data, actors, category
):
    event_service.create_event(make_event_data(), actors["organizer"])
    event_service.create_event(make_event_data(), actors["admin"])

    result = category_service.delete_category(category.id)

    assert result.deleted is False
    assert result.eventsCount == 2
    kept = category_service.get_category(category.id, actors["admin"])
    assert kept.active is False


def test_inactive_category_hidden_from_public(category_service, category, actors):
    category_service.update_category(category.id, CategoryUpdate(active=False))
    visible = category_service.create_category(CategoryCreate(name="Sports"))

    public = category_service.list_categories(actors["alice"])
    assert [c.id for c in public] == [visible.id]

    everything = category_service.list_categories(actors["admin"])
    assert [c.name for c in everything] == ["Music", "Sports"]

    with pytest.raises(NotFoundError):
        category_service.get_category(category.id, actors["alice"])
    with pytest.raises(NotFoundError):
        category_service.get_category_stats(category.id, None)


def test_category_stats(category_service, event_service, make_event_data, actors, category):
    first = event_service.create_event(make_event_data(), actors["admin"])
    second = event_service.create_event(make_event_data(), actors["admin"])
    event_service.create_event(make_event_data(), actors["organizer"])

    event_service.participate(first.id, actors["alice"])
    event_service.participate(first.id, actors["bob"])
    event_service.participate(second.id, actors["alice"])

    public = category_service.get_category_stats(category.id, None)
    assert public.category.name == "Music"
    assert public.stats.eventsCount == 2
    assert public.stats.totalParticipants == 3
    assert public.stats.avgParticipantsPerEvent == 1.5
    assert public.stats.eventsByStatus == {
        "active": 2,
        "inactive": 0,
        "canceled": 0,
        "finished": 0,
    }

    admin = category_service.get_category_stats(category.id, actors["admin"])
    assert admin.stats.eventsCount == 3
    assert admin.stats.avgParticipantsPerEvent == 1.0
    assert admin.stats.eventsByStatus["inactive"] == 1


def test_stats_round_average(category_service, event_service, make_event_data, actors, category):
    events = [
        event_service.create_event(make_event_data(), actors["admin"]) for _ in range(3)
    ]
    event_service.participate(events[0].id, actors["alice"])

    stats = category_service.get_category_stats(category.id, actors["admin"]).stats
    assert stats.avgParticipantsPerEvent == 0.33
