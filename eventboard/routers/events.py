from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from eventboard.config import get_settings
from eventboard.database.dynamodb import get_db_connection
from eventboard.schemas.event import (
    ActionResult,
    ApprovalStatusOut,
    EventCreate,
    EventDetailOut,
    EventOut,
    EventSearchResult,
    EventStatus,
    EventUpdate,
    PendingEventsOut,
    RejectRequest,
)
from eventboard.schemas.search import EventSearchParams
from eventboard.schemas.user import Actor
from eventboard.security import get_current_actor, require_actor, require_admin
from eventboard.services.event_service import EventService

router = APIRouter(prefix="/events", tags=["events"])


def get_event_service():
    """Dependency to get EventService instance"""
    settings = get_settings()
    db = get_db_connection(settings)
    return EventService(db, settings.table_name, max_page_size=settings.max_page_size)


@router.get("/", response_model=EventSearchResult)
async def search_events(
    q: Optional[str] = Query(None, description="Full-text query, ranks by relevance"),
    search: Optional[str] = Query(None, description="Substring over title/description"),
    category: Optional[str] = Query(None, description="Category id or comma list"),
    categories: Optional[str] = Query(None, description="Comma separated category ids"),
    status: Optional[EventStatus] = Query(None, description="Filter by status"),
    date_from: Optional[datetime] = Query(None, alias="from"),
    date_to: Optional[datetime] = Query(None, alias="to"),
    startDate: Optional[datetime] = Query(None, description="Alias of 'from'"),
    endDate: Optional[datetime] = Query(None, description="Alias of 'to'"),
    period: Optional[int] = Query(None, ge=1, description="Next N days"),
    location: Optional[str] = Query(None, description="City, state or country"),
    city: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    country: Optional[str] = Query(None),
    minPrice: Optional[float] = Query(None, ge=0, allow_inf_nan=False),
    maxPrice: Optional[float] = Query(None, ge=0, allow_inf_nan=False),
    free: bool = Query(False, description="Only free events"),
    tags: Optional[str] = Query(None, description="Comma separated tags"),
    hasAvailability: bool = Query(False, description="Only events with seats left"),
    sort: Optional[str] = Query(None, description="date_asc, date_desc, price_asc, ..."),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1, description="Results per page"),
    actor: Optional[Actor] = Depends(get_current_actor),
    event_service: EventService = Depends(get_event_service),
):
    """Search events; anyone but an admin only sees approved events"""
    category_ids = [value for value in (category, categories) if value]
    params = EventSearchParams(
        q=q,
        search=search,
        categories=category_ids or None,
        status=status,
        dateFrom=date_from or startDate,
        dateTo=date_to or endDate,
        period=period,
        location=location,
        city=city,
        state=state,
        country=country,
        minPrice=minPrice,
        maxPrice=maxPrice,
        free=free,
        tags=tags,
        hasAvailability=hasAvailability,
        sort=sort,
        page=page,
        limit=limit or get_settings().default_page_size,
    )
    return event_service.search_events(params, actor)


@router.post("/", response_model=EventOut, status_code=201)
async def create_event(
    event_data: EventCreate,
    actor: Actor = Depends(require_actor),
    event_service: EventService = Depends(get_event_service),
):
    """Create an event; admin-authored events are approved immediately"""
    return event_service.create_event(event_data, actor)


@router.get("/pending", response_model=PendingEventsOut)
async def list_pending_events(
    actor: Actor = Depends(require_admin),
    event_service: EventService = Depends(get_event_service),
):
    return event_service.list_pending_events()


@router.get("/{event_id}", response_model=EventDetailOut)
async def get_event(
    event_id: str,
    actor: Optional[Actor] = Depends(get_current_actor),
    event_service: EventService = Depends(get_event_service),
):
    return event_service.get_event(event_id, actor)


@router.put("/{event_id}", response_model=EventOut)
async def update_event(
    event_id: str,
    changes: EventUpdate,
    actor: Actor = Depends(require_actor),
    event_service: EventService = Depends(get_event_service),
):
    """Edit an event; edits by the organizer send it back to review"""
    return event_service.update_event(event_id, changes, actor)


@router.delete("/{event_id}", response_model=ActionResult)
async def delete_event(
    event_id: str,
    actor: Actor = Depends(require_actor),
    event_service: EventService = Depends(get_event_service),
):
    event_service.delete_event(event_id, actor)
    return ActionResult(message="Event deleted")


@router.post("/{event_id}/participate", response_model=ActionResult)
async def participate(
    event_id: str,
    actor: Actor = Depends(require_actor),
    event_service: EventService = Depends(get_event_service),
):
    event_service.participate(event_id, actor)
    return ActionResult(message="Participation confirmed")


@router.delete("/{event_id}/participate", response_model=ActionResult)
async def cancel_participation(
    event_id: str,
    actor: Actor = Depends(require_actor),
    event_service: EventService = Depends(get_event_service),
):
    event_service.cancel_participation(event_id, actor)
    return ActionResult(message="Participation canceled")


@router.post("/{event_id}/cancel", response_model=ActionResult)
async def cancel_event(
    event_id: str,
    actor: Actor = Depends(require_actor),
    event_service: EventService = Depends(get_event_service),
):
    event_service.cancel_event(event_id, actor)
    return ActionResult(message="Event canceled")


@router.get("/{event_id}/approval-status", response_model=ApprovalStatusOut)
async def get_approval_status(
    event_id: str,
    actor: Actor = Depends(require_actor),
    event_service: EventService = Depends(get_event_service),
):
    return event_service.get_approval_status(event_id, actor)


@router.post("/{event_id}/approve", response_model=EventOut)
async def approve_event(
    event_id: str,
    actor: Actor = Depends(require_admin),
    event_service: EventService = Depends(get_event_service),
):
    return event_service.approve_event(event_id, actor)


@router.post("/{event_id}/reject", response_model=EventOut)
async def reject_event(
    event_id: str,
    body: RejectRequest,
    actor: Actor = Depends(require_admin),
    event_service: EventService = Depends(get_event_service),
):
    return event_service.reject_event(event_id, actor, body.reason)


@router.post("/{event_id}/finish", response_model=EventOut)
async def finish_event(
    event_id: str,
    actor: Actor = Depends(require_admin),
    event_service: EventService = Depends(get_event_service),
):
    """Mark an event as finished (terminal)"""
    return event_service.finish_event(event_id, actor)
