import logging
import math
import uuid
from datetime import datetime
from typing import Callable, Dict, List, Optional

from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from eventboard.database.items import (
    build_update,
    iso,
    is_conditional_failure,
    page_count,
    parse_iso,
    query_all,
    to_decimal,
    utcnow,
)
from eventboard.database.keys import (
    EVENT_TIMELINE,
    category_partition,
    event_key,
    organizer_partition,
)
from eventboard.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from eventboard.schemas.category import CategorySummary
from eventboard.schemas.event import (
    ApprovalStatus,
    ApprovalStatusOut,
    EventCreate,
    EventDetailOut,
    EventOut,
    EventSearchResult,
    EventStatus,
    EventUpdate,
    Location,
    PendingEventsOut,
)
from eventboard.schemas.search import EventSearchParams
from eventboard.schemas.user import Actor, UserSummary, is_admin
from eventboard.services.category_service import CategoryService
from eventboard.services.query_builder import build_event_query, rank_events
from eventboard.services.roster import (
    add_participant,
    participants_of,
    remove_participant,
)
from eventboard.services.user_service import UserService

logger = logging.getLogger(__name__)

# Once an event reaches one of these it no longer changes
TERMINAL_STATUSES = (EventStatus.CANCELED.value, EventStatus.FINISHED.value)


def validate_event_fields(
    fields: Dict, now: datetime, effective_date=None, effective_end=None
) -> List[Dict]:
    """
    Check every event field present in ``fields`` and return one entry per
    violated field. ``effective_date`` and ``effective_end`` are the stored
    start and end dates, used when an edit changes only one of the two.
    """
    errors = []

    def fail(field_name, message):
        errors.append({"field": field_name, "message": message})

    if "title" in fields:
        title = (fields["title"] or "").strip()
        if len(title) < 3 or len(title) > 100:
            fail("title", "Title must be 3-100 characters")

    if "description" in fields:
        if len((fields["description"] or "").strip()) < 10:
            fail("description", "Description must be at least 10 characters")

    start = effective_date
    if "date" in fields:
        if fields["date"] is None:
            fail("date", "Date is required")
        else:
            start = fields["date"]
            if iso(start) <= iso(now):
                fail("date", "Date must be in the future")

    end = fields["endDate"] if "endDate" in fields else effective_end
    if end is not None and start is not None:
        if iso(end) < iso(start):
            fail("endDate", "End date must not be before the start date")

    if "location" in fields:
        location = fields["location"] or {}
        for part in ("address", "city", "state", "country"):
            if not (location.get(part) or "").strip():
                fail(f"location.{part}", f"Location {part} is required")

    if fields.get("capacity") is not None and fields["capacity"] < 1:
        fail("capacity", "Capacity must be at least 1")

    if "price" in fields:
        price = fields["price"]
        if price is None or not math.isfinite(price) or price < 0:
            fail("price", "Price must be a non-negative number")

    if "tags" in fields:
        tags = fields["tags"] or []
        if len(tags) > 10:
            fail("tags", "At most 10 tags are allowed")
        for tag in tags:
            if len(tag.strip()) < 3 or len(tag.strip()) > 30:
                fail("tags", f"Tag '{tag}' must be 3-30 characters")
                break

    return errors


def search_fields(title: str, description: str, location: Dict) -> Dict[str, str]:
    return {
        "searchTitle": title.lower(),
        "searchDescription": description.lower(),
        "searchAddress": location["address"].lower(),
        "searchCity": location["city"].lower(),
        "searchState": location["state"].lower(),
        "searchCountry": location["country"].lower(),
    }


def approval_fields(actor: Actor, now: datetime) -> Dict:
    """Admin-authored writes are approved on the spot; anything else waits
    for review."""
    if actor.is_admin:
        return {
            "approvalStatus": ApprovalStatus.APPROVED.value,
            "status": EventStatus.ACTIVE.value,
            "approvedBy": actor.id,
            "approvalDate": iso(now),
            "rejectionReason": None,
        }
    return {
        "approvalStatus": ApprovalStatus.PENDING.value,
        "status": EventStatus.INACTIVE.value,
        "approvedBy": None,
        "approvalDate": None,
        "rejectionReason": None,
    }


class EventService:
    """
    Event lifecycle: creation, edits, review, participation and teardown.

    ``status`` and ``approvalStatus`` move together: an approved event is
    active (until canceled or finished) and a pending or rejected one is
    inactive. Every write is a conditional update, either on the
    transition's own precondition or on the ``version`` read beforehand,
    so a failed check never leaves a partial change behind.
    """

    def __init__(
        self,
        dynamodb_resource,
        table_name="EventBoard",
        clock: Callable[[], datetime] = utcnow,
        max_page_size: Optional[int] = None,
        user_service: Optional[UserService] = None,
    ):
        self.dynamodb = dynamodb_resource
        self.table = dynamodb_resource.Table(table_name)
        self.clock = clock
        self.max_page_size = max_page_size
        self.category_service = CategoryService(dynamodb_resource, table_name)
        self.user_service = user_service or UserService(dynamodb_resource, table_name)

    # -- creation and reads ----------------------------------------------

    def create_event(self, event_data: EventCreate, actor: Actor) -> EventOut:
        now = self.clock()
        fields = event_data.model_dump()
        errors = validate_event_fields(fields, now)
        if errors:
            raise ValidationError("Invalid event data", errors)
        self.category_service.require_active_category(event_data.category)

        event_id = str(uuid.uuid4())
        date = iso(event_data.date)
        created_at = iso(now)
        location = {k: v.strip() for k, v in fields["location"].items()}
        title = event_data.title.strip()
        description = event_data.description.strip()

        item = {
            **event_key(event_id),
            "id": event_id,
            "title": title,
            "description": description,
            "date": date,
            "endDate": iso(event_data.endDate),
            "location": location,
            "categoryId": event_data.category,
            "capacity": event_data.capacity,
            "seatsLeft": event_data.capacity,
            "price": to_decimal(event_data.price),
            "organizerId": actor.id,
            "tags": [tag.strip() for tag in event_data.tags],
            "participantCount": 0,
            "createdAt": created_at,
            "updatedAt": created_at,
            "version": 1,
            **approval_fields(actor, now),
            **search_fields(title, description, location),
            "GSI_EventsByDate_PK": EVENT_TIMELINE,
            "GSI_EventsByDate_SK": f"{date}#{event_id}",
            "GSI_EventsByOrganizer_PK": organizer_partition(actor.id),
            "GSI_EventsByOrganizer_SK": f"{created_at}#{event_id}",
            "GSI_EventsByCategory_PK": category_partition(event_data.category),
            "GSI_EventsByCategory_SK": f"{date}#{event_id}",
        }
        # Optional attributes are left out rather than stored as null
        item = {k: v for k, v in item.items() if v is not None}

        self.table.put_item(Item=item, ConditionExpression=Attr("PK").not_exists())
        logger.info(
            "Created event %s by %s (%s)", event_id, actor.id, item["approvalStatus"]
        )
        return self._to_out([item])[0]

    def get_event(self, event_id: str, actor: Optional[Actor] = None) -> EventDetailOut:
        item = self._get_visible_item(event_id, actor)
        out = self._to_out([item])[0]

        user_ids = list(participants_of(item))
        if item.get("approvedBy"):
            user_ids.append(item["approvedBy"])
        users = self.user_service.get_summaries(user_ids)
        return EventDetailOut(
            **out.model_dump(),
            participantUsers=[
                users.get(user_id, UserSummary(id=user_id)) for user_id in out.participants
            ],
            approvedByUser=users.get(item["approvedBy"]) if item.get("approvedBy") else None,
        )

    def get_approval_status(
        self, event_id: str, actor: Optional[Actor] = None
    ) -> ApprovalStatusOut:
        item = self._get_visible_item(event_id, actor)
        approver = None
        if item.get("approvedBy"):
            approver = self.user_service.get_summaries([item["approvedBy"]]).get(
                item["approvedBy"], UserSummary(id=item["approvedBy"])
            )
        return ApprovalStatusOut(
            id=item["id"],
            approvalStatus=item["approvalStatus"],
            approvedBy=approver,
            approvalDate=item.get("approvalDate"),
            rejectionReason=item.get("rejectionReason"),
        )

    def search_events(
        self, params: EventSearchParams, actor: Optional[Actor] = None
    ) -> EventSearchResult:
        query = build_event_query(
            params, actor, now=self.clock(), max_limit=self.max_page_size
        )
        query_params = {
            "IndexName": "GSI_EventsByDate",
            "KeyConditionExpression": Key("GSI_EventsByDate_PK").eq(EVENT_TIMELINE),
        }
        if query.condition is not None:
            query_params["FilterExpression"] = query.condition

        matches = rank_events(query_all(self.table, **query_params), query)
        page_items = matches[query.offset : query.offset + query.limit]
        return EventSearchResult(
            events=self._to_out(page_items),
            page=query.page,
            pages=page_count(len(matches), query.limit),
            total=len(matches),
            filters=query.filters,
        )

    def list_pending_events(self) -> PendingEventsOut:
        items = query_all(
            self.table,
            IndexName="GSI_EventsByDate",
            KeyConditionExpression=Key("GSI_EventsByDate_PK").eq(EVENT_TIMELINE),
            FilterExpression=Attr("approvalStatus").eq(ApprovalStatus.PENDING.value)
            & ~Attr("status").is_in(list(TERMINAL_STATUSES)),
        )
        items.sort(key=lambda item: item["createdAt"], reverse=True)
        return PendingEventsOut(count=len(items), events=self._to_out(items))

    # -- edits --------------------------------------------------------------

    def update_event(self, event_id: str, changes: EventUpdate, actor: Actor) -> EventOut:
        item = self._get_item(event_id)
        self._require_owner_or_admin(item, actor)
        if item["status"] in TERMINAL_STATUSES:
            raise ConflictError(f"Cannot edit a {item['status']} event")

        now = self.clock()
        updates = {
            field_name: value
            for field_name, value in changes.model_dump(exclude_unset=True).items()
            # only endDate and capacity may be cleared
            if value is not None or field_name in ("endDate", "capacity")
        }
        if "location" in updates:
            updates["location"] = {
                **item["location"],
                **{k: v for k, v in updates["location"].items() if v is not None},
            }

        errors = validate_event_fields(
            updates,
            now,
            effective_date=parse_iso(item["date"]),
            effective_end=parse_iso(item.get("endDate")),
        )
        if errors:
            raise ValidationError("Invalid event data", errors)

        if "category" in updates and updates["category"] != item["categoryId"]:
            self.category_service.require_active_category(updates["category"])

        participant_count = int(item.get("participantCount", 0))
        if updates.get("capacity") is not None and updates["capacity"] < participant_count:
            raise ConflictError(
                "Capacity cannot be lower than the current number of participants"
            )

        values = self._stored_changes(item, updates)
        values.update(approval_fields(actor, now))
        values["updatedAt"] = iso(now)

        self._write(
            item,
            values,
            Attr("version").eq(item["version"]),
            "Event was modified by another request, reload and retry",
        )
        logger.info("Updated event %s by %s", event_id, actor.id)
        return self._to_out([self._get_item(event_id)])[0]

    def _stored_changes(self, item: Dict, updates: Dict) -> Dict:
        """Map API field changes onto stored attributes, derived ones included."""
        values = {}
        title = updates.get("title", item["title"]).strip()
        description = updates.get("description", item["description"]).strip()
        location = {k: v.strip() for k, v in updates.get("location", item["location"]).items()}

        if "title" in updates:
            values["title"] = title
        if "description" in updates:
            values["description"] = description
        if "location" in updates:
            values["location"] = location
        if "price" in updates:
            values["price"] = to_decimal(updates["price"])
        if "tags" in updates:
            values["tags"] = [tag.strip() for tag in updates["tags"]]
        if "endDate" in updates:
            values["endDate"] = iso(updates["endDate"])

        date = item["date"]
        if "date" in updates:
            date = iso(updates["date"])
            values["date"] = date
            values["GSI_EventsByDate_SK"] = f"{date}#{item['id']}"
            values["GSI_EventsByCategory_SK"] = f"{date}#{item['id']}"

        if "category" in updates:
            values["categoryId"] = updates["category"]
            values["GSI_EventsByCategory_PK"] = category_partition(updates["category"])
            values["GSI_EventsByCategory_SK"] = f"{date}#{item['id']}"

        if "capacity" in updates:
            capacity = updates["capacity"]
            values["capacity"] = capacity
            values["seatsLeft"] = (
                capacity - int(item.get("participantCount", 0))
                if capacity is not None
                else None
            )

        values.update(search_fields(title, description, location))
        return values

    # -- review -------------------------------------------------------------

    def approve_event(self, event_id: str, actor: Actor) -> EventOut:
        self._require_admin(actor)
        item = self._get_item(event_id)
        self._require_reviewable(item)

        now = self.clock()
        self._write(
            item,
            {
                "approvalStatus": ApprovalStatus.APPROVED.value,
                "status": EventStatus.ACTIVE.value,
                "approvedBy": actor.id,
                "approvalDate": iso(now),
                "rejectionReason": None,
                "updatedAt": iso(now),
            },
            self._reviewable_condition(),
            "Event is not pending approval",
        )
        logger.info("Event %s approved by %s", event_id, actor.id)
        return self._to_out([self._get_item(event_id)])[0]

    def reject_event(self, event_id: str, actor: Actor, reason: Optional[str]) -> EventOut:
        self._require_admin(actor)
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError(
                "A rejection reason is required",
                [{"field": "reason", "message": "A rejection reason is required"}],
            )
        item = self._get_item(event_id)
        self._require_reviewable(item)

        now = self.clock()
        self._write(
            item,
            {
                "approvalStatus": ApprovalStatus.REJECTED.value,
                "status": EventStatus.INACTIVE.value,
                "approvedBy": actor.id,
                "approvalDate": iso(now),
                "rejectionReason": reason,
                "updatedAt": iso(now),
            },
            self._reviewable_condition(),
            "Event is not pending approval",
        )
        logger.info("Event %s rejected by %s", event_id, actor.id)
        return self._to_out([self._get_item(event_id)])[0]

    def _require_reviewable(self, item: Dict) -> None:
        if item["approvalStatus"] != ApprovalStatus.PENDING.value:
            raise ConflictError("Event is not pending approval")
        if item["status"] in TERMINAL_STATUSES:
            raise ConflictError(f"Cannot review a {item['status']} event")

    @staticmethod
    def _reviewable_condition():
        return Attr("approvalStatus").eq(ApprovalStatus.PENDING.value) & ~Attr(
            "status"
        ).is_in(list(TERMINAL_STATUSES))

    # -- participation -----------------------------------------------------

    def participate(self, event_id: str, actor: Actor) -> None:
        item = self._get_item(event_id)
        blocker = self._participation_blocker(item, actor.id)
        if blocker:
            raise ConflictError(blocker)

        try:
            add_participant(self.table, item, actor.id)
        except ClientError as e:
            if not is_conditional_failure(e):
                raise
            # Lost a race; explain with the current state
            current = self._get_item(event_id)
            blocker = self._participation_blocker(current, actor.id)
            logger.warning(
                "Participation of %s in %s refused: %s", actor.id, event_id, blocker
            )
            raise ConflictError(
                blocker or "Event was modified by another request, reload and retry"
            )

        logger.info("User %s joined event %s", actor.id, event_id)

    def cancel_participation(self, event_id: str, actor: Actor) -> None:
        item = self._get_item(event_id)
        if actor.id not in participants_of(item):
            raise ConflictError("You are not participating in this event")

        try:
            remove_participant(self.table, item, actor.id)
        except ClientError as e:
            if not is_conditional_failure(e):
                raise
            current = self._get_item(event_id)
            logger.warning("Leaving of %s from %s refused", actor.id, event_id)
            if actor.id not in participants_of(current):
                raise ConflictError("You are not participating in this event")
            raise ConflictError("Event was modified by another request, reload and retry")

        logger.info("User %s left event %s", actor.id, event_id)

    @staticmethod
    def _participation_blocker(item: Dict, user_id: str) -> Optional[str]:
        if (
            item["status"] != EventStatus.ACTIVE.value
            or item["approvalStatus"] != ApprovalStatus.APPROVED.value
        ):
            return "Event is not open for participation"
        if user_id in participants_of(item):
            return "You are already participating in this event"
        if item.get("capacity") is not None and int(item.get("participantCount", 0)) >= int(
            item["capacity"]
        ):
            return "Event is full"
        return None

    # -- teardown -----------------------------------------------------------

    def cancel_event(self, event_id: str, actor: Actor) -> None:
        item = self._get_item(event_id)
        self._require_owner_or_admin(item, actor)
        if item["status"] == EventStatus.CANCELED.value:
            raise ConflictError("Event is already canceled")
        if item["status"] == EventStatus.FINISHED.value:
            raise ConflictError("Cannot cancel a finished event")

        self._write(
            item,
            {"status": EventStatus.CANCELED.value, "updatedAt": iso(self.clock())},
            ~Attr("status").is_in(list(TERMINAL_STATUSES)),
            "Event is already canceled or finished",
        )
        logger.info("Event %s canceled by %s", event_id, actor.id)

    def finish_event(self, event_id: str, actor: Actor) -> EventOut:
        self._require_admin(actor)
        item = self._get_item(event_id)
        if item["status"] in TERMINAL_STATUSES:
            raise ConflictError(f"Event is already {item['status']}")

        self._write(
            item,
            {"status": EventStatus.FINISHED.value, "updatedAt": iso(self.clock())},
            ~Attr("status").is_in(list(TERMINAL_STATUSES)),
            "Event is already canceled or finished",
        )
        logger.info("Event %s marked finished by %s", event_id, actor.id)
        return self._to_out([self._get_item(event_id)])[0]

    def finish_elapsed_events(self, now: Optional[datetime] = None) -> int:
        """Mark every active event that is over as finished. Returns how many."""
        now = now or self.clock()
        items = query_all(
            self.table,
            IndexName="GSI_EventsByDate",
            KeyConditionExpression=Key("GSI_EventsByDate_PK").eq(EVENT_TIMELINE)
            & Key("GSI_EventsByDate_SK").lt(iso(now)),
            FilterExpression=Attr("status").eq(EventStatus.ACTIVE.value)
            & (Attr("endDate").not_exists() | Attr("endDate").lt(iso(now))),
        )

        finished = 0
        for item in items:
            try:
                self.table.update_item(
                    Key=event_key(item["id"]),
                    ConditionExpression=Attr("status").eq(EventStatus.ACTIVE.value),
                    **build_update(
                        {"status": EventStatus.FINISHED.value, "updatedAt": iso(now)},
                        add={"version": 1},
                    ),
                )
                finished += 1
            except ClientError as e:
                if not is_conditional_failure(e):
                    raise
                logger.info("Event %s changed status before it could be finished", item["id"])

        logger.info("Marked %d elapsed events as finished", finished)
        return finished

    def delete_event(self, event_id: str, actor: Actor) -> None:
        item = self._get_item(event_id)
        self._require_owner_or_admin(item, actor)
        if int(item.get("participantCount", 0)) > 0:
            raise ConflictError("Cannot delete an event that has participants")

        try:
            self.table.delete_item(
                Key=event_key(event_id),
                ConditionExpression=Attr("participantCount").eq(0),
            )
        except ClientError as e:
            if is_conditional_failure(e):
                raise ConflictError("Cannot delete an event that has participants")
            raise
        logger.info("Event %s deleted by %s", event_id, actor.id)

    # -- helpers ------------------------------------------------------------

    def _write(self, item: Dict, values: Dict, condition, conflict_message: str) -> None:
        """Conditionally apply ``values``; ``None`` removes the attribute."""
        present = {k: v for k, v in values.items() if v is not None}
        removed = [k for k, v in values.items() if v is None]
        try:
            self.table.update_item(
                Key=event_key(item["id"]),
                ConditionExpression=Attr("PK").exists() & condition,
                **build_update(present, remove=removed, add={"version": 1}),
            )
        except ClientError as e:
            if is_conditional_failure(e):
                logger.warning("Write to event %s refused: %s", item["id"], conflict_message)
                raise ConflictError(conflict_message)
            raise

    def _get_item(self, event_id: str) -> Dict:
        response = self.table.get_item(Key=event_key(event_id))
        item = response.get("Item")
        if item is None:
            raise NotFoundError("Event", event_id)
        return item

    def _get_visible_item(self, event_id: str, actor: Optional[Actor]) -> Dict:
        item = self._get_item(event_id)
        if item["approvalStatus"] != ApprovalStatus.APPROVED.value and not (
            is_admin(actor) or (actor is not None and actor.id == item["organizerId"])
        ):
            raise ForbiddenError("Event is not available")
        return item

    @staticmethod
    def _require_admin(actor: Actor) -> None:
        if not is_admin(actor):
            raise ForbiddenError("Admin access required")

    @staticmethod
    def _require_owner_or_admin(item: Dict, actor: Actor) -> None:
        if not (actor.is_admin or actor.id == item["organizerId"]):
            raise ForbiddenError("Only the organizer or an admin can do this")

    def _to_out(self, items: List[Dict]) -> List[EventOut]:
        categories = self.category_service.get_summaries(item["categoryId"] for item in items)
        organizers = self.user_service.get_summaries(item["organizerId"] for item in items)

        events = []
        for item in items:
            capacity = int(item["capacity"]) if item.get("capacity") is not None else None
            participants = sorted(participants_of(item))
            events.append(
                EventOut(
                    id=item["id"],
                    title=item["title"],
                    description=item["description"],
                    date=item["date"],
                    endDate=item.get("endDate"),
                    location=Location(**item["location"]),
                    category=categories.get(
                        item["categoryId"], CategorySummary(id=item["categoryId"])
                    ),
                    organizer=organizers.get(
                        item["organizerId"], UserSummary(id=item["organizerId"])
                    ),
                    capacity=capacity,
                    price=float(item["price"]),
                    tags=list(item.get("tags", [])),
                    participants=participants,
                    participantCount=len(participants),
                    isFullyBooked=capacity is not None and len(participants) >= capacity,
                    isApproved=item["approvalStatus"] == ApprovalStatus.APPROVED.value,
                    status=item["status"],
                    approvalStatus=item["approvalStatus"],
                    approvedBy=item.get("approvedBy"),
                    approvalDate=item.get("approvalDate"),
                    rejectionReason=item.get("rejectionReason"),
                    createdAt=item["createdAt"],
                    updatedAt=item["updatedAt"],
                    score=item.get("score"),
                )
            )
        return events
