"""
Atomic participant roster writes.

Joining and leaving are single conditional updates: the preconditions
(not already in the roster, a seat left, the event open) are evaluated by
the store together with the write, so concurrent requests for the same
event can never overbook it or duplicate a participant. ``seatsLeft`` only
exists on events with a finite capacity.
"""

from typing import Dict

from boto3.dynamodb.conditions import Attr

from eventboard.database.items import build_update, iso, utcnow
from eventboard.database.keys import event_key
from eventboard.schemas.event import ApprovalStatus, EventStatus


def has_limited_capacity(item: Dict) -> bool:
    return item.get("capacity") is not None


def add_participant(table, item: Dict, user_id: str) -> Dict:
    """Raises ClientError(ConditionalCheckFailedException) when refused."""
    limited = has_limited_capacity(item)
    condition = (
        Attr("status").eq(EventStatus.ACTIVE.value)
        & Attr("approvalStatus").eq(ApprovalStatus.APPROVED.value)
        & ~Attr("participants").contains(user_id)
    )
    add = {"participants": {user_id}, "participantCount": 1, "version": 1}
    if limited:
        condition = condition & Attr("seatsLeft").gt(0)
        add["seatsLeft"] = -1
    else:
        condition = condition & Attr("seatsLeft").not_exists()

    response = table.update_item(
        Key=event_key(item["id"]),
        ConditionExpression=condition,
        ReturnValues="ALL_NEW",
        **build_update({"updatedAt": iso(utcnow())}, add=add),
    )
    return response["Attributes"]


def remove_participant(table, item: Dict, user_id: str) -> Dict:
    """Raises ClientError(ConditionalCheckFailedException) when the user is
    not in the roster (or the capacity changed under us)."""
    limited = has_limited_capacity(item)
    condition = Attr("participants").contains(user_id)
    add = {"participantCount": -1, "version": 1}
    if limited:
        condition = condition & Attr("seatsLeft").exists()
        add["seatsLeft"] = 1
    else:
        condition = condition & Attr("seatsLeft").not_exists()

    response = table.update_item(
        Key=event_key(item["id"]),
        ConditionExpression=condition,
        ReturnValues="ALL_NEW",
        **build_update(
            {"updatedAt": iso(utcnow())},
            add=add,
            delete={"participants": {user_id}},
        ),
    )
    return response["Attributes"]


def participants_of(item: Dict) -> set:
    return set(item.get("participants") or ())
