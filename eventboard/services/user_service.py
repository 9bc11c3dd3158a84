import logging
import re
import uuid
from datetime import datetime
from typing import Dict, Iterable, List, Optional

import bcrypt
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from eventboard.database.items import (
    batch_get,
    build_update,
    clean_item,
    count_query,
    iso,
    is_conditional_failure,
    page_count,
    parse_iso,
    query_all,
    utcnow,
)
from eventboard.database.keys import (
    EVENT_TIMELINE,
    USER_PROFILE,
    organizer_partition,
    user_email_key,
    user_key,
)
from eventboard.exceptions import ConflictError, NotFoundError, ValidationError
from eventboard.schemas.event import EventStatus
from eventboard.schemas.user import (
    MonthBucket,
    ParticipantsStats,
    ParticipatingEvent,
    Role,
    UserCreate,
    UserDetailOut,
    UserListOut,
    UserOut,
    UserStatsOut,
    UserSummary,
    UserUpdate,
)
from eventboard.services.roster import participants_of, remove_participant

logger = logging.getLogger(__name__)

PHONE_PATTERN = re.compile(r"^\+?[\d\s\-()]+$")


def validate_profile(fields: Dict) -> List[Dict[str, str]]:
    """Check the profile fields present in ``fields``."""
    errors = []
    if "name" in fields:
        name = (fields["name"] or "").strip()
        if len(name) < 2 or len(name) > 100:
            errors.append({"field": "name", "message": "Name must be 2-100 characters"})
    if fields.get("phone") and not PHONE_PATTERN.match(fields["phone"]):
        errors.append({"field": "phone", "message": "Invalid phone number"})
    if fields.get("bio") and len(fields["bio"]) > 500:
        errors.append({"field": "bio", "message": "Bio must be at most 500 characters"})
    if "role" in fields and fields["role"] not in {role.value for role in Role}:
        errors.append({"field": "role", "message": "Role must be 'user' or 'admin'"})
    if "password" in fields:
        password = fields["password"] or ""
        if len(password) < 6:
            errors.append(
                {"field": "password", "message": "Password must be at least 6 characters"}
            )
        elif len(password.encode()) > 72:
            errors.append(
                {"field": "password", "message": "Password must be at most 72 bytes"}
            )
    return errors


def trailing_months(now: datetime, count: int = 12) -> List[str]:
    """Month keys (YYYY-MM-01), current month first."""
    keys = []
    year, month = now.year, now.month
    for _ in range(count):
        keys.append(f"{year:04d}-{month:02d}-01")
        month -= 1
        if month == 0:
            month = 12
            year -= 1
    return keys


class UserService:
    def __init__(self, dynamodb_resource, table_name="EventBoard", bcrypt_rounds=12):
        self.dynamodb = dynamodb_resource
        self.table = dynamodb_resource.Table(table_name)
        self.bcrypt_rounds = bcrypt_rounds

    def create_user(self, user_data: UserCreate) -> UserOut:
        """Create a new user; the email must not be registered yet"""
        errors = validate_profile(
            {
                "name": user_data.name,
                "phone": user_data.phone,
                "bio": user_data.bio,
                "password": user_data.password,
            }
        )
        if errors:
            raise ValidationError("Invalid user data", errors)

        user_id = str(uuid.uuid4())
        email = user_data.email.lower()
        now = iso(utcnow())
        password_hash = bcrypt.hashpw(
            user_data.password.encode(), bcrypt.gensalt(rounds=self.bcrypt_rounds)
        ).decode()

        item = {
            **user_key(user_id),
            "id": user_id,
            "name": user_data.name.strip(),
            "email": email,
            "passwordHash": password_hash,
            "role": user_data.role.value,
            "createdAt": now,
            "updatedAt": now,
            "searchName": user_data.name.strip().lower(),
            "GSI_Users_PK": USER_PROFILE,
            "GSI_Users_SK": f"{now}#{user_id}",
        }

        # Add optional fields
        if user_data.phone:
            item["phone"] = user_data.phone
        if user_data.bio:
            item["bio"] = user_data.bio

        try:
            self.dynamodb.meta.client.transact_write_items(
                TransactItems=[
                    {
                        "Put": {
                            "TableName": self.table.table_name,
                            "Item": {**user_email_key(email), "userId": user_id},
                            "ConditionExpression": "attribute_not_exists(PK)",
                        }
                    },
                    {"Put": {"TableName": self.table.table_name, "Item": item}},
                ]
            )
        except ClientError as e:
            if is_conditional_failure(e):
                raise ConflictError("Email already registered")
            raise

        logger.info("Created user %s", user_id)
        return UserOut(**clean_item(item))

    def list_users(
        self,
        page: int = 1,
        limit: int = 10,
        role: Optional[str] = None,
        search: Optional[str] = None,
    ) -> UserListOut:
        """Newest users first, optionally filtered by role and name/email."""
        query_params = {
            "IndexName": "GSI_Users",
            "KeyConditionExpression": Key("GSI_Users_PK").eq(USER_PROFILE),
            "ScanIndexForward": False,
        }
        conditions = []
        if role:
            conditions.append(Attr("role").eq(role))
        if search:
            needle = search.lower()
            conditions.append(
                Attr("searchName").contains(needle) | Attr("email").contains(needle)
            )
        if conditions:
            condition = conditions[0]
            for extra in conditions[1:]:
                condition = condition & extra
            query_params["FilterExpression"] = condition

        items = query_all(self.table, **query_params)
        start = (page - 1) * limit
        return UserListOut(
            users=[UserOut(**clean_item(item)) for item in items[start : start + limit]],
            page=page,
            pages=page_count(len(items), limit),
            total=len(items),
        )

    def get_user(self, user_id: str) -> UserDetailOut:
        item = self._get_item(user_id)
        if item is None:
            raise NotFoundError("User", user_id)

        participating = [
            ParticipatingEvent(
                id=event["id"],
                title=event["title"],
                date=event["date"],
                city=event["location"]["city"],
                status=event["status"],
            )
            for event in self._participating_events(user_id)
        ]
        return UserDetailOut(**clean_item(item), participatingEvents=participating)

    def update_user(self, user_id: str, changes: UserUpdate) -> UserOut:
        item = self._get_item(user_id)
        if item is None:
            raise NotFoundError("User", user_id)

        updates = {
            field_name: value
            for field_name, value in changes.model_dump(exclude_unset=True).items()
            if value is not None
        }
        errors = validate_profile(updates)
        if errors:
            raise ValidationError("Invalid user data", errors)

        if "name" in updates:
            updates["name"] = updates["name"].strip()
            updates["searchName"] = updates["name"].lower()
        new_email = updates.get("email")
        if new_email is not None:
            new_email = new_email.lower()
            updates["email"] = new_email
        updates["updatedAt"] = iso(utcnow())

        update_item = {
            "TableName": self.table.table_name,
            "Key": user_key(user_id),
            "ConditionExpression": "attribute_exists(PK)",
            **build_update(updates),
        }

        try:
            if new_email is not None and new_email != item["email"]:
                self.dynamodb.meta.client.transact_write_items(
                    TransactItems=[
                        {
                            "Put": {
                                "TableName": self.table.table_name,
                                "Item": {**user_email_key(new_email), "userId": user_id},
                                "ConditionExpression": "attribute_not_exists(PK)",
                            }
                        },
                        {
                            "Delete": {
                                "TableName": self.table.table_name,
                                "Key": user_email_key(item["email"]),
                            }
                        },
                        {"Update": update_item},
                    ]
                )
            else:
                update_item.pop("TableName")
                self.table.update_item(**update_item)
        except ClientError as e:
            if is_conditional_failure(e):
                raise ConflictError("Email already in use")
            raise

        logger.info("Updated user %s", user_id)
        return UserOut(**clean_item(self._get_item(user_id)))

    def delete_user(self, user_id: str) -> None:
        """
        Delete a user who organizes no active event. The user is first
        pulled out of every event roster they are part of.
        """
        item = self._get_item(user_id)
        if item is None:
            raise NotFoundError("User", user_id)

        active_events = count_query(
            self.table,
            IndexName="GSI_EventsByOrganizer",
            KeyConditionExpression=Key("GSI_EventsByOrganizer_PK").eq(
                organizer_partition(user_id)
            ),
            FilterExpression=Attr("status").eq(EventStatus.ACTIVE.value),
        )
        if active_events > 0:
            raise ConflictError("Cannot delete a user who organizes active events")

        for event in self._participating_events(user_id):
            try:
                remove_participant(self.table, event, user_id)
            except ClientError as e:
                if not is_conditional_failure(e):
                    raise
                # left the event on their own meanwhile
                logger.debug("User %s already gone from event %s", user_id, event["id"])

        self.dynamodb.meta.client.transact_write_items(
            TransactItems=[
                {"Delete": {"TableName": self.table.table_name, "Key": user_key(user_id)}},
                {
                    "Delete": {
                        "TableName": self.table.table_name,
                        "Key": user_email_key(item["email"]),
                    }
                },
            ]
        )
        logger.info("Deleted user %s", user_id)

    def get_user_stats(self, user_id: str, now: Optional[datetime] = None) -> UserStatsOut:
        if self._get_item(user_id) is None:
            raise NotFoundError("User", user_id)
        now = now or utcnow()

        organized = self.organized_events(user_id)
        participating = count_query(
            self.table,
            IndexName="GSI_EventsByDate",
            KeyConditionExpression=Key("GSI_EventsByDate_PK").eq(EVENT_TIMELINE),
            FilterExpression=Attr("participants").contains(user_id),
        )

        total_participants = sum(int(event.get("participantCount", 0)) for event in organized)
        avg = round(total_participants / len(organized), 2) if organized else 0

        months = trailing_months(now)
        by_month = {key: 0 for key in months}
        for event in organized:
            created = parse_iso(event["createdAt"])
            key = f"{created.year:04d}-{created.month:02d}-01"
            if key in by_month:
                by_month[key] += 1

        return UserStatsOut(
            eventsOrganized=len(organized),
            eventsParticipating=participating,
            activeEvents=sum(
                1 for event in organized if event["status"] == EventStatus.ACTIVE.value
            ),
            canceledEvents=sum(
                1 for event in organized if event["status"] == EventStatus.CANCELED.value
            ),
            participantsStats=ParticipantsStats(
                totalParticipants=total_participants, avgParticipantsPerEvent=avg
            ),
            eventsByMonth=[MonthBucket(date=key, count=by_month[key]) for key in months],
        )

    def organized_events(self, user_id: str) -> List[Dict]:
        return query_all(
            self.table,
            IndexName="GSI_EventsByOrganizer",
            KeyConditionExpression=Key("GSI_EventsByOrganizer_PK").eq(
                organizer_partition(user_id)
            ),
        )

    def get_summaries(self, user_ids: Iterable[str]) -> Dict[str, UserSummary]:
        keys = [user_key(user_id) for user_id in set(user_ids) if user_id]
        items = batch_get(self.dynamodb, self.table.table_name, keys)
        return {
            item["id"]: UserSummary(id=item["id"], name=item["name"], email=item["email"])
            for item in items
        }

    def _participating_events(self, user_id: str) -> List[Dict]:
        events = query_all(
            self.table,
            IndexName="GSI_EventsByDate",
            KeyConditionExpression=Key("GSI_EventsByDate_PK").eq(EVENT_TIMELINE),
            FilterExpression=Attr("participants").contains(user_id),
        )
        return [event for event in events if user_id in participants_of(event)]

    def _get_item(self, user_id: str) -> Optional[Dict]:
        response = self.table.get_item(Key=user_key(user_id))
        return response.get("Item")
