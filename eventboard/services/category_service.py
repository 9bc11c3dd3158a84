import logging
import uuid
from typing import Dict, Iterable, List, Optional

from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from eventboard.database.items import (
    batch_get,
    build_update,
    clean_item,
    count_query,
    iso,
    is_conditional_failure,
    query_all,
    utcnow,
)
from eventboard.database.keys import (
    CATEGORY_LIST,
    category_key,
    category_name_key,
    category_partition,
)
from eventboard.exceptions import ConflictError, NotFoundError, ValidationError
from eventboard.schemas.category import (
    CategoryCreate,
    CategoryDeleteResult,
    CategoryHeader,
    CategoryOut,
    CategoryStats,
    CategoryStatsOut,
    CategorySummary,
    CategoryUpdate,
)
from eventboard.schemas.event import ApprovalStatus, EventStatus
from eventboard.schemas.user import Actor, is_admin

logger = logging.getLogger(__name__)


class CategoryService:
    """
    Categories and the rules events must satisfy before pointing at one.

    Names are unique (exact, case-sensitive match). The uniqueness is held
    by a guard item per name written in the same transaction as the
    category, so two concurrent creates cannot both succeed.
    """

    def __init__(self, dynamodb_resource, table_name="EventBoard"):
        self.dynamodb = dynamodb_resource
        self.table = dynamodb_resource.Table(table_name)

    def create_category(self, category_data: CategoryCreate) -> CategoryOut:
        name = self._validate_name(category_data.name)
        category_id = str(uuid.uuid4())
        now = iso(utcnow())

        item = {
            **category_key(category_id),
            "id": category_id,
            "name": name,
            "description": category_data.description,
            "active": category_data.active,
            "createdAt": now,
            "updatedAt": now,
            "GSI_Categories_PK": CATEGORY_LIST,
            "GSI_Categories_SK": f"NAME#{name}#{category_id}",
        }

        try:
            self.dynamodb.meta.client.transact_write_items(
                TransactItems=[
                    {
                        "Put": {
                            "TableName": self.table.table_name,
                            "Item": {**category_name_key(name), "categoryId": category_id},
                            "ConditionExpression": "attribute_not_exists(PK)",
                        }
                    },
                    {"Put": {"TableName": self.table.table_name, "Item": item}},
                ]
            )
        except ClientError as e:
            if is_conditional_failure(e):
                raise ConflictError(f"A category named '{name}' already exists")
            raise

        logger.info("Created category %s (%s)", category_id, name)
        return CategoryOut(**clean_item(item))

    def list_categories(self, actor: Optional[Actor] = None) -> List[CategoryOut]:
        """Categories ordered by name; inactive ones are admin-only."""
        query_params = {
            "IndexName": "GSI_Categories",
            "KeyConditionExpression": Key("GSI_Categories_PK").eq(CATEGORY_LIST),
        }
        if not is_admin(actor):
            query_params["FilterExpression"] = Attr("active").eq(True)

        items = query_all(self.table, **query_params)
        return [CategoryOut(**clean_item(item)) for item in items]

    def get_category(self, category_id: str, actor: Optional[Actor] = None) -> CategoryOut:
        item = self._get_visible_item(category_id, actor)
        return CategoryOut(**clean_item(item))

    def update_category(self, category_id: str, changes: CategoryUpdate) -> CategoryOut:
        item = self._get_item(category_id)
        if item is None:
            raise NotFoundError("Category", category_id)

        updates = {
            field_name: value
            for field_name, value in changes.model_dump(exclude_unset=True).items()
            if value is not None or field_name == "description"
        }
        new_name = None
        if "name" in updates:
            new_name = self._validate_name(updates["name"])
            updates["name"] = new_name
        renaming = new_name is not None and new_name != item["name"]
        if renaming:
            updates["GSI_Categories_SK"] = f"NAME#{new_name}#{category_id}"
        updates["updatedAt"] = iso(utcnow())

        update_item = {
            "TableName": self.table.table_name,
            "Key": category_key(category_id),
            "ConditionExpression": "attribute_exists(PK)",
            **build_update(updates),
        }

        try:
            if renaming:
                # Renaming moves the name guard in the same transaction
                self.dynamodb.meta.client.transact_write_items(
                    TransactItems=[
                        {
                            "Put": {
                                "TableName": self.table.table_name,
                                "Item": {
                                    **category_name_key(new_name),
                                    "categoryId": category_id,
                                },
                                "ConditionExpression": "attribute_not_exists(PK)",
                            }
                        },
                        {
                            "Delete": {
                                "TableName": self.table.table_name,
                                "Key": category_name_key(item["name"]),
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
                # The category itself may have been deleted since it was read
                if self._get_item(category_id) is None:
                    raise NotFoundError("Category", category_id)
                raise ConflictError(f"A category named '{new_name}' already exists")
            raise

        logger.info("Updated category %s", category_id)
        return CategoryOut(**clean_item(self._get_item(category_id)))

    def delete_category(self, category_id: str) -> CategoryDeleteResult:
        """
        Remove a category that no event references. A category still in
        use is only deactivated, and the number of dependent events is
        reported back.
        """
        item = self._get_item(category_id)
        if item is None:
            raise NotFoundError("Category", category_id)

        events_count = self.count_events(category_id)
        if events_count > 0:
            self.table.update_item(
                Key=category_key(category_id),
                **build_update({"active": False, "updatedAt": iso(utcnow())}),
            )
            logger.info(
                "Category %s deactivated instead of deleted (%d events)",
                category_id,
                events_count,
            )
            return CategoryDeleteResult(
                deleted=False,
                message="Category marked as inactive because events still reference it",
                eventsCount=events_count,
            )

        self.dynamodb.meta.client.transact_write_items(
            TransactItems=[
                {
                    "Delete": {
                        "TableName": self.table.table_name,
                        "Key": category_key(category_id),
                    }
                },
                {
                    "Delete": {
                        "TableName": self.table.table_name,
                        "Key": category_name_key(item["name"]),
                    }
                },
            ]
        )
        logger.info("Deleted category %s", category_id)
        return CategoryDeleteResult(deleted=True, message="Category removed")

    def count_events(self, category_id: str) -> int:
        return count_query(
            self.table,
            IndexName="GSI_EventsByCategory",
            KeyConditionExpression=Key("GSI_EventsByCategory_PK").eq(
                category_partition(category_id)
            ),
        )

    def get_category_stats(
        self, category_id: str, actor: Optional[Actor] = None
    ) -> CategoryStatsOut:
        item = self._get_visible_item(category_id, actor)

        query_params = {
            "IndexName": "GSI_EventsByCategory",
            "KeyConditionExpression": Key("GSI_EventsByCategory_PK").eq(
                category_partition(category_id)
            ),
        }
        if not is_admin(actor):
            query_params["FilterExpression"] = Attr("approvalStatus").eq(
                ApprovalStatus.APPROVED.value
            ) & Attr("status").eq(EventStatus.ACTIVE.value)

        events = query_all(self.table, **query_params)
        total_participants = sum(int(event.get("participantCount", 0)) for event in events)
        events_count = len(events)
        avg = round(total_participants / events_count, 2) if events_count else 0

        events_by_status = {status.value: 0 for status in EventStatus}
        for event in events:
            events_by_status[event["status"]] += 1

        return CategoryStatsOut(
            category=CategoryHeader(
                id=item["id"], name=item["name"], description=item.get("description")
            ),
            stats=CategoryStats(
                eventsCount=events_count,
                totalParticipants=total_participants,
                avgParticipantsPerEvent=avg,
                eventsByStatus=events_by_status,
            ),
        )

    def require_active_category(self, category_id: str) -> Dict:
        """Gate for event writes: the category must exist and be active."""
        item = self._get_item(category_id)
        if item is None:
            raise NotFoundError("Category", category_id)
        if not item.get("active", False):
            raise ValidationError(
                "Category is inactive",
                [{"field": "category", "message": "Category is inactive"}],
            )
        return item

    def get_summaries(self, category_ids: Iterable[str]) -> Dict[str, CategorySummary]:
        keys = [category_key(category_id) for category_id in set(category_ids)]
        items = batch_get(self.dynamodb, self.table.table_name, keys)
        return {item["id"]: CategorySummary(id=item["id"], name=item["name"]) for item in items}

    def _validate_name(self, name: Optional[str]) -> str:
        name = (name or "").strip()
        if not name:
            raise ValidationError(
                "Category name is required",
                [{"field": "name", "message": "Category name is required"}],
            )
        return name

    def _get_item(self, category_id: str) -> Optional[Dict]:
        response = self.table.get_item(Key=category_key(category_id))
        return response.get("Item")

    def _get_visible_item(self, category_id: str, actor: Optional[Actor]) -> Dict:
        item = self._get_item(category_id)
        # inactive categories are hidden from everyone but admins
        if item is None or (not item.get("active", False) and not is_admin(actor)):
            raise NotFoundError("Category", category_id)
        return item
