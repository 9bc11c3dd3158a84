"""Helpers shared by the services for shaping DynamoDB items."""

import math
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from botocore.exceptions import ClientError

CONDITIONAL_FAILURE_CODES = (
    "ConditionalCheckFailedException",
    "TransactionCanceledException",
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def iso(value: Optional[datetime]) -> Optional[str]:
    # fixed precision keeps stored timestamps lexicographically ordered
    if value is None:
        return None
    return to_utc(value).isoformat(timespec="milliseconds")


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return to_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


def to_decimal(value) -> Decimal:
    return Decimal(str(value))


def from_decimal(value: Any) -> Any:
    """Convert boto3 Decimals back into int/float, recursively."""
    if isinstance(value, Decimal):
        if value == value.to_integral_value():
            return int(value)
        return float(value)
    if isinstance(value, dict):
        return {k: from_decimal(v) for k, v in value.items()}
    if isinstance(value, list):
        return [from_decimal(v) for v in value]
    return value


def clean_item(item: Dict) -> Dict:
    """Remove DynamoDB internal fields"""
    return {
        k: from_decimal(v)
        for k, v in item.items()
        if k not in ["PK", "SK"] and not k.startswith("GSI_") and not k.startswith("search")
    }


def is_conditional_failure(error: ClientError) -> bool:
    return error.response["Error"]["Code"] in CONDITIONAL_FAILURE_CODES


def build_update(
    values: Dict[str, Any],
    remove: Iterable[str] = (),
    add: Optional[Dict[str, Any]] = None,
    delete: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Build UpdateExpression arguments with placeholder names for every
    attribute (several of ours, like ``status`` and ``date``, are reserved
    words in DynamoDB).
    """
    names: Dict[str, str] = {}
    attr_values: Dict[str, Any] = {}
    set_parts: List[str] = []
    add_parts: List[str] = []
    remove_parts: List[str] = []
    delete_parts: List[str] = []

    for index, (field, value) in enumerate(values.items()):
        names[f"#s{index}"] = field
        attr_values[f":s{index}"] = value
        set_parts.append(f"#s{index} = :s{index}")

    for index, (field, value) in enumerate((add or {}).items()):
        names[f"#a{index}"] = field
        attr_values[f":a{index}"] = value
        add_parts.append(f"#a{index} :a{index}")

    for index, (field, value) in enumerate((delete or {}).items()):
        names[f"#d{index}"] = field
        attr_values[f":d{index}"] = value
        delete_parts.append(f"#d{index} :d{index}")

    for index, field in enumerate(remove):
        names[f"#r{index}"] = field
        remove_parts.append(f"#r{index}")

    clauses = []
    if set_parts:
        clauses.append("SET " + ", ".join(set_parts))
    if add_parts:
        clauses.append("ADD " + ", ".join(add_parts))
    if remove_parts:
        clauses.append("REMOVE " + ", ".join(remove_parts))
    if delete_parts:
        clauses.append("DELETE " + ", ".join(delete_parts))

    update = {
        "UpdateExpression": " ".join(clauses),
        "ExpressionAttributeNames": names,
    }
    if attr_values:
        update["ExpressionAttributeValues"] = attr_values
    return update


def page_count(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


def query_all(table, **query_params) -> List[Dict]:
    """Run a query to exhaustion, following LastEvaluatedKey."""
    items: List[Dict] = []
    while True:
        response = table.query(**query_params)
        items.extend(response.get("Items", []))
        last_key = response.get("LastEvaluatedKey")
        if not last_key:
            break
        query_params["ExclusiveStartKey"] = last_key
    return items


def count_query(table, **query_params) -> int:
    total = 0
    query_params["Select"] = "COUNT"
    while True:
        response = table.query(**query_params)
        total += response.get("Count", 0)
        last_key = response.get("LastEvaluatedKey")
        if not last_key:
            break
        query_params["ExclusiveStartKey"] = last_key
    return total


def batch_get(dynamodb, table_name: str, keys: List[Dict[str, str]]) -> List[Dict]:
    """Fetch items by key, 100 keys per request."""
    items: List[Dict] = []
    unique_keys = list({(k["PK"], k["SK"]): k for k in keys}.values())
    for start in range(0, len(unique_keys), 100):
        request = {table_name: {"Keys": unique_keys[start : start + 100]}}
        while request:
            response = dynamodb.batch_get_item(RequestItems=request)
            items.extend(response.get("Responses", {}).get(table_name, []))
            request = response.get("UnprocessedKeys") or None
    return items
