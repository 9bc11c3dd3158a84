"""Single-table key layout."""

from typing import Dict

EVENT_TIMELINE = "EVENT_TIMELINE"
CATEGORY_LIST = "CATEGORY_LIST"
USER_PROFILE = "USER_PROFILE"


def event_key(event_id: str) -> Dict[str, str]:
    return {"PK": f"EVENT#{event_id}", "SK": "DETAIL"}


def category_key(category_id: str) -> Dict[str, str]:
    return {"PK": f"CATEGORY#{category_id}", "SK": "DETAIL"}


def category_name_key(name: str) -> Dict[str, str]:
    return {"PK": f"CATEGORYNAME#{name}", "SK": "UNIQUE"}


def user_key(user_id: str) -> Dict[str, str]:
    return {"PK": f"USER#{user_id}", "SK": "PROFILE"}


def user_email_key(email: str) -> Dict[str, str]:
    return {"PK": f"USEREMAIL#{email}", "SK": "UNIQUE"}


def organizer_partition(user_id: str) -> str:
    return f"ORGANIZER#{user_id}"


def category_partition(category_id: str) -> str:
    return f"CATEGORY#{category_id}"
