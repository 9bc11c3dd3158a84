from .user import (
    Actor,
    Role,
    UserCreate,
    UserRegister,
    ProfileUpdate,
    UserUpdate,
    UserOut,
    UserDetailOut,
    UserSummary,
    UserStatsOut,
)
from .category import (
    CategoryCreate,
    CategoryUpdate,
    CategoryOut,
    CategoryStatsOut,
    CategorySummary,
)
from .event import (
    ApprovalStatus,
    EventCreate,
    EventDetailOut,
    EventOut,
    EventSearchResult,
    EventStatus,
    EventUpdate,
)
from .search import EventSearchParams, SortKey

__all__ = [
    "Actor",
    "Role",
    "UserCreate",
    "UserRegister",
    "ProfileUpdate",
    "UserUpdate",
    "UserOut",
    "UserDetailOut",
    "UserSummary",
    "UserStatsOut",
    "CategoryCreate",
    "CategoryUpdate",
    "CategoryOut",
    "CategoryStatsOut",
    "CategorySummary",
    "ApprovalStatus",
    "EventCreate",
    "EventDetailOut",
    "EventOut",
    "EventSearchResult",
    "EventStatus",
    "EventUpdate",
    "EventSearchParams",
    "SortKey",
]
