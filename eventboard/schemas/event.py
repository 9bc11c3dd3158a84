from enum import Enum
from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime

from eventboard.schemas.category import CategorySummary
from eventboard.schemas.user import UserSummary


class EventStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    CANCELED = "canceled"
    FINISHED = "finished"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Location(BaseModel):
    address: str
    city: str
    state: str
    country: str = "Brasil"


class LocationUpdate(BaseModel):
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None


class EventCreate(BaseModel):
    title: str
    description: str
    date: datetime
    endDate: Optional[datetime] = None
    location: Location
    category: str
    capacity: Optional[int] = None
    price: float = 0
    tags: List[str] = []


class EventUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    date: Optional[datetime] = None
    endDate: Optional[datetime] = None
    location: Optional[LocationUpdate] = None
    category: Optional[str] = None
    capacity: Optional[int] = None
    price: Optional[float] = None
    tags: Optional[List[str]] = None


class RejectRequest(BaseModel):
    reason: Optional[str] = None


class EventOut(BaseModel):
    id: str
    title: str
    description: str
    date: datetime
    endDate: Optional[datetime] = None
    location: Location
    category: CategorySummary
    organizer: UserSummary
    capacity: Optional[int] = None
    price: float
    tags: List[str]
    participants: List[str]
    participantCount: int
    isFullyBooked: bool
    isApproved: bool
    status: EventStatus
    approvalStatus: ApprovalStatus
    approvedBy: Optional[str] = None
    approvalDate: Optional[datetime] = None
    rejectionReason: Optional[str] = None
    createdAt: datetime
    updatedAt: datetime
    score: Optional[float] = None


class EventDetailOut(EventOut):
    participantUsers: List[UserSummary] = []
    approvedByUser: Optional[UserSummary] = None


class ApprovalStatusOut(BaseModel):
    id: str
    approvalStatus: ApprovalStatus
    approvedBy: Optional[UserSummary] = None
    approvalDate: Optional[datetime] = None
    rejectionReason: Optional[str] = None


class SearchFilters(BaseModel):
    """Echo of the filters that were actually applied to a search."""

    textSearch: bool
    category: Optional[List[str]] = None
    status: Optional[EventStatus] = None
    dateRange: bool
    period: Optional[int] = None
    location: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    price: bool
    free: bool
    tags: Optional[List[str]] = None
    hasAvailability: bool
    sort: str


class EventSearchResult(BaseModel):
    events: List[EventOut]
    page: int
    pages: int
    total: int
    filters: SearchFilters


class PendingEventsOut(BaseModel):
    count: int
    events: List[EventOut]


class ActionResult(BaseModel):
    success: bool = True
    message: str
