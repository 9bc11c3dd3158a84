from enum import Enum
from pydantic import BaseModel, EmailStr
from typing import List, Optional
from datetime import datetime


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


class Actor(BaseModel):
    """The authenticated caller, as vouched for by the credential service."""

    id: str
    role: Role = Role.USER

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


class UserSummary(BaseModel):
    id: str
    name: Optional[str] = None
    email: Optional[str] = None


class UserBase(BaseModel):
    name: str
    email: EmailStr
    phone: str | None = None
    bio: str | None = None


class UserRegister(UserBase):
    """Self-service sign-up; the role is always 'user'"""

    password: str


class UserCreate(UserBase):
    password: str
    role: Role = Role.USER


class ProfileUpdate(BaseModel):
    name: str | None = None
    email: EmailStr | None = None
    phone: str | None = None
    bio: str | None = None


class UserUpdate(BaseModel):
    name: str | None = None
    email: EmailStr | None = None
    role: str | None = None
    phone: str | None = None
    bio: str | None = None


class UserOut(UserBase):
    id: str
    role: Role
    lastLogin: datetime | None = None
    createdAt: datetime
    updatedAt: datetime


class ParticipatingEvent(BaseModel):
    id: str
    title: str
    date: datetime
    city: str
    status: str


class UserDetailOut(UserOut):
    participatingEvents: List[ParticipatingEvent] = []


class UserListOut(BaseModel):
    users: List[UserOut]
    page: int
    pages: int
    total: int


class ParticipantsStats(BaseModel):
    totalParticipants: int
    avgParticipantsPerEvent: float


class MonthBucket(BaseModel):
    date: str
    count: int


class UserStatsOut(BaseModel):
    eventsOrganized: int
    eventsParticipating: int
    activeEvents: int
    canceledEvents: int
    participantsStats: ParticipantsStats
    eventsByMonth: List[MonthBucket]


def is_admin(actor: Optional[Actor]) -> bool:
    return actor is not None and actor.is_admin
