from pydantic import BaseModel
from typing import Dict, Optional
from datetime import datetime


class CategorySummary(BaseModel):
    id: str
    name: Optional[str] = None


class CategoryCreate(BaseModel):
    name: str
    description: Optional[str] = None
    active: bool = True


class CategoryUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    active: Optional[bool] = None


class CategoryOut(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    active: bool
    createdAt: datetime
    updatedAt: datetime


class CategoryDeleteResult(BaseModel):
    success: bool = True
    deleted: bool
    message: str
    eventsCount: int = 0


class CategoryStats(BaseModel):
    eventsCount: int
    totalParticipants: int
    avgParticipantsPerEvent: float
    eventsByStatus: Dict[str, int]


class CategoryHeader(CategorySummary):
    description: Optional[str] = None


class CategoryStatsOut(BaseModel):
    category: CategoryHeader
    stats: CategoryStats
