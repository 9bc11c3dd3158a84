from typing import List, Optional

from fastapi import APIRouter, Depends

from eventboard.config import get_settings
from eventboard.database.dynamodb import get_db_connection
from eventboard.schemas.category import (
    CategoryCreate,
    CategoryDeleteResult,
    CategoryOut,
    CategoryStatsOut,
    CategoryUpdate,
)
from eventboard.schemas.user import Actor
from eventboard.security import get_current_actor, require_admin
from eventboard.services.category_service import CategoryService

router = APIRouter(prefix="/categories", tags=["categories"])


def get_category_service():
    """Dependency to get CategoryService instance"""
    settings = get_settings()
    db = get_db_connection(settings)
    return CategoryService(db, settings.table_name)


@router.get("/", response_model=List[CategoryOut])
async def list_categories(
    actor: Optional[Actor] = Depends(get_current_actor),
    category_service: CategoryService = Depends(get_category_service),
):
    """Categories by name; only admins see inactive ones"""
    return category_service.list_categories(actor)


@router.post("/", response_model=CategoryOut, status_code=201)
async def create_category(
    category_data: CategoryCreate,
    actor: Actor = Depends(require_admin),
    category_service: CategoryService = Depends(get_category_service),
):
    return category_service.create_category(category_data)


@router.get("/{category_id}", response_model=CategoryOut)
async def get_category(
    category_id: str,
    actor: Optional[Actor] = Depends(get_current_actor),
    category_service: CategoryService = Depends(get_category_service),
):
    return category_service.get_category(category_id, actor)


@router.put("/{category_id}", response_model=CategoryOut)
async def update_category(
    category_id: str,
    changes: CategoryUpdate,
    actor: Actor = Depends(require_admin),
    category_service: CategoryService = Depends(get_category_service),
):
    return category_service.update_category(category_id, changes)


@router.delete("/{category_id}", response_model=CategoryDeleteResult)
async def delete_category(
    category_id: str,
    actor: Actor = Depends(require_admin),
    category_service: CategoryService = Depends(get_category_service),
):
    """Deactivates instead of deleting while events still use the category"""
    return category_service.delete_category(category_id)


@router.get("/{category_id}/stats", response_model=CategoryStatsOut)
async def get_category_stats(
    category_id: str,
    actor: Optional[Actor] = Depends(get_current_actor),
    category_service: CategoryService = Depends(get_category_service),
):
    return category_service.get_category_stats(category_id, actor)
