from typing import Optional

from fastapi import APIRouter, Depends, Query

from eventboard.config import get_settings
from eventboard.database.dynamodb import get_db_connection
from eventboard.schemas.event import ActionResult
from eventboard.schemas.user import (
    Actor,
    ProfileUpdate,
    Role,
    UserCreate,
    UserDetailOut,
    UserListOut,
    UserOut,
    UserRegister,
    UserStatsOut,
    UserUpdate,
)
from eventboard.security import require_actor, require_admin
from eventboard.services.user_service import UserService

router = APIRouter(prefix="/users", tags=["users"])


def get_user_service():
    """Dependency to get UserService instance"""
    settings = get_settings()
    db = get_db_connection(settings)
    return UserService(db, settings.table_name, bcrypt_rounds=settings.bcrypt_rounds)


@router.post("/", response_model=UserOut, status_code=201)
async def create_user(
    user_data: UserCreate,
    actor: Actor = Depends(require_admin),
    user_service: UserService = Depends(get_user_service),
):
    """Create a new user"""
    return user_service.create_user(user_data)


@router.get("/", response_model=UserListOut)
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100, description="Number of results per page"),
    role: Optional[Role] = Query(None, description="Filter by role"),
    search: Optional[str] = Query(None, description="Substring of name or email"),
    actor: Actor = Depends(require_admin),
    user_service: UserService = Depends(get_user_service),
):
    return user_service.list_users(
        page=page, limit=limit, role=role.value if role else None, search=search
    )


@router.post("/register", response_model=UserOut, status_code=201)
async def register(
    user_data: UserRegister,
    user_service: UserService = Depends(get_user_service),
):
    """Open sign-up; accounts created here always get the 'user' role"""
    return user_service.create_user(UserCreate(**user_data.model_dump(), role=Role.USER))


@router.get("/me", response_model=UserDetailOut)
async def get_own_profile(
    actor: Actor = Depends(require_actor),
    user_service: UserService = Depends(get_user_service),
):
    return user_service.get_user(actor.id)


@router.put("/me", response_model=UserOut)
async def update_own_profile(
    changes: ProfileUpdate,
    actor: Actor = Depends(require_actor),
    user_service: UserService = Depends(get_user_service),
):
    """Edit the caller's own profile; the role cannot be changed here"""
    return user_service.update_user(
        actor.id, UserUpdate(**changes.model_dump(exclude_unset=True))
    )


@router.get("/{user_id}", response_model=UserDetailOut)
async def get_user(
    user_id: str,
    actor: Actor = Depends(require_admin),
    user_service: UserService = Depends(get_user_service),
):
    return user_service.get_user(user_id)


@router.put("/{user_id}", response_model=UserOut)
async def update_user(
    user_id: str,
    changes: UserUpdate,
    actor: Actor = Depends(require_admin),
    user_service: UserService = Depends(get_user_service),
):
    return user_service.update_user(user_id, changes)


@router.delete("/{user_id}", response_model=ActionResult)
async def delete_user(
    user_id: str,
    actor: Actor = Depends(require_admin),
    user_service: UserService = Depends(get_user_service),
):
    """Delete a user and pull them out of every event they joined"""
    user_service.delete_user(user_id)
    return ActionResult(message="User deleted")


@router.get("/{user_id}/stats", response_model=UserStatsOut)
async def get_user_stats(
    user_id: str,
    actor: Actor = Depends(require_admin),
    user_service: UserService = Depends(get_user_service),
):
    return user_service.get_user_stats(user_id)
