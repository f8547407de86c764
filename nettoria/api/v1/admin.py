from fastapi import APIRouter, Depends

from nettoria.api.deps import get_account_service, require_roles
from nettoria.models.user import RoleEnum, User
from nettoria.schemas.admin import RoleUpdateIn, StatusUpdateIn
from nettoria.schemas.auth import UserOut
from nettoria.services.accounts import AccountService

router = APIRouter(prefix="/admin", tags=["admin"])

@router.get("/users/{user_id}", response_model=UserOut)
async def get_user(
    user_id: str,
    _: User = Depends(require_roles(RoleEnum.admin)),
    accounts: AccountService = Depends(get_account_service),
):
    return await accounts.get_user(user_id)

@router.patch("/users/{user_id}/role", response_model=UserOut)
async def update_role(
    user_id: str,
    body: RoleUpdateIn,
    admin: User = Depends(require_roles(RoleEnum.admin)),
    accounts: AccountService = Depends(get_account_service),
):
    return await accounts.set_role(admin, user_id, body.role)

@router.patch("/users/{user_id}/status", response_model=UserOut)
async def update_status(
    user_id: str,
    body: StatusUpdateIn,
    admin: User = Depends(require_roles(RoleEnum.admin)),
    accounts: AccountService = Depends(get_account_service),
):
    return await accounts.set_status(admin, user_id, body.status)
