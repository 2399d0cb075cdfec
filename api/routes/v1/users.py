"""
api/routes/v1/users.py -- Read and update user profiles.

Routes:
  GET   /api/v1/users             -- summary list (user_id, names, email)
  GET   /api/v1/users/{user_id}   -- full public profile
  PATCH /api/v1/users/{user_id}   -- update first_name / last_name / phone

Every route here requires a valid access token. Any authenticated caller may
read or update any profile; there is no role model beyond that.
"""

from fastapi import APIRouter, Depends

from api.models import UserPatch, UserResponse, UserSummary
from auth.dependencies import get_auth_service, require_claims
from auth.service import AuthService

# Auth policy:
# - all routes: requires auth -- router-level dependency, handlers do not repeat it.
router = APIRouter(dependencies=[Depends(require_claims)])


@router.get("/users", response_model=list[UserSummary])
async def list_users(service: AuthService = Depends(get_auth_service)) -> list[UserSummary]:
    users = await service.list_users()
    return [UserSummary.from_user(u) for u in users]


@router.get("/users/{user_id}", response_model=UserResponse)
async def get_user(user_id: str, service: AuthService = Depends(get_auth_service)) -> UserResponse:
    """Return one profile or 404 user_not_found."""
    return UserResponse.from_user(await service.get_user(user_id))


@router.patch("/users/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    body: UserPatch,
    service: AuthService = Depends(get_auth_service),
) -> UserResponse:
    """Apply the provided profile fields.

    400-class validation_error when the body changes nothing, 404 when
    user_id matches no record, 409 when the new phone belongs to someone else.
    """
    updated = await service.update_profile(
        user_id,
        first_name=body.first_name,
        last_name=body.last_name,
        phone=body.phone,
    )
    return UserResponse.from_user(updated)
