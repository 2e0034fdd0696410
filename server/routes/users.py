from fastapi import APIRouter, Depends, status
from server.schemas import UserResponse, UserUpdate
from server.models import User
from server.auth_service import AuthService
from server.dependencies import get_current_user, get_auth_service

router = APIRouter()

# =========================================================
# PROFILE ENDPOINTS
# =========================================================
@router.get("/me", response_model=UserResponse)
def get_profile(current_user: User = Depends(get_current_user)):
    return current_user

@router.put("/me", response_model=UserResponse)
def update_profile(
    user_data: UserUpdate,
    current_user: User = Depends(get_current_user),
    auth: AuthService = Depends(get_auth_service)
):
    return auth.update_profile(current_user, name=user_data.name, profile_picture=user_data.profile_picture)

@router.delete("/me", status_code=status.HTTP_204_NO_CONTENT)
def delete_profile(
    current_user: User = Depends(get_current_user),
    auth: AuthService = Depends(get_auth_service)
):
    # Cascades to the user's tasks, challenges, grants and reminder records
    auth.delete_account(current_user)
    return None
