"""
User API Routes - the current account and its plan usage.
"""

from fastapi import APIRouter, Depends

from app.dependencies.auth import get_current_user
from app.dependencies.services import get_usage_gate
from app.models import User
from app.schemas import UsageResponse, UserResponse
from app.services.usage_gate import UsageGate

router = APIRouter(prefix="/api/users", tags=["User Management"])


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(
    current_user: User = Depends(get_current_user),
):
    """Retrieve current authenticated user's account information."""
    return UserResponse.model_validate(current_user)


@router.get("/me/usage", response_model=UsageResponse)
async def get_my_usage(
    current_user: User = Depends(get_current_user),
    gate: UsageGate = Depends(get_usage_gate),
):
    """
    Plan tier, current counts and limits for the current user.

    Counts are the same ones the usage gate checks before a capture or upload.
    """
    return await gate.get_usage(current_user.id)
