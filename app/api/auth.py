# Authentication API routes for user registration and login

from fastapi import APIRouter, Depends, status

from app.db_handlers.user import ProfileDBHandler, UserDBHandler
from app.exceptions import InputValidationError, Unauthorized
from app.schemas import Token, UserCreate, UserLogin, UserResponse
from app.utils.auth import create_access_token, hash_password, verify_password
from app.utils.logger import setup_logger

logger = setup_logger("api.auth")

router = APIRouter(prefix="/api/auth", tags=["Authentication"])


@router.post(
    "/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED
)
async def register_user(
    user_data: UserCreate,
    user_db_handler: UserDBHandler = Depends(),
    profile_db_handler: ProfileDBHandler = Depends(),
):
    """Register a journal owner and create their profile."""
    existing_user = await user_db_handler.get_user_by_username(user_data.username)
    if existing_user:
        raise InputValidationError("Username already registered")

    user = await user_db_handler.create(
        {"username": user_data.username, "hashed_password": hash_password(user_data.password)}
    )
    # The display name feeds first-person resolution during extraction
    await profile_db_handler.create(
        {"user_id": user.id, "display_name": user_data.display_name}
    )
    logger.info(f"Registered user {user.username} ({user.id})")

    return UserResponse.model_validate(user)


@router.post("/login", response_model=Token)
async def login_user(
    user_data: UserLogin,
    user_db_handler: UserDBHandler = Depends(),
):
    """Exchange username and password for a bearer token."""
    user = await user_db_handler.get_user_by_username(user_data.username)

    if not user or not verify_password(user_data.password, user.hashed_password):
        raise Unauthorized("Incorrect username or password")

    access_token = create_access_token(user.username, user_id=user.id)
    return Token(access_token=access_token, token_type="bearer")
