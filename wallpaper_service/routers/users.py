from fastapi import APIRouter, Depends
import logging

from wallpaper_service.settings import Settings
from wallpaper_service.storage.dynamodb import DynamoDBService
from wallpaper_service.dependencies.dependencies import get_current_user, get_dynamodb_service, get_settings
from wallpaper_service.user_service.service import register_user, login_user, update_profile, delete_account
from wallpaper_service.user_service.models import (
    AuthResponse,
    LoginRequest,
    MessageResponse,
    ProfileUpdate,
    RegisterRequest,
    UserPublic,
)

log = logging.getLogger(__name__)

router = APIRouter(
    prefix="/users",
    tags=["users"]
)

@router.post("/register", response_model=AuthResponse, status_code=201)
def register(
    request: RegisterRequest,
    db: DynamoDBService = Depends(get_dynamodb_service),
    settings: Settings = Depends(get_settings),
):
    """Registers a new account and returns a bearer token for it."""
    return register_user(db, settings, request)

@router.post("/login", response_model=AuthResponse)
def login(
    request: LoginRequest,
    db: DynamoDBService = Depends(get_dynamodb_service),
    settings: Settings = Depends(get_settings),
):
    """Exchanges email and password for a fresh bearer token."""
    return login_user(db, settings, request)

@router.get("/profile", response_model=UserPublic)
def get_profile(user: UserPublic = Depends(get_current_user)):
    return user

@router.put("/profile", response_model=UserPublic)
def put_profile(
    changes: ProfileUpdate,
    user: UserPublic = Depends(get_current_user),
    db: DynamoDBService = Depends(get_dynamodb_service),
):
    return update_profile(db, user, changes)

@router.delete("/profile", response_model=MessageResponse)
def delete_profile(
    user: UserPublic = Depends(get_current_user),
    db: DynamoDBService = Depends(get_dynamodb_service),
):
    delete_account(db, user)
    return MessageResponse(message="Account deleted successfully.")
