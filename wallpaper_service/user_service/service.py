from datetime import datetime, timezone
import logging

from wallpaper_service.settings import Settings
from wallpaper_service.storage.dynamodb import (
    CLAIM_RELEASE,
    USER_UPDATE,
    DynamoDBService,
    TransactionConditionFailed,
)
from wallpaper_service.auth.security import create_access_token, get_password_hash, verify_password
from wallpaper_service.user_service.models import (
    AuthResponse,
    LoginRequest,
    ProfileUpdate,
    RegisterRequest,
    UserPublic,
    new_user_id,
)
from wallpaper_service.exceptions import (
    ConflictException,
    InvalidCredentialsException,
    UserNotFoundException,
    dynamodb_errors,
)

log = logging.getLogger(__name__)

def register_user(db: DynamoDBService, settings: Settings, request: RegisterRequest) -> AuthResponse:
    """Creates the account and returns a token for it. The email claim and the user are written atomically."""
    now = datetime.now(timezone.utc).isoformat()
    item = {
        "user_id": new_user_id(),
        "name": request.name,
        "email": request.email,
        "password_hash": get_password_hash(request.password),
        "created_at": now,
        "updated_at": now,
    }
    with dynamodb_errors("register user"):
        created = db.create_user(item)
    if not created:
        raise ConflictException("This email is already registered.")

    log.info("Registered user %s", item["user_id"])
    return AuthResponse(
        message="User registered successfully.",
        token=create_access_token(item["user_id"], settings),
        user=UserPublic.from_item(item),
    )

def login_user(db: DynamoDBService, settings: Settings, request: LoginRequest) -> AuthResponse:
    with dynamodb_errors("log in user"):
        item = db.get_user_by_email(request.email)
    password_hash = item.get("password_hash") if item else None
    if not verify_password(request.password, password_hash):
        raise InvalidCredentialsException()

    return AuthResponse(
        message="User logged in successfully.",
        token=create_access_token(item["user_id"], settings),
        user=UserPublic.from_item(item),
    )

def update_profile(db: DynamoDBService, user: UserPublic, changes: ProfileUpdate) -> UserPublic:
    try:
        with dynamodb_errors("update profile"):
            item = db.update_user(
                user.user_id,
                current_email=user.email,
                name=changes.name,
                email=changes.email,
                updated_at=datetime.now(timezone.utc).isoformat(),
            )
    except TransactionConditionFailed as e:
        if e.index == USER_UPDATE:
            raise UserNotFoundException()
        if e.index == CLAIM_RELEASE:
            log.warning("Email claim for %s does not belong to user %s", user.email, user.user_id)
            raise ConflictException("Your current email is no longer linked to this account, please log in again.")
        with dynamodb_errors("update profile"):
            if db.get_user(user.user_id) is None:
                raise UserNotFoundException()
        raise ConflictException("This email is already in use by another account.")
    if item is None:
        raise UserNotFoundException()
    log.info("Updated profile %s", user.user_id)
    return UserPublic.from_item(item)

def delete_account(db: DynamoDBService, user: UserPublic):
    with dynamodb_errors("delete account"):
        deleted = db.delete_user(user.user_id, user.email)
    if not deleted:
        raise UserNotFoundException()
    log.info("Deleted account %s", user.user_id)
