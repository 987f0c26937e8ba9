"""
    Password hashing, token issuance and the authentication gate.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional
import logging
from botocore.exceptions import BotoCoreError, ClientError
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from wallpaper_service.settings import Settings
from wallpaper_service.storage.dynamodb import DynamoDBService
from wallpaper_service.user_service.models import UserPublic
from wallpaper_service.exceptions import (
    DynamoDBException,
    TokenExpiredException,
    TokenInvalidException,
    UnauthorizedException,
    UserNotFoundException,
)

log = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=12)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        # Burn the same time as a real check so unknown emails are not distinguishable
        pwd_context.dummy_verify()
        return False
    return pwd_context.verify(plain_password, password_hash)


def create_access_token(user_id: str, settings: Settings, expires_delta: Optional[timedelta] = None) -> str:
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    claims = {"sub": user_id, "iat": now, "exp": expire}
    return jwt.encode(claims, settings.jwt_secret_key.get_secret_value(), algorithm=settings.jwt_algorithm)


def decode_access_token(token: str, settings: Settings) -> str:
    """Returns the user id carried by a valid token."""
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key.get_secret_value(),
            algorithms=[settings.jwt_algorithm],
        )
    except ExpiredSignatureError:
        raise TokenExpiredException()
    except JWTError as e:
        log.info(f"Rejected token: {e}")
        raise TokenInvalidException()
    user_id = payload.get("sub")
    if not user_id:
        raise TokenInvalidException()
    return user_id


def authenticate(token: Optional[str], db: DynamoDBService, settings: Settings) -> UserPublic:
    """
        The authentication gate: token in, account out.

        No token -> UnauthorizedException, expired -> TokenExpiredException,
        bad token -> TokenInvalidException, account gone -> UserNotFoundException.
        Only reads from the store.
    """
    if not token:
        raise UnauthorizedException()
    user_id = decode_access_token(token, settings)
    try:
        item = db.get_user(user_id)
    except (BotoCoreError, ClientError) as e:
        log.error(f"DynamoDB get_user failed: {e}")
        raise DynamoDBException(f"Failed to load user: {e}")
    if not item:
        raise UserNotFoundException()
    return UserPublic.from_item(item)
