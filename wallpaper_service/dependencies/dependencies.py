from typing import Optional
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from wallpaper_service.auth.security import authenticate
from wallpaper_service.settings import Settings
from wallpaper_service.storage.dynamodb import DynamoDBService
from wallpaper_service.storage.s3 import S3Service
from wallpaper_service.user_service.models import UserPublic

bearer_scheme = HTTPBearer(auto_error=False)

def get_settings(request: Request) -> Settings:
    """Dependency provider for the immutable Settings loaded at startup"""
    return request.app.state.settings

def get_s3_service(request: Request) -> S3Service:
    """Dependency provider for S3Service"""
    return request.app.state.s3

def get_dynamodb_service(request: Request) -> DynamoDBService:
    """Dependency provider for DynamoDBService"""
    return request.app.state.db

def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: DynamoDBService = Depends(get_dynamodb_service),
    settings: Settings = Depends(get_settings),
) -> UserPublic:
    """Resolves the bearer token to the calling account, or raises a 401/404."""
    token = credentials.credentials if credentials else None
    return authenticate(token, db, settings)
