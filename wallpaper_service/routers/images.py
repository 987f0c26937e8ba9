from fastapi import APIRouter, Body, Depends, UploadFile, File, Form, Query, Response
from typing import Any, List, Optional, Union
import logging

from wallpaper_service.settings import Settings
from wallpaper_service.storage.dynamodb import DynamoDBService
from wallpaper_service.storage.s3 import S3Service
from wallpaper_service.dependencies.dependencies import get_s3_service, get_dynamodb_service, get_settings
from wallpaper_service.image_service import service
from wallpaper_service.image_service.models import (
    CategoryCount,
    Counter,
    DownloadLink,
    ImagePage,
    ImageRecord,
    ImageUpdate,
)

log = logging.getLogger(__name__)

router = APIRouter(
    prefix="/images",
    tags=["images"]
)

@router.post("", response_model=Union[ImageRecord, List[ImageRecord]], status_code=201)
def create_images(
    payload: Any = Body(...),
    db: DynamoDBService = Depends(get_dynamodb_service),
):
    """
        Creates one image record (object body) or many (array body). A bad entry rejects the whole batch.
        A batch is written in one DynamoDB transaction, so at most 100 records per request.
    """
    return service.create_images(db, payload)

@router.get("", response_model=Union[List[ImageRecord], ImagePage])
def list_images(
    page: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    db: DynamoDBService = Depends(get_dynamodb_service),
):
    """Lists every image, or one page of them when page/limit is given."""
    if page is None and limit is None:
        return service.list_images(db)
    return service.paginate_images(db, page, limit)

@router.post("/upload", response_model=ImageRecord, status_code=201)
def upload_image(
    file: UploadFile = File(...),
    category: str = Form(...),
    image_name: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    tags: Optional[str] = Form(None),  # Comma Separated Values
    is_featured: bool = Form(False),
    response: Response = None,
    db: DynamoDBService = Depends(get_dynamodb_service),
    s3: S3Service = Depends(get_s3_service),
):
    """Uploads an image file to S3 and records its metadata."""
    # Add security header
    if response:
        response.headers["X-Content-Type-Options"] = "nosniff"

    tags_list = [t.strip() for t in tags.split(",") if t.strip()] if tags else []
    contents = file.file.read()

    return service.upload_image(
        db=db,
        s3=s3,
        file_bytes=contents,
        filename=file.filename,
        content_type=file.content_type,
        image_name=image_name,
        category=category,
        description=description,
        tags=tags_list,
        is_featured=is_featured,
    )

@router.get("/categories", response_model=List[str])
def list_categories(db: DynamoDBService = Depends(get_dynamodb_service)):
    """Distinct non-empty categories."""
    return service.distinct_categories(db)

@router.get("/category/{category}", response_model=List[ImageRecord])
def images_by_category(
    category: str,
    db: DynamoDBService = Depends(get_dynamodb_service),
    settings: Settings = Depends(get_settings),
):
    return service.images_by_category(db, category, settings.empty_as_not_found)

@router.get("/category/{category}/count", response_model=CategoryCount)
def count_by_category(category: str, db: DynamoDBService = Depends(get_dynamodb_service)):
    return CategoryCount(category=category, count=service.count_by_category(db, category))

@router.get("/tags/{tag}", response_model=List[ImageRecord])
def images_by_tag(
    tag: str,
    db: DynamoDBService = Depends(get_dynamodb_service),
    settings: Settings = Depends(get_settings),
):
    return service.images_by_tag(db, tag, settings.empty_as_not_found)

@router.get("/search", response_model=List[ImageRecord])
def search_images(
    query: Optional[str] = Query(None),
    db: DynamoDBService = Depends(get_dynamodb_service),
    settings: Settings = Depends(get_settings),
):
    """Case-insensitive substring search over name, tags and description."""
    return service.search_images(db, query, settings.empty_as_not_found)

@router.get("/paginate", response_model=ImagePage)
def paginate_images(
    page: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    db: DynamoDBService = Depends(get_dynamodb_service),
):
    return service.paginate_images(db, page, limit)

@router.get("/random", response_model=List[ImageRecord])
def random_images(
    limit: Optional[str] = Query(None),
    db: DynamoDBService = Depends(get_dynamodb_service),
):
    """Random sample of up to `limit` images (default 32, at most 100)."""
    return service.random_images(db, limit)

@router.get("/{image_id}", response_model=ImageRecord)
def get_image(image_id: str, db: DynamoDBService = Depends(get_dynamodb_service)):
    """Gets image metadata."""
    return service.get_image(db, image_id)

@router.put("/{image_id}", response_model=ImageRecord)
def update_image(
    image_id: str,
    changes: ImageUpdate,
    db: DynamoDBService = Depends(get_dynamodb_service),
):
    """Partially updates image metadata."""
    return service.update_image(db, image_id, changes)

@router.delete("/{image_id}", response_model=ImageRecord)
def delete_image(
    image_id: str,
    db: DynamoDBService = Depends(get_dynamodb_service),
    s3: S3Service = Depends(get_s3_service),
):
    """Deletes an image's metadata and, when stored with us, its file."""
    return service.remove_image(db, s3, image_id)

@router.get("/{image_id}/download", response_model=DownloadLink)
def get_download_url(
    image_id: str,
    expires_in: Optional[int] = Query(None, ge=60, le=86400, description="Expiration time in seconds (60-86400)"),
    db: DynamoDBService = Depends(get_dynamodb_service),
    s3: S3Service = Depends(get_s3_service),
):
    """
    Returns a download link for an image and counts the download.

    Files stored in our bucket get a presigned URL, valid for a limited time
    (default 15 minutes, max 24 hours).
    """
    return service.get_download_url(db, s3, image_id, expires_in)

@router.post("/{image_id}/counters/{counter}", response_model=ImageRecord)
def increment_counter(
    image_id: str,
    counter: Counter,
    db: DynamoDBService = Depends(get_dynamodb_service),
):
    """Adds one to the image's views, downloads or likes."""
    return service.increment_counter(db, image_id, counter)
