from datetime import datetime, timezone
from io import BytesIO
from typing import Any, List, Optional, Tuple, Union
import logging
import random
import re
import uuid
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import BotoCoreError, ClientError
from PIL import Image, UnidentifiedImageError
from pydantic import ValidationError

from wallpaper_service.storage.dynamodb import DynamoDBService, MAX_TRANSACTION_ITEMS
from wallpaper_service.storage.s3 import S3Service
from wallpaper_service.image_service.models import (
    Counter,
    DownloadLink,
    ImageCreate,
    ImagePage,
    ImageRecord,
    ImageUpdate,
)
from wallpaper_service.pagination import coerce_page_param, paginate
from wallpaper_service.exceptions import (
    DynamoDBException,
    ImageNotFoundException,
    InvalidIdentifierException,
    NoImagesFoundException,
    S3Exception,
    ValidationException,
    dynamodb_errors,
)

log = logging.getLogger(__name__)

# Allowed content types
ALLOWED_IMAGE_TYPES = {
    "image/png",
    "image/jpeg",
    "image/gif",
    "image/webp",
}

MIME_MAP = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "GIF": "image/gif",
    "WEBP": "image/webp",
}

DEFAULT_RANDOM_LIMIT = 32
MAX_RANDOM_LIMIT = 100

def utc_now() -> datetime:
    return datetime.now(timezone.utc)

def validate_image_id(image_id: str) -> str:
    """Image ids are UUIDs; anything else is rejected before touching the store."""
    try:
        uuid.UUID(image_id)
    except (TypeError, ValueError, AttributeError):
        raise InvalidIdentifierException(image_id)
    return image_id

def validate_image_bytes(file_bytes: bytes, content_type: str) -> Tuple[str, str, int, int]:
    """
        Validate that the uploaded file is a real image.
        Returns (mime_type, format, width, height).
    """
    if content_type not in ALLOWED_IMAGE_TYPES:
        raise ValidationException(f"Unsupported content type: {content_type}")
    try:
        img = Image.open(BytesIO(file_bytes))
        img.load()
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError):
        raise ValidationException("Invalid image file")
    mime_type = MIME_MAP.get((img.format or "").upper())
    if mime_type not in ALLOWED_IMAGE_TYPES:
        raise ValidationException(f"Unsupported image type: {img.format}")
    width, height = img.size
    return mime_type, img.format.lower(), width, height

def sanitize_filename(filename: Optional[str]) -> str:
    name = re.sub(r"[^A-Za-z0-9._-]", "_", filename or "").strip("._")
    return name or "image"

def _first_error(error: ValidationError) -> str:
    err = error.errors()[0]
    location = ".".join(str(part) for part in err["loc"])
    return f"{location}: {err['msg']}" if location else err["msg"]

def _new_record(data: ImageCreate, now: datetime) -> ImageRecord:
    return ImageRecord(**data.model_dump(), created_at=now, updated_at=now)

def _sorted(records: List[ImageRecord]) -> List[ImageRecord]:
    return sorted(records, key=lambda r: (r.created_at, r.image_id))

def _matches_or_empty(images: List[ImageRecord], empty_as_not_found: bool, message: str) -> List[ImageRecord]:
    if not images and empty_as_not_found:
        raise NoImagesFoundException(message)
    return images

def create_images(db: DynamoDBService, payload: Any) -> Union[ImageRecord, List[ImageRecord]]:
    """
        Creates one record (JSON object) or many (JSON array).
        Every record is validated before anything is written and the batch is stored
        in a single transaction, so an invalid or failed batch inserts nothing.
    """
    single = isinstance(payload, dict)
    entries = [payload] if single else payload
    if not isinstance(entries, list):
        raise ValidationException("Request body must be an image object or a list of image objects")
    if not entries:
        raise ValidationException("At least one image is required")
    if len(entries) > MAX_TRANSACTION_ITEMS:
        raise ValidationException(f"At most {MAX_TRANSACTION_ITEMS} images can be created at once")

    now = utc_now()
    records = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise ValidationException(f"Image at index {index} must be an object", index=index)
        try:
            data = ImageCreate.model_validate(entry)
        except ValidationError as e:
            raise ValidationException(f"Image at index {index} is invalid: {_first_error(e)}", index=index)
        records.append(_new_record(data, now))

    with dynamodb_errors("save image metadata"):
        db.put_images([record.to_item() for record in records])

    log.info("Saved %d image record(s)", len(records))
    return records[0] if single else records

def upload_image(
    db: DynamoDBService,
    s3: S3Service,
    file_bytes: bytes,
    filename: Optional[str],
    content_type: str,
    image_name: Optional[str],
    category: str,
    description: Optional[str],
    tags: List[str],
    is_featured: bool = False,
) -> ImageRecord:
    """Stores the file in S3 and creates its record with size, format and resolution read from the bytes."""
    mime_type, image_format, width, height = validate_image_bytes(file_bytes, content_type)
    key = f"{uuid.uuid4()}-{sanitize_filename(filename)}"
    try:
        data = ImageCreate(
            image_name=image_name or filename or key,
            image_url=s3.object_url(key),
            description=description or "",
            tags=tags,
            size=len(file_bytes),
            format=image_format,
            category=category,
            resolution={"width": width, "height": height},
            is_featured=is_featured,
        )
    except ValidationError as e:
        raise ValidationException(f"Invalid image metadata: {_first_error(e)}")

    # upload to s3
    try:
        s3.upload(fileobj=BytesIO(file_bytes), key=key, content_type=mime_type)
    except (BotoCoreError, ClientError) as e:
        log.error(f"S3 upload failed: {e}")
        raise S3Exception(f"Failed to upload image to S3: {e}")

    record = _new_record(data, utc_now())
    try:
        db.put_images([record.to_item()])
    except (BotoCoreError, ClientError) as e:
        log.error(f"DynamoDB put_images failed: {e}")
        try:
            s3.delete(key)
        except (BotoCoreError, ClientError) as cleanup_error:
            log.error(f"Could not remove orphaned object {key}: {cleanup_error}")
        raise DynamoDBException(f"Failed to save image metadata: {e}")

    log.info("Uploaded image %s as %s", record.image_id, key)
    return record

def list_images(db: DynamoDBService) -> List[ImageRecord]:
    """All records ordered by creation time, then id."""
    with dynamodb_errors("fetch images"):
        items = db.scan_images()
    return _sorted([ImageRecord.model_validate(it) for it in items])

def paginate_images(db: DynamoDBService, page: Optional[Any] = None, limit: Optional[Any] = None) -> ImagePage:
    result = paginate(list_images(db), page, limit)
    return ImagePage(
        items=result.items,
        page=result.page,
        limit=result.limit,
        total_items=result.total_items,
        total_pages=result.total_pages,
    )

def get_image(db: DynamoDBService, image_id: str) -> ImageRecord:
    """Gets image metadata from DynamoDB."""
    validate_image_id(image_id)
    with dynamodb_errors("get image metadata"):
        item = db.get_image(image_id)
    if not item:
        raise ImageNotFoundException(image_id)
    return ImageRecord.model_validate(item)

def update_image(db: DynamoDBService, image_id: str, changes: ImageUpdate) -> ImageRecord:
    """Writes only the fields present in ``changes``; everything else keeps its value."""
    validate_image_id(image_id)
    fields = changes.model_dump(exclude_unset=True)
    if not fields:
        return get_image(db, image_id)

    with dynamodb_errors("update image metadata"):
        item = db.update_image(image_id, fields, utc_now().isoformat())
    if item is None:
        raise ImageNotFoundException(image_id)
    log.info("Updated image %s", image_id)
    return ImageRecord.model_validate(item)

def remove_image(db: DynamoDBService, s3: S3Service, image_id: str) -> ImageRecord:
    """
        Removes image metadata, first deleting the stored object when the record's
        URL points into our bucket. S3 cleanup is best-effort: a failure is logged
        and the metadata is deleted anyway.
    """
    record = get_image(db, image_id)

    s3_key = s3.key_from_url(record.image_url)
    if s3_key:
        try:
            s3.delete(s3_key)
        except (BotoCoreError, ClientError) as e:
            log.error(f"S3 delete of {s3_key} failed, leaving orphaned object: {e}")

    with dynamodb_errors("delete image metadata"):
        deleted = db.delete_image(image_id)
    if deleted is None:
        raise ImageNotFoundException(image_id)
    log.info("Deleted image %s", image_id)
    return record

def images_by_category(db: DynamoDBService, category: str, empty_as_not_found: bool = True) -> List[ImageRecord]:
    with dynamodb_errors("fetch images by category"):
        items = db.scan_images(Attr("category").eq(category))
    images = _sorted([ImageRecord.model_validate(it) for it in items])
    return _matches_or_empty(images, empty_as_not_found, f"No images found in category: {category}")

def images_by_tag(db: DynamoDBService, tag: str, empty_as_not_found: bool = True) -> List[ImageRecord]:
    with dynamodb_errors("fetch images by tag"):
        items = db.scan_images(Attr("tags").contains(tag))
    images = _sorted([ImageRecord.model_validate(it) for it in items])
    return _matches_or_empty(images, empty_as_not_found, f"No images found with tag: {tag}")

def distinct_categories(db: DynamoDBService) -> List[str]:
    with dynamodb_errors("fetch categories"):
        values = db.distinct_image_values("category")
    return sorted({v for v in values if isinstance(v, str) and v.strip()})

def count_by_category(db: DynamoDBService, category: Optional[str]) -> int:
    if not category or not category.strip():
        raise ValidationException("Category is required")
    with dynamodb_errors("count images by category"):
        return db.count_images(Attr("category").eq(category))

def search_images(db: DynamoDBService, query: Optional[str], empty_as_not_found: bool = True) -> List[ImageRecord]:
    """Case-insensitive substring match on name, tags and description."""
    if not query or not query.strip():
        raise ValidationException("Search query is required")
    needle = query.lower()

    def matches(image: ImageRecord) -> bool:
        return (
            needle in image.image_name.lower()
            or needle in image.description.lower()
            or any(needle in tag.lower() for tag in image.tags)
        )

    images = [image for image in list_images(db) if matches(image)]
    return _matches_or_empty(images, empty_as_not_found, f"No images found for search query: {query}")

def random_images(db: DynamoDBService, limit: Optional[Any] = None) -> List[ImageRecord]:
    """Uniform sample without replacement; limit is clamped to [1, 100]."""
    limit = min(coerce_page_param(limit, DEFAULT_RANDOM_LIMIT), MAX_RANDOM_LIMIT)
    with dynamodb_errors("fetch images"):
        items = db.scan_images()
    images = [ImageRecord.model_validate(it) for it in items]
    return random.sample(images, min(limit, len(images)))

def increment_counter(db: DynamoDBService, image_id: str, counter: Counter) -> ImageRecord:
    validate_image_id(image_id)
    with dynamodb_errors(f"increment {counter.value}"):
        item = db.increment_image_counter(image_id, counter.value, utc_now().isoformat())
    if item is None:
        raise ImageNotFoundException(image_id)
    return ImageRecord.model_validate(item)

def get_download_url(
    db: DynamoDBService,
    s3: S3Service,
    image_id: str,
    expires_in: Optional[int] = None,
) -> DownloadLink:
    """
        Presigned URL for images stored in our bucket; images hosted elsewhere
        hand back their own link. Either way the download is counted.
    """
    record = get_image(db, image_id)
    s3_key = s3.key_from_url(record.image_url)
    if s3_key:
        try:
            url = s3.generate_presigned_url(s3_key, expires_in=expires_in)
        except (BotoCoreError, ClientError) as e:
            log.error(f"Failed to generate presigned URL: {e}")
            raise S3Exception(f"Failed to generate download URL: {e}")
        expires = expires_in or s3.settings.presign_expire_seconds
    else:
        url = record.download_url or record.image_url
        expires = None

    increment_counter(db, image_id, Counter.downloads)
    return DownloadLink(image_id=image_id, download_url=url, expires_in=expires)
