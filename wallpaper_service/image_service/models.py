from enum import Enum
from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel
from uuid import uuid4

URL_PATTERN = r"^https?://.+"
MAX_DESCRIPTION_LENGTH = 500

def new_image_id() -> str:
    """Generates a new unique image ID."""
    return str(uuid4())

class Counter(str, Enum):
    views = "views"
    downloads = "downloads"
    likes = "likes"

class CamelModel(BaseModel):
    """Stored with snake_case attribute names, exposed over HTTP in camelCase."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

class Resolution(CamelModel):
    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)

class ImageCreate(CamelModel):
    image_name: str = Field(..., min_length=1)
    image_url: str = Field(..., pattern=URL_PATTERN)
    download_url: Optional[str] = Field(None, pattern=URL_PATTERN)
    description: str = Field("", max_length=MAX_DESCRIPTION_LENGTH)
    tags: List[str] = []
    size: int = Field(..., ge=0)
    format: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)
    resolution: Resolution
    is_featured: bool = False

    @field_validator("image_name", "format", "category")
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value

class ImageUpdate(CamelModel):
    """Partial update. Only the fields present in the request are written."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    image_name: Optional[str] = Field(None, min_length=1)
    image_url: Optional[str] = Field(None, pattern=URL_PATTERN)
    download_url: Optional[str] = Field(None, pattern=URL_PATTERN)
    description: Optional[str] = Field(None, max_length=MAX_DESCRIPTION_LENGTH)
    tags: Optional[List[str]] = None
    size: Optional[int] = Field(None, ge=0)
    format: Optional[str] = Field(None, min_length=1)
    category: Optional[str] = Field(None, min_length=1)
    resolution: Optional[Resolution] = None
    is_featured: Optional[bool] = None

    @model_validator(mode="after")
    def required_fields_not_null(self):
        for name in self.model_fields_set:
            if name != "download_url" and getattr(self, name) is None:
                raise ValueError(f"{to_camel(name)} cannot be null")
            if name in ("image_name", "format", "category") and not getattr(self, name).strip():
                raise ValueError(f"{to_camel(name)} must not be blank")
        return self

class ImageRecord(CamelModel):
    image_id: str = Field(default_factory=new_image_id, alias="id")
    image_name: str
    image_url: str
    download_url: Optional[str] = None
    description: str = ""
    tags: List[str] = []
    size: int
    format: str
    category: str
    resolution: Resolution
    is_featured: bool = False
    downloads: int = 0
    views: int = 0
    likes: int = 0
    created_at: datetime
    updated_at: datetime

    def to_item(self) -> dict:
        """DynamoDB item: snake_case keys, ISO timestamps, no nulls."""
        item = self.model_dump(exclude_none=True)
        # Dynamo needs timestamps as ISO strings
        item["created_at"] = self.created_at.isoformat()
        item["updated_at"] = self.updated_at.isoformat()
        return item

class ImagePage(CamelModel):
    items: List[ImageRecord]
    page: int
    limit: int
    total_items: int
    total_pages: int

class CategoryCount(CamelModel):
    category: str
    count: int

class DownloadLink(CamelModel):
    image_id: str = Field(alias="id")
    download_url: str
    expires_in: Optional[int] = None
