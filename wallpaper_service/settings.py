from pydantic_settings import BaseSettings
from pydantic import Field, SecretStr
from typing import Literal, Optional

class Settings(BaseSettings):
    aws_region: str = Field("us-east-1")
    s3_bucket: str = Field("wallpaper-service-bucket")
    images_table: str = Field("Images")
    users_table: str = Field("Users")
    user_emails_table: str = Field("UserEmails")
    aws_endpoint_url: Optional[str] = Field(None)
    # Public host that replaces aws_endpoint_url in generated links (e.g. localstack behind a proxy)
    external_endpoint: Optional[str] = Field(None)
    presign_expire_seconds: int = Field(900)

    aws_access_key_id: str = Field("test")
    aws_secret_access_key: str = Field("test")

    jwt_secret_key: SecretStr
    jwt_algorithm: str = Field("HS256")
    access_token_expire_minutes: int = Field(60)

    # "not_found" answers 404 for category/tag/search with no matches, "empty" answers 200 with []
    empty_result_policy: Literal["not_found", "empty"] = Field("not_found")

    app_title: str = Field("Wallpaper Service")
    log_level: str = Field("INFO")
    port: int = Field(8000)

    class Config:
        env_file = ".env"
        extra = "ignore"
        frozen = True

    @property
    def empty_as_not_found(self) -> bool:
        return self.empty_result_policy == "not_found"

settings = Settings()
