import boto3
from typing import Optional
from urllib.parse import quote, unquote, urlparse
from botocore.exceptions import ClientError
from wallpaper_service.settings import Settings
import logging

log = logging.getLogger(__name__)

# -------------------------
# S3 Service
# -------------------------
class S3Service:
    def __init__(self, settings: Settings):
        self.settings = settings
        self.bucket = settings.s3_bucket
        session = boto3.session.Session(region_name=settings.aws_region)
        kwargs = {
            "aws_access_key_id": settings.aws_access_key_id,
            "aws_secret_access_key": settings.aws_secret_access_key,
        }
        if settings.aws_endpoint_url:
            kwargs["endpoint_url"] = settings.aws_endpoint_url

        self.client = session.client("s3", **kwargs)
        log.info("Initialized S3 client")

        # Ensure bucket exists at initialization
        self.ensure_bucket()

    def ensure_bucket(self):
        try:
            self.client.head_bucket(Bucket=self.bucket)
            log.debug("Bucket %s already exists", self.bucket)
        except ClientError as e:
            error_code = int(e.response["Error"]["Code"])
            if error_code == 404:
                self.client.create_bucket(Bucket=self.bucket)
                log.info("Created bucket %s", self.bucket)
            else:
                log.error("Failed to check/create bucket: %s", e)
                raise

    def upload(self, fileobj, key: str, content_type: str) -> str:
        self.client.upload_fileobj(
            Fileobj=fileobj,
            Bucket=self.bucket,
            Key=key,
            ExtraArgs={"ContentType": content_type},
        )
        log.debug("Uploaded %s to s3://%s/%s", key, self.bucket, key)
        return self.object_url(key)

    def base_url(self) -> str:
        """Prefix shared by the URLs of every object in the bucket."""
        if self.settings.aws_endpoint_url:
            endpoint = self.settings.external_endpoint or self.settings.aws_endpoint_url
            return f"{endpoint.rstrip('/')}/{self.bucket}/"
        return f"https://{self.bucket}.s3.{self.settings.aws_region}.amazonaws.com/"

    def object_url(self, key: str) -> str:
        return self.base_url() + quote(key)

    def key_from_url(self, url: Optional[str]) -> Optional[str]:
        """
            Returns the object key for a URL that points into this bucket, else None.
            The key is the trailing path segment of the URL.
        """
        if not url or not url.startswith(self.base_url()):
            return None
        segment = urlparse(url).path.rstrip("/").rsplit("/", 1)[-1]
        return unquote(segment) or None

    def generate_presigned_url(self, key: str, expires_in: Optional[int] = None) -> str:
        expires = expires_in or self.settings.presign_expire_seconds
        url = self.client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket, "Key": key},
            ExpiresIn=expires,
        )
        if self.settings.external_endpoint and self.settings.aws_endpoint_url:
            url = url.replace(self.settings.aws_endpoint_url, self.settings.external_endpoint)
        return url

    def delete(self, key: str):
        self.client.delete_object(Bucket=self.bucket, Key=key)
        log.debug("Deleted s3://%s/%s", self.bucket, key)

    def close(self):
        log.info("Closed S3 client")
