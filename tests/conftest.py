import io
import os
import pytest
from moto import mock_aws
from fastapi.testclient import TestClient
from PIL import Image

# Set test environment variables BEFORE importing app modules

# Dummy AWS credentials for moto
os.environ["AWS_ACCESS_KEY_ID"] = "testing"
os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
os.environ["AWS_SECURITY_TOKEN"] = "testing"
os.environ["AWS_SESSION_TOKEN"] = "testing"
os.environ["AWS_REGION"] = "us-east-1"
os.environ["S3_BUCKET"] = "wallpaper-service-bucket"
os.environ["IMAGES_TABLE"] = "Images"
os.environ["USERS_TABLE"] = "Users"
os.environ["USER_EMAILS_TABLE"] = "UserEmails"
os.environ["JWT_SECRET_KEY"] = "test-secret-key"
os.environ["EMPTY_RESULT_POLICY"] = "not_found"
# Clear the AWS_ENDPOINT_URL so moto mocks are used instead of localstack
os.environ.pop("AWS_ENDPOINT_URL", None)
os.environ.pop("EXTERNAL_ENDPOINT", None)

from wallpaper_service.main import app
from wallpaper_service.settings import Settings
from wallpaper_service.storage.s3 import S3Service
from wallpaper_service.storage.dynamodb import DynamoDBService
from wallpaper_service.dependencies.dependencies import get_settings


def make_png_bytes(width: int = 10, height: int = 10, color: str = "red") -> bytes:
    """Generate a simple valid PNG in-memory."""
    img = Image.new("RGB", (width, height), color=color)
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def image_payload(**overrides) -> dict:
    """A valid create-image request body in the API's camelCase."""
    payload = {
        "imageName": "Mountain Lake",
        "imageUrl": "https://cdn.example.com/wallpapers/mountain-lake.jpg",
        "description": "Calm lake under snowy peaks",
        "tags": ["nature", "lake"],
        "size": 204800,
        "format": "jpg",
        "category": "Nature",
        "resolution": {"width": 1920, "height": 1080},
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def aws():
    with mock_aws():
        yield


@pytest.fixture
def db(aws, settings):
    return DynamoDBService(settings)


@pytest.fixture
def s3(aws, settings):
    return S3Service(settings)


@pytest.fixture(scope="function")
def test_client(aws):
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def empty_policy_client(test_client):
    """Client whose category/tag/search queries answer 200 [] instead of 404."""
    relaxed = Settings(empty_result_policy="empty")
    app.dependency_overrides[get_settings] = lambda: relaxed
    return test_client


@pytest.fixture
def auth_headers(test_client):
    resp = test_client.post(
        "/users/register",
        json={"name": "Ada", "email": "ada@example.com", "password": "s3cret-pass"},
    )
    assert resp.status_code == 201
    return {"Authorization": f"Bearer {resp.json()['token']}"}
