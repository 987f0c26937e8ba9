import uuid
from decimal import Decimal
from botocore.exceptions import ClientError
import pytest

from wallpaper_service.settings import Settings

from wallpaper_service.storage.dynamodb import (
    CLAIM_RELEASE,
    CLAIM_TAKE,
    USER_UPDATE,
    TransactionConditionFailed,
    failed_condition_index,
    from_dynamo,
    is_condition_failure,
)
from wallpaper_service.storage.s3 import S3Service


def test_from_dynamo_converts_decimals():
    item = {"size": Decimal("10"), "ratio": Decimal("1.5"), "resolution": {"width": Decimal("3")}, "tags": ["a"]}
    assert from_dynamo(item) == {"size": 10, "ratio": 1.5, "resolution": {"width": 3}, "tags": ["a"]}
    assert isinstance(from_dynamo(Decimal("10")), int)


def test_is_condition_failure():
    conditional = ClientError({"Error": {"Code": "ConditionalCheckFailedException", "Message": ""}}, "PutItem")
    cancelled = ClientError(
        {
            "Error": {"Code": "TransactionCanceledException", "Message": "Transaction cancelled"},
            "CancellationReasons": [{"Code": "ConditionalCheckFailed"}, {"Code": "None"}],
        },
        "TransactWriteItems",
    )
    cancelled_message_only = ClientError(
        {
            "Error": {
                "Code": "TransactionCanceledException",
                "Message": "Transaction cancelled, please refer cancellation reasons for specific reasons [ConditionalCheckFailed, None]",
            }
        },
        "TransactWriteItems",
    )
    throttled = ClientError({"Error": {"Code": "ThrottlingException", "Message": ""}}, "PutItem")

    assert is_condition_failure(conditional)
    assert is_condition_failure(cancelled)
    assert is_condition_failure(cancelled_message_only)
    assert not is_condition_failure(throttled)


def test_object_urls_and_keys(s3):
    url = s3.object_url("abc-my photo.png")
    assert url == "https://wallpaper-service-bucket.s3.us-east-1.amazonaws.com/abc-my%20photo.png"
    assert s3.key_from_url(url) == "abc-my photo.png"
    assert s3.key_from_url("https://cdn.example.com/abc-my-photo.png") is None
    assert s3.key_from_url(None) is None


def test_object_urls_with_custom_endpoint(mocker):
    mocker.patch("wallpaper_service.storage.s3.boto3")
    settings = Settings(aws_endpoint_url="http://localstack:4566", external_endpoint="http://localhost:4566")
    s3 = S3Service(settings)
    url = s3.object_url("k.png")
    assert url == "http://localhost:4566/wallpaper-service-bucket/k.png"
    assert s3.key_from_url(url) == "k.png"


def test_ensure_bucket_creates_missing_bucket(s3):
    buckets = [b["Name"] for b in s3.client.list_buckets()["Buckets"]]
    assert "wallpaper-service-bucket" in buckets


def test_tables_created(db):
    names = db.client.list_tables()["TableNames"]
    assert {"Images", "Users", "UserEmails"} <= set(names)


def test_failed_condition_index():
    cancelled = ClientError(
        {
            "Error": {"Code": "TransactionCanceledException", "Message": "Transaction cancelled"},
            "CancellationReasons": [{"Code": "None"}, {"Code": "ConditionalCheckFailed"}, {"Code": "None"}],
        },
        "TransactWriteItems",
    )
    message_only = ClientError(
        {
            "Error": {
                "Code": "TransactionCanceledException",
                "Message": "Transaction cancelled, please refer cancellation reasons for specific reasons [None, None, ConditionalCheckFailed]",
            }
        },
        "TransactWriteItems",
    )
    throttled = ClientError({"Error": {"Code": "ThrottlingException", "Message": ""}}, "PutItem")

    assert failed_condition_index(cancelled) == 1
    assert failed_condition_index(message_only) == 2
    assert failed_condition_index(throttled) is None


# ------------------------------
# DynamoDB writes read back as plain values
# ------------------------------

def image_item(**overrides):
    item = {
        "image_id": str(uuid.uuid4()),
        "image_name": "Lake",
        "image_url": "https://cdn.example.com/lake.png",
        "size": 2048,
        "format": "png",
        "category": "Nature",
        "resolution": {"width": 1920, "height": 1080},
        "description": "",
        "tags": ["blue", "water"],
        "is_featured": True,
        "download_url": None,
        "views": 0,
        "downloads": 0,
        "likes": 0,
        "created_at": "2024-01-01T00:00:00+00:00",
        "updated_at": "2024-01-01T00:00:00+00:00",
    }
    item.update(overrides)
    return item


def user_item(**overrides):
    item = {
        "user_id": str(uuid.uuid4()),
        "name": "Ada",
        "email": "ada@example.com",
        "password_hash": "$2b$12$hash",
        "created_at": "2024-01-01T00:00:00+00:00",
        "updated_at": "2024-01-01T00:00:00+00:00",
    }
    item.update(overrides)
    return item


def test_put_images_reads_back(db):
    first, second = image_item(), image_item(image_name="River")
    db.put_images([first, second])

    assert db.get_image(first["image_id"]) == first
    assert db.get_image(second["image_id"]) == second
    assert db.count_images() == 2


def test_put_images_is_all_or_nothing(db):
    existing = image_item()
    db.put_images([existing])
    with pytest.raises(ClientError) as info:
        db.put_images([image_item(), existing])
    assert is_condition_failure(info.value)
    assert db.count_images() == 1


def test_create_user_reads_back(db):
    user = user_item()
    assert db.create_user(user) is True
    assert db.get_user(user["user_id"]) == user
    assert db.get_user_by_email("ada@example.com") == user
    assert db.create_user(user_item()) is False


def test_update_user_moves_email_claim(db):
    user = user_item()
    db.create_user(user)
    updated = db.update_user(user["user_id"], "ada@example.com", "Ada L.", "ada@new.example.com", "2024-02-01T00:00:00+00:00")

    assert updated["email"] == "ada@new.example.com"
    assert db.get_user_by_email("ada@example.com") is None
    assert db.get_user_by_email("ada@new.example.com")["user_id"] == user["user_id"]


def test_update_user_reports_failed_item(db):
    ada, grace = user_item(), user_item(name="Grace", email="grace@example.com")
    db.create_user(ada)
    db.create_user(grace)

    with pytest.raises(TransactionConditionFailed) as info:
        db.update_user(ada["user_id"], "ada@example.com", "Ada", "grace@example.com", "2024-02-01T00:00:00+00:00")
    assert info.value.index == CLAIM_TAKE

    with pytest.raises(TransactionConditionFailed) as info:
        db.update_user(ada["user_id"], "grace@example.com", "Ada", "ada@other.example.com", "2024-02-01T00:00:00+00:00")
    assert info.value.index == CLAIM_RELEASE

    with pytest.raises(TransactionConditionFailed) as info:
        db.update_user("missing", "nobody@example.com", "X", "nobody@example.com", "2024-02-01T00:00:00+00:00")
    assert info.value.index == USER_UPDATE
    assert db.get_user(ada["user_id"])["email"] == "ada@example.com"


def test_delete_user_releases_email(db):
    user = user_item()
    db.create_user(user)
    assert db.delete_user(user["user_id"], user["email"]) is True
    assert db.get_user(user["user_id"]) is None
    assert db.get_user_by_email(user["email"]) is None
    assert db.delete_user(user["user_id"], user["email"]) is False
