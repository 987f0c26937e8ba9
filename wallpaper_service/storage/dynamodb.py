import boto3
from decimal import Decimal
from typing import Optional, Dict, Any, List
from boto3.dynamodb.conditions import ConditionBase
from botocore.exceptions import ClientError
from wallpaper_service.settings import Settings
import logging
import re

log = logging.getLogger(__name__)

# Largest number of items DynamoDB accepts in one transaction
MAX_TRANSACTION_ITEMS = 100

# Positions of the items in the update_user transaction
USER_UPDATE, CLAIM_RELEASE, CLAIM_TAKE = 0, 1, 2


def from_dynamo(value: Any) -> Any:
    """Converts the Decimals boto3 hands back into ints/floats, recursively."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: from_dynamo(v) for k, v in value.items()}
    if isinstance(value, (list, set)):
        return [from_dynamo(v) for v in value]
    return value


class TransactionConditionFailed(Exception):
    """A transaction was cancelled because the condition on item `index` failed (None if unknown)."""

    def __init__(self, index: Optional[int] = None):
        super().__init__(f"Transaction condition failed at item {index}")
        self.index = index


def cancellation_codes(error: ClientError) -> List[str]:
    """Per-item cancellation codes of a TransactionCanceledException, in TransactItems order."""
    reasons = error.response.get("CancellationReasons")
    if reasons:
        return [r.get("Code", "None") for r in reasons]
    # Some endpoints only report the reasons inside the message: "... [ConditionalCheckFailed, None]"
    message = error.response.get("Error", {}).get("Message", "")
    match = re.search(r"\[([^\]]*)\]\s*$", message)
    if not match:
        return []
    return [code.strip() for code in match.group(1).split(",")]


def failed_condition_index(error: ClientError) -> Optional[int]:
    codes = cancellation_codes(error)
    if "ConditionalCheckFailed" in codes:
        return codes.index("ConditionalCheckFailed")
    return None


def is_condition_failure(error: ClientError) -> bool:
    """True when a write was rejected by its ConditionExpression."""
    code = error.response.get("Error", {}).get("Code")
    if code == "ConditionalCheckFailedException":
        return True
    if code == "TransactionCanceledException":
        reasons = error.response.get("CancellationReasons") or []
        if any(r.get("Code") == "ConditionalCheckFailed" for r in reasons):
            return True
        return "ConditionalCheckFailed" in error.response.get("Error", {}).get("Message", "")
    return False


# -------------------------
# DynamoDB Service
# -------------------------
class DynamoDBService:
    def __init__(self, settings: Settings):
        self.settings = settings
        session = boto3.session.Session(region_name=settings.aws_region)
        kwargs = {
            "aws_access_key_id": settings.aws_access_key_id,
            "aws_secret_access_key": settings.aws_secret_access_key,
        }
        if settings.aws_endpoint_url:
            kwargs["endpoint_url"] = settings.aws_endpoint_url

        self.resource = session.resource("dynamodb", **kwargs)
        self.client = self.resource.meta.client
        log.info("Initialized DynamoDB resource")

        # Ensure tables exist at initialization
        self.ensure_table(settings.images_table, "image_id")
        self.ensure_table(settings.users_table, "user_id")
        self.ensure_table(settings.user_emails_table, "email")

    @property
    def images(self):
        return self.resource.Table(self.settings.images_table)

    @property
    def users(self):
        return self.resource.Table(self.settings.users_table)

    @property
    def user_emails(self):
        return self.resource.Table(self.settings.user_emails_table)

    # Refer here: https://boto3.amazonaws.com/v1/documentation/api/latest/reference/services/dynamodb/client/create_table.html
    def ensure_table(self, table_name: str, hash_key: str):
        try:
            table = self.resource.Table(table_name)
            table.load()
        except ClientError:
            table = self.resource.create_table(
                TableName=table_name,
                KeySchema=[{"AttributeName": hash_key, "KeyType": "HASH"}],
                AttributeDefinitions=[{"AttributeName": hash_key, "AttributeType": "S"}],
                BillingMode="PAY_PER_REQUEST",
            )
            table.wait_until_exists()
            log.info("Created table %s", table_name)

    def _scan(self, table, **scan_kwargs) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        while True:
            resp = table.scan(**scan_kwargs)
            items.extend(resp.get("Items", []))
            last_key = resp.get("LastEvaluatedKey")
            if not last_key:
                return items
            scan_kwargs["ExclusiveStartKey"] = last_key

    # -------------------------
    # Images
    # -------------------------
    def put_images(self, items: List[Dict[str, Any]]):
        """Writes all items in one transaction, so either every item lands or none does."""
        if not items:
            return
        if len(items) > MAX_TRANSACTION_ITEMS:
            raise ValueError(f"At most {MAX_TRANSACTION_ITEMS} items per transaction")
        self.client.transact_write_items(
            TransactItems=[
                {
                    "Put": {
                        "TableName": self.settings.images_table,
                        "Item": item,
                        "ConditionExpression": "attribute_not_exists(image_id)",
                    }
                }
                for item in items
            ]
        )
        log.debug("Inserted %d image records", len(items))

    def get_image(self, image_id: str) -> Optional[Dict[str, Any]]:
        resp = self.images.get_item(Key={"image_id": image_id})
        item = resp.get("Item")
        return from_dynamo(item) if item else None

    def scan_images(self, filter_expression: Optional[ConditionBase] = None) -> List[Dict[str, Any]]:
        scan_kwargs: Dict[str, Any] = {}
        if filter_expression is not None:
            scan_kwargs["FilterExpression"] = filter_expression
        return [from_dynamo(it) for it in self._scan(self.images, **scan_kwargs)]

    def count_images(self, filter_expression: Optional[ConditionBase] = None) -> int:
        scan_kwargs: Dict[str, Any] = {"Select": "COUNT"}
        if filter_expression is not None:
            scan_kwargs["FilterExpression"] = filter_expression
        total = 0
        while True:
            resp = self.images.scan(**scan_kwargs)
            total += resp.get("Count", 0)
            last_key = resp.get("LastEvaluatedKey")
            if not last_key:
                return total
            scan_kwargs["ExclusiveStartKey"] = last_key

    def distinct_image_values(self, attribute: str) -> List[Any]:
        items = self._scan(
            self.images,
            ProjectionExpression="#a",
            ExpressionAttributeNames={"#a": attribute},
        )
        return [from_dynamo(it[attribute]) for it in items if attribute in it]

    def update_image(self, image_id: str, fields: Dict[str, Any], updated_at: str) -> Optional[Dict[str, Any]]:
        """Sets the given fields; returns the new item or None when the image does not exist."""
        values = dict(fields, updated_at=updated_at)
        names = {f"#f{i}": name for i, name in enumerate(values)}
        expression = ", ".join(f"#f{i} = :v{i}" for i in range(len(values)))
        try:
            resp = self.images.update_item(
                Key={"image_id": image_id},
                UpdateExpression=f"SET {expression}",
                ConditionExpression="attribute_exists(image_id)",
                ExpressionAttributeNames=names,
                ExpressionAttributeValues={f":v{i}": v for i, v in enumerate(values.values())},
                ReturnValues="ALL_NEW",
            )
        except ClientError as e:
            if is_condition_failure(e):
                return None
            raise
        log.debug("Updated image %s fields %s", image_id, sorted(fields))
        return from_dynamo(resp["Attributes"])

    def increment_image_counter(self, image_id: str, counter: str, updated_at: str) -> Optional[Dict[str, Any]]:
        try:
            resp = self.images.update_item(
                Key={"image_id": image_id},
                UpdateExpression="SET #u = :u ADD #c :one",
                ConditionExpression="attribute_exists(image_id)",
                ExpressionAttributeNames={"#c": counter, "#u": "updated_at"},
                ExpressionAttributeValues={":one": 1, ":u": updated_at},
                ReturnValues="ALL_NEW",
            )
        except ClientError as e:
            if is_condition_failure(e):
                return None
            raise
        return from_dynamo(resp["Attributes"])

    def delete_image(self, image_id: str) -> Optional[Dict[str, Any]]:
        """Deletes the image; returns the removed item or None when it did not exist."""
        try:
            resp = self.images.delete_item(
                Key={"image_id": image_id},
                ConditionExpression="attribute_exists(image_id)",
                ReturnValues="ALL_OLD",
            )
        except ClientError as e:
            if is_condition_failure(e):
                return None
            raise
        log.debug("Deleted metadata %s", image_id)
        return from_dynamo(resp.get("Attributes"))

    # -------------------------
    # Users
    # -------------------------
    def create_user(self, item: Dict[str, Any]) -> bool:
        """
            Claims the email and stores the user in a single transaction.
            Returns False when the email is already claimed.
        """
        try:
            self.client.transact_write_items(
                TransactItems=[
                    {
                        "Put": {
                            "TableName": self.settings.user_emails_table,
                            "Item": {"email": item["email"], "user_id": item["user_id"]},
                            "ConditionExpression": "attribute_not_exists(email)",
                        }
                    },
                    {
                        "Put": {
                            "TableName": self.settings.users_table,
                            "Item": item,
                            "ConditionExpression": "attribute_not_exists(user_id)",
                        }
                    },
                ]
            )
        except ClientError as e:
            if is_condition_failure(e):
                return False
            raise
        log.debug("Inserted user %s", item["user_id"])
        return True

    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        resp = self.users.get_item(Key={"user_id": user_id})
        item = resp.get("Item")
        return from_dynamo(item) if item else None

    def get_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        resp = self.user_emails.get_item(Key={"email": email})
        claim = resp.get("Item")
        if not claim:
            return None
        return self.get_user(claim["user_id"])

    def update_user(
        self,
        user_id: str,
        current_email: str,
        name: str,
        email: str,
        updated_at: str,
    ) -> Optional[Dict[str, Any]]:
        """
            Updates name/email. When the email changes the old claim is released and the
            new one taken in the same transaction.
            Raises TransactionConditionFailed with the index of the failed item
            (USER_UPDATE, CLAIM_RELEASE or CLAIM_TAKE).
        """
        update = {
            "TableName": self.settings.users_table,
            "Key": {"user_id": user_id},
            "UpdateExpression": "SET #n = :n, #e = :e, #u = :u",
            "ConditionExpression": "attribute_exists(user_id)",
            "ExpressionAttributeNames": {"#n": "name", "#e": "email", "#u": "updated_at"},
            "ExpressionAttributeValues": {":n": name, ":e": email, ":u": updated_at},
        }
        transact_items: List[Dict[str, Any]] = [{"Update": update}]
        if email != current_email:
            transact_items += [
                {
                    "Delete": {
                        "TableName": self.settings.user_emails_table,
                        "Key": {"email": current_email},
                        "ConditionExpression": "user_id = :uid",
                        "ExpressionAttributeValues": {":uid": user_id},
                    }
                },
                {
                    "Put": {
                        "TableName": self.settings.user_emails_table,
                        "Item": {"email": email, "user_id": user_id},
                        "ConditionExpression": "attribute_not_exists(email)",
                    }
                },
            ]
        try:
            self.client.transact_write_items(TransactItems=transact_items)
        except ClientError as e:
            if is_condition_failure(e):
                raise TransactionConditionFailed(failed_condition_index(e)) from e
            raise
        log.debug("Updated user %s", user_id)
        return self.get_user(user_id)

    def delete_user(self, user_id: str, email: str) -> bool:
        """Deletes the user and releases the email. Returns False if the user was already gone."""
        try:
            self.client.transact_write_items(
                TransactItems=[
                    {
                        "Delete": {
                            "TableName": self.settings.users_table,
                            "Key": {"user_id": user_id},
                            "ConditionExpression": "attribute_exists(user_id)",
                        }
                    },
                    {
                        "Delete": {
                            "TableName": self.settings.user_emails_table,
                            "Key": {"email": email},
                        }
                    },
                ]
            )
        except ClientError as e:
            if is_condition_failure(e):
                return False
            raise
        log.debug("Deleted user %s", user_id)
        return True

    def close(self):
        log.info("Closed DynamoDB resource")
