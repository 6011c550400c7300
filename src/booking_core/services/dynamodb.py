"""DynamoDB service wrapper for conditional, environment-aware table operations."""

import random
import time
from typing import Any

import boto3
from boto3.dynamodb.conditions import Key
from boto3.dynamodb.types import TypeSerializer
from botocore.config import Config
from botocore.exceptions import ClientError

from booking_core.config import BookingSettings, get_settings
from booking_core.models import BookingError, ErrorCode
from booking_core.utils.logging import get_logger

logger = get_logger(__name__)

# Throttling and transient 5xx are retried by botocore before we ever see them
_RETRY_CONFIG = Config(retries={"max_attempts": 5, "mode": "standard"})

# Transactions cancelled by contention are retried here; botocore does not
TRANSACT_MAX_ATTEMPTS = 4
TRANSACT_BASE_DELAY_SECONDS = 0.05
_TRANSIENT_CANCELLATION_CODES = {
    "TransactionConflict",
    "ThrottlingError",
    "ProvisionedThroughputExceeded",
}

# Module-level singleton for connection reuse
_dynamodb_service_instance: "DynamoDBService | None" = None


def get_dynamodb_service(settings: BookingSettings | None = None) -> "DynamoDBService":
    """Get or create the singleton DynamoDB service instance.

    Args:
        settings: Settings to use. Only used on first call.

    Returns:
        Shared DynamoDBService instance
    """
    global _dynamodb_service_instance
    if _dynamodb_service_instance is None:
        _dynamodb_service_instance = DynamoDBService(settings)
    return _dynamodb_service_instance


def reset_dynamodb_service() -> None:
    """Reset the singleton instance (for testing only).

    This allows tests to create a fresh DynamoDBService inside
    a mock_aws context.
    """
    global _dynamodb_service_instance
    _dynamodb_service_instance = None


class DynamoDBService:
    """Service for DynamoDB operations with prefixed table names."""

    def __init__(self, settings: BookingSettings | None = None) -> None:
        """Initialize DynamoDB service.

        Args:
            settings: Booking settings. Defaults to the process-wide settings.
        """
        self.settings = settings or get_settings()
        self.name_prefix = self.settings.table_prefix
        self._dynamodb = boto3.resource("dynamodb", config=_RETRY_CONFIG)
        self._client = boto3.client("dynamodb", config=_RETRY_CONFIG)
        self._serializer = TypeSerializer()

    def table_name(self, table: str) -> str:
        """Get full table name with prefix."""
        return f"{self.name_prefix}-{table}"

    def _get_table(self, table: str) -> Any:
        """Get DynamoDB table resource."""
        return self._dynamodb.Table(self.table_name(table))

    def serialize(self, values: dict[str, Any]) -> dict[str, Any]:
        """Convert plain values to low-level attribute values.

        Transactions go through the client API, which needs typed values
        such as ``{"S": "..."}`` instead of Python objects.

        Args:
            values: Mapping of names to Python values (str, int, Decimal, ...)

        Returns:
            Mapping of names to DynamoDB attribute values
        """
        return {k: self._serializer.serialize(v) for k, v in values.items()}

    # Generic CRUD operations

    def get_item(
        self,
        table: str,
        key: dict[str, Any],
        consistent_read: bool = False,
    ) -> dict[str, Any] | None:
        """Get a single item by key.

        Args:
            table: Table name without prefix
            key: Primary key dict
            consistent_read: Read the latest committed write

        Returns:
            Item dict or None if not found
        """
        response = self._get_table(table).get_item(Key=key, ConsistentRead=consistent_read)
        item: dict[str, Any] | None = response.get("Item")
        return item

    def put_item(
        self,
        table: str,
        item: dict[str, Any],
        condition_expression: str | None = None,
    ) -> bool:
        """Put an item into the table.

        Args:
            table: Table name without prefix
            item: Item to store
            condition_expression: Optional condition for write

        Returns:
            True if successful, False if condition failed
        """
        try:
            kwargs: dict[str, Any] = {"Item": item}
            if condition_expression:
                kwargs["ConditionExpression"] = condition_expression

            self._get_table(table).put_item(**kwargs)
            return True
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                return False
            raise

    def update_item(
        self,
        table: str,
        key: dict[str, Any],
        update_expression: str,
        expression_attribute_values: dict[str, Any],
        expression_attribute_names: dict[str, str] | None = None,
        condition_expression: str | None = None,
    ) -> dict[str, Any] | None:
        """Update an item with expressions.

        Args:
            table: Table name without prefix
            key: Primary key dict
            update_expression: DynamoDB update expression
            expression_attribute_values: Values for expression
            expression_attribute_names: Names for expression (for reserved words)
            condition_expression: Optional condition for update

        Returns:
            Updated attributes or None if condition failed
        """
        try:
            kwargs: dict[str, Any] = {
                "Key": key,
                "UpdateExpression": update_expression,
                "ExpressionAttributeValues": expression_attribute_values,
                "ReturnValues": "ALL_NEW",
            }
            if expression_attribute_names:
                kwargs["ExpressionAttributeNames"] = expression_attribute_names
            if condition_expression:
                kwargs["ConditionExpression"] = condition_expression

            response = self._get_table(table).update_item(**kwargs)
            attrs: dict[str, Any] | None = response.get("Attributes")
            return attrs
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                return None
            raise

    def delete_item(
        self,
        table: str,
        key: dict[str, Any],
        condition_expression: str | None = None,
        expression_attribute_values: dict[str, Any] | None = None,
    ) -> bool:
        """Delete an item by key.

        Args:
            table: Table name without prefix
            key: Primary key dict
            condition_expression: Optional condition for delete
            expression_attribute_values: Values for the condition

        Returns:
            True if deleted (or didn't exist), False if condition failed
        """
        try:
            kwargs: dict[str, Any] = {"Key": key}
            if condition_expression:
                kwargs["ConditionExpression"] = condition_expression
            if expression_attribute_values:
                kwargs["ExpressionAttributeValues"] = expression_attribute_values

            self._get_table(table).delete_item(**kwargs)
            return True
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                return False
            raise

    def query(
        self,
        table: str,
        key_condition: Any,
        index_name: str | None = None,
        filter_expression: Any | None = None,
        limit: int | None = None,
        scan_index_forward: bool = True,
    ) -> list[dict[str, Any]]:
        """Query table or GSI, following pagination.

        Args:
            table: Table name without prefix
            key_condition: Boto3 Key condition
            index_name: GSI name (optional)
            filter_expression: Additional filter (optional)
            limit: Max items to return
            scan_index_forward: Sort order (True=ascending)

        Returns:
            List of items
        """
        kwargs: dict[str, Any] = {
            "KeyConditionExpression": key_condition,
            "ScanIndexForward": scan_index_forward,
        }
        if index_name:
            kwargs["IndexName"] = index_name
        if filter_expression:
            kwargs["FilterExpression"] = filter_expression

        items: list[dict[str, Any]] = []
        table_resource = self._get_table(table)
        while True:
            response = table_resource.query(**kwargs)
            items.extend(response.get("Items", []))
            if limit and len(items) >= limit:
                return items[:limit]
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                return items
            kwargs["ExclusiveStartKey"] = last_key

    def scan(
        self,
        table: str,
        filter_expression: Any | None = None,
    ) -> list[dict[str, Any]]:
        """Scan a whole table, following pagination.

        Args:
            table: Table name without prefix
            filter_expression: Optional filter

        Returns:
            List of items
        """
        kwargs: dict[str, Any] = {}
        if filter_expression:
            kwargs["FilterExpression"] = filter_expression

        items: list[dict[str, Any]] = []
        table_resource = self._get_table(table)
        while True:
            response = table_resource.scan(**kwargs)
            items.extend(response.get("Items", []))
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                return items
            kwargs["ExclusiveStartKey"] = last_key

    def transact_write(
        self,
        items: list[dict[str, Any]],
    ) -> bool:
        """Execute transactional write for multiple items.

        A cancellation caused by a failed condition is a business outcome and
        returns False. Cancellations caused by contention with another
        transaction, or by throttling, are retried with jittered exponential
        backoff; when attempts run out they surface as STORE_UNAVAILABLE.

        Args:
            items: List of TransactWriteItem dicts in client (typed) format

        Returns:
            True if successful, False if a condition check failed

        Raises:
            BookingError: STORE_UNAVAILABLE when contention outlasts the retries
        """
        for attempt in range(TRANSACT_MAX_ATTEMPTS):
            try:
                self._client.transact_write_items(TransactItems=items)  # type: ignore[arg-type]
                return True
            except ClientError as e:
                if e.response["Error"]["Code"] != "TransactionCanceledException":
                    raise
                codes = {
                    reason.get("Code", "None")
                    for reason in e.response.get("CancellationReasons", [])
                }

            if "ConditionalCheckFailed" in codes or not codes - {"None"}:
                return False
            if not codes & _TRANSIENT_CANCELLATION_CODES:
                raise BookingError(
                    ErrorCode.STORE_UNAVAILABLE, {"cancellation_reasons": ",".join(sorted(codes))}
                )

            delay = random.uniform(0, TRANSACT_BASE_DELAY_SECONDS * 2**attempt)
            logger.warning(
                "Transaction cancelled by %s (attempt %d/%d), retrying in %.3fs",
                ",".join(sorted(codes - {"None"})),
                attempt + 1,
                TRANSACT_MAX_ATTEMPTS,
                delay,
            )
            time.sleep(delay)

        raise BookingError(ErrorCode.STORE_UNAVAILABLE, {"reason": "transaction_conflict"})

    # Convenience methods for common patterns

    def query_by_gsi(
        self,
        table: str,
        index_name: str,
        partition_key_name: str,
        partition_key_value: str,
        sort_key_condition: Any | None = None,
        filter_expression: Any | None = None,
    ) -> list[dict[str, Any]]:
        """Query a GSI by partition key.

        Args:
            table: Table name without prefix
            index_name: GSI name
            partition_key_name: Name of partition key attribute
            partition_key_value: Value to query
            sort_key_condition: Optional sort key condition
            filter_expression: Optional filter applied after the key condition

        Returns:
            List of items
        """
        key_condition = Key(partition_key_name).eq(partition_key_value)
        if sort_key_condition:
            key_condition = key_condition & sort_key_condition

        return self.query(
            table,
            key_condition,
            index_name=index_name,
            filter_expression=filter_expression,
        )
