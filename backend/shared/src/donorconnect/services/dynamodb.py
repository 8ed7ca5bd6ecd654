"""DynamoDB service wrapper for table operations.

All cross-request coordination goes through DynamoDB condition expressions
and TransactWriteItems; nothing here caches records in process memory.
"""

import datetime as dt
import os
from typing import Any, Iterable

import boto3
from boto3.dynamodb.conditions import Key
from boto3.dynamodb.types import TypeSerializer
from botocore.exceptions import ClientError

# Module-level singleton for connection reuse
_dynamodb_service_instance: "DynamoDBService | None" = None


def get_dynamodb_service(environment: str | None = None) -> "DynamoDBService":
    """Get or create the singleton DynamoDB service instance.

    Avoids creating new boto3 clients on every request.

    Args:
        environment: Environment name. Only used on first call.

    Returns:
        Shared DynamoDBService instance
    """
    global _dynamodb_service_instance
    if _dynamodb_service_instance is None:
        _dynamodb_service_instance = DynamoDBService(environment)
    return _dynamodb_service_instance


def reset_dynamodb_service() -> None:
    """Reset the singleton instance (for testing only).

    This allows tests to create a fresh DynamoDBService inside
    a mock_aws context.
    """
    global _dynamodb_service_instance
    _dynamodb_service_instance = None


class DynamoDBService:
    """Service for DynamoDB operations with environment-aware table names."""

    USERS_TABLE = "users"
    NGOS_TABLE = "ngos"
    CAMPAIGNS_TABLE = "campaigns"
    PAYMENT_SESSIONS_TABLE = "payment-sessions"
    SUBSCRIPTIONS_TABLE = "subscriptions"
    DONATIONS_TABLE = "donations"
    RECEIPTS_TABLE = "donation-receipts"
    NOTIFICATIONS_TABLE = "notifications"
    WEBHOOK_EVENTS_TABLE = "stripe-webhook-events"

    def __init__(self, environment: str | None = None) -> None:
        """Initialize DynamoDB service.

        Args:
            environment: Environment name (dev/prod). Defaults to ENVIRONMENT env var.
        """
        self.environment = environment or os.getenv("ENVIRONMENT", "dev")
        # Allow override via DYNAMODB_TABLE_PREFIX for testing
        self.name_prefix = os.getenv(
            "DYNAMODB_TABLE_PREFIX", f"donorconnect-{self.environment}"
        )
        self._dynamodb = boto3.resource("dynamodb")
        self._client = boto3.client("dynamodb")
        self._serializer = TypeSerializer()

    def _table_name(self, table: str) -> str:
        """Get full table name with prefix."""
        return f"{self.name_prefix}-{table}"

    def _get_table(self, table: str) -> Any:
        """Get DynamoDB table resource."""
        return self._dynamodb.Table(self._table_name(table))

    def _serialize(self, values: dict[str, Any]) -> dict[str, Any]:
        return {k: self._serializer.serialize(v) for k, v in values.items()}

    # Generic CRUD operations

    def get_item(
        self,
        table: str,
        key: dict[str, Any],
        consistent_read: bool = True,
    ) -> dict[str, Any] | None:
        """Get a single item by key.

        Args:
            table: Table name without prefix
            key: Primary key dict
            consistent_read: Use strongly consistent reads (default: True)

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

    def query(
        self,
        table: str,
        key_condition: Any,
        index_name: str | None = None,
        filter_expression: Any | None = None,
        limit: int | None = None,
        scan_index_forward: bool = True,
    ) -> list[dict[str, Any]]:
        """Query table or GSI.

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
        if limit:
            kwargs["Limit"] = limit

        response = self._get_table(table).query(**kwargs)
        items: list[dict[str, Any]] = response.get("Items", [])
        return items

    def query_by_gsi(
        self,
        table: str,
        index_name: str,
        partition_key_name: str,
        partition_key_value: str,
        sort_key_condition: Any | None = None,
    ) -> list[dict[str, Any]]:
        """Query a GSI by partition key.

        Args:
            table: Table name without prefix
            index_name: GSI name
            partition_key_name: Name of partition key attribute
            partition_key_value: Value to query
            sort_key_condition: Optional sort key condition

        Returns:
            List of items
        """
        key_condition = Key(partition_key_name).eq(partition_key_value)
        if sort_key_condition:
            key_condition = key_condition & sort_key_condition

        return self.query(table, key_condition, index_name=index_name)

    # Transactions

    def build_put(
        self,
        table: str,
        item: dict[str, Any],
        condition_expression: str | None = None,
    ) -> dict[str, Any]:
        """Build a TransactWriteItems Put entry from a plain item."""
        put: dict[str, Any] = {
            "TableName": self._table_name(table),
            "Item": self._serialize(item),
        }
        if condition_expression:
            put["ConditionExpression"] = condition_expression
        return {"Put": put}

    def build_update(
        self,
        table: str,
        key: dict[str, Any],
        update_expression: str,
        expression_attribute_values: dict[str, Any],
        expression_attribute_names: dict[str, str] | None = None,
        condition_expression: str | None = None,
    ) -> dict[str, Any]:
        """Build a TransactWriteItems Update entry from plain values."""
        update: dict[str, Any] = {
            "TableName": self._table_name(table),
            "Key": self._serialize(key),
            "UpdateExpression": update_expression,
            "ExpressionAttributeValues": self._serialize(expression_attribute_values),
        }
        if expression_attribute_names:
            update["ExpressionAttributeNames"] = expression_attribute_names
        if condition_expression:
            update["ConditionExpression"] = condition_expression
        return {"Update": update}

    def transact_write(
        self,
        items: list[dict[str, Any]],
    ) -> bool:
        """Execute transactional write for multiple items.

        Args:
            items: List of TransactWriteItem dicts (see build_put/build_update)

        Returns:
            True if successful, False if transaction was cancelled
        """
        try:
            self._client.transact_write_items(TransactItems=items)  # type: ignore[arg-type]
            return True
        except ClientError as e:
            if e.response["Error"]["Code"] == "TransactionCanceledException":
                return False
            raise

    # =========================================================================
    # Users and donation targets
    # =========================================================================

    def get_user(self, user_id: str) -> dict[str, Any] | None:
        """Get a user by ID (the auth subject)."""
        return self.get_item(self.USERS_TABLE, {"user_id": user_id})

    def get_ngo(self, ngo_id: str) -> dict[str, Any] | None:
        """Get an NGO by ID."""
        return self.get_item(self.NGOS_TABLE, {"ngo_id": ngo_id})

    def get_campaign(self, campaign_id: str) -> dict[str, Any] | None:
        """Get a fundraising campaign by ID."""
        return self.get_item(self.CAMPAIGNS_TABLE, {"campaign_id": campaign_id})

    def get_target(self, target_type: str, target_id: str) -> dict[str, Any] | None:
        """Get a donation target (NGO or campaign).

        Args:
            target_type: "ngo" or "campaign"
            target_id: Target ID

        Returns:
            Target item or None if not found
        """
        if target_type == "ngo":
            return self.get_ngo(target_id)
        if target_type == "campaign":
            return self.get_campaign(target_id)
        return None

    # =========================================================================
    # Payment sessions
    # =========================================================================

    def get_payment_session(self, stripe_session_id: str) -> dict[str, Any] | None:
        """Get a payment session by Stripe checkout session ID."""
        return self.get_item(
            self.PAYMENT_SESSIONS_TABLE, {"stripe_session_id": stripe_session_id}
        )

    def create_payment_session(self, item: dict[str, Any]) -> bool:
        """Insert a payment session; fails if one exists for the Stripe session.

        Args:
            item: Payment session item (must include stripe_session_id)

        Returns:
            True if created, False if a row already existed
        """
        return self.put_item(
            self.PAYMENT_SESSIONS_TABLE,
            item,
            condition_expression="attribute_not_exists(stripe_session_id)",
        )

    def update_payment_session_status(
        self,
        stripe_session_id: str,
        new_status: str,
        expected_statuses: Iterable[str],
        extra: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """Move a payment session to a new status if it is still in an expected one.

        The check and the write happen in a single conditional update, so two
        concurrent callers cannot both win.

        Args:
            stripe_session_id: Stripe checkout session ID
            new_status: Status to set
            expected_statuses: Statuses the row must currently have
            extra: Additional attributes to set with the transition

        Returns:
            Updated attributes, or None if the row is missing or the guard failed
        """
        update, values, names, condition = self._status_transition(
            new_status, expected_statuses, extra
        )
        return self.update_item(
            self.PAYMENT_SESSIONS_TABLE,
            {"stripe_session_id": stripe_session_id},
            update,
            values,
            names,
            condition,
        )

    def build_payment_session_transition(
        self,
        stripe_session_id: str,
        new_status: str,
        expected_statuses: Iterable[str],
        extra: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Same guarded transition as update_payment_session_status, as a transaction entry."""
        update, values, names, condition = self._status_transition(
            new_status, expected_statuses, extra
        )
        return self.build_update(
            self.PAYMENT_SESSIONS_TABLE,
            {"stripe_session_id": stripe_session_id},
            update,
            values,
            names,
            condition,
        )

    @staticmethod
    def _status_transition(
        new_status: str,
        expected_statuses: Iterable[str],
        extra: dict[str, Any] | None,
    ) -> tuple[str, dict[str, Any], dict[str, str], str]:
        now = dt.datetime.now(dt.UTC).isoformat()
        values: dict[str, Any] = {":status": new_status, ":now": now}
        names = {"#status": "status"}  # status is a reserved word
        assignments = ["#status = :status", "updated_at = :now"]

        for i, (field, value) in enumerate((extra or {}).items()):
            if value is None:
                continue
            values[f":x{i}"] = value
            assignments.append(f"{field} = :x{i}")

        expected = []
        for i, status in enumerate(expected_statuses):
            values[f":e{i}"] = status
            expected.append(f"#status = :e{i}")
        condition = "attribute_exists(stripe_session_id)"
        if expected:
            condition += " AND (" + " OR ".join(expected) + ")"

        return "SET " + ", ".join(assignments), values, names, condition

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def get_subscription(self, stripe_subscription_id: str) -> dict[str, Any] | None:
        """Get a subscription by Stripe subscription ID."""
        return self.get_item(
            self.SUBSCRIPTIONS_TABLE, {"stripe_subscription_id": stripe_subscription_id}
        )

    def create_subscription_if_absent(self, item: dict[str, Any]) -> bool:
        """Insert a subscription unless one exists for the Stripe subscription ID.

        Returns:
            True if inserted, False if it already existed
        """
        return self.put_item(
            self.SUBSCRIPTIONS_TABLE,
            item,
            condition_expression="attribute_not_exists(stripe_subscription_id)",
        )

    def update_subscription(
        self,
        stripe_subscription_id: str,
        fields: dict[str, Any],
    ) -> dict[str, Any] | None:
        """Update fields of an existing subscription.

        Returns:
            Updated attributes, or None if no such subscription exists
        """
        values: dict[str, Any] = {":now": dt.datetime.now(dt.UTC).isoformat()}
        names: dict[str, str] = {}
        assignments = ["updated_at = :now"]
        for i, (field, value) in enumerate(fields.items()):
            if value is None:
                continue
            names[f"#f{i}"] = field
            values[f":v{i}"] = value
            assignments.append(f"#f{i} = :v{i}")

        return self.update_item(
            self.SUBSCRIPTIONS_TABLE,
            {"stripe_subscription_id": stripe_subscription_id},
            "SET " + ", ".join(assignments),
            values,
            names or None,
            condition_expression="attribute_exists(stripe_subscription_id)",
        )

    # =========================================================================
    # Donations
    # =========================================================================

    def get_donation(self, donation_id: str) -> dict[str, Any] | None:
        """Get a donation by ID."""
        return self.get_item(self.DONATIONS_TABLE, {"donation_id": donation_id})

    # =========================================================================
    # Webhook event log
    # =========================================================================

    def put_webhook_event(self, item: dict[str, Any]) -> bool:
        """Append a webhook event to the log.

        Returns:
            True if this is the first delivery, False if the event was seen before
        """
        return self.put_item(
            self.WEBHOOK_EVENTS_TABLE,
            item,
            condition_expression="attribute_not_exists(event_id)",
        )

    def record_webhook_redelivery(self, event_id: str) -> dict[str, Any] | None:
        """Bump the delivery counter of an already logged event."""
        return self.update_item(
            self.WEBHOOK_EVENTS_TABLE,
            {"event_id": event_id},
            "ADD delivery_count :one SET last_received_at = :now",
            {":one": 1, ":now": dt.datetime.now(dt.UTC).isoformat()},
        )

    def mark_webhook_event_processed(
        self,
        event_id: str,
        processing_result: str,
        error_message: str | None = None,
    ) -> dict[str, Any] | None:
        """Record the outcome of processing a logged event."""
        values: dict[str, Any] = {
            ":result": processing_result,
            ":now": dt.datetime.now(dt.UTC).isoformat(),
        }
        expression = "SET processing_result = :result, processed_at = :now"
        if error_message:
            values[":error"] = error_message
            expression += ", error_message = :error"
        return self.update_item(
            self.WEBHOOK_EVENTS_TABLE, {"event_id": event_id}, expression, values
        )
