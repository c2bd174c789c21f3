import logging
from botocore.exceptions import ClientError
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Sequence

from core.dates import utc_now
from models.donation import Campaign, Donation, RecurringDonation

logger = logging.getLogger(__name__)

DONATION_PREFIX = "DONATION#"
DONATION_SK = "DONATION"
DONATION_KEY_PREFIX = "DONATION_KEY#"
GUARD_SK = "GUARD"
SUBSCRIPTION_PREFIX = "SUBSCRIPTION#"
RECURRING_SK = "RECURRING"
CAMPAIGN_PREFIX = "CAMPAIGN#"
CAMPAIGN_SK = "CAMPAIGN"
RECEIPT_COUNTER_PK = "RECEIPT_COUNTER"
YEAR_PREFIX = "YEAR#"
WEBHOOK_EVENT_PREFIX = "WEBHOOK_EVENT#"
EVENT_SK = "EVENT"

CONDITIONAL_CHECK_FAILED = "ConditionalCheckFailedException"
TRANSACTION_CANCELED = "TransactionCanceledException"


def _error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")

def _from_item(item: dict[str, Any]) -> dict[str, Any]:
    """Strips key attributes and turns DynamoDB's Decimals back into ints."""
    return {
        key: int(value) if isinstance(value, Decimal) else value
        for key, value in item.items()
        if key not in ("PK", "SK")
    }


class DynamoRepository:
    def __init__(self, table):
        self.table = table


class DynamoDonationRepository(DynamoRepository):

    def get(self, donation_id: str) -> Donation | None:
        response = self.table.get_item(
            Key={"PK": f"{DONATION_PREFIX}{donation_id}", "SK": DONATION_SK}
        )
        item = response.get("Item")
        return Donation.model_validate(_from_item(item)) if item else None

    def find_by_idempotency_key(self, key: str) -> str | None:
        response = self.table.get_item(
            Key={"PK": f"{DONATION_KEY_PREFIX}{key}", "SK": GUARD_SK}
        )
        item = response.get("Item")
        return item["donation_id"] if item else None

    def create(self, donation: Donation, idempotency_keys: Sequence[str]) -> bool:
        guards = [
            {
                "PK": f"{DONATION_KEY_PREFIX}{key}",
                "SK": GUARD_SK,
                "donation_id": donation.donation_id,
                "created_at": donation.created_at.isoformat(),
            }
            for key in idempotency_keys
        ]
        item = {
            "PK": f"{DONATION_PREFIX}{donation.donation_id}",
            "SK": DONATION_SK,
            "idempotency_keys": list(idempotency_keys),
            **donation.model_dump(mode="json"),
        }

        try:
            # Every guard and the donation land together or not at all
            self.table.meta.client.transact_write_items(
                TransactItems=[
                    {
                        "Put": {
                            "TableName": self.table.name,
                            "Item": entry,
                            "ConditionExpression": "attribute_not_exists(PK)",
                        }
                    }
                    for entry in (*guards, item)
                ]
            )
            return True
        except ClientError as e:
            reasons = e.response.get("CancellationReasons") or []
            if _error_code(e) == TRANSACTION_CANCELED and any(
                reason.get("Code") == "ConditionalCheckFailed" for reason in reasons
            ):
                logger.info(f"Idempotency check: donation already recorded for {', '.join(idempotency_keys)}.")
                return False
            logger.error(f"Error writing donation {donation.donation_id}: {e}")
            raise


class DynamoSubscriptionRepository(DynamoRepository):

    def _key(self, subscription_id: str) -> dict[str, str]:
        return {"PK": f"{SUBSCRIPTION_PREFIX}{subscription_id}", "SK": RECURRING_SK}

    def _item(self, record: RecurringDonation) -> dict[str, Any]:
        return {**self._key(record.subscription_id), **record.model_dump(mode="json")}

    def get(self, subscription_id: str) -> RecurringDonation | None:
        response = self.table.get_item(Key=self._key(subscription_id))
        item = response.get("Item")
        return RecurringDonation.model_validate(_from_item(item)) if item else None

    def put_if_absent(self, record: RecurringDonation) -> bool:
        try:
            self.table.put_item(
                Item=self._item(record),
                ConditionExpression="attribute_not_exists(PK)",
            )
            return True
        except ClientError as e:
            if _error_code(e) == CONDITIONAL_CHECK_FAILED:
                return False
            raise

    def mark_cancelled(self, subscription_id: str, cancelled_at: datetime) -> bool:
        try:
            self.table.update_item(
                Key=self._key(subscription_id),
                UpdateExpression="SET #status = :cancelled, #cancelled_at = :now",
                ConditionExpression="attribute_exists(PK) AND #status <> :cancelled",
                ExpressionAttributeNames={
                    "#status": "status",
                    "#cancelled_at": "cancelled_at",
                },
                ExpressionAttributeValues={
                    ":cancelled": "cancelled",
                    ":now": cancelled_at.isoformat(),
                },
            )
            return True
        except ClientError as e:
            if _error_code(e) == CONDITIONAL_CHECK_FAILED:
                return False
            raise

    def record_payment(self, subscription_id: str, paid_at: datetime,
                       donation_id: str, next_payment_date: date | None) -> None:
        assignments = ["#paid_at = :paid_at", "#donation_id = :donation_id"]
        names = {"#paid_at": "last_payment_at", "#donation_id": "last_payment_donation_id"}
        values: dict[str, Any] = {
            ":paid_at": paid_at.isoformat(),
            ":donation_id": donation_id,
        }
        if next_payment_date is not None:
            assignments.append("#next_date = :next_date")
            names["#next_date"] = "next_payment_date"
            values[":next_date"] = next_payment_date.isoformat()

        self.table.update_item(
            Key=self._key(subscription_id),
            UpdateExpression="SET " + ", ".join(assignments),
            ConditionExpression="attribute_exists(PK)",
            ExpressionAttributeNames=names,
            ExpressionAttributeValues=values,
        )

    def record_payment_failure(self, subscription_id: str, attempt_count: int,
                               failed_at: datetime, message: str) -> bool:
        try:
            self.table.update_item(
                Key=self._key(subscription_id),
                UpdateExpression="SET #attempts = :attempts, #failed_at = :failed_at, #message = :message",
                ConditionExpression="attribute_exists(PK)",
                ExpressionAttributeNames={
                    "#attempts": "payment_attempt_count",
                    "#failed_at": "last_payment_error_at",
                    "#message": "payment_error_message",
                },
                ExpressionAttributeValues={
                    ":attempts": attempt_count,
                    ":failed_at": failed_at.isoformat(),
                    ":message": message,
                },
            )
            return True
        except ClientError as e:
            if _error_code(e) == CONDITIONAL_CHECK_FAILED:
                return False
            raise


class DynamoCampaignRepository(DynamoRepository):

    def _key(self, campaign_id: str) -> dict[str, str]:
        return {"PK": f"{CAMPAIGN_PREFIX}{campaign_id}", "SK": CAMPAIGN_SK}

    def get(self, campaign_id: str) -> Campaign | None:
        response = self.table.get_item(Key=self._key(campaign_id))
        item = response.get("Item")
        if not item:
            return None
        return Campaign.model_validate({"campaign_id": campaign_id, **_from_item(item)})

    def increment_total(self, campaign_id: str, amount: int, updated_at: datetime) -> bool:
        try:
            # Read-add-write happens server side in a single conditional update
            self.table.update_item(
                Key=self._key(campaign_id),
                UpdateExpression="SET #total = if_not_exists(#total, :start) + :inc, #updated = :now",
                ConditionExpression="attribute_exists(PK)",
                ExpressionAttributeNames={
                    "#total": "current_amount",
                    "#updated": "updated_at",
                },
                ExpressionAttributeValues={
                    ":inc": amount,
                    ":start": 0,
                    ":now": updated_at.isoformat(),
                },
            )
            return True
        except ClientError as e:
            if _error_code(e) == CONDITIONAL_CHECK_FAILED:
                return False
            logger.error(f"Error updating campaign total: {e}")
            raise


class DynamoReceiptCounter(DynamoRepository):

    def next_value(self, year: int) -> int:
        response = self.table.update_item(
            Key={"PK": RECEIPT_COUNTER_PK, "SK": f"{YEAR_PREFIX}{year}"},
            UpdateExpression="ADD #last :one SET #updated = :now",
            ExpressionAttributeNames={
                "#last": "last_number",
                "#updated": "updated_at",
            },
            ExpressionAttributeValues={
                ":one": 1,
                ":now": utc_now().isoformat(),
            },
            ReturnValues="UPDATED_NEW",
        )
        return int(response["Attributes"]["last_number"])


class DynamoWebhookEventLog(DynamoRepository):

    def _key(self, event_id: str) -> dict[str, str]:
        return {"PK": f"{WEBHOOK_EVENT_PREFIX}{event_id}", "SK": EVENT_SK}

    def is_processed(self, event_id: str) -> bool:
        response = self.table.get_item(Key=self._key(event_id))
        item = response.get("Item") or {}
        return bool(item.get("processed"))

    def mark_started(self, event_id: str, event_type: str) -> None:
        now = utc_now().isoformat()
        self.table.update_item(
            Key=self._key(event_id),
            UpdateExpression=(
                "SET #type = :type, #processed = if_not_exists(#processed, :false), "
                "#started = :now, #created = if_not_exists(#created, :now), #updated = :now "
                "ADD #attempts :one"
            ),
            ExpressionAttributeNames={
                "#type": "event_type",
                "#processed": "processed",
                "#started": "processing_started_at",
                "#created": "created_at",
                "#updated": "updated_at",
                "#attempts": "attempt_count",
            },
            ExpressionAttributeValues={
                ":type": event_type,
                ":false": False,
                ":now": now,
                ":one": 1,
            },
        )

    def mark_completed(self, event_id: str) -> None:
        now = utc_now().isoformat()
        self.table.update_item(
            Key=self._key(event_id),
            UpdateExpression="SET #processed = :true, #processed_at = :now, #error = :none, #updated = :now",
            ExpressionAttributeNames={
                "#processed": "processed",
                "#processed_at": "processed_at",
                "#error": "error_message",
                "#updated": "updated_at",
            },
            ExpressionAttributeValues={":true": True, ":now": now, ":none": None},
        )

    def mark_failed(self, event_id: str, error_message: str) -> None:
        self.table.update_item(
            Key=self._key(event_id),
            UpdateExpression="SET #processed = :false, #error = :message, #updated = :now",
            ExpressionAttributeNames={
                "#processed": "processed",
                "#error": "error_message",
                "#updated": "updated_at",
            },
            ExpressionAttributeValues={
                ":false": False,
                ":message": error_message,
                ":now": utc_now().isoformat(),
            },
        )
