from datetime import date, datetime
from typing import Protocol, Sequence

from models.donation import Campaign, Donation, RecurringDonation


class DonationRepository(Protocol):
    def get(self, donation_id: str) -> Donation | None: ...

    def find_by_idempotency_key(self, key: str) -> str | None:
        """Returns the id of the donation already recorded under ``key``."""
        ...

    def create(self, donation: Donation, idempotency_keys: Sequence[str]) -> bool:
        """
        Writes the donation and one guard per key, all or nothing.
        False when any of the keys is already taken.
        """
        ...


class SubscriptionRepository(Protocol):
    def get(self, subscription_id: str) -> RecurringDonation | None: ...

    def put_if_absent(self, record: RecurringDonation) -> bool:
        """Creates the record keyed by subscription id; False if one already exists."""
        ...

    def mark_cancelled(self, subscription_id: str, cancelled_at: datetime) -> bool:
        """False when the record is missing or already cancelled."""
        ...

    def record_payment(self, subscription_id: str, paid_at: datetime,
                       donation_id: str, next_payment_date: date | None) -> None: ...

    def record_payment_failure(self, subscription_id: str, attempt_count: int,
                               failed_at: datetime, message: str) -> bool: ...


class CampaignRepository(Protocol):
    def get(self, campaign_id: str) -> Campaign | None: ...

    def increment_total(self, campaign_id: str, amount: int, updated_at: datetime) -> bool:
        """Atomically adds ``amount``; False if the campaign does not exist."""
        ...


class ReceiptCounter(Protocol):
    def next_value(self, year: int) -> int: ...


class WebhookEventLog(Protocol):
    def is_processed(self, event_id: str) -> bool: ...

    def mark_started(self, event_id: str, event_type: str) -> None: ...

    def mark_completed(self, event_id: str) -> None: ...

    def mark_failed(self, event_id: str, error_message: str) -> None: ...
