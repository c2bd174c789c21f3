import logging
from datetime import date, datetime
from zoneinfo import ZoneInfo

from core.dates import Clock, next_payment_date, utc_now
from data_access.repositories import SubscriptionRepository
from models.donation import RecurringDonation, SubscriptionStatus
from models.events import InvoicePayload, SubscriptionPayload
from services.gateway_client import StripeGateway
from services.notification_service import NotificationJob, NotificationPublisher

logger = logging.getLogger(__name__)

GATEWAY_CANCELLED_STATUSES = {"canceled", "incomplete_expired"}
URGENT_ATTEMPT_COUNT = 3

class SubscriptionStateMachine:
    """
    Drives RecurringDonation records through ``active -> cancelled``.

    Records are keyed by the gateway subscription id, so every transition is
    safe to replay and to receive out of order: creation only writes a record
    that does not exist yet, and a cancelled record is never reactivated.
    """

    def __init__(
        self,
        subscriptions: SubscriptionRepository,
        gateway: StripeGateway,
        timezone: ZoneInfo,
        notifier: NotificationPublisher | None = None,
        clock: Clock = utc_now,
    ):
        self.subscriptions = subscriptions
        self.gateway = gateway
        self.timezone = timezone
        self.notifier = notifier
        self.clock = clock

    def _record_from(self, subscription: SubscriptionPayload,
                     status: SubscriptionStatus = "active") -> RecurringDonation:
        now = self.clock()
        metadata = subscription.metadata
        return RecurringDonation(
            subscription_id=subscription.id,
            stripe_customer_id=subscription.customer,
            donor_name=metadata.donor_name,
            donor_email=metadata.donor_email,
            donor_phone=metadata.donor_phone,
            amount=subscription.amount,
            currency=subscription.currency.upper(),
            frequency=metadata.frequency,
            status=status,
            next_payment_date=(
                next_payment_date(metadata.frequency, now, self.timezone)
                if status == "active" else None
            ),
            donation_type_id=metadata.donation_type_id,
            donation_type_label=metadata.donation_type_label,
            campaign_id=metadata.campaign_id,
            created_at=now,
            started_at=now,
            cancelled_at=now if status == "cancelled" else None,
        )

    def _notify(self, job_type: str, record: RecurringDonation, **facts) -> None:
        if not self.notifier or not record.donor_email:
            return
        self.notifier.publish(NotificationJob(
            type=job_type,
            email_to=record.donor_email,
            donor_name=record.donor_name,
            amount=record.amount,
            currency=record.currency,
            frequency=record.frequency,
            **facts,
        ))

    def activate(self, subscription: SubscriptionPayload, notify: bool = True) -> bool:
        status = "cancelled" if subscription.status in GATEWAY_CANCELLED_STATUSES else "active"
        record = self._record_from(subscription, status=status)

        if not self.subscriptions.put_if_absent(record):
            logger.info(f"Subscription {subscription.id} already recorded; skipping creation.")
            return False

        logger.info(
            f"Recurring donation created for subscription {subscription.id}",
            extra={"context": {
                "subscription_id": subscription.id,
                "frequency": record.frequency,
                "amount": record.amount,
                "status": record.status,
            }},
        )
        if notify and record.status == "active":
            self._notify("RECURRING_WELCOME", record, next_payment_date=record.next_payment_date)
        return True

    def ensure(self, subscription_id: str) -> RecurringDonation:
        """
        Returns the stored record, creating it from the gateway's copy when an
        invoice arrives before the subscription's creation event.
        """
        record = self.subscriptions.get(subscription_id)
        if record is not None:
            return record

        logger.warning(f"Subscription {subscription_id} not recorded yet; fetching from gateway.")
        self.activate(self.gateway.retrieve_subscription(subscription_id), notify=False)

        record = self.subscriptions.get(subscription_id)
        if record is None:
            raise LookupError(f"Subscription {subscription_id} could not be recorded")
        return record

    def cancel(self, subscription: SubscriptionPayload) -> bool:
        if self.subscriptions.mark_cancelled(subscription.id, self.clock()):
            logger.info(f"Recurring donation cancelled for subscription {subscription.id}")
            record = self.subscriptions.get(subscription.id)
            if record is not None:
                self._notify("SUBSCRIPTION_CANCELLED", record)
            return True

        if self.subscriptions.get(subscription.id) is not None:
            logger.info(f"Subscription {subscription.id} already cancelled; nothing to do.")
            return False

        # Deletion overtook creation: store it cancelled so creation cannot revive it
        if self.subscriptions.put_if_absent(self._record_from(subscription, status="cancelled")):
            logger.warning(f"Cancellation received for unknown subscription {subscription.id}; recorded as cancelled.")
            return True

        return self.cancel(subscription)

    def record_payment(self, record: RecurringDonation, donation_id: str,
                       paid_at: datetime) -> date | None:
        next_date = None
        if record.status == "active":
            next_date = next_payment_date(record.frequency, paid_at, self.timezone)

        self.subscriptions.record_payment(record.subscription_id, paid_at, donation_id, next_date)
        logger.info(
            f"Subscription {record.subscription_id} payment recorded",
            extra={"context": {
                "subscription_id": record.subscription_id,
                "donation_id": donation_id,
                "next_payment_date": next_date,
            }},
        )
        return next_date

    def record_payment_failure(self, invoice: InvoicePayload) -> None:
        attempt_count = invoice.attempt_count
        logger.warning(
            f"Invoice {invoice.id} payment failed",
            extra={"context": {
                "invoice_id": invoice.id,
                "customer_id": invoice.customer,
                "amount": invoice.amount_due,
                "attempt_count": attempt_count,
                "urgent": attempt_count >= URGENT_ATTEMPT_COUNT,
            }},
        )

        if not invoice.subscription_id:
            logger.info(f"Invoice {invoice.id} is not a subscription invoice; skipping.")
            return

        found = self.subscriptions.record_payment_failure(
            invoice.subscription_id,
            attempt_count,
            self.clock(),
            invoice.error_message or "Payment failed",
        )
        if not found:
            logger.warning(f"Subscription {invoice.subscription_id} not found for failed invoice {invoice.id}.")
            return

        record = self.subscriptions.get(invoice.subscription_id)
        if record is not None:
            self._notify("PAYMENT_FAILED", record, attempt_count=attempt_count)
