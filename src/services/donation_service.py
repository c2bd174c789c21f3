import logging
from zoneinfo import ZoneInfo

from core.dates import Clock, local_date, utc_now
from data_access.repositories import DonationRepository
from models.donation import Donation, RecurringDonation
from models.events import InvoicePayload, PaymentIntentPayload
from services.campaign_service import CampaignAggregator
from services.gateway_client import StripeGateway
from services.notification_service import NotificationJob, NotificationPublisher
from services.receipt_service import ReceiptSequencer
from services.subscription_service import SubscriptionStateMachine

logger = logging.getLogger(__name__)

class DonationLedgerWriter:
    """
    Turns settled payments into Donation records.

    Each donation is written under a natural idempotency key (the payment
    intent for one-time gifts, the invoice for recurring charges), so a
    redelivered event never records the same money twice.
    """

    def __init__(
        self,
        donations: DonationRepository,
        receipts: ReceiptSequencer,
        campaigns: CampaignAggregator,
        subscriptions: SubscriptionStateMachine,
        gateway: StripeGateway,
        timezone: ZoneInfo,
        notifier: NotificationPublisher | None = None,
        clock: Clock = utc_now,
    ):
        self.donations = donations
        self.receipts = receipts
        self.campaigns = campaigns
        self.subscriptions = subscriptions
        self.gateway = gateway
        self.timezone = timezone
        self.notifier = notifier
        self.clock = clock

    def record_one_time_payment(self, payment: PaymentIntentPayload) -> Donation | None:
        logger.info(
            f"Payment intent {payment.id} succeeded",
            extra={"context": {
                "payment_intent_id": payment.id,
                "amount": payment.amount,
                "has_invoice": payment.invoice is not None,
            }},
        )

        if payment.belongs_to_subscription:
            logger.info(f"Skipping payment intent {payment.id}: recorded via its invoice {payment.invoice}.")
            return None

        idempotency_key = f"payment_intent:{payment.id}"
        existing_id = self.donations.find_by_idempotency_key(idempotency_key)
        if existing_id:
            logger.info(f"Skipped duplicate processing for payment {payment.id} (donation {existing_id}).")
            return None

        details = self.gateway.payment_method_details(
            payment_method_id=payment.payment_method,
            charge_id=payment.latest_charge,
        )
        metadata = payment.metadata
        now = self.clock()

        donation = Donation(
            receipt_number=self.receipts.allocate(),
            donor_name=metadata.donor_name,
            donor_email=payment.donor_email,
            donor_phone=metadata.donor_phone,
            amount=payment.amount,
            currency=payment.currency.upper(),
            stripe_payment_intent_id=payment.id,
            stripe_customer_id=payment.customer,
            payment_method_type=details.payment_method_type,
            card_last4=details.card_last4,
            card_brand=details.card_brand,
            stripe_receipt_url=details.receipt_url,
            donation_type_id=metadata.donation_type_id,
            donation_type_label=metadata.donation_type_label,
            campaign_id=metadata.campaign_id,
            is_recurring=False,
            donor_message=metadata.donor_message,
            date=local_date(now, self.timezone),
            created_at=now,
            completed_at=now,
            updated_at=now,
        )

        if not self.donations.create(donation, [idempotency_key]):
            logger.info(f"Skipped duplicate processing for payment {payment.id}.")
            return None

        logger.info(
            f"One-time donation recorded for payment {payment.id}",
            extra={"context": {
                "donation_id": donation.donation_id,
                "receipt_number": donation.receipt_number,
                "amount": donation.amount,
            }},
        )

        self._credit_campaign(donation)
        self._notify("DONATION_RECEIPT", donation)
        return donation

    def record_invoice_payment(self, invoice: InvoicePayload) -> Donation | None:
        logger.info(f"Processing paid invoice {invoice.id}")

        if not invoice.subscription_id:
            logger.info(f"Skipping invoice {invoice.id}: not a subscription invoice.")
            return None

        record = self.subscriptions.ensure(invoice.subscription_id)
        # The payment intent key stops its own succeeded event from recording it again
        idempotency_keys = [f"invoice:{invoice.id}"]
        if invoice.payment_intent:
            idempotency_keys.append(f"payment_intent:{invoice.payment_intent}")

        existing_id = self._find_existing(idempotency_keys)
        if existing_id:
            logger.info(f"Skipped duplicate processing for invoice {invoice.id} (donation {existing_id}).")
            self._link_existing_payment(record, existing_id)
            return None

        details = self.gateway.payment_method_details(
            payment_intent_id=invoice.payment_intent,
            charge_id=invoice.charge,
        )
        paid_at = self.clock()

        donation = Donation(
            receipt_number=self.receipts.allocate(),
            donor_name=record.donor_name,
            donor_email=record.donor_email,
            donor_phone=record.donor_phone,
            amount=invoice.amount_paid,
            currency=invoice.currency.upper(),
            stripe_payment_intent_id=invoice.payment_intent,
            stripe_subscription_id=record.subscription_id,
            stripe_customer_id=record.stripe_customer_id or invoice.customer,
            payment_method_type=details.payment_method_type,
            card_last4=details.card_last4,
            card_brand=details.card_brand,
            stripe_receipt_url=details.receipt_url,
            donation_type_id=record.donation_type_id,
            donation_type_label=record.donation_type_label,
            campaign_id=record.campaign_id,
            is_recurring=True,
            recurring_frequency=record.frequency,
            date=local_date(paid_at, self.timezone),
            created_at=paid_at,
            completed_at=paid_at,
            updated_at=paid_at,
        )

        if not self.donations.create(donation, idempotency_keys):
            existing_id = self._find_existing(idempotency_keys)
            logger.info(f"Skipped duplicate processing for invoice {invoice.id} (donation {existing_id}).")
            if existing_id:
                self._link_existing_payment(record, existing_id)
            return None

        self._credit_campaign(donation)
        next_date = self.subscriptions.record_payment(record, donation.donation_id, paid_at)

        logger.info(
            f"Recurring donation payment recorded for subscription {record.subscription_id}",
            extra={"context": {
                "donation_id": donation.donation_id,
                "subscription_id": record.subscription_id,
                "receipt_number": donation.receipt_number,
                "amount": donation.amount,
                "billing_reason": invoice.billing_reason,
            }},
        )

        # The welcome fact already covers the first charge
        if not invoice.is_first_invoice:
            self._notify("RECURRING_RECEIPT", donation, next_payment_date=next_date)
        return donation

    def record_payment_failure(self, payment: PaymentIntentPayload) -> None:
        logger.warning(
            f"Payment intent {payment.id} failed",
            extra={"context": {
                "payment_intent_id": payment.id,
                "amount": payment.amount,
                "donor": payment.donor_email,
            }},
        )

    def _find_existing(self, idempotency_keys: list[str]) -> str | None:
        for key in idempotency_keys:
            existing_id = self.donations.find_by_idempotency_key(key)
            if existing_id:
                return existing_id
        return None

    def _link_existing_payment(self, record: RecurringDonation, donation_id: str) -> None:
        """
        Points the subscription at a payment recorded earlier, stamped with the
        time that payment was recorded. A redelivery therefore leaves the
        schedule where the first delivery put it, and an older payment never
        replaces a newer one.
        """
        if record.last_payment_donation_id == donation_id:
            return
        donation = self.donations.get(donation_id)
        if donation is None:
            logger.warning(f"Donation {donation_id} behind a recorded payment key could not be loaded.")
            return
        if record.last_payment_at and donation.completed_at <= record.last_payment_at:
            return
        self.subscriptions.record_payment(record, donation_id, donation.completed_at)

    def _credit_campaign(self, donation: Donation) -> None:
        if not donation.campaign_id:
            return
        try:
            self.campaigns.add_contribution(donation.campaign_id, donation.amount)
        except Exception as e:
            logger.error(f"Error updating campaign {donation.campaign_id} total for donation {donation.donation_id}: {e}")

    def _notify(self, job_type: str, donation: Donation, **facts) -> None:
        if not self.notifier or not donation.donor_email:
            return
        self.notifier.publish(NotificationJob(
            type=job_type,
            email_to=donation.donor_email,
            donor_name=donation.donor_name,
            amount=donation.amount,
            currency=donation.currency,
            receipt_number=donation.receipt_number,
            frequency=donation.recurring_frequency,
            date=donation.date,
            **facts,
        ))
