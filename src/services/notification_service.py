import logging
from botocore.exceptions import ClientError
import datetime as dt
from pydantic import BaseModel
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type
from typing import Literal

logger = logging.getLogger(__name__)

NotificationType = Literal[
    "DONATION_RECEIPT",
    "RECURRING_WELCOME",
    "RECURRING_RECEIPT",
    "PAYMENT_FAILED",
    "SUBSCRIPTION_CANCELLED",
]

class NotificationJob(BaseModel):
    type: NotificationType
    email_to: str
    donor_name: str
    amount: int
    currency: str
    receipt_number: str | None = None
    frequency: str | None = None
    date: dt.date | None = None
    next_payment_date: dt.date | None = None
    attempt_count: int | None = None


class NotificationPublisher:
    """
    Hands donation facts to the notification queue. Delivery is decoupled
    from the ledger: a failed publish is logged and never raised.
    """

    def __init__(self, sqs_client, queue_url: str | None):
        self.sqs_client = sqs_client
        self.queue_url = queue_url

    def publish(self, job: NotificationJob) -> bool:
        if not self.queue_url:
            logger.info(f"Notification queue not configured; dropping {job.type} job.")
            return False
        try:
            self.sqs_client.send_message(
                QueueUrl=self.queue_url,
                MessageBody=job.model_dump_json()
            )
            return True
        except Exception as e:
            logger.error(f"Failed to queue {job.type} notification for {job.email_to}: {e}")
            return False


def _format_amount(amount: int, currency: str) -> str:
    return f"{(amount / 100):.2f} {currency.upper()}"

class NotificationService:
    def __init__(self, client, from_email: str):
        self.ses_client = client
        self.from_email = from_email

    def render(self, job: NotificationJob) -> tuple[str, str]:
        amount = _format_amount(job.amount, job.currency)
        greeting = f"Hello {job.donor_name},\n\n"

        if job.type == "DONATION_RECEIPT":
            return "Thank you for your donation!", (
                f"{greeting}Thank you for your generous donation of {amount}.\n"
                f"Your receipt number is: {job.receipt_number}\n"
                f"Date: {job.date}"
            )
        if job.type == "RECURRING_WELCOME":
            return "Your recurring donation is set up", (
                f"{greeting}Your {job.frequency} donation of {amount} is now active.\n"
                f"Your next payment is scheduled for {job.next_payment_date}."
            )
        if job.type == "RECURRING_RECEIPT":
            return "Thank you for your recurring donation!", (
                f"{greeting}We received your {job.frequency} donation of {amount}.\n"
                f"Your receipt number is: {job.receipt_number}\n"
                f"Your next payment is scheduled for {job.next_payment_date}."
            )
        if job.type == "PAYMENT_FAILED":
            return "Your donation payment failed", (
                f"{greeting}We could not process your donation of {amount} "
                f"(attempt {job.attempt_count}).\n"
                f"Please update your payment details."
            )
        return "Your recurring donation has been cancelled", (
            f"{greeting}Your {job.frequency} donation of {amount} has been cancelled.\n"
            f"Thank you for your support."
        )

    @retry(
        wait=wait_exponential(multiplier=1, min=1, max=4),
        stop=stop_after_attempt(3),
        retry=retry_if_exception_type(ClientError)
    )
    def send(self, job: NotificationJob):
        subject, body_text = self.render(job)

        logger.info(f"Attempting to send {job.type} email to {job.email_to}...")

        self.ses_client.send_email(
            Source=self.from_email,
            Destination={'ToAddresses': [job.email_to]},
            Message={
                'Subject': {'Data': subject},
                'Body': {'Text': {'Data': body_text}}
            }
        )

        logger.info(f"Successfully sent {job.type} email to {job.email_to}")
