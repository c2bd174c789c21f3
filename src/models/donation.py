import uuid
import datetime as dt
from pydantic import BaseModel, Field
from typing import Literal

from core.dates import utc_now
from models.events import DEFAULT_DONATION_TYPE_LABEL, DEFAULT_DONOR_NAME, Frequency


PaymentStatus = Literal["succeeded"]
SubscriptionStatus = Literal["active", "cancelled"]

class Donation(BaseModel):
    donation_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    receipt_number: str

    donor_name: str = DEFAULT_DONOR_NAME
    donor_email: str | None = None
    donor_phone: str | None = None

    amount: int = Field(ge=0)
    currency: str

    stripe_payment_intent_id: str | None = None
    stripe_subscription_id: str | None = None
    stripe_customer_id: str | None = None
    payment_method_type: str = "card"
    card_last4: str | None = None
    card_brand: str | None = None
    stripe_receipt_url: str | None = None

    payment_status: PaymentStatus = "succeeded"

    donation_type_id: str | None = None
    donation_type_label: str = DEFAULT_DONATION_TYPE_LABEL
    campaign_id: str | None = None
    is_recurring: bool = False
    recurring_frequency: Frequency | None = None
    donor_message: str | None = None

    receipt_email_sent: bool = False

    date: dt.date
    created_at: dt.datetime = Field(default_factory=utc_now)
    completed_at: dt.datetime = Field(default_factory=utc_now)
    updated_at: dt.datetime = Field(default_factory=utc_now)

class RecurringDonation(BaseModel):
    subscription_id: str
    stripe_customer_id: str | None = None

    donor_name: str = DEFAULT_DONOR_NAME
    donor_email: str | None = None
    donor_phone: str | None = None

    amount: int = Field(ge=0)
    currency: str
    frequency: Frequency

    status: SubscriptionStatus = "active"
    next_payment_date: dt.date | None = None

    donation_type_id: str | None = None
    donation_type_label: str = DEFAULT_DONATION_TYPE_LABEL
    campaign_id: str | None = None

    last_payment_at: dt.datetime | None = None
    last_payment_donation_id: str | None = None

    payment_attempt_count: int = 0
    last_payment_error_at: dt.datetime | None = None
    payment_error_message: str | None = None

    created_at: dt.datetime = Field(default_factory=utc_now)
    started_at: dt.datetime = Field(default_factory=utc_now)
    cancelled_at: dt.datetime | None = None

class Campaign(BaseModel):
    campaign_id: str
    current_amount: int = 0
    updated_at: dt.datetime | None = None
