import logging
from typing import Any, Literal, get_args

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

logger = logging.getLogger(__name__)

Frequency = Literal["weekly", "fortnightly", "monthly", "yearly"]
FREQUENCIES = get_args(Frequency)

DEFAULT_DONOR_NAME = "Anonymous"
DEFAULT_DONATION_TYPE_LABEL = "General Donation"
DEFAULT_FREQUENCY: Frequency = "monthly"

def object_id(value: Any) -> str | None:
    """Gateway references arrive either as a bare id or as an expanded object."""
    if isinstance(value, dict):
        value = value.get("id")
    if isinstance(value, str) and value.strip():
        return value
    return None

class GatewayModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

class DonationMetadata(GatewayModel):
    donor_name: str = DEFAULT_DONOR_NAME
    donor_email: str | None = None
    donor_phone: str | None = None
    donation_type_id: str | None = None
    donation_type_label: str = DEFAULT_DONATION_TYPE_LABEL
    campaign_id: str | None = None
    donor_message: str | None = None
    frequency: Frequency = DEFAULT_FREQUENCY
    is_recurring: bool = False

    @model_validator(mode="before")
    @classmethod
    def drop_blank_values(cls, data: Any) -> Any:
        # Metadata values are always strings; blanks mean "not provided"
        if isinstance(data, dict):
            return {
                key: value for key, value in data.items()
                if not (value is None or (isinstance(value, str) and not value.strip()))
            }
        return data

    @field_validator("is_recurring", mode="before")
    @classmethod
    def parse_flag(cls, value: Any) -> bool:
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() == "true"

    @field_validator("frequency", mode="before")
    @classmethod
    def known_frequency(cls, value: Any) -> str:
        normalized = str(value).strip().lower()
        if normalized not in FREQUENCIES:
            logger.warning(f"Unknown billing frequency '{value}', defaulting to {DEFAULT_FREQUENCY}")
            return DEFAULT_FREQUENCY
        return normalized

class PaymentIntentPayload(GatewayModel):
    id: str
    amount: int = Field(ge=0)
    currency: str
    customer: str | None = None
    invoice: str | None = None
    payment_method: str | None = None
    latest_charge: str | None = None
    receipt_email: str | None = None
    metadata: DonationMetadata = Field(default_factory=DonationMetadata)

    @field_validator("customer", "invoice", "payment_method", "latest_charge", mode="before")
    @classmethod
    def normalize_reference(cls, value: Any) -> str | None:
        return object_id(value)

    @field_validator("metadata", mode="before")
    @classmethod
    def default_metadata(cls, value: Any) -> Any:
        return value or {}

    @property
    def belongs_to_subscription(self) -> bool:
        # Invoice presence alone is not trusted; both signals must agree
        return self.invoice is not None and self.metadata.is_recurring

    @property
    def donor_email(self) -> str | None:
        return self.metadata.donor_email or self.receipt_email

class SubscriptionPayload(GatewayModel):
    id: str
    customer: str | None = None
    currency: str
    status: str | None = None
    amount: int = Field(default=0, ge=0)
    metadata: DonationMetadata = Field(default_factory=DonationMetadata)

    @model_validator(mode="before")
    @classmethod
    def extract_amount(cls, data: Any) -> Any:
        if isinstance(data, dict) and "amount" not in data:
            items = (data.get("items") or {}).get("data") or []
            price = (items[0].get("price") or {}) if items else {}
            data = {**data, "amount": price.get("unit_amount") or 0}
        return data

    @field_validator("customer", mode="before")
    @classmethod
    def normalize_customer(cls, value: Any) -> str | None:
        return object_id(value)

    @field_validator("metadata", mode="before")
    @classmethod
    def default_metadata(cls, value: Any) -> Any:
        return value or {}

class InvoicePayload(GatewayModel):
    id: str
    customer: str | None = None
    subscription_id: str | None = None
    payment_intent: str | None = None
    charge: str | None = None
    amount_paid: int = Field(default=0, ge=0)
    amount_due: int = Field(default=0, ge=0)
    currency: str
    billing_reason: str | None = None
    attempt_count: int = 0
    error_message: str | None = None

    @model_validator(mode="before")
    @classmethod
    def flatten_references(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        # Newer API versions nest the subscription under parent.subscription_details
        subscription = object_id(data.get("subscription"))
        if subscription is None:
            details = (data.get("parent") or {}).get("subscription_details") or {}
            subscription = object_id(details.get("subscription"))
        data["subscription_id"] = subscription

        error = data.get("last_finalization_error") or {}
        data["error_message"] = error.get("message")
        return data

    @field_validator("customer", "payment_intent", "charge", mode="before")
    @classmethod
    def normalize_reference(cls, value: Any) -> str | None:
        return object_id(value)

    @field_validator("attempt_count", mode="before")
    @classmethod
    def default_attempts(cls, value: Any) -> int:
        return value or 0

    @property
    def is_first_invoice(self) -> bool:
        return self.billing_reason == "subscription_create"

EVENT_PAYLOADS: dict[str, type[GatewayModel]] = {
    "payment_intent.succeeded": PaymentIntentPayload,
    "payment_intent.payment_failed": PaymentIntentPayload,
    "customer.subscription.created": SubscriptionPayload,
    "invoice.payment_succeeded": InvoicePayload,
    "invoice.payment_failed": InvoicePayload,
    "customer.subscription.deleted": SubscriptionPayload,
}

class EventData(BaseModel):
    object: dict[str, Any]

class GatewayEvent(BaseModel):
    """The envelope every webhook delivery is wrapped in."""
    model_config = ConfigDict(extra="ignore")

    id: str
    type: str
    created: int | None = None
    data: EventData

    def parse_payload(self) -> GatewayModel | None:
        """
        Validates ``data.object`` into the typed payload for this event type.
        Returns None for event types that carry no registered payload.
        """
        model = EVENT_PAYLOADS.get(self.type)
        if model is None:
            return None
        return model.model_validate(self.data.object)
