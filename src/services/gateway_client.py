import logging
import stripe
from pydantic import BaseModel
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from models.events import PaymentIntentPayload, SubscriptionPayload

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (stripe.APIConnectionError, stripe.RateLimitError)

gateway_retry = retry(
    wait=wait_exponential(multiplier=1, min=1, max=4),
    stop=stop_after_attempt(3),
    retry=retry_if_exception_type(TRANSIENT_ERRORS),
    reraise=True,
)

class PaymentMethodDetails(BaseModel):
    payment_method_type: str = "card"
    card_last4: str | None = None
    card_brand: str | None = None
    receipt_url: str | None = None

def _as_dict(stripe_object) -> dict:
    # Nested StripeObjects become plain dicts too
    return stripe_object.to_dict()

class StripeGateway:
    """Read-only lookups against the payment gateway API."""

    def __init__(self, api_key: str):
        self.api_key = api_key

    @gateway_retry
    def retrieve_subscription(self, subscription_id: str) -> SubscriptionPayload:
        subscription = stripe.Subscription.retrieve(subscription_id, api_key=self.api_key)
        return SubscriptionPayload.model_validate(_as_dict(subscription))

    @gateway_retry
    def retrieve_payment_intent(self, payment_intent_id: str) -> PaymentIntentPayload:
        intent = stripe.PaymentIntent.retrieve(payment_intent_id, api_key=self.api_key)
        return PaymentIntentPayload.model_validate(_as_dict(intent))

    @gateway_retry
    def _retrieve_payment_method(self, payment_method_id: str) -> dict:
        return _as_dict(stripe.PaymentMethod.retrieve(payment_method_id, api_key=self.api_key))

    @gateway_retry
    def _retrieve_charge(self, charge_id: str) -> dict:
        return _as_dict(stripe.Charge.retrieve(charge_id, api_key=self.api_key))

    def payment_method_details(
        self,
        payment_method_id: str | None = None,
        charge_id: str | None = None,
        payment_intent_id: str | None = None,
    ) -> PaymentMethodDetails:
        """
        Display details for a receipt. Any lookup failure degrades to the
        defaults instead of failing the caller.
        """
        details = PaymentMethodDetails()

        if payment_intent_id and not (payment_method_id and charge_id):
            try:
                intent = self.retrieve_payment_intent(payment_intent_id)
                payment_method_id = payment_method_id or intent.payment_method
                charge_id = charge_id or intent.latest_charge
            except Exception as e:
                logger.warning(f"Could not retrieve payment intent {payment_intent_id}: {e}")

        if payment_method_id:
            try:
                method = self._retrieve_payment_method(payment_method_id)
                card = method.get("card") or {}
                details.payment_method_type = method.get("type") or "card"
                details.card_last4 = card.get("last4")
                details.card_brand = card.get("brand")
            except Exception as e:
                logger.warning(f"Could not retrieve payment method {payment_method_id}: {e}")

        if charge_id:
            try:
                details.receipt_url = self._retrieve_charge(charge_id).get("receipt_url")
            except Exception as e:
                logger.warning(f"Could not retrieve charge {charge_id} for receipt URL: {e}")

        return details
