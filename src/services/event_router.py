import logging
from typing import Any, Callable

from models.events import GatewayModel
from services.donation_service import DonationLedgerWriter
from services.subscription_service import SubscriptionStateMachine

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Any]

class EventRouter:
    """
    Maps gateway event types to handlers. Handlers own their idempotency;
    the router only dispatches.
    """

    def __init__(self):
        self._handlers: dict[str, Handler] = {}

    def register(self, event_type: str, handler: Handler) -> None:
        if event_type in self._handlers:
            raise ValueError(f"Handler already registered for {event_type}")
        self._handlers[event_type] = handler

    def handles(self, event_type: str) -> bool:
        return event_type in self._handlers

    @property
    def event_types(self) -> list[str]:
        return sorted(self._handlers)

    def dispatch(self, event_type: str, payload: GatewayModel | None) -> bool:
        handler = self._handlers.get(event_type)
        if handler is None:
            logger.info(f"Received unhandled event type: {event_type}")
            return False

        handler(payload)
        return True

def build_router(ledger: DonationLedgerWriter, subscriptions: SubscriptionStateMachine) -> EventRouter:
    router = EventRouter()
    router.register("payment_intent.succeeded", ledger.record_one_time_payment)
    router.register("payment_intent.payment_failed", ledger.record_payment_failure)
    router.register("customer.subscription.created", subscriptions.activate)
    router.register("invoice.payment_succeeded", ledger.record_invoice_payment)
    router.register("invoice.payment_failed", subscriptions.record_payment_failure)
    router.register("customer.subscription.deleted", subscriptions.cancel)
    return router
