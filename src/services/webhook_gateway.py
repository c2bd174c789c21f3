import logging
import stripe
from pydantic import ValidationError

from core.logging_config import event_context
from data_access.repositories import WebhookEventLog
from models.events import GatewayEvent
from services.event_router import EventRouter

logger = logging.getLogger(__name__)

class WebhookSignatureError(Exception):
    """The delivery could not be authenticated; the gateway should not retry."""

class WebhookProcessingError(Exception):
    """A handler failed; the gateway is expected to redeliver."""

class WebhookGateway:
    def __init__(
        self,
        router: EventRouter,
        event_log: WebhookEventLog,
        webhook_secret: str,
        tolerance: int = stripe.Webhook.DEFAULT_TOLERANCE,
    ):
        self.router = router
        self.event_log = event_log
        self.webhook_secret = webhook_secret
        self.tolerance = tolerance

    def verify(self, payload: bytes, signature_header: str | None) -> GatewayEvent:
        """
        Authenticates the raw body against the signature header and decodes it.
        The body must be exactly the bytes received.
        """
        if not signature_header:
            logger.error("No Stripe signature found")
            raise WebhookSignatureError("Missing signature")

        try:
            stripe.Webhook.construct_event(
                payload=payload,
                sig_header=signature_header,
                secret=self.webhook_secret,
                tolerance=self.tolerance,
            )
            return GatewayEvent.model_validate_json(payload)
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Webhook signature verification failed: {e}")
            raise WebhookSignatureError("Invalid signature") from e
        except ValueError as e:
            logger.warning(f"Webhook invalid payload: {e}")
            raise WebhookSignatureError("Invalid payload") from e

    def _already_processed(self, event: GatewayEvent) -> bool:
        try:
            return self.event_log.is_processed(event.id)
        except Exception as e:
            logger.warning(f"Could not read processing state for event {event.id}: {e}")
            return False

    def handle(self, payload: bytes, signature_header: str | None) -> dict:
        event = self.verify(payload, signature_header)
        with event_context(event_id=event.id, event_type=event.type):
            logger.info(f"Webhook received: {event.type}")
            return self._process(event)

    def _process(self, event: GatewayEvent) -> dict:
        if not self.router.handles(event.type):
            self.router.dispatch(event.type, None)
            return {"received": True, "ignored": True}

        if self._already_processed(event):
            logger.info(f"Event {event.id} already processed - skipping")
            return {"received": True, "skipped": "already_processed"}

        try:
            self.event_log.mark_started(event.id, event.type)
            self.router.dispatch(event.type, event.parse_payload())
        except Exception as e:
            if isinstance(e, ValidationError):
                logger.error(f"Event {event.id} payload failed validation: {e}")
            else:
                logger.exception(f"Error processing webhook event {event.id} ({event.type})")
            self._mark_failed(event, str(e))
            raise WebhookProcessingError(f"Webhook processing failed for {event.id}") from e

        try:
            self.event_log.mark_completed(event.id)
        except Exception as e:
            logger.error(f"Error marking event {event.id} as completed: {e}")

        return {"received": True}

    def _mark_failed(self, event: GatewayEvent, message: str) -> None:
        try:
            self.event_log.mark_failed(event.id, message)
        except Exception as e:
            logger.error(f"Error marking event {event.id} as failed: {e}")
