"""
Pytest configuration and fixtures.
"""
import hashlib
import hmac
import json
import time
from datetime import datetime, timezone
from typing import Any
from zoneinfo import ZoneInfo

import pytest

from fakes import (
    FakeNotifier,
    FakeStripeGateway,
    InMemoryCampaignRepository,
    InMemoryDonationRepository,
    InMemoryReceiptCounter,
    InMemorySubscriptionRepository,
    InMemoryWebhookEventLog,
)
from services.campaign_service import CampaignAggregator
from services.donation_service import DonationLedgerWriter
from services.event_router import build_router
from services.receipt_service import ReceiptSequencer
from services.subscription_service import SubscriptionStateMachine
from services.webhook_gateway import WebhookGateway

SYDNEY = ZoneInfo("Australia/Sydney")
WEBHOOK_SECRET = "whsec_test_fake_secret"


class MutableClock:
    def __init__(self, moment: datetime):
        self.moment = moment

    def __call__(self) -> datetime:
        return self.moment


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Builds a Stripe-Signature header for ``payload``."""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.".encode() + payload
    signature = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def make_event(event_type: str, obj: dict[str, Any], event_id: str = "evt_test_1") -> bytes:
    return json.dumps({
        "id": event_id,
        "object": "event",
        "type": event_type,
        "created": 1768000000,
        "data": {"object": obj},
    }).encode()


@pytest.fixture
def clock() -> MutableClock:
    # 2026-01-10 12:00 in Sydney
    return MutableClock(datetime(2026, 1, 10, 1, 0, tzinfo=timezone.utc))


@pytest.fixture
def donations() -> InMemoryDonationRepository:
    return InMemoryDonationRepository()


@pytest.fixture
def subscriptions() -> InMemorySubscriptionRepository:
    return InMemorySubscriptionRepository()


@pytest.fixture
def campaigns() -> InMemoryCampaignRepository:
    return InMemoryCampaignRepository({"camp_ramadan": 10000})


@pytest.fixture
def receipt_counter() -> InMemoryReceiptCounter:
    return InMemoryReceiptCounter()


@pytest.fixture
def event_log() -> InMemoryWebhookEventLog:
    return InMemoryWebhookEventLog()


@pytest.fixture
def stripe_gateway() -> FakeStripeGateway:
    return FakeStripeGateway()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def state_machine(subscriptions, stripe_gateway, notifier, clock) -> SubscriptionStateMachine:
    return SubscriptionStateMachine(
        subscriptions=subscriptions,
        gateway=stripe_gateway,
        timezone=SYDNEY,
        notifier=notifier,
        clock=clock,
    )


@pytest.fixture
def ledger(donations, receipt_counter, campaigns, state_machine, stripe_gateway, notifier, clock) -> DonationLedgerWriter:
    return DonationLedgerWriter(
        donations=donations,
        receipts=ReceiptSequencer(receipt_counter, SYDNEY, clock=clock),
        campaigns=CampaignAggregator(campaigns, clock=clock),
        subscriptions=state_machine,
        gateway=stripe_gateway,
        timezone=SYDNEY,
        notifier=notifier,
        clock=clock,
    )


@pytest.fixture
def webhook_gateway(ledger, state_machine, event_log) -> WebhookGateway:
    return WebhookGateway(
        router=build_router(ledger, state_machine),
        event_log=event_log,
        webhook_secret=WEBHOOK_SECRET,
    )


@pytest.fixture
def payment_intent() -> dict[str, Any]:
    return {
        "id": "pi_123",
        "object": "payment_intent",
        "amount": 2500,
        "currency": "aud",
        "customer": "cus_123",
        "invoice": None,
        "payment_method": "pm_123",
        "latest_charge": "ch_123",
        "metadata": {
            "donor_name": "Aisha Rahman",
            "donor_email": "aisha@example.com",
            "donation_type_id": "zakat",
            "donation_type_label": "Zakat",
            "campaign_id": "camp_ramadan",
            "is_recurring": "false",
        },
    }


@pytest.fixture
def subscription() -> dict[str, Any]:
    return {
        "id": "sub_123",
        "object": "subscription",
        "customer": {"id": "cus_123", "object": "customer"},
        "currency": "aud",
        "status": "active",
        "items": {"data": [{"price": {"unit_amount": 5000}}]},
        "metadata": {
            "donor_name": "Yusuf Ali",
            "donor_email": "yusuf@example.com",
            "frequency": "monthly",
            "donation_type_label": "Sadaqah",
            "is_recurring": "true",
        },
    }


@pytest.fixture
def invoice() -> dict[str, Any]:
    return {
        "id": "in_123",
        "object": "invoice",
        "customer": "cus_123",
        "subscription": "sub_123",
        "payment_intent": "pi_sub_1",
        "charge": "ch_sub_1",
        "amount_paid": 5000,
        "amount_due": 5000,
        "currency": "aud",
        "billing_reason": "subscription_cycle",
        "attempt_count": 1,
    }
