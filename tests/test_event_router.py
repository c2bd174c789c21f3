import pytest

from services.event_router import EventRouter, build_router

HANDLED_TYPES = [
    "customer.subscription.created",
    "customer.subscription.deleted",
    "invoice.payment_failed",
    "invoice.payment_succeeded",
    "payment_intent.payment_failed",
    "payment_intent.succeeded",
]


def test_dispatch_calls_registered_handler():
    received = []
    router = EventRouter()
    router.register("payment_intent.succeeded", received.append)

    assert router.dispatch("payment_intent.succeeded", "payload") is True
    assert received == ["payload"]


def test_unknown_type_is_acknowledged(caplog):
    router = EventRouter()

    with caplog.at_level("INFO"):
        assert router.dispatch("charge.refunded", None) is False

    assert "unhandled event type" in caplog.text


def test_duplicate_registration_is_rejected():
    router = EventRouter()
    router.register("invoice.payment_failed", print)

    with pytest.raises(ValueError):
        router.register("invoice.payment_failed", print)


def test_handler_errors_propagate():
    def failing(payload):
        raise RuntimeError("boom")

    router = EventRouter()
    router.register("invoice.payment_succeeded", failing)

    with pytest.raises(RuntimeError):
        router.dispatch("invoice.payment_succeeded", None)


def test_built_router_handles_the_six_lifecycle_events(ledger, state_machine):
    router = build_router(ledger, state_machine)

    assert router.event_types == HANDLED_TYPES
    assert not router.handles("customer.subscription.updated")
