from unittest.mock import MagicMock

import pytest
import stripe

from services.gateway_client import StripeGateway


def stripe_object(values: dict) -> MagicMock:
    obj = MagicMock()
    obj.to_dict.return_value = values
    return obj


@pytest.fixture
def gateway():
    return StripeGateway(api_key="sk_test_fake_key_for_testing")


def test_payment_method_details(gateway, mocker):
    mocker.patch.object(stripe.PaymentMethod, "retrieve", return_value=stripe_object(
        {"id": "pm_1", "type": "card", "card": {"last4": "4242", "brand": "visa"}}
    ))
    mocker.patch.object(stripe.Charge, "retrieve", return_value=stripe_object(
        {"id": "ch_1", "receipt_url": "https://pay.stripe.com/receipts/ch_1"}
    ))

    details = gateway.payment_method_details(payment_method_id="pm_1", charge_id="ch_1")

    assert details.card_last4 == "4242"
    assert details.card_brand == "visa"
    assert details.receipt_url == "https://pay.stripe.com/receipts/ch_1"


def test_lookup_failures_degrade_to_defaults(gateway, mocker):
    error = stripe.InvalidRequestError("No such payment method", param="id")
    mocker.patch.object(stripe.PaymentMethod, "retrieve", side_effect=error)
    mocker.patch.object(stripe.Charge, "retrieve", side_effect=error)

    details = gateway.payment_method_details(payment_method_id="pm_1", charge_id="ch_1")

    assert details.payment_method_type == "card"
    assert details.card_last4 is None
    assert details.card_brand is None
    assert details.receipt_url is None


def test_payment_intent_supplies_missing_references(gateway, mocker):
    mocker.patch.object(stripe.PaymentIntent, "retrieve", return_value=stripe_object({
        "id": "pi_1", "amount": 5000, "currency": "aud",
        "payment_method": "pm_1", "latest_charge": "ch_1",
    }))
    method = mocker.patch.object(stripe.PaymentMethod, "retrieve", return_value=stripe_object(
        {"id": "pm_1", "type": "card", "card": {"last4": "1111", "brand": "mastercard"}}
    ))
    mocker.patch.object(stripe.Charge, "retrieve", return_value=stripe_object({"id": "ch_1"}))

    details = gateway.payment_method_details(payment_intent_id="pi_1")

    method.assert_called_once_with("pm_1", api_key="sk_test_fake_key_for_testing")
    assert details.card_brand == "mastercard"


def test_no_references_means_no_lookups(gateway, mocker):
    method = mocker.patch.object(stripe.PaymentMethod, "retrieve")

    details = gateway.payment_method_details()

    method.assert_not_called()
    assert details.payment_method_type == "card"


def test_retrieve_subscription_is_parsed(gateway, mocker):
    mocker.patch.object(stripe.Subscription, "retrieve", return_value=stripe_object({
        "id": "sub_1", "customer": "cus_1", "currency": "aud", "status": "active",
        "items": {"data": [{"price": {"unit_amount": 2000}}]},
        "metadata": {"frequency": "weekly"},
    }))

    subscription = gateway.retrieve_subscription("sub_1")

    assert subscription.amount == 2000
    assert subscription.metadata.frequency == "weekly"
