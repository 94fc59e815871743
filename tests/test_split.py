"""Unit tests for fee math and split payment request building."""

from decimal import Decimal

import pytest

from justpay.services.payment_api.errors import InvalidArgumentError, PaymentValidationError
from justpay.services.payment_api.split import (
    PaymentRequest,
    ProviderPaymentLink,
    attach_provider_response,
    build_payment_link_request,
    build_split_payment_request,
    compute_fee_breakdown,
    to_minor_units,
)

REDIRECT = "https://api.justpay.test/api/payments/rent-payment-success"


def _rent_request(**overrides) -> PaymentRequest:
    fields = {
        "amount": 1200.00,
        "currency": "usd",
        "description": "Monthly Rent - December 2024",
        "payee_account_id": "acct_landlord",
        "payer_contact": "tenant@example.com",
        "reference_note": "123 Main St, Apt 4B",
        "rent_period": "December 2024",
        "fee_percentage": 2.9,
    }
    fields.update(overrides)
    return PaymentRequest(**fields)


def test_rent_fee_breakdown():
    """1200.00 at 2.9% leaves 1165.20 for the landlord."""

    breakdown = compute_fee_breakdown(1200.00, 2.9)

    assert breakdown.minor_gross == 120000
    assert breakdown.fee_amount == 3480
    assert breakdown.net_amount == Decimal("1165.20")
    assert breakdown.fee_major == Decimal("34.80")


def test_zero_fee_keeps_full_amount():
    """A 0% fee sends the whole amount to the payee."""

    breakdown = compute_fee_breakdown(29.99, 0)

    assert breakdown.fee_amount == 0
    assert breakdown.net_amount == Decimal("29.99")


def test_full_fee_leaves_nothing():
    """A 100% fee takes the whole amount and leaves a zero net."""

    breakdown = compute_fee_breakdown("10.01", 100)

    assert breakdown.fee_amount == 1001
    assert breakdown.net_amount == Decimal("0.00")


def test_fee_rounds_half_away_from_zero():
    # 1050 cents * 0.1% = 1.05 -> 1; 1500 cents * 0.1% = 1.5 -> 2
    assert compute_fee_breakdown("10.50", "0.1").fee_amount == 1
    assert compute_fee_breakdown("15.00", "0.1").fee_amount == 2
    assert to_minor_units("0.005") == 1
    assert to_minor_units(1.005) == 101


def test_split_accounts_for_every_minor_unit():
    """Fee plus net always equals the gross in minor units."""

    for amount in ["0.01", "0.99", "19.95", "1200.00", "99999.99"]:
        for pct in ["0", "0.5", "2.9", "33.333", "99.99", "100"]:
            breakdown = compute_fee_breakdown(amount, pct)
            assert breakdown.fee_amount + breakdown.minor_net == to_minor_units(amount)
            assert breakdown.fee_amount >= 0
            assert breakdown.minor_net >= 0


def test_fee_is_monotonic_in_percentage():
    """A higher percentage never yields a smaller fee."""

    fees = [compute_fee_breakdown("487.13", Decimal(p) / 4).fee_amount for p in range(0, 401)]
    assert fees == sorted(fees)


def test_float_input_does_not_drift():
    """0.1 + 0.2 is taken as 0.30, not 0.30000000000000004."""

    assert compute_fee_breakdown(0.1 + 0.2, 0).minor_gross == 30


@pytest.mark.parametrize(
    "amount, pct",
    [(0, 2.9), (-5, 2.9), (10, -0.01), (10, 100.01), ("abc", 1), (10, None), (True, 1), (float("nan"), 1), ("0.001", 1)],
)
def test_invalid_arguments_raise(amount, pct):
    """Out-of-range or non-numeric input raises instead of being clamped."""

    with pytest.raises(InvalidArgumentError):
        compute_fee_breakdown(amount, pct)


def test_build_split_request_carries_fee_and_destination():
    request = build_split_payment_request(_rent_request(), REDIRECT)

    assert request.unit_amount == 120000
    assert request.application_fee_amount == 3480
    assert request.destination_account_id == "acct_landlord"
    assert request.currency == "usd"
    assert request.redirect_url == REDIRECT
    assert request.product_name == "Rent Payment - 123 Main St, Apt 4B"
    assert request.metadata["type"] == "rent_payment"
    assert request.metadata["applicationFee"] == "34.80"
    assert request.metadata["originalAmount"] == "1200.00"


def test_build_split_request_defaults_optional_fields():
    """Missing tenant, address and period become empty strings."""

    request = build_split_payment_request(
        _rent_request(payer_contact=None, reference_note=None, rent_period=None), REDIRECT
    )

    assert request.product_name == "Rent Payment - Property"
    assert request.metadata["tenantEmail"] == ""
    assert request.product_metadata["rentPeriod"] == ""


def test_validation_lists_every_bad_field():
    bad = _rent_request(amount=0, currency="dollars", description="  ", payee_account_id="", fee_percentage=250)

    with pytest.raises(PaymentValidationError) as excinfo:
        build_split_payment_request(bad, REDIRECT)

    fields = [v.field for v in excinfo.value.violations]
    assert fields == ["amount", "currency", "description", "payee_account_id", "fee_percentage"]


def test_attach_provider_response_keeps_local_fee():
    """The provider's echoed fee is ignored, so projection is deterministic."""

    request = build_split_payment_request(_rent_request(), REDIRECT)
    provider_link = ProviderPaymentLink(
        id="plink_1",
        url="https://buy.stripe.com/x",
        metadata={"applicationFee": "40.00"},
    )

    first = attach_provider_response(request, provider_link)
    second = attach_provider_response(build_split_payment_request(_rent_request(), REDIRECT), provider_link)

    assert first == second
    assert first.to_public() == {
        "id": "plink_1",
        "url": "https://buy.stripe.com/x",
        "amount": 1200.0,
        "currency": "usd",
        "description": "Monthly Rent - December 2024",
        "landlordAccountId": "acct_landlord",
        "applicationFee": 34.8,
        "tenantAmount": 1200.0,
        "landlordReceives": 1165.2,
    }


def test_plain_payment_link_request_has_no_fee():
    """Plain links carry no fee and stringify caller metadata."""

    request = build_payment_link_request(
        29.99,
        "USD",
        "Consulting",
        "https://example.com/done",
        metadata={"orderId": 42},
        customer_email="buyer@example.com",
    )

    assert request.unit_amount == 2999
    assert request.currency == "usd"
    assert not hasattr(request, "application_fee_amount")
    assert request.metadata == {
        "orderId": "42",
        "customerEmail": "buyer@example.com",
        "originalAmount": "29.99",
        "originalCurrency": "USD",
    }


def test_plain_payment_link_request_validates_all_fields():
    with pytest.raises(PaymentValidationError) as excinfo:
        build_payment_link_request(-1, "", "", "https://example.com/done")

    assert [v.field for v in excinfo.value.violations] == ["amount", "currency", "description"]


def test_missing_currency_is_reported():
    """A request without a currency is rejected rather than defaulted."""

    with pytest.raises(PaymentValidationError) as excinfo:
        build_split_payment_request(_rent_request(currency=None), REDIRECT)

    assert [(v.field, v.message) for v in excinfo.value.violations] == [("currency", "currency is required")]

    with pytest.raises(PaymentValidationError) as excinfo:
        build_payment_link_request(10, None, "Tip", "https://example.com/done")

    assert [v.field for v in excinfo.value.violations] == ["currency"]


def test_public_record_keeps_caller_currency_casing():
    """The provider gets lower case; the public record echoes what the caller sent."""

    request = build_split_payment_request(_rent_request(currency="USD"), REDIRECT)
    link = attach_provider_response(request, ProviderPaymentLink(id="plink_1", url="https://buy.stripe.com/x"))

    assert request.currency == "usd"
    assert link.to_public()["currency"] == "USD"


def test_plain_payment_link_rejects_non_object_metadata():
    with pytest.raises(PaymentValidationError) as excinfo:
        build_payment_link_request(10, "usd", "Tip", "", metadata=["orderId"])

    assert [v.field for v in excinfo.value.violations] == ["metadata", "redirect_url"]
