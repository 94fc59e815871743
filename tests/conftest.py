"""Shared fixtures: an in-memory provider and an app wired to it."""

import pytest
from fastapi.testclient import TestClient

from justpay.common.config import AppSettings
from justpay.services.payment_api.errors import ProviderError, WebhookSignatureError
from justpay.services.payment_api.main import create_app
from justpay.services.payment_api.provider import CreatedPaymentLink
from justpay.services.payment_api.split import ProviderPaymentLink


class FakeProvider:
    """Records calls and returns canned provider records."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, object]] = []
        self.error: Exception | None = None
        self.links: dict[str, ProviderPaymentLink] = {}
        self.webhook_event: dict | None = None

    def _record(self, name: str, payload: object) -> None:
        self.calls.append((name, payload))
        if self.error is not None:
            raise self.error

    def last(self, name: str):
        return [payload for call, payload in self.calls if call == name][-1]

    def create_payment_link(self, request):
        self._record("create_payment_link", request)
        link = ProviderPaymentLink(id="plink_plain", url="https://buy.stripe.com/plain", metadata=request.metadata)
        self.links[link.id] = link
        return CreatedPaymentLink("prod_plain", request.description, "price_plain", link)

    def create_split_payment_link(self, request):
        self._record("create_split_payment_link", request)
        # Provider echoes a deliberately different fee; it must be ignored.
        metadata = {**request.metadata, "applicationFee": "999.99"}
        link = ProviderPaymentLink(id="plink_rent", url="https://buy.stripe.com/rent", metadata=metadata)
        self.links[link.id] = link
        return CreatedPaymentLink("prod_rent", request.product_name, "price_rent", link)

    def retrieve_payment_link(self, link_id):
        self._record("retrieve_payment_link", link_id)
        if link_id not in self.links:
            raise ProviderError("No such payment_link", error_type="InvalidRequestError", not_found=True)
        return self.links[link_id]

    def list_payment_links(self, limit, starting_after=None):
        self._record("list_payment_links", (limit, starting_after))
        return list(self.links.values())[:limit], False

    def deactivate_payment_link(self, link_id):
        link = self.retrieve_payment_link(link_id)
        self._record("deactivate_payment_link", link_id)
        updated = ProviderPaymentLink(id=link.id, url=link.url, active=False, metadata=link.metadata)
        self.links[link_id] = updated
        return updated

    def create_express_account(self, **kwargs):
        self._record("create_express_account", kwargs)
        return {
            "id": "acct_123",
            "email": kwargs["email"],
            "details_submitted": False,
            "charges_enabled": False,
            "payouts_enabled": False,
        }

    def create_onboarding_link(self, account_id, refresh_url, return_url):
        self._record("create_onboarding_link", (account_id, refresh_url, return_url))
        return {"url": "https://connect.stripe.com/setup/e/acct_123", "expires_at": 1735689600}

    def retrieve_account(self, account_id):
        self._record("retrieve_account", account_id)
        return {
            "id": account_id,
            "email": "landlord@example.com",
            "details_submitted": True,
            "charges_enabled": True,
            "payouts_enabled": True,
        }

    def retrieve_balance(self, account_id):
        self._record("retrieve_balance", account_id)
        return {
            "available": [{"amount": 116520, "currency": "usd"}],
            "pending": [{"amount": 0, "currency": "usd"}],
        }

    def create_login_link(self, account_id):
        self._record("create_login_link", account_id)
        return {"url": f"https://connect.stripe.com/express/{account_id}"}

    def update_payout_schedule(self, account_id, schedule):
        self._record("update_payout_schedule", (account_id, schedule))
        return {"id": account_id, "payouts_enabled": True}

    def list_payouts(self, account_id, limit):
        self._record("list_payouts", (account_id, limit))
        payouts = [
            {
                "id": "po_1",
                "amount": 116520,
                "currency": "usd",
                "status": "paid",
                "method": "standard",
                "arrival_date": 1735776000,
                "created": 1735689600,
            }
        ]
        return payouts[:limit], False

    def verify_webhook(self, payload, signature):
        self._record("verify_webhook", (payload, signature))
        if self.webhook_event is None:
            raise WebhookSignatureError("Webhook secret not configured")
        return self.webhook_event


@pytest.fixture
def settings():
    return AppSettings(
        _env_file=None,
        stripe_secret_key="sk_test_dummy",
        public_base_url="https://api.justpay.test",
        platform_fee_percentage=2.9,
    )


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def client(settings, provider):
    app = create_app(settings, provider=provider)
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
