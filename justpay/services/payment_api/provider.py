"""Stripe collaborator.

Every SDK call goes through `StripeProvider`, which turns `stripe.StripeError`
into `ProviderError` and StripeObjects into plain Python values.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

import stripe

from justpay.common.config import AppSettings
from justpay.common.logging import logger
from justpay.common.metrics import provider_errors_total
from justpay.services.payment_api.errors import ProviderError, WebhookSignatureError
from justpay.services.payment_api.split import (
    PaymentLinkRequest,
    ProviderPaymentLink,
    SplitPaymentLinkRequest,
)


@dataclass(frozen=True)
class ProviderConfig:
    """Credentials and client options injected at startup."""

    api_key: str
    webhook_secret: str | None = None
    api_version: str | None = None
    max_network_retries: int = 2
    service_name: str = "justpay-api"

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "ProviderConfig":
        webhook_secret = settings.stripe_webhook_secret
        return cls(
            api_key=settings.stripe_secret_key.get_secret_value(),
            webhook_secret=webhook_secret.get_secret_value() if webhook_secret else None,
            api_version=settings.stripe_api_version,
            max_network_retries=settings.stripe_max_network_retries,
            service_name=settings.service_name,
        )


@dataclass(frozen=True)
class CreatedPaymentLink:
    product_id: str
    product_name: str
    price_id: str
    link: ProviderPaymentLink


def _to_plain(value: Any) -> Any:
    """Recursively convert StripeObjects into dicts/lists."""

    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        value = to_dict()
    if isinstance(value, dict):
        return {key: _to_plain(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_to_plain(item) for item in value]
    return value


def _link_from_stripe(obj: Any) -> ProviderPaymentLink:
    metadata = _to_plain(getattr(obj, "metadata", None) or {})
    return ProviderPaymentLink(
        id=obj.id,
        url=obj.url,
        active=bool(getattr(obj, "active", True)),
        metadata={str(k): str(v) for k, v in metadata.items()},
    )


class StripeProvider:
    """Thin wrapper around `stripe.StripeClient` (v1 API)."""

    def __init__(self, config: ProviderConfig, client: Any = None) -> None:
        self.config = config
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = stripe.StripeClient(
                self.config.api_key,
                stripe_version=self.config.api_version,
                max_network_retries=self.config.max_network_retries,
            )
        return self._client

    @property
    def webhook_configured(self) -> bool:
        return bool(self.config.webhook_secret)

    @contextmanager
    def _translate_errors(self, operation: str) -> Iterator[None]:
        try:
            yield
        except stripe.StripeError as exc:
            not_found = isinstance(exc, stripe.InvalidRequestError) and (
                exc.code == "resource_missing" or exc.http_status == 404
            )
            provider_errors_total.labels(
                service=self.config.service_name,
                operation=operation,
                not_found=str(not_found).lower(),
            ).inc()
            logger.warning(
                "stripe call failed operation=%s error_type=%s not_found=%s message=%s",
                operation,
                type(exc).__name__,
                not_found,
                exc.user_message or str(exc),
            )
            raise ProviderError(
                exc.user_message or str(exc),
                error_type=type(exc).__name__,
                not_found=not_found,
            ) from exc

    def _create_product_and_price(
        self, name: str, metadata: dict[str, str], unit_amount: int, currency: str
    ) -> tuple[Any, Any]:
        with self._translate_errors("products.create"):
            product = self.client.v1.products.create(params={"name": name, "metadata": metadata})
        with self._translate_errors("prices.create"):
            price = self.client.v1.prices.create(
                params={"unit_amount": unit_amount, "currency": currency, "product": product.id}
            )
        return product, price

    def create_payment_link(self, request: PaymentLinkRequest) -> CreatedPaymentLink:
        """Create product, price and link for the plain (no fee) flow."""

        product, price = self._create_product_and_price(
            request.description, request.product_metadata, request.unit_amount, request.currency
        )
        with self._translate_errors("payment_links.create"):
            link = self.client.v1.payment_links.create(
                params={
                    "line_items": [{"price": price.id, "quantity": 1}],
                    "after_completion": {
                        "type": "redirect",
                        "redirect": {"url": request.redirect_url},
                    },
                    "metadata": request.metadata,
                }
            )
        return CreatedPaymentLink(product.id, product.name, price.id, _link_from_stripe(link))

    def create_split_payment_link(self, request: SplitPaymentLinkRequest) -> CreatedPaymentLink:
        """Create a link whose funds transfer to the destination account minus the fee."""

        product, price = self._create_product_and_price(
            request.product_name, request.product_metadata, request.unit_amount, request.currency
        )
        with self._translate_errors("payment_links.create"):
            link = self.client.v1.payment_links.create(
                params={
                    "line_items": [{"price": price.id, "quantity": 1}],
                    "application_fee_amount": request.application_fee_amount,
                    "on_behalf_of": request.destination_account_id,
                    "transfer_data": {"destination": request.destination_account_id},
                    "after_completion": {
                        "type": "redirect",
                        "redirect": {"url": request.redirect_url},
                    },
                    "metadata": request.metadata,
                }
            )
        return CreatedPaymentLink(product.id, product.name, price.id, _link_from_stripe(link))

    def retrieve_payment_link(self, link_id: str) -> ProviderPaymentLink:
        with self._translate_errors("payment_links.retrieve"):
            return _link_from_stripe(self.client.v1.payment_links.retrieve(link_id))

    def list_payment_links(
        self, limit: int, starting_after: str | None = None
    ) -> tuple[list[ProviderPaymentLink], bool]:
        params: dict[str, Any] = {"limit": limit}
        if starting_after:
            params["starting_after"] = starting_after
        with self._translate_errors("payment_links.list"):
            page = self.client.v1.payment_links.list(params=params)
        return [_link_from_stripe(link) for link in page.data], bool(page.has_more)

    def deactivate_payment_link(self, link_id: str) -> ProviderPaymentLink:
        with self._translate_errors("payment_links.update"):
            link = self.client.v1.payment_links.update(link_id, params={"active": False})
        return _link_from_stripe(link)

    def create_express_account(
        self,
        email: str,
        first_name: str,
        last_name: str,
        business_name: str,
        country: str,
    ) -> dict[str, Any]:
        with self._translate_errors("accounts.create"):
            account = self.client.v1.accounts.create(
                params={
                    "type": "express",
                    "country": country,
                    "email": email,
                    "capabilities": {
                        "card_payments": {"requested": True},
                        "transfers": {"requested": True},
                    },
                    "business_type": "individual",
                    "business_profile": {
                        "name": business_name,
                        "product_description": "Rental property management",
                    },
                    "individual": {
                        "first_name": first_name,
                        "last_name": last_name,
                        "email": email,
                    },
                }
            )
        return _to_plain(account)

    def create_onboarding_link(self, account_id: str, refresh_url: str, return_url: str) -> dict[str, Any]:
        with self._translate_errors("account_links.create"):
            link = self.client.v1.account_links.create(
                params={
                    "account": account_id,
                    "refresh_url": refresh_url,
                    "return_url": return_url,
                    "type": "account_onboarding",
                }
            )
        return _to_plain(link)

    def retrieve_account(self, account_id: str) -> dict[str, Any]:
        with self._translate_errors("accounts.retrieve"):
            return _to_plain(self.client.v1.accounts.retrieve(account_id))

    def retrieve_balance(self, account_id: str) -> dict[str, Any]:
        with self._translate_errors("balance.retrieve"):
            balance = self.client.v1.balance.retrieve(options={"stripe_account": account_id})
        return _to_plain(balance)

    def create_login_link(self, account_id: str) -> dict[str, Any]:
        with self._translate_errors("accounts.login_links.create"):
            return _to_plain(self.client.v1.accounts.login_links.create(account_id))

    def update_payout_schedule(self, account_id: str, schedule: dict[str, Any]) -> dict[str, Any]:
        with self._translate_errors("accounts.update"):
            account = self.client.v1.accounts.update(
                account_id,
                params={"settings": {"payouts": {"schedule": schedule}}},
            )
        return _to_plain(account)

    def list_payouts(self, account_id: str, limit: int) -> tuple[list[dict[str, Any]], bool]:
        with self._translate_errors("payouts.list"):
            page = self.client.v1.payouts.list(
                params={"limit": limit},
                options={"stripe_account": account_id},
            )
        return [_to_plain(payout) for payout in page.data], bool(page.has_more)

    def verify_webhook(self, payload: bytes, signature: str | None) -> dict[str, Any]:
        """Verify the signature header and return the decoded event."""

        if not self.config.webhook_secret:
            raise WebhookSignatureError("Webhook secret not configured")
        try:
            event = stripe.Webhook.construct_event(payload, signature or "", self.config.webhook_secret)
        except stripe.SignatureVerificationError as exc:
            raise WebhookSignatureError(str(exc)) from exc
        except ValueError as exc:
            raise WebhookSignatureError(f"Invalid payload: {exc}") from exc
        return _to_plain(event)
