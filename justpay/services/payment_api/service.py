"""Payment API operations.

Each method is one round trip to the provider, with the split-payment core
doing validation and fee math for the rent flow.
"""

from dataclasses import replace
from datetime import datetime, timezone
from typing import Any

from justpay.common.logging import logger
from justpay.common.metrics import (
    payment_links_created_total,
    platform_fee_cents_total,
    webhook_events_total,
)
from justpay.services.payment_api.errors import FieldViolation, PaymentValidationError
from justpay.services.payment_api.provider import StripeProvider
from justpay.services.payment_api.schemas import (
    LandlordAccountCreateRequest,
    PaymentLinkCreateRequest,
    RentPaymentCreateRequest,
)
from justpay.services.payment_api.split import (
    PaymentRequest,
    ProviderPaymentLink,
    attach_provider_response,
    build_payment_link_request,
    build_split_payment_request,
    from_minor_units,
)

API_PREFIX = "/api/payments"

# Core field name -> wire field name, so validation errors match the request body.
RENT_FIELD_NAMES = {
    "payee_account_id": "landlordAccountId",
    "payer_contact": "tenantEmail",
    "reference_note": "propertyAddress",
    "rent_period": "rentPeriod",
    "fee_percentage": "applicationFeePercentage",
}
LINK_FIELD_NAMES = {"customer_email": "customerEmail", "redirect_url": "successUrl"}

PAYOUT_ANCHORS: dict[str, dict[str, Any]] = {
    "weekly": {"weekly_anchor": "monday"},
    "monthly": {"monthly_anchor": 1},
}


def _rename_violations(exc: PaymentValidationError, names: dict[str, str]) -> PaymentValidationError:
    return PaymentValidationError(
        [FieldViolation(names.get(v.field, v.field), v.message) for v in exc.violations]
    )


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _link_summary(link: ProviderPaymentLink) -> dict[str, Any]:
    return {"id": link.id, "url": link.url, "active": link.active, "metadata": link.metadata}


def _landlord_summary(account: dict[str, Any]) -> dict[str, Any]:
    return {
        "accountId": account.get("id"),
        "email": account.get("email"),
        "status": "active" if account.get("details_submitted") else "pending",
        "chargesEnabled": bool(account.get("charges_enabled")),
        "payoutsEnabled": bool(account.get("payouts_enabled")),
    }


class PaymentService:
    """Translates API requests into provider calls and shapes the results."""

    def __init__(
        self, provider: StripeProvider, fee_percentage: float = 2.9, service_name: str = "justpay-api"
    ) -> None:
        self.provider = provider
        self.fee_percentage = fee_percentage
        self.service_name = service_name

    def create_payment_link(self, req: PaymentLinkCreateRequest, base_url: str) -> dict[str, Any]:
        """Plain payment link. Carries no platform fee."""

        redirect_url = req.success_url or f"{base_url}{API_PREFIX}/success"
        try:
            link_request = build_payment_link_request(
                req.amount,
                req.currency,
                req.description,
                redirect_url,
                metadata=req.metadata,
                customer_email=req.customer_email,
            )
        except PaymentValidationError as exc:
            raise _rename_violations(exc, LINK_FIELD_NAMES) from exc
        link_request = replace(
            link_request,
            product_metadata={**link_request.product_metadata, "createdAt": _now_iso()},
        )

        created = self.provider.create_payment_link(link_request)
        payment_links_created_total.labels(service=self.service_name, flow="plain").inc()
        logger.info("payment link created link_id=%s", created.link.id)
        return {
            "success": True,
            "paymentLink": {
                "id": created.link.id,
                "url": created.link.url,
                "amount": float(link_request.amount),
                "currency": req.currency,
                "description": link_request.description,
            },
            "product": {"id": created.product_id, "name": created.product_name},
            "price": {"id": created.price_id, "amount": float(link_request.amount), "currency": req.currency},
        }

    def get_payment_link(self, link_id: str) -> dict[str, Any]:
        link = self.provider.retrieve_payment_link(link_id)
        return {"success": True, "paymentLink": _link_summary(link)}

    def list_payment_links(self, limit: int, starting_after: str | None = None) -> dict[str, Any]:
        links, has_more = self.provider.list_payment_links(limit, starting_after)
        return {
            "success": True,
            "paymentLinks": [_link_summary(link) for link in links],
            "has_more": has_more,
        }

    def deactivate_payment_link(self, link_id: str) -> dict[str, Any]:
        link = self.provider.deactivate_payment_link(link_id)
        logger.info("payment link deactivated link_id=%s", link.id)
        return {
            "success": True,
            "message": "Payment link deactivated successfully",
            "paymentLink": {"id": link.id, "active": link.active},
        }

    def create_landlord_account(self, req: LandlordAccountCreateRequest) -> dict[str, Any]:
        account = self.provider.create_express_account(
            email=req.email,
            first_name=req.first_name,
            last_name=req.last_name,
            business_name=req.business_name or f"{req.first_name} {req.last_name}",
            country=req.country,
        )
        logger.info("landlord account created account_id=%s", account.get("id"))
        return {"success": True, "landlord": _landlord_summary(account)}

    def create_onboarding_link(self, account_id: str, base_url: str) -> dict[str, Any]:
        link = self.provider.create_onboarding_link(
            account_id,
            refresh_url=f"{base_url}{API_PREFIX}/reauth",
            return_url=f"{base_url}{API_PREFIX}/onboarding-complete",
        )
        return {"success": True, "onboardingUrl": link.get("url"), "expiresAt": link.get("expires_at")}

    def create_rent_payment(self, req: RentPaymentCreateRequest, base_url: str) -> dict[str, Any]:
        """Split payment: the landlord receives the gross amount minus the platform fee."""

        fee_percentage = req.application_fee_percentage
        if fee_percentage is None:
            fee_percentage = self.fee_percentage
        payment = PaymentRequest(
            amount=req.amount,
            currency=req.currency,
            description=req.description,
            payee_account_id=req.landlord_account_id,
            payer_contact=req.tenant_email,
            reference_note=req.property_address,
            rent_period=req.rent_period,
            fee_percentage=fee_percentage,
        )
        try:
            split_request = build_split_payment_request(
                payment, redirect_url=f"{base_url}{API_PREFIX}/rent-payment-success"
            )
        except PaymentValidationError as exc:
            raise _rename_violations(exc, RENT_FIELD_NAMES) from exc

        created = self.provider.create_split_payment_link(split_request)
        rent_payment = attach_provider_response(split_request, created.link)
        payment_links_created_total.labels(service=self.service_name, flow="split").inc()
        platform_fee_cents_total.labels(
            service=self.service_name, currency=split_request.currency
        ).inc(split_request.application_fee_amount)
        logger.info(
            "rent payment link created link_id=%s account_id=%s fee_cents=%s",
            rent_payment.link_id,
            rent_payment.payee_account_id,
            split_request.application_fee_amount,
        )
        return {"success": True, "rentPayment": rent_payment.to_public()}

    def get_landlord_account(self, account_id: str) -> dict[str, Any]:
        account = self.provider.retrieve_account(account_id)
        balance = self.provider.retrieve_balance(account_id)
        landlord = _landlord_summary(account)
        landlord["balance"] = {
            "available": balance.get("available", []),
            "pending": balance.get("pending", []),
        }
        return {"success": True, "landlord": landlord}

    def create_dashboard_link(self, account_id: str) -> dict[str, Any]:
        link = self.provider.create_login_link(account_id)
        return {"success": True, "dashboardUrl": link.get("url")}

    def setup_payouts(self, account_id: str, payout_schedule: str) -> dict[str, Any]:
        schedule = {"interval": payout_schedule, **PAYOUT_ANCHORS.get(payout_schedule, {})}
        account = self.provider.update_payout_schedule(account_id, schedule)
        logger.info("payout schedule updated account_id=%s interval=%s", account_id, payout_schedule)
        return {
            "success": True,
            "message": "Payout schedule updated successfully",
            "payoutSchedule": payout_schedule,
            "account": {"id": account.get("id"), "payoutsEnabled": bool(account.get("payouts_enabled"))},
        }

    def payout_history(self, account_id: str, limit: int) -> dict[str, Any]:
        payouts, has_more = self.provider.list_payouts(account_id, limit)
        return {
            "success": True,
            "payouts": [
                {
                    "id": payout.get("id"),
                    "amount": float(from_minor_units(payout.get("amount", 0))),
                    "currency": payout.get("currency"),
                    "status": payout.get("status"),
                    "method": payout.get("method"),
                    "arrivalDate": payout.get("arrival_date"),
                    "createdAt": datetime.fromtimestamp(payout.get("created", 0), tz=timezone.utc).isoformat(),
                }
                for payout in payouts
            ],
            "hasMore": has_more,
        }

    def handle_webhook(self, payload: bytes, signature: str | None) -> dict[str, Any]:
        """Verify and acknowledge a provider event. Events are only logged."""

        event = self.provider.verify_webhook(payload, signature)
        event_type = event.get("type", "unknown")
        event_object = (event.get("data") or {}).get("object") or {}
        webhook_events_total.labels(service=self.service_name, event_type=event_type).inc()
        if event_type == "payment_intent.succeeded":
            logger.info("payment succeeded object_id=%s", event_object.get("id"))
        elif event_type == "payment_intent.payment_failed":
            logger.warning("payment failed object_id=%s", event_object.get("id"))
        else:
            logger.info("unhandled webhook event type=%s", event_type)
        return {"received": True}
