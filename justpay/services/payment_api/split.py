"""Marketplace split-payment calculation and payment-link request building.

All money is carried as integer minor units internally; only the public
surface uses `Decimal` major units. Rounding is half away from zero for both
the major-to-minor conversion and the fee.
"""

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from justpay.services.payment_api.errors import (
    FieldViolation,
    InvalidArgumentError,
    PaymentValidationError,
)

DEFAULT_FEE_PERCENTAGE = Decimal("2.9")
MINOR_PER_MAJOR = Decimal(100)
_ONE = Decimal(1)
_CENT = Decimal("0.01")


def _as_decimal(value: Any, name: str) -> Decimal:
    """Coerce caller input to a finite Decimal without binary float drift."""

    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal, str)):
        raise InvalidArgumentError(f"{name} must be a number")
    try:
        number = Decimal(str(value)) if isinstance(value, float) else Decimal(value)
    except InvalidOperation as exc:
        raise InvalidArgumentError(f"{name} must be a number") from exc
    if not number.is_finite():
        raise InvalidArgumentError(f"{name} must be a finite number")
    return number


def _round_half_up(value: Decimal) -> int:
    return int(value.quantize(_ONE, rounding=ROUND_HALF_UP))


def to_minor_units(amount: Any) -> int:
    """Convert a positive major-unit amount to integer minor units."""

    major = _as_decimal(amount, "amount")
    if major <= 0:
        raise InvalidArgumentError("amount must be a positive number")
    minor = _round_half_up(major * MINOR_PER_MAJOR)
    if minor <= 0:
        raise InvalidArgumentError("amount must be at least one minor unit")
    return minor


def from_minor_units(minor: int) -> Decimal:
    return (Decimal(minor) / MINOR_PER_MAJOR).quantize(_CENT)


@dataclass(frozen=True)
class FeeBreakdown:
    """Gross/fee/net split of one payment.

    `fee_amount` is in minor units; `gross_amount` and `net_amount` are major
    units. `fee_amount + net_amount * 100 == gross_amount * 100` always holds.
    """

    gross_amount: Decimal
    fee_amount: int
    net_amount: Decimal
    fee_percentage: Decimal

    @property
    def minor_gross(self) -> int:
        return _round_half_up(self.gross_amount * MINOR_PER_MAJOR)

    @property
    def minor_net(self) -> int:
        return self.minor_gross - self.fee_amount

    @property
    def fee_major(self) -> Decimal:
        return from_minor_units(self.fee_amount)


def compute_fee_breakdown(gross_amount: Any, fee_percentage: Any = DEFAULT_FEE_PERCENTAGE) -> FeeBreakdown:
    """Split `gross_amount` into platform fee and payee net amount.

    Raises:
        InvalidArgumentError: gross_amount is not > 0 or fee_percentage is
            outside [0, 100]. Out-of-range values are never clamped.
    """

    minor_gross = to_minor_units(gross_amount)
    percentage = _as_decimal(fee_percentage, "fee_percentage")
    if percentage < 0 or percentage > 100:
        raise InvalidArgumentError("fee_percentage must be between 0 and 100")

    fee_amount = _round_half_up(Decimal(minor_gross) * percentage / MINOR_PER_MAJOR)
    fee_amount = min(fee_amount, minor_gross)
    return FeeBreakdown(
        gross_amount=from_minor_units(minor_gross),
        fee_amount=fee_amount,
        net_amount=from_minor_units(minor_gross - fee_amount),
        fee_percentage=percentage,
    )


@dataclass(frozen=True)
class PaymentRequest:
    """Caller input for a split (marketplace) payment."""

    amount: Any
    currency: Any
    description: Any
    payee_account_id: Any
    payer_contact: str | None = None
    reference_note: str | None = None
    rent_period: str | None = None
    fee_percentage: Any = DEFAULT_FEE_PERCENTAGE


def _check_amount(amount: Any, violations: list[FieldViolation]) -> None:
    try:
        to_minor_units(amount)
    except InvalidArgumentError as exc:
        violations.append(FieldViolation("amount", str(exc)))


def _check_currency(currency: Any, violations: list[FieldViolation]) -> None:
    if currency is None:
        violations.append(FieldViolation("currency", "currency is required"))
    elif not isinstance(currency, str) or len(currency) != 3 or not currency.isascii() or not currency.isalpha():
        violations.append(FieldViolation("currency", "currency must be a 3-letter ISO 4217 code"))


def _check_description(description: Any, violations: list[FieldViolation]) -> None:
    if not isinstance(description, str) or not description.strip():
        violations.append(FieldViolation("description", "description is required"))


def _check_optional_text(value: Any, name: str, violations: list[FieldViolation]) -> None:
    if value is not None and not isinstance(value, str):
        violations.append(FieldViolation(name, f"{name} must be a string"))


def validate_payment_request(req: PaymentRequest) -> list[FieldViolation]:
    """Return every violated invariant of `req` (empty when valid)."""

    violations: list[FieldViolation] = []
    _check_amount(req.amount, violations)
    _check_currency(req.currency, violations)
    _check_description(req.description, violations)
    if not isinstance(req.payee_account_id, str) or not req.payee_account_id.strip():
        violations.append(FieldViolation("payee_account_id", "payee account id is required"))
    _check_optional_text(req.payer_contact, "payer_contact", violations)
    _check_optional_text(req.reference_note, "reference_note", violations)
    _check_optional_text(req.rent_period, "rent_period", violations)
    try:
        percentage = _as_decimal(req.fee_percentage, "fee_percentage")
        if percentage < 0 or percentage > 100:
            violations.append(FieldViolation("fee_percentage", "fee_percentage must be between 0 and 100"))
    except InvalidArgumentError as exc:
        violations.append(FieldViolation("fee_percentage", str(exc)))
    return violations


@dataclass(frozen=True)
class SplitPaymentLinkRequest:
    """Provider-agnostic description of a split payment link to create."""

    currency: str
    # Caller casing, echoed back in the public record.
    requested_currency: str
    description: str
    product_name: str
    destination_account_id: str
    redirect_url: str
    fee_breakdown: FeeBreakdown
    product_metadata: dict[str, str] = field(default_factory=dict)
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def amount(self) -> Decimal:
        return self.fee_breakdown.gross_amount

    @property
    def unit_amount(self) -> int:
        return self.fee_breakdown.minor_gross

    @property
    def application_fee_amount(self) -> int:
        return self.fee_breakdown.fee_amount


@dataclass(frozen=True)
class PaymentLinkRequest:
    """Plain payment link: no platform fee and no transfer destination."""

    amount: Decimal
    unit_amount: int
    currency: str
    description: str
    redirect_url: str
    product_metadata: dict[str, str] = field(default_factory=dict)
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ProviderPaymentLink:
    """What the provider hands back for a created or fetched link."""

    id: str
    url: str
    active: bool = True
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class SplitPaymentLink:
    link_id: str
    url: str
    amount: Decimal
    currency: str
    description: str
    payee_account_id: str
    fee_breakdown: FeeBreakdown

    def to_public(self) -> dict[str, Any]:
        """Public `rentPayment` JSON shape."""

        return {
            "id": self.link_id,
            "url": self.url,
            "amount": float(self.amount),
            "currency": self.currency,
            "description": self.description,
            "landlordAccountId": self.payee_account_id,
            "applicationFee": float(self.fee_breakdown.fee_major),
            "tenantAmount": float(self.fee_breakdown.gross_amount),
            "landlordReceives": float(self.fee_breakdown.net_amount),
        }


def build_split_payment_request(req: PaymentRequest, redirect_url: str) -> SplitPaymentLinkRequest:
    """Validate `req` and assemble the split payment link request.

    Raises:
        PaymentValidationError: listing every offending field.
    """

    violations = validate_payment_request(req)
    if violations:
        raise PaymentValidationError(violations)

    breakdown = compute_fee_breakdown(req.amount, req.fee_percentage)
    payee = req.payee_account_id.strip()
    tenant_email = req.payer_contact or ""
    property_address = req.reference_note or ""
    rent_period = req.rent_period or ""
    return SplitPaymentLinkRequest(
        currency=req.currency.lower(),
        requested_currency=req.currency,
        description=req.description.strip(),
        product_name=f"Rent Payment - {property_address or 'Property'}",
        destination_account_id=payee,
        redirect_url=redirect_url,
        fee_breakdown=breakdown,
        product_metadata={
            "type": "rent_payment",
            "propertyAddress": property_address,
            "rentPeriod": rent_period,
            "tenantEmail": tenant_email,
            "landlordAccountId": payee,
        },
        metadata={
            "type": "rent_payment",
            "landlordAccountId": payee,
            "tenantEmail": tenant_email,
            "propertyAddress": property_address,
            "rentPeriod": rent_period,
            "originalAmount": str(breakdown.gross_amount),
            "applicationFee": str(breakdown.fee_major),
        },
    )


def attach_provider_response(request: SplitPaymentLinkRequest, link: ProviderPaymentLink) -> SplitPaymentLink:
    """Project the provider's link onto the public record.

    The fee breakdown always comes from `request`; whatever fee the provider
    echoes back is ignored.
    """

    return SplitPaymentLink(
        link_id=link.id,
        url=link.url,
        amount=request.amount,
        currency=request.requested_currency,
        description=request.description,
        payee_account_id=request.destination_account_id,
        fee_breakdown=request.fee_breakdown,
    )


def build_payment_link_request(
    amount: Any,
    currency: Any,
    description: Any,
    redirect_url: str,
    metadata: Any = None,
    customer_email: Any = None,
) -> PaymentLinkRequest:
    """Validate and assemble a plain (no platform fee) payment link request."""

    violations: list[FieldViolation] = []
    _check_amount(amount, violations)
    _check_currency(currency, violations)
    _check_description(description, violations)
    _check_optional_text(customer_email, "customer_email", violations)
    if metadata is not None and not isinstance(metadata, dict):
        violations.append(FieldViolation("metadata", "metadata must be an object"))
    if not isinstance(redirect_url, str) or not redirect_url.strip():
        violations.append(FieldViolation("redirect_url", "redirect url must be a non-empty string"))
    if violations:
        raise PaymentValidationError(violations)

    minor = to_minor_units(amount)
    major = from_minor_units(minor)
    extra = {str(k): str(v) for k, v in (metadata or {}).items()}
    return PaymentLinkRequest(
        amount=major,
        unit_amount=minor,
        currency=currency.lower(),
        description=description.strip(),
        redirect_url=redirect_url,
        product_metadata=dict(extra),
        metadata={
            **extra,
            "customerEmail": customer_email or "",
            "originalAmount": str(major),
            "originalCurrency": currency,
        },
    )
