"""Error taxonomy for the payment API.

Validation errors are raised by the split-payment core; `ProviderError` is
built only at the Stripe boundary so handlers never see SDK exception types.
"""

from dataclasses import dataclass


class InvalidArgumentError(ValueError):
    """Malformed numeric input to the fee calculator."""


@dataclass(frozen=True)
class FieldViolation:
    field: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"field": self.field, "message": self.message}


class PaymentValidationError(ValueError):
    """One or more payment request fields violate their invariants."""

    def __init__(self, violations: list[FieldViolation]) -> None:
        self.violations = list(violations)
        super().__init__("; ".join(f"{v.field}: {v.message}" for v in self.violations))


class ProviderError(Exception):
    """Failure reported by the external payment provider."""

    def __init__(self, message: str, *, error_type: str = "stripe_error", not_found: bool = False) -> None:
        super().__init__(message)
        self.message = message
        self.error_type = error_type
        self.not_found = not_found


class WebhookSignatureError(ValueError):
    """Webhook payload could not be verified against the signing secret."""
