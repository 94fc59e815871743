"""API request schemas for payment endpoints.

Bodies use camelCase keys on the wire; attributes stay snake_case. Payment
fields are accepted as-is and checked by the split-payment core, which
reports every bad field in one pass.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)


class PaymentLinkCreateRequest(CamelModel):
    """Payload accepted by `POST /create-payment-link`."""

    amount: Any = None
    currency: Any = None
    description: Any = None
    metadata: Any = None
    customer_email: Any = None
    success_url: Any = None


class RentPaymentCreateRequest(CamelModel):
    """Payload accepted by `POST /create-rent-payment`."""

    amount: Any = None
    currency: Any = None
    description: Any = None
    landlord_account_id: Any = None
    tenant_email: Any = None
    property_address: Any = None
    rent_period: Any = None
    # None means the configured platform default.
    application_fee_percentage: Any = None


class LandlordAccountCreateRequest(CamelModel):
    email: str = Field(min_length=3)
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    business_name: str | None = None
    country: str = Field(default="US", min_length=2, max_length=2)


class AccountIdRequest(CamelModel):
    account_id: str = Field(min_length=1)


class PayoutScheduleRequest(AccountIdRequest):
    payout_schedule: Literal["daily", "weekly", "monthly", "manual"] = "daily"
