from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Largest unit_amount Stripe accepts (eight digits of minor units).
MAX_UNIT_AMOUNT = 99999999


class CartLineItem(BaseModel):
    name: str = Field(min_length=1)
    description: str = ""
    amount: float = Field(ge=0, le=MAX_UNIT_AMOUNT, allow_inf_nan=False)
    currency: str = Field(default="usd", min_length=3, max_length=3)
    quantity: int = Field(default=1, ge=1)

    @field_validator("description", mode="before")
    @classmethod
    def _none_description(cls, v):
        return "" if v is None else v

    @field_validator("currency")
    @classmethod
    def _lower_currency(cls, v: str) -> str:
        return v.lower()

    @property
    def unit_amount(self) -> int:
        """Amount in minor units, rounded half-up (999.6 -> 1000)."""
        return int(Decimal(str(self.amount)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    @property
    def is_tax(self) -> bool:
        return "Tax" in self.name


class CheckoutRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    line_items: List[CartLineItem] = Field(alias="lineItems", min_length=1)
    customer_email: Optional[str] = Field(default=None, alias="customerEmail")
    success_url: Optional[str] = Field(default=None, alias="successUrl")
    cancel_url: Optional[str] = Field(default=None, alias="cancelUrl")
    metadata: Dict[str, str] = Field(default_factory=dict)

    @field_validator("metadata", mode="before")
    @classmethod
    def _stringify_metadata(cls, v):
        if v is None:
            return {}
        if isinstance(v, dict):
            return {str(k): str(val) for k, val in v.items()}
        return v


class CheckoutSession(BaseModel):
    id: str
    url: Optional[str] = None


class HealthStatus(BaseModel):
    status: str = "ok"
    message: str
    timestamp: str
    mode: Optional[str] = None


class PublicConfig(BaseModel):
    publishableKey: Optional[str] = None


class WebhookAck(BaseModel):
    received: bool = True
    duplicate: bool = False
