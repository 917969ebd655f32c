import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol, Tuple

from pydantic import ValidationError

from .errors import InvalidRequest, ProviderError
from .models import CheckoutRequest, CheckoutSession
from .settings import Settings

logger = logging.getLogger(__name__)

# Stripe rejects metadata values longer than this.
METADATA_VALUE_LIMIT = 500


class CheckoutProvider(Protocol):
    async def create_session(self, params: Dict[str, Any]) -> CheckoutSession:
        ...


def parse_checkout_request(payload: Any) -> CheckoutRequest:
    if not isinstance(payload, dict):
        raise InvalidRequest("Request body must be a JSON object")

    items = payload.get("lineItems")
    if not isinstance(items, list) or not items:
        raise InvalidRequest("No items in cart")

    try:
        return CheckoutRequest.model_validate(payload)
    except ValidationError as e:
        first = e.errors()[0]
        loc = ".".join(str(p) for p in first["loc"])
        raise InvalidRequest(f"{loc}: {first['msg']}") from e


def derived_metadata(req: CheckoutRequest, now: datetime) -> Dict[str, str]:
    courses = ", ".join(i.name for i in req.line_items if not i.is_tax)
    return {
        "orderDate": now.isoformat().replace("+00:00", "Z"),
        "courses": courses[:METADATA_VALUE_LIMIT],
        "itemCount": str(len(req.line_items)),
    }


def build_session_params(req: CheckoutRequest, success_url: str, cancel_url: str,
                         now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or datetime.now(timezone.utc)

    metadata = derived_metadata(req, now)
    metadata.update(req.metadata)

    return {
        "mode": "payment",
        "payment_method_types": ["card"],
        "line_items": [
            {
                "price_data": {
                    "currency": item.currency,
                    "product_data": {
                        "name": item.name,
                        "description": item.description or None,
                    },
                    "unit_amount": item.unit_amount,
                },
                "quantity": item.quantity,
            }
            for item in req.line_items
        ],
        "success_url": success_url,
        "cancel_url": cancel_url,
        "customer_email": req.customer_email or None,
        "billing_address_collection": "required",
        "allow_promotion_codes": True,
        "metadata": metadata,
    }


class CheckoutService:
    def __init__(self, settings: Settings, provider: CheckoutProvider):
        self.settings = settings
        self.provider = provider

    def redirect_urls(self, req: CheckoutRequest, origin: str) -> Tuple[str, str]:
        origin = origin.rstrip("/")
        success = req.success_url or self.settings.success_url or f"{origin}/success.html"
        cancel = req.cancel_url or self.settings.cancel_url or f"{origin}/cancel.html"
        return success, cancel

    async def create_checkout_session(self, payload: Any, origin: str) -> CheckoutSession:
        req = parse_checkout_request(payload)
        logger.info("Creating checkout session for %d items", len(req.line_items))

        success_url, cancel_url = self.redirect_urls(req, origin)
        params = build_session_params(req, success_url, cancel_url)

        try:
            session = await self.provider.create_session(params)
        except ProviderError as e:
            logger.error("Error creating checkout session: %s", e.message)
            raise
        logger.info("Checkout session created: %s", session.id)
        return session
