"""
Async client for Stripe Checkout Sessions, backed by the stripe SDK
with its httpx transport so the call does not block the event loop.
"""

from typing import Any, Dict, Optional

import stripe

from .errors import ProviderError
from .models import CheckoutSession


class StripeCheckoutClient:
    def __init__(self, secret_key: str, api_base: str = "https://api.stripe.com",
                 timeout: float = 10.0, client: Optional[stripe.StripeClient] = None):
        self._client = client or stripe.StripeClient(
            secret_key,
            http_client=stripe.HTTPXClient(timeout=timeout),
            base_addresses={"api": api_base.rstrip("/")},
        )

    async def create_session(self, params: Dict[str, Any]) -> CheckoutSession:
        try:
            session = await self._client.checkout.sessions.create_async(params=params)
        except stripe.StripeError as e:
            raise ProviderError(e.user_message or str(e)) from e

        session_id = getattr(session, "id", None)
        if not session_id:
            raise ProviderError("Unexpected response from payment provider")
        return CheckoutSession(id=session_id, url=getattr(session, "url", None))
