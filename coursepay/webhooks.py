"""
Stripe webhook receiver.

Flow per delivery: verify the Stripe-Signature header over the raw body,
claim the event id so provider retries are acknowledged without re-running
side effects, then dispatch on event type to the configured PaymentHooks.
Hook failures are logged and never turn into a non-2xx response.
"""

import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol

import stripe
from starlette.concurrency import run_in_threadpool

from .db import EventStore, InMemoryEventStore
from .errors import SignatureInvalid
from .models import WebhookAck

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
PAYMENT_INTENT_SUCCEEDED = "payment_intent.succeeded"
PAYMENT_FAILED = "payment_intent.payment_failed"
SESSION_EXPIRED = "checkout.session.expired"

Event = Dict[str, Any]


def verify_event(raw_body: bytes, signature_header: Optional[str], secret: Optional[str],
                 tolerance: int = stripe.Webhook.DEFAULT_TOLERANCE) -> Event:
    if not secret:
        logger.warning("Webhook secret not configured; rejecting webhook")
        raise SignatureInvalid("Webhook secret not configured")
    if not signature_header:
        logger.warning("Webhook rejected: missing Stripe-Signature header")
        raise SignatureInvalid()

    try:
        payload = raw_body.decode("utf-8")
        stripe.WebhookSignature.verify_header(payload, signature_header, secret, tolerance)
        event = json.loads(payload)
    except (UnicodeDecodeError, ValueError, stripe.SignatureVerificationError) as e:
        logger.warning("Webhook signature verification failed: %s", e)
        raise SignatureInvalid() from e

    if not isinstance(event, dict) or not isinstance(event.get("type"), str):
        logger.warning("Webhook rejected: payload is not an event object")
        raise SignatureInvalid()
    return event


def _data_object(event: Event) -> Dict[str, Any]:
    obj = (event.get("data") or {}).get("object")
    return obj if isinstance(obj, dict) else {}


class PaymentHooks(Protocol):
    """Side-effect callback points (enrollment email, course access, persistence)."""

    async def checkout_completed(self, event: Event) -> None: ...

    async def payment_intent_succeeded(self, event: Event) -> None: ...

    async def payment_failed(self, event: Event) -> None: ...

    async def session_expired(self, event: Event) -> None: ...


class NoopPaymentHooks:
    async def checkout_completed(self, event: Event) -> None:
        pass

    async def payment_intent_succeeded(self, event: Event) -> None:
        pass

    async def payment_failed(self, event: Event) -> None:
        pass

    async def session_expired(self, event: Event) -> None:
        pass


class EventDispatcher:
    def __init__(self, hooks: Optional[PaymentHooks] = None):
        self.hooks = hooks if hooks is not None else NoopPaymentHooks()
        self._table: Dict[str, Callable[[Event], Awaitable[None]]] = {
            CHECKOUT_COMPLETED: self._checkout_completed,
            PAYMENT_INTENT_SUCCEEDED: self._payment_intent_succeeded,
            PAYMENT_FAILED: self._payment_failed,
            SESSION_EXPIRED: self._session_expired,
        }

    async def dispatch(self, event: Event) -> bool:
        """Run the handler for event["type"]. Returns False if the handler raised."""
        etype = event.get("type")
        handler = self._table.get(etype)
        if handler is None:
            logger.info("Unhandled event type: %s", etype)
            return True
        try:
            await handler(event)
        except Exception:
            logger.exception("Webhook handler for %s failed (event %s)", etype, event.get("id"))
            return False
        return True

    async def _checkout_completed(self, event: Event) -> None:
        session = _data_object(event)
        amount_total = session.get("amount_total")
        logger.info(
            "Payment successful: session=%s email=%s amount=%s courses=%s",
            session.get("id"),
            session.get("customer_email"),
            amount_total / 100 if isinstance(amount_total, (int, float)) else None,
            (session.get("metadata") or {}).get("courses"),
        )
        await self.hooks.checkout_completed(event)

    async def _payment_intent_succeeded(self, event: Event) -> None:
        logger.info("PaymentIntent succeeded: %s", _data_object(event).get("id"))
        await self.hooks.payment_intent_succeeded(event)

    async def _payment_failed(self, event: Event) -> None:
        intent = _data_object(event)
        last_error = intent.get("last_payment_error") or {}
        logger.warning("Payment failed: id=%s error=%s", intent.get("id"), last_error.get("message"))
        await self.hooks.payment_failed(event)

    async def _session_expired(self, event: Event) -> None:
        logger.info("Session expired: %s", _data_object(event).get("id"))
        await self.hooks.session_expired(event)


class WebhookReceiver:
    def __init__(self, secret: Optional[str], dispatcher: EventDispatcher,
                 event_store: Optional[EventStore] = None,
                 tolerance: int = stripe.Webhook.DEFAULT_TOLERANCE):
        self.secret = secret
        self.dispatcher = dispatcher
        self.event_store = event_store if event_store is not None else InMemoryEventStore()
        self.tolerance = tolerance

    async def handle_webhook(self, raw_body: bytes, signature_header: Optional[str]) -> WebhookAck:
        event = verify_event(raw_body, signature_header, self.secret, self.tolerance)

        event_id = event.get("id")
        if event_id:
            fresh = await run_in_threadpool(self.event_store.claim, event_id, event["type"])
            if not fresh:
                logger.info("Duplicate webhook event %s ignored", event_id)
                return WebhookAck(duplicate=True)

        await self.dispatcher.dispatch(event)
        return WebhookAck()
