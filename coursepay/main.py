import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import uvicorn
from fastapi import Body, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, PlainTextResponse
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from .checkout import CheckoutProvider, CheckoutService
from .db import EventStore, InMemoryEventStore, PostgresEventStore
from .errors import ConfigError, CoursePayError, InvalidRequest, NotFound, SignatureInvalid
from .models import CheckoutSession, HealthStatus, PublicConfig, WebhookAck
from .provider import StripeCheckoutClient
from .settings import Settings
from .webhooks import EventDispatcher, PaymentHooks, WebhookReceiver

logger = logging.getLogger(__name__)

STATIC_DIR = Path(__file__).parent / "static"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def create_app(settings: Settings,
               provider: Optional[CheckoutProvider] = None,
               hooks: Optional[PaymentHooks] = None,
               event_store: Optional[EventStore] = None) -> FastAPI:
    if provider is None:
        provider = StripeCheckoutClient(
            settings.stripe_secret_key,
            api_base=settings.stripe_api_base,
            timeout=settings.provider_timeout_seconds,
        )
    if event_store is None:
        if settings.database_url:
            event_store = PostgresEventStore(settings.database_url)
        else:
            event_store = InMemoryEventStore()

    checkout = CheckoutService(settings, provider)
    receiver = WebhookReceiver(
        settings.stripe_webhook_secret,
        EventDispatcher(hooks),
        event_store=event_store,
        tolerance=settings.webhook_tolerance_seconds,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Course registration API starting on port %s (Stripe mode: %s, origins: %s)",
                    settings.port, settings.mode, ",".join(settings.allowed_origins))
        if not settings.stripe_webhook_secret:
            logger.warning("Webhook secret not configured; /webhook will reject all events")
        if isinstance(event_store, PostgresEventStore):
            await run_in_threadpool(event_store.ensure_schema)
        yield
        logger.info("Course registration API shutting down")

    app = FastAPI(title="Course Registration Payments", version="0.1.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.allowed_origins),
        allow_credentials="*" not in settings.allowed_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ---- Errors ----

    @app.exception_handler(CoursePayError)
    async def coursepay_error(request: Request, exc: CoursePayError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        err = InvalidRequest("Malformed request body")
        return JSONResponse(status_code=err.status_code, content=err.to_dict())

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            err = NotFound(f"Endpoint {request.method} {request.url.path} not found")
            return JSONResponse(status_code=404, content=err.to_dict())
        return JSONResponse(status_code=exc.status_code,
                            content={"error": str(exc.detail), "message": str(exc.detail)})

    @app.exception_handler(Exception)
    async def internal_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        message = str(exc) if settings.is_development else "Something went wrong"
        return JSONResponse(status_code=500,
                            content={"error": "Internal server error", "message": message})

    # ---- Routes ----

    @app.get("/", response_model=HealthStatus, response_model_exclude_none=True)
    def root():
        return HealthStatus(message="Course Registration API is running",
                            timestamp=_now(), mode=settings.mode)

    @app.get("/health", response_model=HealthStatus, response_model_exclude_none=True)
    def health():
        return HealthStatus(message="Server is healthy", timestamp=_now())

    @app.get("/config", response_model=PublicConfig)
    def public_config():
        return PublicConfig(publishableKey=settings.stripe_publishable_key)

    @app.post("/create-checkout-session", response_model=CheckoutSession)
    async def create_checkout_session(request: Request, payload: Any = Body(...)):
        origin = request.headers.get("origin") or str(request.base_url)
        return await checkout.create_checkout_session(payload, origin)

    @app.post("/webhook", response_model=WebhookAck)
    async def webhook(request: Request,
                      stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature")):
        # Signature is computed over the exact bytes, so the body is never parsed here.
        raw_body = await request.body()
        try:
            return await receiver.handle_webhook(raw_body, stripe_signature)
        except SignatureInvalid as e:
            return PlainTextResponse(f"Webhook Error: {e.message}", status_code=e.status_code)

    @app.get("/success.html", include_in_schema=False)
    def success_page():
        return FileResponse(STATIC_DIR / "success.html")

    @app.get("/cancel.html", include_in_schema=False)
    def cancel_page():
        return FileResponse(STATIC_DIR / "cancel.html")

    return app


def run() -> None:
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", level=logging.INFO
    )
    try:
        settings = Settings.from_env()
    except ConfigError as e:
        logger.error("Refusing to start: %s", e)
        sys.exit(1)

    logging.getLogger().setLevel(settings.log_level)

    # uvicorn stops accepting connections and exits cleanly on SIGTERM/SIGINT.
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)
