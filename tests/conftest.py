import pytest
from starlette.testclient import TestClient

from coursepay.db import InMemoryEventStore
from coursepay.main import create_app
from coursepay.models import CheckoutSession
from coursepay.settings import Settings
from tests.utils import WEBHOOK_SECRET


class FakeProvider:
    def __init__(self):
        self.calls = []

    async def create_session(self, params):
        self.calls.append(params)
        n = len(self.calls)
        return CheckoutSession(id=f"cs_test_{n}", url=f"https://checkout.stripe.com/c/pay/cs_test_{n}")


@pytest.fixture
def settings():
    return Settings(
        stripe_secret_key="sk_test_123",
        stripe_publishable_key="pk_test_123",
        stripe_webhook_secret=WEBHOOK_SECRET,
        app_env="test",
    )


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def event_store():
    return InMemoryEventStore()


@pytest.fixture
def app(settings, provider, event_store):
    return create_app(settings, provider=provider, event_store=event_store)


@pytest.fixture
def client(app):
    return TestClient(app)
