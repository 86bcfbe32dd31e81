from __future__ import annotations

import pytest

from payment_service.app.config import StripeConfig

from payment_service.tests.fakes import WEBHOOK_SECRET, FakePaymentGateway, InMemoryOrderRepository


@pytest.fixture
def stripe_config() -> StripeConfig:
    return StripeConfig(
        secret_key="sk_test_dummy",
        webhook_secret=WEBHOOK_SECRET,
        webhook_tolerance=300,
        currency="usd",
    )


@pytest.fixture
def repo() -> InMemoryOrderRepository:
    return InMemoryOrderRepository()


@pytest.fixture
def gateway() -> FakePaymentGateway:
    return FakePaymentGateway()
