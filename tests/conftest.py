import os
import pytest
from decimal import Decimal
from httpx import AsyncClient, ASGITransport
from typing import AsyncGenerator, Dict
from unittest.mock import MagicMock

# Set test environment vars before importing app
os.environ["ENVIRONMENT"] = "testing"
os.environ["ORDER_STORE"] = "memory"
os.environ["PAYOS_CLIENT_ID"] = "test-client"
os.environ["PAYOS_API_KEY"] = "test-api-key"
os.environ["PAYOS_CHECKSUM_KEY"] = "test-checksum-key"
os.environ["PAYOS_BASE_URL"] = "https://payos.test"
os.environ["JWT_SECRET"] = "super-secret-test-key-32-chars-long"

from main import app
from core.config import settings
from core.security import create_service_token
from models import PaymentOrder
from routers.payments import get_payment_service
from services.dispatcher import Dispatcher
from services.events import EventPublisher
from services.order_store import InMemoryOrderStore
from services.payment_service import PaymentService
from services.reconciliation import ReconciliationEngine

from tests.helpers import SECRET, FakeGateway


@pytest.fixture
def secret() -> bytes:
    return SECRET


@pytest.fixture
def gateway_config():
    return settings.gateway_config()


@pytest.fixture
def store() -> InMemoryOrderStore:
    return InMemoryOrderStore()


@pytest.fixture
def published() -> list:
    return []


@pytest.fixture
def publisher(published) -> EventPublisher:
    pub = EventPublisher()
    pub.subscribe(published.append)
    return pub


@pytest.fixture
def sleeps() -> list:
    return []


@pytest.fixture
def engine(store, publisher, sleeps) -> ReconciliationEngine:
    return ReconciliationEngine(store, publisher, max_attempts=5, sleep=sleeps.append)


@pytest.fixture
def dispatcher(engine, gateway_config) -> Dispatcher:
    return Dispatcher(engine, gateway_config)


@pytest.fixture
def fake_gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def payment_service(store, fake_gateway, dispatcher, gateway_config) -> PaymentService:
    return PaymentService(store, fake_gateway, dispatcher, gateway_config)


@pytest.fixture
def make_order(store):
    def _make(order_reference: str = "ORD1", internal_id: str = "appointment-42", amount: str = "150000"):
        return store.create_if_absent(PaymentOrder(
            order_reference=order_reference,
            internal_id=internal_id,
            amount=Decimal(amount),
        ))
    return _make


# Mock Supabase
@pytest.fixture
def mock_supabase():
    mock_instance = MagicMock()

    # Simple chain mocking setup
    def make_chain(return_val):
        chain = MagicMock()
        chain.select.return_value = chain
        chain.insert.return_value = chain
        chain.update.return_value = chain
        chain.eq.return_value = chain
        chain.order.return_value = chain
        chain.execute.return_value = MagicMock(data=return_val)
        return chain

    tables = {}

    def table_func(table_name):
        if table_name not in tables:
            tables[table_name] = make_chain([])
        return tables[table_name]

    mock_instance.table.side_effect = table_func
    return mock_instance


@pytest.fixture
def service_headers() -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_service_token('booking-service')}"}


@pytest.fixture
async def async_client(payment_service) -> AsyncGenerator[AsyncClient, None]:
    app.dependency_overrides[get_payment_service] = lambda: payment_service
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
