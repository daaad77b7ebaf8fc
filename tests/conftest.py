"""
Pytest fixtures for the purchasing test suite.

Provides:
- Structured logging configuration and captured JSON logs
- A deterministic clock
- In-memory repository, sequence allocator and service
- SQLite-backed sessions for the SQLAlchemy repository
- Order builders for common lifecycle positions

Environment Variables:
- DATABASE_URL: SQLAlchemy URL for the SQL repository tests.
  Defaults to an in-memory SQLite database.
"""

import json
import logging
import os
from collections.abc import Callable
from datetime import UTC, datetime
from io import StringIO
from typing import Any, Generator

import pytest
from sqlalchemy.orm import Session

from purchasing_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from purchasing_kernel.domain.clock import DeterministicClock
from purchasing_kernel.domain.statuses import PurchaseOrderStatus
from purchasing_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from purchasing_kernel.services.sequence_service import InMemorySequenceService
from purchasing_modules.purchase_order.models import PurchaseOrder
from purchasing_modules.purchase_order.repository import InMemoryPurchaseOrderRepository
from purchasing_modules.purchase_order.service import PurchaseOrderService

TEST_ACTOR = "buyer-001"
TEST_NOW = datetime(2024, 3, 15, 9, 30, tzinfo=UTC)


def line_input(
    product_id: str = "P-100",
    quantity: Any = "100",
    unit_price: Any = "10",
    **extra: Any,
) -> dict[str, Any]:
    """Build a line-item mapping for ``create_order``."""
    data = {
        "product_id": product_id,
        "product_name": f"Product {product_id}",
        "quantity": quantity,
        "unit_price": unit_price,
    }
    data.update(extra)
    return data


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow_locks: mark test as exercising per-order locks across threads"
    )


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture purchasing logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, service):
            service.create_order(...)
            logs = captured_logs()
            assert any(r["message"] == "purchase_order_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("purchasing")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# In-memory service fixtures
# =============================================================================


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(TEST_NOW)


@pytest.fixture
def repository() -> InMemoryPurchaseOrderRepository:
    return InMemoryPurchaseOrderRepository()


@pytest.fixture
def sequences() -> InMemorySequenceService:
    return InMemorySequenceService()


@pytest.fixture
def service(repository, sequences, clock) -> PurchaseOrderService:
    return PurchaseOrderService(repository, sequences, clock=clock)


@pytest.fixture
def make_order(service) -> Callable[..., PurchaseOrder]:
    """
    Create an order and walk it to the requested status.

    Usage::

        order = make_order(status=PurchaseOrderStatus.ORDERED,
                           lines=[line_input(quantity="100")])
    """

    def _make(
        status: PurchaseOrderStatus = PurchaseOrderStatus.DRAFT,
        lines: list[dict] | None = None,
        **kwargs: Any,
    ) -> PurchaseOrder:
        kwargs.setdefault("supplier_id", "SUP-001")
        kwargs.setdefault("supplier_name", "Acme Supplies")
        order = service.create_order(lines=lines or [line_input()], **kwargs)
        path = {
            PurchaseOrderStatus.DRAFT: (),
            PurchaseOrderStatus.PENDING: (PurchaseOrderStatus.PENDING,),
            PurchaseOrderStatus.APPROVED: (
                PurchaseOrderStatus.PENDING,
                PurchaseOrderStatus.APPROVED,
            ),
            PurchaseOrderStatus.ORDERED: (
                PurchaseOrderStatus.PENDING,
                PurchaseOrderStatus.APPROVED,
                PurchaseOrderStatus.ORDERED,
            ),
            PurchaseOrderStatus.CANCELLED: (PurchaseOrderStatus.CANCELLED,),
        }[status]
        for step in path:
            order = service.change_status(order.id, step, actor=TEST_ACTOR)
        return order

    return _make


# =============================================================================
# SQL fixtures
# =============================================================================


def get_database_url() -> str:
    """Get database URL from environment, or use in-memory SQLite."""
    return os.environ.get("DATABASE_URL", "sqlite:///:memory:")


@pytest.fixture
def db_session() -> Generator[Session, None, None]:
    """A session on freshly created tables, dropped after the test."""
    init_engine_from_url(get_database_url())
    create_tables()
    session = get_session()
    try:
        yield session
    finally:
        session.close()
        drop_tables()
        reset_engine()
