"""Pytest configuration and fixtures for optimist testing.

Provides in-memory fakes for every outer boundary (recovery RPC, broadcast
channel, cart backend) plus a controllable clock, so coordinator and
executor tests run without a network or real delays.
"""

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any

import pytest
import pytest_asyncio
from kungfu import Some
from loguru import logger

from optimist.broadcast import InvalidationBroadcaster
from optimist.cache import CacheStore
from optimist.commerce import CartState, Product
from optimist.commerce import add_item as project_add
from optimist.commerce import remove_item as project_remove
from optimist.commerce import update_quantity as project_update
from optimist.errors import ErrorKind, MutationFailure
from optimist.mutation import MutationCoordinator
from optimist.recovery import (
    BoundaryRequest,
    BoundaryResponse,
    ErrorJournal,
    MemoryLedger,
    RecoveryConfig,
    RecoveryExecutor,
    notifier_from,
)


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeBoundary:
    """Recovery boundary that records requests and answers with a canned row."""

    def __init__(self) -> None:
        self.requests: list[BoundaryRequest] = []
        self.response: BoundaryResponse | dict[str, Any] = {
            "success": True,
            "action": "compensate",
            "attempts": 1,
            "recovered": True,
            "compensation_applied": True,
            "message": "Compensated",
        }
        self.raises: Exception | None = None
        self.gate: asyncio.Event | None = None

    async def recover(self, request: BoundaryRequest) -> BoundaryResponse:
        self.requests.append(request)
        if self.gate is not None:
            await self.gate.wait()
        if self.raises is not None:
            raise self.raises
        if isinstance(self.response, BoundaryResponse):
            return self.response
        return BoundaryResponse.from_mapping(
            self.response, default_action=request.requested_action
        )

    @property
    def calls(self) -> int:
        return len(self.requests)


class FakeChannel:
    """Broadcast channel that records every send."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, dict[str, Any]]] = []
        self.raises: Exception | None = None

    async def send(self, event_name: str, payload: Any) -> None:
        if self.raises is not None:
            raise self.raises
        self.sent.append((event_name, dict(payload)))

    def events(self) -> list[str]:
        return [name for name, _ in self.sent]


class FakeCartService:
    """Authoritative cart backend for one user, held in memory."""

    def __init__(self, cart: CartState | None = None) -> None:
        self.cart = cart or CartState()
        self.calls: list[str] = []
        self.fail_with: Exception | None = None
        self.gate: asyncio.Event | None = None

    async def _write(self, name: str, projector: Callable[..., CartState]) -> CartState:
        self.calls.append(name)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_with is not None:
            raise self.fail_with
        self.cart = projector(Some(self.cart))
        return self.cart

    async def get_cart(self) -> CartState:
        return self.cart

    async def add_item(self, product: Product, quantity: int) -> CartState:
        return await self._write("add_item", project_add(product, quantity))

    async def remove_item(self, product_id: str) -> CartState:
        return await self._write("remove_item", project_remove(product_id))

    async def update_quantity(self, product_id: str, quantity: int) -> CartState:
        return await self._write("update_quantity", project_update(product_id, quantity))

    async def clear_cart(self) -> CartState:
        return await self._write("clear_cart", lambda _: CartState())


@pytest.fixture
def stock_failure() -> MutationFailure:
    return MutationFailure(
        ErrorKind.STOCK_UPDATE_FAILED,
        "Insufficient stock for product",
        code="STOCK_INSUFFICIENT",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def log_messages():
    """Capture loguru records at WARNING and above."""
    messages: list[Any] = []
    handler_id = logger.add(messages.append, level="WARNING", format="{level}|{message}")
    yield messages
    logger.remove(handler_id)


@pytest.fixture
def flush() -> Callable[[], Any]:
    """Let already-scheduled tasks run to completion."""

    async def run() -> None:
        for _ in range(10):
            await asyncio.sleep(0)

    return run


@pytest.fixture
def fast_config() -> RecoveryConfig:
    return RecoveryConfig().with_backoff(base_ms=0, cap_ms=0)


@pytest.fixture
def boundary() -> FakeBoundary:
    return FakeBoundary()


@pytest.fixture
def channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture
def notified() -> list[tuple[Any, Any]]:
    return []


@pytest.fixture
def ledger(clock: FakeClock) -> MemoryLedger:
    return MemoryLedger(clock=clock)


@pytest.fixture
def executor(
    boundary: FakeBoundary,
    fast_config: RecoveryConfig,
    ledger: MemoryLedger,
    notified: list[tuple[Any, Any]],
) -> RecoveryExecutor:
    async def record(context: Any, result: Any) -> None:
        notified.append((context, result))

    return RecoveryExecutor(
        boundary,
        config=fast_config,
        ledger=ledger,
        journal=ErrorJournal(),
        notifier=notifier_from(record),
    )


@pytest.fixture
def store() -> CacheStore:
    return CacheStore()


@pytest_asyncio.fixture
async def coordinator(store: CacheStore, executor: RecoveryExecutor, channel: FakeChannel):
    coordinator = MutationCoordinator(
        store,
        executor,
        InvalidationBroadcaster(store, channel, origin="test"),
    )
    yield coordinator
    await coordinator.drain()
    await store.aclose()


@pytest.fixture
def widget() -> Product:
    return Product(id="p-1", name="Widget", price=Decimal("9.99"), stock_quantity=5)


@pytest.fixture
def gadget() -> Product:
    return Product(id="p-2", name="Gadget", price=Decimal("25.00"), stock_quantity=2)


@pytest.fixture
def cart_service() -> FakeCartService:
    return FakeCartService()
