"""
Pytest configuration and shared fixtures.

This module provides common fixtures for ledger tests:
- An in-memory SQLite database with the `app` schema translated away
- A fake clock for deterministic TTL and staleness
- A mocked exchange rate provider quoting against USD
- A seeded ledger (accounts, payment methods, categories, a tag)
"""
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from finance_ledger.db.models import (
    Account,
    Budget,
    Category,
    PaymentMethod,
    Tag,
    Transaction,
    TransactionType,
    transaction_tags,
)
from finance_ledger.db.session import Base, make_session_factory
from finance_ledger.services.exchange_rate_provider import ExchangeRateProvider
from finance_ledger.services.exchange_rate_service import ExchangeRateService


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


# ==================== Database Fixtures ====================

@pytest.fixture
async def engine():
    """In-memory SQLite engine shared across connections, tables created fresh per test."""
    test_engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    ).execution_options(schema_translate_map={"app": None})

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


# ==================== Clock and Provider Fixtures ====================

@pytest.fixture
def fake_clock():
    """Clock fixed at 2025-01-15 12:00 UTC."""
    return FakeClock(datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def usd_quotes():
    """Provider quotes: units of each currency per 1 USD."""
    return {
        "USD": Decimal("1"),
        "EUR": Decimal("0.92"),
        "GBP": Decimal("0.79"),
        "UAH": Decimal("41.5"),
    }


@pytest.fixture
def mock_provider(usd_quotes):
    """
    Mock exchange rate provider quoting everything against USD.
    Set fetch_all.side_effect to RateFetchError to simulate an outage.
    """
    mock = Mock(spec=ExchangeRateProvider)
    mock.base_currency = "USD"
    mock.provider_name = "test-provider"
    mock.fetch_all = AsyncMock(return_value=usd_quotes)
    return mock


@pytest.fixture
def rate_service(db_session, mock_provider, fake_clock):
    return ExchangeRateService(db_session, mock_provider, clock=fake_clock, cache_ttl_hours=24)


# ==================== Sample Ledger Fixtures ====================

@pytest.fixture
async def ledger(db_session):
    """
    Seed one USD-based account with USD, EUR and UAH payment methods, an
    inactive GBP one, expense/income categories and a tag, plus a second
    account owning its own USD card.
    """
    owner = Account(name="Alice", email="alice@example.com", base_currency="USD")
    stranger = Account(name="Bob", email="bob@example.com", base_currency="USD")
    db_session.add_all([owner, stranger])
    await db_session.flush()

    usd_card = PaymentMethod(account_id=owner.id, name="USD Card", currency="USD", is_default=True)
    eur_savings = PaymentMethod(account_id=owner.id, name="EUR Savings", currency="EUR")
    uah_cash = PaymentMethod(account_id=owner.id, name="UAH Cash", currency="UAH")
    gbp_closed = PaymentMethod(account_id=owner.id, name="Old GBP", currency="GBP", is_active=False)
    stranger_card = PaymentMethod(account_id=stranger.id, name="Bob Card", currency="USD")

    groceries = Category(account_id=owner.id, name="Groceries", type="expense")
    salary = Category(account_id=owner.id, name="Salary", type="income")
    travel = Tag(account_id=owner.id, name="travel")

    db_session.add_all([usd_card, eur_savings, uah_cash, gbp_closed, stranger_card, groceries, salary, travel])
    await db_session.commit()

    return SimpleNamespace(
        owner=owner,
        stranger=stranger,
        usd_card=usd_card,
        eur_savings=eur_savings,
        uah_cash=uah_cash,
        gbp_closed=gbp_closed,
        stranger_card=stranger_card,
        groceries=groceries,
        salary=salary,
        travel=travel,
    )


@pytest.fixture
def add_entry(db_session):
    """
    Factory inserting an income or expense row directly.

    amount is the base-currency value; native defaults to amount.
    """
    async def _add(
        ledger,
        payment_method,
        transaction_type: TransactionType,
        amount: str,
        on: date,
        native: str = None,
        category=None,
        tag=None,
        rate: str = "1",
    ) -> Transaction:
        if category is None:
            category = ledger.groceries if transaction_type == TransactionType.EXPENSE else ledger.salary

        entry = Transaction(
            account_id=payment_method.account_id,
            payment_method_id=payment_method.id,
            category_id=category.id,
            type=transaction_type,
            date=on,
            description=f"{transaction_type.value} {amount}",
            amount=Decimal(amount),
            native_amount=Decimal(native or amount),
            exchange_rate=Decimal(rate),
            base_currency="USD",
        )
        db_session.add(entry)
        await db_session.flush()

        if tag is not None:
            await db_session.execute(
                transaction_tags.insert().values(transaction_id=entry.id, tag_id=tag.id)
            )

        await db_session.commit()
        return entry

    return _add


@pytest.fixture
def add_budget(db_session):
    """Factory inserting a monthly budget for a category or a tag."""
    async def _add(account, amount: str, period: date, category=None, tag=None) -> Budget:
        budget = Budget(
            account_id=account.id,
            category_id=category.id if category is not None else None,
            tag_id=tag.id if tag is not None else None,
            amount=Decimal(amount),
            period=period,
        )
        db_session.add(budget)
        await db_session.commit()
        return budget

    return _add
