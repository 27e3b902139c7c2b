"""
Unit tests for ExchangeRateRepository against an in-memory database.

Tests cover:
- Upsert keeps one row per ordered pair and resets failure state
- Inverse pairs are independent rows
- The stale sweep and the staleness indicator
"""
import pytest
from datetime import timedelta
from decimal import Decimal

from finance_ledger.repositories.exchange_rate_repository import ExchangeRateRepository


@pytest.fixture
def repository(db_session):
    return ExchangeRateRepository(db_session)


class TestUpsert:
    """Test last-write-wins upserts."""

    @pytest.mark.asyncio
    async def test_upsert_overwrites_existing_pair(self, repository, db_session, fake_clock):
        """Test a second upsert updates the row instead of adding one."""
        now = fake_clock()
        await repository.upsert("USD", "EUR", Decimal("0.90"), "api", now, now + timedelta(hours=24))
        await repository.upsert("USD", "EUR", Decimal("0.93"), "api", now, now + timedelta(hours=24))
        await db_session.commit()

        row = await repository.lookup("USD", "EUR")

        assert await repository.count() == 1
        assert row.rate == Decimal("0.93")

    @pytest.mark.asyncio
    async def test_upsert_resets_error_state(self, repository, db_session, fake_clock):
        """Test a successful write clears is_stale and error_count."""
        now = fake_clock()
        await repository.upsert("USD", "EUR", Decimal("0.90"), "api", now, now)
        await repository.increment_error_count("USD", "EUR")
        await repository.increment_error_count("USD", "EUR")
        await repository.mark_expired_as_stale(now)
        await db_session.commit()

        failing = await repository.lookup("USD", "EUR")
        assert failing.error_count == 2
        assert failing.is_stale is True

        await repository.upsert("USD", "EUR", Decimal("0.91"), "api", now, now + timedelta(hours=24))
        await db_session.commit()

        row = await repository.lookup("USD", "EUR")
        assert row.error_count == 0
        assert row.is_stale is False

    @pytest.mark.asyncio
    async def test_pairs_are_ordered(self, repository, db_session, fake_clock):
        """Test (A, B) and (B, A) are separate rows."""
        now = fake_clock()
        await repository.upsert("USD", "EUR", Decimal("0.92"), "api", now, None)
        await db_session.commit()

        assert await repository.lookup("EUR", "USD") is None

    @pytest.mark.asyncio
    async def test_increment_without_row_is_noop(self, repository, db_session):
        """Test counting a failure for an unknown pair writes nothing."""
        await repository.increment_error_count("USD", "JPY")
        await db_session.commit()

        assert await repository.count() == 0


class TestStaleness:
    """Test the stale sweep and the read-path indicator."""

    @pytest.mark.asyncio
    async def test_mark_expired_skips_manual_and_fresh(self, repository, db_session, fake_clock):
        """Test only expiring rows past their expiry are flagged."""
        now = fake_clock()
        await repository.upsert("USD", "EUR", Decimal("0.92"), "api", now, now - timedelta(minutes=1))
        await repository.upsert("USD", "GBP", Decimal("0.79"), "api", now, now + timedelta(hours=1))
        await repository.upsert("GBP", "EUR", Decimal("1.17"), "manual", now, None)
        await db_session.commit()

        assert await repository.mark_expired_as_stale(now) == 1
        assert await repository.mark_expired_as_stale(now) == 0

    @pytest.mark.asyncio
    async def test_has_stale_rates(self, repository, db_session, fake_clock):
        """Test the indicator looks at currency -> base rows only."""
        now = fake_clock()
        await repository.upsert("EUR", "USD", Decimal("1.08"), "api", now, now + timedelta(hours=1))
        await repository.upsert("UAH", "USD", Decimal("0.024"), "api", now, now - timedelta(hours=1))
        await db_session.commit()

        assert await repository.has_stale_rates(["USD", "EUR"], "USD", now) is False
        assert await repository.has_stale_rates(["USD", "EUR", "UAH"], "USD", now) is True
        assert await repository.has_stale_rates(["USD"], "USD", now) is False

    @pytest.mark.asyncio
    async def test_missing_rate_counts_as_stale(self, repository, db_session, fake_clock):
        """Test a currency with no cached row to the base raises the indicator."""
        now = fake_clock()
        await repository.upsert("EUR", "USD", Decimal("1.08"), "api", now, now + timedelta(hours=1))
        await repository.upsert("USD", "GBP", Decimal("0.79"), "api", now, now + timedelta(hours=1))
        await db_session.commit()

        assert await repository.has_stale_rates(["USD", "EUR", "GBP"], "USD", now) is True
        assert await repository.has_stale_rates(["EUR", "EUR"], "USD", now) is False

    @pytest.mark.asyncio
    async def test_lookup_fresh_for_base(self, repository, db_session, fake_clock):
        """Test only unexpired rows from the base are listed."""
        now = fake_clock()
        await repository.upsert("USD", "EUR", Decimal("0.92"), "api", now, now + timedelta(hours=1))
        await repository.upsert("USD", "UAH", Decimal("41.5"), "api", now, now - timedelta(hours=1))
        await repository.upsert("EUR", "USD", Decimal("1.08"), "api", now, now + timedelta(hours=1))
        await db_session.commit()

        rows = await repository.lookup_fresh_for_base("USD", now)

        assert [row.to_currency for row in rows] == ["EUR"]
