"""
Integration tests for the HTTP API.

The app runs over httpx's ASGI transport with the database dependency bound
to the in-memory test session and the rate provider replaced by the mock.
"""
import pytest
from datetime import date
from decimal import Decimal

import httpx

from finance_ledger.api.dependencies import get_exchange_rate_provider
from finance_ledger.api.main import app
from finance_ledger.core.config import settings
from finance_ledger.core.exceptions import RateFetchError
from finance_ledger.db.models import TransactionType
from finance_ledger.db.session import get_db


@pytest.fixture
async def client(db_session, mock_provider):
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_exchange_rate_provider] = lambda: mock_provider

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def owner_headers(ledger):
    return {"X-Account-Id": str(ledger.owner.id)}


def transfer_body(source, destination, amount="100"):
    return {
        "sourcePaymentMethodId": source.id,
        "destinationPaymentMethodId": destination.id,
        "amount": amount,
        "date": "2025-01-15",
    }


class TestHealth:

    @pytest.mark.asyncio
    async def test_root(self, client):
        response = await client.get("/")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_health_checks_database(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        checks = response.json()["checks"]
        assert checks["database"]["status"] == "healthy"
        assert "rate_refresh" in checks


class TestExchangeRateEndpoints:

    @pytest.mark.asyncio
    async def test_get_rate(self, client):
        response = await client.get("/api/exchange-rates/usd/eur")

        assert response.status_code == 200
        body = response.json()
        assert body["fromCurrency"] == "USD"
        assert body["toCurrency"] == "EUR"
        assert Decimal(str(body["rate"])) == Decimal("0.92")
        assert body["source"] == "api"

    @pytest.mark.asyncio
    async def test_get_rate_not_found(self, client, mock_provider):
        mock_provider.fetch_all.side_effect = RateFetchError("provider down")

        response = await client.get("/api/exchange-rates/USD/EUR")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_invalid_currency_code(self, client):
        response = await client.get("/api/exchange-rates/US1/EUR")

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_convert_amount(self, client):
        response = await client.get(
            "/api/exchange-rates/convert", params={"amount": "10", "from": "usd", "to": "uah"}
        )

        assert response.status_code == 200
        body = response.json()
        assert Decimal(str(body["convertedAmount"])) == Decimal("415")
        assert body["toCurrency"] == "UAH"

    @pytest.mark.asyncio
    async def test_convert_amount_without_rate_is_404(self, client, mock_provider):
        mock_provider.fetch_all.side_effect = RateFetchError("provider down")

        response = await client.get(
            "/api/exchange-rates/convert", params={"amount": "10", "from": "USD", "to": "EUR"}
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_manual_rate_then_all_rates(self, client):
        response = await client.put(
            "/api/exchange-rates/manual",
            json={"fromCurrency": "USD", "toCurrency": "GBP", "rate": "0.8"}
        )
        assert response.status_code == 200
        assert response.json()["success"] is True

        rates = await client.get("/api/exchange-rates/USD")

        assert rates.status_code == 200
        assert Decimal(str(rates.json()["rates"]["GBP"])) == Decimal("0.8")

    @pytest.mark.asyncio
    async def test_manual_rate_rejects_zero(self, client):
        response = await client.put(
            "/api/exchange-rates/manual",
            json={"fromCurrency": "USD", "toCurrency": "GBP", "rate": "0"}
        )

        assert response.status_code == 400
        assert response.json()["success"] is False


class TestCronEndpoint:

    @pytest.fixture(autouse=True)
    def cron_secret(self, monkeypatch):
        monkeypatch.setattr(settings, "exchange_rate_cron_secret", "s3cret")

    @pytest.mark.asyncio
    async def test_requires_bearer_secret(self, client):
        missing = await client.get("/api/cron/refresh-rates")
        wrong = await client.get("/api/cron/refresh-rates", headers={"Authorization": "Bearer nope"})

        assert missing.status_code == 401
        assert wrong.status_code == 401

    @pytest.mark.asyncio
    async def test_refreshes_active_currencies(self, client, ledger):
        response = await client.get("/api/cron/refresh-rates", headers={"Authorization": "Bearer s3cret"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["refreshedCount"] == 6
        assert body["markedStale"] == 0

    @pytest.mark.asyncio
    async def test_other_methods_not_allowed(self, client):
        response = await client.post("/api/cron/refresh-rates", headers={"Authorization": "Bearer s3cret"})

        assert response.status_code == 405

    @pytest.mark.asyncio
    async def test_total_outage_is_503(self, client, mock_provider):
        mock_provider.fetch_all.side_effect = RateFetchError("provider down")

        response = await client.get("/api/cron/refresh-rates", headers={"Authorization": "Bearer s3cret"})

        assert response.status_code == 503
        assert response.json()["failedCount"] > 0


class TestTransferEndpoints:

    @pytest.mark.asyncio
    async def test_create_get_and_delete(self, client, ledger, owner_headers):
        created = await client.post(
            "/api/transfers",
            json=transfer_body(ledger.usd_card, ledger.eur_savings),
            headers=owner_headers
        )

        assert created.status_code == 201
        body = created.json()
        assert Decimal(str(body["sourceAmount"])) == Decimal("-100")
        assert Decimal(str(body["destinationAmount"])) == Decimal("92")
        assert body["rateSource"] == "api"

        fetched = await client.get(f"/api/transfers/{body['destinationTransactionId']}", headers=owner_headers)
        assert fetched.status_code == 200
        assert fetched.json()["sourceTransactionId"] == body["sourceTransactionId"]
        assert fetched.json()["sourcePaymentMethod"]["currency"] == "USD"

        listed = await client.get("/api/transfers", headers=owner_headers)
        assert listed.json()["totalTransfers"] == 1

        deleted = await client.delete(f"/api/transfers/{body['sourceTransactionId']}", headers=owner_headers)
        assert deleted.status_code == 200
        assert len(deleted.json()["deletedTransactionIds"]) == 2

        again = await client.delete(f"/api/transfers/{body['sourceTransactionId']}", headers=owner_headers)
        assert again.status_code == 200
        assert again.json()["deletedTransactionIds"] == []

    @pytest.mark.asyncio
    async def test_same_payment_method_is_400(self, client, ledger, owner_headers):
        response = await client.post(
            "/api/transfers",
            json=transfer_body(ledger.usd_card, ledger.usd_card),
            headers=owner_headers
        )

        assert response.status_code == 400
        assert response.json()["success"] is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", ["1e27", "NaN", "0", "10.005"])
    async def test_unstorable_amount_is_422(self, client, ledger, owner_headers, amount):
        response = await client.post(
            "/api/transfers",
            json=transfer_body(ledger.usd_card, ledger.eur_savings, amount=amount),
            headers=owner_headers
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_rate_unavailable_is_503(self, client, ledger, owner_headers, mock_provider):
        mock_provider.fetch_all.side_effect = RateFetchError("provider down")

        response = await client.post(
            "/api/transfers",
            json=transfer_body(ledger.usd_card, ledger.eur_savings),
            headers=owner_headers
        )

        assert response.status_code == 503

    @pytest.mark.asyncio
    async def test_missing_account_header(self, client, ledger):
        response = await client.get("/api/transfers")

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_integrity_report(self, client, ledger, owner_headers):
        await client.post(
            "/api/transfers",
            json=transfer_body(ledger.usd_card, ledger.eur_savings),
            headers=owner_headers
        )

        response = await client.get("/api/transfers/integrity", headers=owner_headers)

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert response.json()["checkedCount"] == 2

    @pytest.mark.asyncio
    async def test_unknown_transfer_is_404(self, client, ledger, owner_headers):
        response = await client.get("/api/transfers/9999", headers=owner_headers)

        assert response.status_code == 404


class TestBalanceEndpoints:

    @pytest.mark.asyncio
    async def test_balance_and_budget(self, client, ledger, owner_headers, add_entry, add_budget):
        await add_entry(ledger, ledger.usd_card, TransactionType.INCOME, "500", date(2025, 1, 3))
        await add_entry(ledger, ledger.usd_card, TransactionType.EXPENSE, "50", date(2025, 1, 5))
        budget = await add_budget(ledger.owner, "100", date(2025, 1, 1), category=ledger.groceries)

        balance = await client.get("/api/balances", headers=owner_headers)
        assert balance.status_code == 200
        assert Decimal(str(balance.json()["balance"])) == Decimal("450")
        assert balance.json()["baseCurrency"] == "USD"

        spent = await client.get(
            "/api/budgets/spent",
            params={"period": "2025-01-15", "categoryId": ledger.groceries.id},
            headers=owner_headers
        )
        assert spent.status_code == 200
        assert Decimal(str(spent.json()["spent"])) == Decimal("50")
        assert spent.json()["periodStart"] == "2025-01-01"

        breakdown = await client.get(f"/api/budgets/{budget.id}/breakdown", headers=owner_headers)
        assert breakdown.status_code == 200
        assert Decimal(str(breakdown.json()["breakdown"][0]["percentOfLimit"])) == Decimal("50")

        pm_balance = await client.get(
            f"/api/balances/payment-methods/{ledger.usd_card.id}", headers=owner_headers
        )
        assert Decimal(str(pm_balance.json()["balance"])) == Decimal("450")

    @pytest.mark.asyncio
    async def test_budget_spent_requires_filter(self, client, ledger, owner_headers):
        response = await client.get("/api/budgets/spent", params={"period": "2025-01-15"}, headers=owner_headers)

        assert response.status_code == 400
