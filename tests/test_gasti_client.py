import json
from datetime import date, datetime, timezone

import httpx
import pytest

from conftest import FakeBackend, make_gasti, tx_row
from gastibot.errors import UpstreamError
from gastibot.models import ParsedExpense
from gastibot.services.gasti_client import GastiClient

NOW = datetime(2025, 7, 23, 15, 30, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_create_transaction_payload(config):
    backend = FakeBackend()
    client = make_gasti(config, backend)
    expense = ParsedExpense(amount=45.5, description="Cena con amigos", currency="usd", category="🍽️ Comida")

    created = await client.create_transaction("access-1", expense, NOW)

    request = backend.requests[0]
    assert request.url.path == "/rest/v1/transactions"
    assert request.url.params["select"] == "*"
    assert request.headers["Authorization"] == "Bearer access-1"
    assert request.headers["Prefer"] == "return=representation"

    payload = json.loads(request.content)
    assert payload == {
        "description": "Cena con amigos",
        "amount": -45.5,
        "category": "🍽️ Comida",
        "type": "expense",
        "date": "2025-07-23T15:30:00+00:00",
        "currency": "USD",
        "user_email": "user@example.com",
        "user_id": "user-1",
    }
    assert created.amount == -45.5
    assert created.is_expense


@pytest.mark.asyncio
async def test_create_transaction_error_raises_upstream_error(config):
    client = make_gasti(config, FakeBackend(create_status=409))
    expense = ParsedExpense(amount=1, description="x", currency="USD", category="📦 Otros")

    with pytest.raises(UpstreamError) as excinfo:
        await client.create_transaction("access-1", expense, NOW)

    assert excinfo.value.service == "gasti"
    assert excinfo.value.status == 409


@pytest.mark.asyncio
async def test_transactions_by_period_body_and_parsing(config):
    backend = FakeBackend(
        transactions=[tx_row("2025-07-20", -100, "ARS")],
        summary=[{"currency": "ARS", "expenses": "-100", "income": 0}],
    )
    window = await make_gasti(config, backend).get_transactions_by_period(
        "access-1", date(2020, 1, 1), date(2025, 7, 23)
    )

    assert backend.bodies("/rest/v1/rpc/get_user_transactions_by_period") == [
        {"date_from": "2020-01-01T00:00:00Z", "date_to": "2025-07-23T23:59:59Z"}
    ]
    assert len(window.transactions) == 1
    assert window.transactions[0].currency == "ARS"
    assert window.summary[0].expenses == 100


@pytest.mark.asyncio
async def test_summary_rpc_is_called_with_empty_body(config):
    backend = FakeBackend()
    window = await make_gasti(config, backend).get_transactions_summary("access-1")

    assert backend.bodies("/rest/v1/rpc/get_transactions_summary") == [{}]
    assert window.transactions == []


@pytest.mark.asyncio
async def test_rpc_accepts_bare_list(config):
    def handler(request):
        return httpx.Response(200, json=[tx_row("2025-07-20", -5)])

    client = GastiClient(config, httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    window = await client.get_transactions_by_period("access-1", date(2025, 7, 1), date(2025, 7, 31))
    assert [tx.amount for tx in window.transactions] == [-5]


@pytest.mark.asyncio
async def test_rpc_error_raises_upstream_error(config):
    client = make_gasti(config, FakeBackend(rpc_status=500))
    with pytest.raises(UpstreamError) as excinfo:
        await client.get_transactions_by_period("access-1", date(2025, 7, 1), date(2025, 7, 31))
    assert excinfo.value.status == 500
    assert excinfo.value.body == "rpc failed"


@pytest.mark.asyncio
async def test_network_error_raises_upstream_error_without_status(config):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = GastiClient(config, httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    with pytest.raises(UpstreamError) as excinfo:
        await client.get_transactions_summary("access-1")
    assert excinfo.value.status is None
