import json
from dataclasses import replace
from datetime import date, timedelta
from types import SimpleNamespace

import pytest
from telegram.error import BadRequest

from conftest import FakeBackend, FakeLLM, make_gasti, tx_row
from gastibot.bot import handlers
from gastibot.bot.formatters import utf16_len
from gastibot.bot.handlers import BotServices, handle_text_message
from gastibot.models import ParsedExpense
from gastibot.services.auth import AuthSession
from gastibot.services.expense_parser import ExpenseParser
from gastibot.services.query_parser import QUERY_APOLOGY, QueryParser
from gastibot.services.recorder import ExpenseRecorder
from gastibot.services.reporter import NOTHING_TO_ANALYZE, ExpenseReporter
from gastibot.services.token_store import TokenStore

DINNER = json.dumps(
    {"amount": 45.50, "description": "Cena con amigos", "currency": "USD", "category": "🍽️ Comida"},
    ensure_ascii=False,
)


class FakeMessage:
    """Records what the bot sends and edits."""

    def __init__(self, text=None, chat=None, failing_edits=0):
        self.text = text
        self.chat = chat if chat is not None else []
        self.edits = []
        self.failing_edits = failing_edits

    async def reply_text(self, text, parse_mode=None):
        sent = FakeMessage(text, self.chat, self.failing_edits)
        self.chat.append(sent)
        return sent

    async def edit_text(self, text, parse_mode=None):
        if self.failing_edits:
            self.failing_edits -= 1
            raise BadRequest("Can't parse entities")
        self.edits.append(text)
        self.text = text

    def transcript(self):
        return [message.text for message in self.chat]


def make_services(config, backend, llm):
    gasti = make_gasti(config, backend)
    auth = AuthSession(TokenStore(config.token_store_path, seed=config.gasti_refresh_token), gasti)
    return BotServices(
        config=config,
        gasti=gasti,
        recorder=ExpenseRecorder(ExpenseParser(llm), auth, gasti),
        reporter=ExpenseReporter(auth, gasti, llm, QueryParser(llm), history_floor=date(2020, 1, 1)),
    )


async def send(services, text, user_id=1, failing_edits=0):
    message = FakeMessage(text, failing_edits=failing_edits)
    update = SimpleNamespace(effective_message=message, effective_user=SimpleNamespace(id=user_id))
    context = SimpleNamespace(bot_data={"services": services})
    await handle_text_message(update, context)
    return message


@pytest.mark.asyncio
async def test_expense_is_recorded_and_confirmed(config):
    backend = FakeBackend()
    message = await send(make_services(config, backend, FakeLLM(DINNER)), "Cena con amigos 45.50 usd")

    transcript = message.transcript()
    assert "Cena con amigos" in transcript[0]
    assert "45,5 USD" in transcript[0]
    assert transcript[-1] == handlers.RECORD_OK
    assert len(backend.bodies("/rest/v1/transactions")) == 1


@pytest.mark.parametrize(
    "reply, expected",
    [
        ('{"error": "El texto no parece ser un gasto."}', handlers.NOT_AN_EXPENSE),
        ("lo siento, no sé", handlers.PARSE_FAILED),
    ],
)
@pytest.mark.asyncio
async def test_unrecorded_text_gets_a_soft_reply(config, reply, expected):
    backend = FakeBackend()
    message = await send(make_services(config, backend, FakeLLM(reply)), "hola")

    assert message.transcript() == [expected]
    assert backend.requests == []


@pytest.mark.asyncio
async def test_auth_failure_is_reported_distinctly(config):
    backend = FakeBackend(refresh_status=400)
    message = await send(make_services(config, backend, FakeLLM(DINNER)), "Cena con amigos 45.50 usd")

    assert message.transcript()[-1] == handlers.AUTH_FAILED
    assert backend.bodies("/rest/v1/transactions") == []


@pytest.mark.asyncio
async def test_backend_failure_is_reported(config):
    backend = FakeBackend(create_status=500)
    message = await send(make_services(config, backend, FakeLLM(DINNER)), "Cena con amigos 45.50 usd")

    assert message.transcript()[-1] == handlers.RECORD_FAILED


@pytest.mark.asyncio
async def test_greeting(config):
    message = await send(make_services(config, FakeBackend(), FakeLLM()), "/start")
    assert message.transcript() == [handlers.WELCOME_MESSAGE]


@pytest.mark.asyncio
async def test_whitespace_is_ignored(config):
    message = await send(make_services(config, FakeBackend(), FakeLLM()), "   ")
    assert message.transcript() == []


@pytest.mark.asyncio
async def test_users_outside_allow_list_are_ignored(config):
    services = make_services(replace(config, allowed_user_ids=(42,)), FakeBackend(), FakeLLM())
    message = await send(services, "/start", user_id=7)
    assert message.transcript() == []


@pytest.mark.asyncio
async def test_listing_command(config):
    backend = FakeBackend(transactions=[tx_row("2025-07-05", -45.5, description="Cena con amigos")])
    message = await send(make_services(config, backend, FakeLLM()), "/gastos")

    assert "Cena con amigos" in message.transcript()[0]


@pytest.mark.asyncio
async def test_listing_failure(config):
    message = await send(make_services(config, FakeBackend(rpc_status=500), FakeLLM()), "/gastos")
    assert message.transcript() == [handlers.LISTING_FAILED]


@pytest.mark.asyncio
async def test_summary_with_nothing_to_analyze(config):
    llm = FakeLLM()
    message = await send(make_services(config, FakeBackend(), llm), "/resumen")

    assert message.transcript() == [NOTHING_TO_ANALYZE]
    assert llm.calls == []


@pytest.mark.asyncio
async def test_unparsable_query_gets_the_apology(config):
    llm = FakeLLM("no entiendo")
    message = await send(make_services(config, FakeBackend(), llm), "/info qué onda")

    assert message.transcript() == [QUERY_APOLOGY]
    assert llm.calls[0]["user"] == "qué onda"


def test_confirmation_uses_local_number_format():
    expense = ParsedExpense(amount=50000, description="Zapatillas", currency="ARS", category="👕 Ropa")
    assert "50.000 ARS" in handlers.format_parsed_expense(expense)


@pytest.mark.asyncio
async def test_long_query_result_fits_in_one_message(config):
    rows = [
        tx_row(
            (date(2025, 1, 1) + timedelta(days=i % 365)).isoformat(),
            -1000 - i,
            "ARS",
            description=f"Súper & almacén {i} 🛒",
        )
        for i in range(120)
    ]
    llm = FakeLLM(json.dumps({"date_from": "2025-01-01", "date_to": "2025-12-31", "type": "all", "category": None}))
    message = await send(make_services(config, FakeBackend(transactions=rows), llm), "/info todo el año")

    text = message.transcript()[0]
    assert utf16_len(text) <= 4096
    assert text.count("<b>") == text.count("</b>")
    assert "<b>Total de transacciones:</b> 120" in text


@pytest.mark.asyncio
async def test_empty_narrative_gets_the_apology(config):
    backend = FakeBackend(transactions=[tx_row("2025-07-05", -45.5)])
    message = await send(make_services(config, backend, FakeLLM("")), "/resumen")

    assert message.transcript() == [handlers.NARRATIVE_FAILED]


@pytest.mark.asyncio
async def test_malformed_backend_row_gets_the_apology(config):
    row = tx_row("2025-07-05", -45.5)
    row["date"] = "ayer"
    message = await send(make_services(config, FakeBackend(transactions=[row]), FakeLLM()), "/gastos")

    assert message.transcript() == [handlers.LISTING_FAILED]


@pytest.mark.asyncio
async def test_rejected_edit_falls_back_to_the_apology(config):
    backend = FakeBackend(transactions=[tx_row("2025-07-05", -45.5)])
    message = await send(make_services(config, backend, FakeLLM()), "/gastos", failing_edits=1)

    assert message.transcript() == [handlers.LISTING_FAILED]


@pytest.mark.asyncio
async def test_unexpected_query_error_gets_the_apology(config):
    llm = FakeLLM(RuntimeError("boom"))
    message = await send(make_services(config, FakeBackend(), llm), "/info gastos de hoy")

    assert message.transcript() == [handlers.QUERY_FAILED]


@pytest.mark.asyncio
async def test_unexpected_parse_error_records_nothing(config):
    backend = FakeBackend()
    message = await send(make_services(config, backend, FakeLLM(RuntimeError("boom"))), "Cena 20 usd")

    assert message.transcript() == [handlers.RECORD_FAILED]
    assert backend.requests == []
