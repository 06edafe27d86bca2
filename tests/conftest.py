import json
from datetime import date

import httpx
import pytest

from gastibot.config import Config
from gastibot.services.gasti_client import GastiClient


class FakeLLM:
    """Stands in for LLMClient: returns scripted replies and records calls."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls = []

    async def complete(self, system_prompt, user_content, temperature=0, model=None):
        self.calls.append(
            {"system": system_prompt, "user": user_content, "temperature": temperature, "model": model}
        )
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeBackend:
    """Scripted Gasti.pro backend served through httpx.MockTransport."""

    def __init__(
        self,
        rotate_to=None,
        refresh_status=200,
        transactions=None,
        summary=None,
        create_status=201,
        rpc_status=200,
    ):
        self.rotate_to = rotate_to
        self.refresh_status = refresh_status
        self.transactions = transactions or []
        self.summary = summary or []
        self.create_status = create_status
        self.rpc_status = rpc_status
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/auth/v1/token":
            body = json.loads(request.content)
            if self.refresh_status != 200:
                return httpx.Response(self.refresh_status, text="Invalid Refresh Token: Already Used")
            return httpx.Response(
                200,
                json={"access_token": "access-1", "refresh_token": self.rotate_to or body["refresh_token"]},
            )

        if path == "/rest/v1/transactions":
            if self.create_status >= 400:
                return httpx.Response(self.create_status, text="insert failed")
            payload = json.loads(request.content)
            return httpx.Response(self.create_status, json=[{**payload, "id": 1}])

        if path.startswith("/rest/v1/rpc/"):
            if self.rpc_status >= 400:
                return httpx.Response(self.rpc_status, text="rpc failed")
            return httpx.Response(200, json={"transactions": self.transactions, "summary": self.summary})

        return httpx.Response(404, text="not found")

    def paths(self):
        return [request.url.path for request in self.requests]

    def bodies(self, path):
        return [json.loads(r.content) for r in self.requests if r.url.path == path]


def make_gasti(config, backend):
    return GastiClient(config, httpx.AsyncClient(transport=httpx.MockTransport(backend)))


def tx_row(day, amount, currency="USD", category="🍽️ Comida", description="Gasto"):
    """A transaction row shaped like the RPC output."""
    return {
        "id": f"{day}-{description}",
        "date": f"{day}T12:00:00+00:00",
        "amount": amount,
        "currency": currency,
        "category": category,
        "description": description,
        "type": "expense" if amount < 0 else "income",
    }


@pytest.fixture
def config(tmp_path):
    return Config(
        telegram_bot_token="telegram-token",
        deepseek_api_key="deepseek-key",
        gasti_refresh_token="seed-token",
        gasti_api_url="https://gasti.test",
        supabase_url="https://auth.test",
        supabase_apikey="anon-key",
        gasti_user_email="user@example.com",
        gasti_user_id="user-1",
        token_store_path=tmp_path / "token.json",
        history_floor=date(2020, 1, 1),
    )
