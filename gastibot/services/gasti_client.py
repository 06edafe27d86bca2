"""
HTTP client for the Gasti.pro backend (Supabase auth + PostgREST RPCs).
"""

import logging
from datetime import date, datetime
from typing import Any, Optional

import httpx

from gastibot.config import Config
from gastibot.errors import AuthError, UpstreamError
from gastibot.models import (
    CurrencySummary,
    ParsedExpense,
    TokenPair,
    Transaction,
    TransactionWindow,
)

logger = logging.getLogger(__name__)

SERVICE = "gasti"


class GastiClient:
    """
    Thin async client for the Gasti.pro endpoints.

    Endpoints used:
        - /auth/v1/token?grant_type=refresh_token
        - /rest/v1/transactions
        - /rest/v1/rpc/get_user_transactions_by_period
        - /rest/v1/rpc/get_transactions_summary
    """

    def __init__(self, config: Config, http_client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._client = http_client or httpx.AsyncClient(timeout=config.http_timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    def _headers(self, access_token: Optional[str] = None) -> dict[str, str]:
        headers = {
            "apikey": self.config.supabase_apikey,
            "Content-Type": "application/json",
        }
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        return headers

    async def _post(self, url: str, **kwargs) -> httpx.Response:
        try:
            return await self._client.post(url, **kwargs)
        except httpx.HTTPError as exc:
            raise UpstreamError(SERVICE, None, f"Network error calling {url}: {exc}") from exc

    @staticmethod
    def _json(response: httpx.Response, context: str) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamError(SERVICE, response.status_code, f"{context} JSON decode error: {exc}") from exc

    async def refresh(self, refresh_token: str) -> TokenPair:
        """
        Exchange a refresh token for an access token.

        Returns:
            TokenPair whose refresh_token equals the input when no rotation happened.

        Raises:
            ValueError: if refresh_token is empty.
            AuthError: if the backend rejects the exchange.
        """
        if not refresh_token:
            raise ValueError("refresh_token must be a non-empty string")

        logger.info("Requesting a new Gasti.pro access token...")
        url = f"{self.config.auth_url}/auth/v1/token"
        response = await self._post(
            url,
            params={"grant_type": "refresh_token"},
            headers=self._headers(),
            json={"refresh_token": refresh_token},
        )
        if not response.is_success:
            raise AuthError(response.status_code, response.text)

        data = self._json(response, "token refresh")
        access_token = data.get("access_token") if isinstance(data, dict) else None
        if not access_token:
            raise AuthError(response.status_code, "Response did not include an access_token")

        return TokenPair(
            access_token=access_token,
            refresh_token=data.get("refresh_token") or refresh_token,
        )

    async def create_transaction(
        self,
        access_token: str,
        expense: ParsedExpense,
        now: datetime,
    ) -> Optional[Transaction]:
        """Create one expense transaction. Expenses are stored as negative amounts."""
        payload = {
            "description": expense.description,
            "amount": -abs(float(expense.amount)),
            "category": expense.category,
            "type": "expense",
            "date": now.isoformat(),
            "currency": (expense.currency or "USD").upper(),
            "user_email": self.config.gasti_user_email,
            "user_id": self.config.gasti_user_id,
        }
        logger.info(f"Sending transaction to Gasti.pro: {payload['amount']} {payload['currency']}")

        headers = self._headers(access_token)
        headers["Prefer"] = "return=representation"
        response = await self._post(
            f"{self.config.api_url}/rest/v1/transactions",
            params={"select": "*"},
            headers=headers,
            json=payload,
        )
        if not response.is_success:
            raise UpstreamError(SERVICE, response.status_code, response.text)

        logger.info("Transaction created in Gasti.pro")
        rows = self._json(response, "create transaction") if response.content else None
        if isinstance(rows, list) and rows:
            return Transaction.from_api(rows[0])
        return None

    async def _call_rpc(self, access_token: str, name: str, body: dict) -> TransactionWindow:
        rpc_url = f"{self.config.api_url}/rest/v1/rpc/{name}"
        logger.info(f"Calling Gasti.pro RPC: {name}")
        response = await self._post(rpc_url, headers=self._headers(access_token), json=body)
        if not response.is_success:
            raise UpstreamError(SERVICE, response.status_code, response.text)

        data = self._json(response, name)
        if isinstance(data, list):
            # Some RPCs return a bare array of rows
            data = {"transactions": data}
        if not isinstance(data, dict):
            raise UpstreamError(SERVICE, response.status_code, f"Unexpected {name} payload: {data!r}")

        transactions = [Transaction.from_api(row) for row in data.get("transactions") or []]
        summary = [CurrencySummary.from_api(row) for row in data.get("summary") or []]
        return TransactionWindow(transactions=transactions, summary=summary)

    async def get_transactions_by_period(
        self,
        access_token: str,
        date_from: date,
        date_to: date,
    ) -> TransactionWindow:
        """Fetch every transaction between two dates (inclusive, whole days)."""
        body = {
            "date_from": f"{date_from.isoformat()}T00:00:00Z",
            "date_to": f"{date_to.isoformat()}T23:59:59Z",
        }
        return await self._call_rpc(access_token, "get_user_transactions_by_period", body)

    async def get_transactions_summary(self, access_token: str) -> TransactionWindow:
        """Fetch the backend's own monthly summary (recent transactions + totals)."""
        return await self._call_rpc(access_token, "get_transactions_summary", {})
