"""
Expense recording flow: parse free text, authenticate, submit one transaction.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from gastibot.models import ParsedExpense, Transaction
from gastibot.services.auth import AuthSession
from gastibot.services.expense_parser import ExpenseParser
from gastibot.services.gasti_client import GastiClient

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RecordedExpense:
    """An expense that was accepted by Gasti.pro."""
    expense: ParsedExpense
    transaction: Optional[Transaction] = None


class ExpenseRecorder:
    """Turn text into exactly one Gasti.pro transaction, or none at all."""

    def __init__(
        self,
        parser: ExpenseParser,
        auth: AuthSession,
        gasti: GastiClient,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.parser = parser
        self.auth = auth
        self.gasti = gasti
        self.clock = clock

    async def parse(self, text: str) -> ParsedExpense:
        """Parse step, exposed so the chat can show what was understood."""
        return await self.parser.parse(text)

    async def submit(self, expense: ParsedExpense) -> RecordedExpense:
        """Authenticate and create the transaction for an already parsed expense."""
        transaction = await self.auth.call(
            lambda access_token: self.gasti.create_transaction(access_token, expense, self.clock())
        )
        return RecordedExpense(expense=expense, transaction=transaction)

    async def record(self, text: str) -> RecordedExpense:
        """
        Full pipeline. Nothing is submitted unless parsing succeeded.

        Raises:
            NotAnExpenseError, ParseError, AuthError, UpstreamError
        """
        expense = await self.parse(text)
        return await self.submit(expense)
