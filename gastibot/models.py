"""
Data models for the expense bot.
Transactions are owned by Gasti.pro; these are read-through/write-through views.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Optional

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class TokenPair:
    """Result of a refresh token exchange."""
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class ParsedExpense:
    """Structured expense data extracted from text."""
    amount: float
    description: str
    currency: str
    category: str

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "amount": self.amount,
            "description": self.description,
            "currency": self.currency,
            "category": self.category,
        }


@dataclass(frozen=True)
class Transaction:
    """A transaction row as returned by Gasti.pro (expenses are negative)."""
    amount: float
    currency: str
    description: str
    date: datetime
    category: Optional[str] = None
    type: Optional[str] = None
    id: Optional[str] = None

    @property
    def is_expense(self) -> bool:
        return self.amount < 0

    @classmethod
    def from_api(cls, row: dict[str, Any]) -> "Transaction":
        """Build a transaction from a PostgREST row."""
        raw_date = str(row.get("date") or "")
        if raw_date.endswith("Z"):
            raw_date = raw_date[:-1] + "+00:00"
        parsed = datetime.fromisoformat(raw_date) if raw_date else EPOCH
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return cls(
            amount=float(row.get("amount") or 0),
            currency=str(row.get("currency") or "USD").upper(),
            description=str(row.get("description") or "").replace("\n", " "),
            date=parsed,
            category=row.get("category") or None,
            type=row.get("type"),
            id=str(row["id"]) if row.get("id") is not None else None,
        )


@dataclass(frozen=True)
class CurrencySummary:
    """Per-currency totals, either from the backend RPC or computed locally."""
    currency: str
    expenses: float
    income: float = 0.0

    @classmethod
    def from_api(cls, row: dict[str, Any]) -> "CurrencySummary":
        return cls(
            currency=str(row.get("currency") or "").upper(),
            expenses=abs(float(row.get("expenses") or 0)),
            income=float(row.get("income") or 0),
        )


@dataclass(frozen=True)
class TransactionWindow:
    """Transactions fetched for a date range, plus the optional server summary."""
    transactions: list[Transaction] = field(default_factory=list)
    summary: list[CurrencySummary] = field(default_factory=list)


@dataclass(frozen=True)
class QueryFilter:
    """Structured filter produced from a natural-language question."""
    date_from: date
    date_to: date
    type: str = "all"
    category: Optional[str] = None


@dataclass(frozen=True)
class CurrencyAggregate:
    """Deterministic aggregates for one currency, fed to the narrative step."""
    currency: str
    income: float
    expenses: float
    net: float
    income_count: int
    expense_count: int
    top_categories: list[tuple[str, float]] = field(default_factory=list)
