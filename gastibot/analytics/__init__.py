"""
Analytics module for expense reporting.
Computes deterministic aggregates locally so the narrative step never has to
invent numbers.
"""

from datetime import date, timezone
from typing import Iterable

import pandas as pd

from gastibot.models import CurrencyAggregate, CurrencySummary, QueryFilter, Transaction

UNCATEGORIZED = "Sin categoría"


class ExpenseAnalytics:
    """Aggregate and filter transactions fetched from Gasti.pro."""

    TOP_CATEGORIES = 5

    @staticmethod
    def to_frame(transactions: Iterable[Transaction]) -> pd.DataFrame:
        """Convert transactions to a DataFrame with a fixed column set."""
        data = [
            {
                "date": tx.date,
                "amount": float(tx.amount),
                "currency": tx.currency,
                "category": tx.category or UNCATEGORIZED,
                "description": tx.description,
            }
            for tx in transactions
        ]
        return pd.DataFrame(data, columns=["date", "amount", "currency", "category", "description"])

    def currency_totals(self, transactions: Iterable[Transaction]) -> list[CurrencySummary]:
        """Expense and income totals per currency, sorted by currency code."""
        df = self.to_frame(transactions)
        if df.empty:
            return []

        expenses = df[df["amount"] < 0].groupby("currency")["amount"].sum().abs()
        income = df[df["amount"] > 0].groupby("currency")["amount"].sum()

        return [
            CurrencySummary(
                currency=currency,
                expenses=round(float(expenses.get(currency, 0.0)), 2),
                income=round(float(income.get(currency, 0.0)), 2),
            )
            for currency in sorted(df["currency"].unique())
        ]

    def build_aggregates(self, transactions: Iterable[Transaction]) -> list[CurrencyAggregate]:
        """
        Compute per-currency income, expenses, net balance and the top
        expense categories by absolute spend.

        Returns:
            One CurrencyAggregate per currency, sorted by currency code.
        """
        df = self.to_frame(transactions)
        if df.empty:
            return []

        expense_rows = df[df["amount"] < 0]
        income_rows = df[df["amount"] > 0]

        by_category = pd.DataFrame(columns=["currency", "category", "spend"])
        if not expense_rows.empty:
            by_category = (
                expense_rows.assign(spend=expense_rows["amount"].abs())
                .groupby(["currency", "category"], as_index=False)["spend"]
                .sum()
                .sort_values(["currency", "spend", "category"], ascending=[True, False, True])
            )

        aggregates = []
        for currency in sorted(df["currency"].unique()):
            spent = float(expense_rows.loc[expense_rows["currency"] == currency, "amount"].abs().sum())
            earned = float(income_rows.loc[income_rows["currency"] == currency, "amount"].sum())
            top = by_category[by_category["currency"] == currency].head(self.TOP_CATEGORIES)

            aggregates.append(
                CurrencyAggregate(
                    currency=currency,
                    income=round(earned, 2),
                    expenses=round(spent, 2),
                    net=round(earned - spent, 2),
                    income_count=int((income_rows["currency"] == currency).sum()),
                    expense_count=int((expense_rows["currency"] == currency).sum()),
                    top_categories=[
                        (row.category, round(float(row.spend), 2)) for row in top.itertuples(index=False)
                    ],
                )
            )
        return aggregates

    @staticmethod
    def format_aggregates_block(
        aggregates: list[CurrencyAggregate],
        date_from: date,
        date_to: date,
    ) -> str:
        """Serialize aggregates as the plain-text block sent to the LLM."""
        total = sum(agg.income_count + agg.expense_count for agg in aggregates)
        lines = [
            f"Período: {date_from.isoformat()} al {date_to.isoformat()}",
            f"Transacciones analizadas: {total}",
        ]
        for agg in aggregates:
            lines.append("")
            lines.append(f"[{agg.currency}]")
            lines.append(f"Ingresos: {agg.income:.2f} {agg.currency} ({agg.income_count} movimientos)")
            lines.append(f"Gastos: {agg.expenses:.2f} {agg.currency} ({agg.expense_count} movimientos)")
            lines.append(f"Balance neto: {agg.net:.2f} {agg.currency}")
            if agg.top_categories:
                lines.append("Top categorías de gasto:")
                for position, (category, spend) in enumerate(agg.top_categories, start=1):
                    lines.append(f"{position}. {category}: {spend:.2f} {agg.currency}")
        return "\n".join(lines)

    @staticmethod
    def filter_transactions(
        transactions: Iterable[Transaction],
        query: QueryFilter,
    ) -> list[Transaction]:
        """Apply a QueryFilter client-side (UTC dates, sign for type, category substring)."""
        result = []
        category = query.category.casefold() if query.category else None
        for tx in transactions:
            tx_date = tx.date.astimezone(timezone.utc).date()
            if not query.date_from <= tx_date <= query.date_to:
                continue
            if query.type == "expense" and not tx.amount < 0:
                continue
            if query.type == "income" and not tx.amount > 0:
                continue
            if category and (not tx.category or category not in tx.category.casefold()):
                continue
            result.append(tx)
        return result


# Singleton instance
expense_analytics = ExpenseAnalytics()
