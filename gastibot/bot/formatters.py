"""
Message formatting for Telegram (HTML parse mode).
All functions are pure so identical inputs give identical messages.
"""

import re
from html import escape
from typing import Optional

import pytz

from gastibot.analytics import UNCATEGORIZED, expense_analytics
from gastibot.models import QueryFilter, Transaction, TransactionWindow

NO_RECENT_EXPENSES = "No se encontraron gastos recientes."
NO_QUERY_MATCHES = "No se encontraron transacciones que coincidan con tu búsqueda."
LISTING_LIMIT = 10
QUERY_LIMIT = 30

_PARTIAL_MARKUP_RE = re.compile(r"(?:<[^>]*|&[#\w]*)\Z")

TYPE_LABELS = {
    "expense": "Gastos",
    "income": "Ingresos",
    "all": "Todos",
}


def format_amount(value: float) -> str:
    """Format a number the way es-AR does: 1.234,5"""
    text = f"{value:,.2f}".replace(",", "_").replace(".", ",").replace("_", ".")
    return text.rstrip("0").rstrip(",")


def utf16_len(text: str) -> int:
    """Length as Telegram counts it (UTF-16 code units)."""
    return len(text.encode("utf-16-le")) // 2


def truncate_message(text: str, limit: int, suffix: str = "\n…") -> str:
    """
    Keep a message within ``limit`` UTF-16 units.

    Whole lines are dropped from the end so HTML tags, which never span a
    line here, stay balanced. A single oversized first line is cut by units.
    """
    if utf16_len(text) <= limit:
        return text

    budget = limit - utf16_len(suffix)
    kept: list[str] = []
    size = 0
    for line in text.split("\n"):
        cost = utf16_len(line) + (1 if kept else 0)
        if size + cost > budget:
            break
        kept.append(line)
        size += cost

    if not kept:
        head = text.encode("utf-16-le")[: budget * 2].decode("utf-16-le", errors="ignore")
        # drop a tag or entity cut in half
        return _PARTIAL_MARKUP_RE.sub("", head) + suffix
    return "\n".join(kept).rstrip("\n") + suffix


def _local_day(tx: Transaction, tz: Optional[pytz.BaseTzInfo]) -> str:
    moment = tx.date.astimezone(tz) if tz else tx.date
    return moment.strftime("%d/%m")


def format_listing(window: TransactionWindow, tz: Optional[pytz.BaseTzInfo] = None) -> str:
    """Render per-currency totals and the ten most recent transactions."""
    transactions = window.transactions
    if not transactions:
        return NO_RECENT_EXPENSES

    message = "📊 <b>Resumen de Gastos</b>\n\n"

    summary = window.summary or expense_analytics.currency_totals(transactions)
    if summary:
        for item in summary:
            message += f"<b>{escape(item.currency)}:</b> {format_amount(item.expenses)}\n"
        message += "\n"

    message += "<b>Últimos gastos registrados:</b>\n\n"

    ordered = sorted(transactions, key=lambda tx: tx.date, reverse=True)
    for tx in ordered[:LISTING_LIMIT]:
        category = escape(tx.category or UNCATEGORIZED)
        description = escape(tx.description)
        message += f"🗓️ <b>{_local_day(tx, tz)}</b> - {category}\n"
        message += f"   └ {description}: <b>{format_amount(abs(tx.amount))} {escape(tx.currency)}</b>\n\n"

    if len(transactions) > LISTING_LIMIT:
        message += f"<i>... y {len(transactions) - LISTING_LIMIT} más.</i>"

    return message.rstrip("\n")


def format_query_results(
    transactions: list[Transaction],
    query: QueryFilter,
    tz: Optional[pytz.BaseTzInfo] = None,
) -> str:
    """Render the transactions matching a natural-language query."""
    message = "🔎 <b>Resultados para tu consulta</b>\n\n"
    message += (
        f"<b>Período:</b> {query.date_from.strftime('%d/%m/%Y')} "
        f"al {query.date_to.strftime('%d/%m/%Y')}\n"
    )
    message += f"<b>Tipo:</b> {TYPE_LABELS.get(query.type, 'Todos')}\n"
    if query.category:
        message += f"<b>Categoría:</b> {escape(query.category)}\n"
    message += "\n"

    if not transactions:
        return message + NO_QUERY_MATCHES

    balances: dict[str, float] = {}
    for tx in transactions:
        balances[tx.currency] = balances.get(tx.currency, 0.0) + tx.amount

    ordered = sorted(transactions, key=lambda tx: tx.date, reverse=True)
    for tx in ordered[:QUERY_LIMIT]:
        type_icon = "🔻" if tx.amount < 0 else "🔼"
        message += f"{type_icon} <b>{_local_day(tx, tz)}</b> - {escape(tx.description)}\n"
        message += (
            f"   └ {escape(tx.category or UNCATEGORIZED)}: "
            f"<b>{format_amount(abs(tx.amount))} {escape(tx.currency)}</b>\n\n"
        )

    if len(transactions) > QUERY_LIMIT:
        message += f"<i>... y {len(transactions) - QUERY_LIMIT} más.</i>\n\n"

    message += "<b>Resumen del Período:</b>\n"
    for currency in sorted(balances):
        message += f"<b>Balance en {escape(currency)}:</b> {format_amount(balances[currency])}\n"
    message += f"<b>Total de transacciones:</b> {len(transactions)}"

    return message
