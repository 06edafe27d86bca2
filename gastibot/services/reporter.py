"""
Expense reporting: listing, AI narrative summary and natural-language queries.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Optional

import pytz

from gastibot.analytics import expense_analytics
from gastibot.bot.formatters import format_listing, format_query_results
from gastibot.errors import UpstreamError
from gastibot.models import QueryFilter, TransactionWindow
from gastibot.services.auth import AuthSession
from gastibot.services.gasti_client import GastiClient
from gastibot.services.llm import LLMClient
from gastibot.services.query_parser import QueryParser

logger = logging.getLogger(__name__)

NOTHING_TO_ANALYZE = "No hay transacciones para analizar. Registra algunos gastos primero."

NARRATIVE_PROMPT = """
Eres un analista financiero experto. Vas a recibir un bloque de totales YA CALCULADOS a partir de las transacciones del usuario, agrupados por moneda: ingresos, gastos, balance neto y las categorías con más gasto.

Tu análisis debe incluir:
1.  **Visión General:** Una visión concisa de la situación.
2.  **Categorías Principales:** Comenta las categorías donde el usuario gasta más dinero.
3.  **Gastos Excesivos/Innecesarios:** Señala posibles áreas de gasto no esencial, justificando brevemente por qué.
4.  **Oportunidades de Ahorro:** Ofrece consejos prácticos y específicos para reducir gastos.

Reglas estrictas:
- Usa ÚNICAMENTE las cifras del bloque. No inventes montos, porcentajes ni transacciones.
- No conviertas entre monedas ni sumes montos de monedas distintas.
- No incluyas introducción ni despedida, solo el resumen.

Tu respuesta debe ser clara, concisa y fácil de entender para un usuario no financiero. Utiliza un lenguaje alentador y constructivo.
"""


@dataclass(frozen=True)
class QueryReport:
    query: QueryFilter
    message: str


class ExpenseReporter:
    """Fetch transactions through an authenticated call and render them."""

    def __init__(
        self,
        auth: AuthSession,
        gasti: GastiClient,
        llm: LLMClient,
        query_parser: QueryParser,
        timezone: str = "America/Argentina/Buenos_Aires",
        history_floor: date = date(2020, 1, 1),
        listing_rpc: str = "by_period",
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.auth = auth
        self.gasti = gasti
        self.llm = llm
        self.query_parser = query_parser
        self.tz = pytz.timezone(timezone)
        self.history_floor = history_floor
        self.listing_rpc = listing_rpc
        self.clock = clock or (lambda: datetime.now(self.tz))

    def today(self) -> date:
        """Current date in the user's configured timezone."""
        return self.clock().astimezone(self.tz).date()

    async def fetch_window(self, date_from: Optional[date] = None, date_to: Optional[date] = None) -> TransactionWindow:
        """Fetch transactions between two dates; defaults to floor date through today."""
        date_from = date_from or self.history_floor
        date_to = date_to or self.today()
        return await self.auth.call(
            lambda access_token: self.gasti.get_transactions_by_period(access_token, date_from, date_to)
        )

    async def listing(self, date_from: Optional[date] = None, date_to: Optional[date] = None) -> str:
        """Listing mode: totals per currency plus the most recent transactions."""
        if self.listing_rpc == "summary" and date_from is None and date_to is None:
            window = await self.auth.call(self.gasti.get_transactions_summary)
        else:
            window = await self.fetch_window(date_from, date_to)
        logger.info(f"Listing {len(window.transactions)} transactions")
        return format_listing(window, self.tz)

    async def narrative(self, date_from: Optional[date] = None, date_to: Optional[date] = None) -> str:
        """
        Narrative mode: aggregate locally, then let the LLM describe only those
        aggregates.

        Raises:
            UpstreamError: if the LLM call fails or returns nothing.
        """
        date_from = date_from or self.history_floor
        date_to = date_to or self.today()
        window = await self.fetch_window(date_from, date_to)
        if not window.transactions:
            return NOTHING_TO_ANALYZE

        aggregates = expense_analytics.build_aggregates(window.transactions)
        block = expense_analytics.format_aggregates_block(aggregates, date_from, date_to)
        user_prompt = (
            f"Estos son los totales de mis transacciones:\n\n{block}\n\n"
            "Por favor, genera el resumen financiero siguiendo las instrucciones que te di."
        )

        logger.info(f"Sending aggregates for {len(window.transactions)} transactions to the LLM")
        narrative = await self.llm.complete(NARRATIVE_PROMPT, user_prompt, temperature=0.7)
        if not narrative:
            raise UpstreamError("llm", None, "Empty narrative from the model")
        return narrative

    async def query(self, question: str) -> QueryReport:
        """
        Natural-language query: the LLM builds the filter, the filter is
        applied locally.

        Raises:
            ParseError: if the question cannot be turned into a filter.
        """
        query = await self.query_parser.parse(question, self.today())
        window = await self.fetch_window(query.date_from, query.date_to)
        matches = expense_analytics.filter_transactions(window.transactions, query)
        logger.info(f"Query matched {len(matches)} of {len(window.transactions)} transactions")
        return QueryReport(query=query, message=format_query_results(matches, query, self.tz))
