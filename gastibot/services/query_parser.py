"""
Natural-language query parser.
Turns a free-text question into a QueryFilter applied to fetched transactions.
"""

import logging
from datetime import date
from typing import Any, Optional

from gastibot.errors import ParseError
from gastibot.models import QueryFilter
from gastibot.services.llm import LLMClient, decode_json_reply

logger = logging.getLogger(__name__)

QUERY_APOLOGY = "No entendí la consulta. Por favor, sé más específico."

TRANSACTION_TYPES = {"expense", "income", "all"}


def build_query_prompt(today: date) -> str:
    return f"""
Eres una API experta en análisis de lenguaje natural para consultas financieras. Tu única tarea es analizar la consulta de un usuario y convertirla en un objeto JSON que pueda ser usado para filtrar transacciones.

**Instrucciones:**
1.  **Analiza el Periodo de Tiempo:**
    *   Interpreta frases como "hoy", "ayer", "esta semana", "la semana pasada", "este mes", "el mes pasado", "este año", "el año pasado".
    *   Interpreta meses específicos como "en enero", "de julio", etc. Asume el año actual ({today.year}) si no se especifica.
    *   Calcula las fechas `date_from` y `date_to` en formato `YYYY-MM-DD`.
    *   Si no se especifica un periodo, asume "este mes".

2.  **Analiza el Tipo de Transacción:**
    *   Busca palabras clave como "gastos", "egresos", "salidas" para determinar `type: 'expense'`.
    *   Busca "ingresos", "entradas", "ganancias" para `type: 'income'`.
    *   Si no se especifica, usa `type: 'all'`.

3.  **Analiza la Categoría:**
    *   Si el usuario menciona una categoría (ej. "en comida", "de la categoría transporte"), extráela.
    *   La categoría debe coincidir con las usadas en el sistema. No incluyas el emoji.

4.  **Genera el JSON de Salida:**
    *   Tu respuesta DEBE SER ÚNICAMENTE el objeto JSON.
    *   La estructura debe ser:
      {{
        "date_from": "YYYY-MM-DD",
        "date_to": "YYYY-MM-DD",
        "type": "'expense' | 'income' | 'all'",
        "category": "<nombre_de_categoria> | null"
      }}
    *   Si no puedes entender la consulta, devuelve: {{"error": "{QUERY_APOLOGY}"}}

**Fecha de Referencia para cálculos:** {today.isoformat()}
"""


def _parse_date(raw: Any, field_name: str) -> date:
    if not isinstance(raw, str):
        raise ParseError(f"{field_name} is missing")
    try:
        return date.fromisoformat(raw.strip()[:10])
    except ValueError as e:
        raise ParseError(f"{field_name} is not YYYY-MM-DD: {raw!r}") from e


def validate_query(result: dict[str, Any]) -> QueryFilter:
    """Check the model's filter JSON and build a QueryFilter."""
    if result.get("error"):
        raise ParseError(str(result["error"]))

    date_from = _parse_date(result.get("date_from"), "date_from")
    date_to = _parse_date(result.get("date_to"), "date_to")
    if date_from > date_to:
        raise ParseError(f"date_from {date_from} is after date_to {date_to}")

    tx_type = result.get("type") or "all"
    if not isinstance(tx_type, str) or tx_type.strip("'\" ").lower() not in TRANSACTION_TYPES:
        raise ParseError(f"Unknown transaction type: {tx_type!r}")

    category: Optional[Any] = result.get("category")
    if category is not None and not isinstance(category, str):
        raise ParseError(f"Category is not a string: {category!r}")
    if category and category.strip().lower() in ("null", "none"):
        category = None

    return QueryFilter(
        date_from=date_from,
        date_to=date_to,
        type=tx_type.strip("'\" ").lower(),
        category=(category or "").strip() or None,
    )


class QueryParser:
    """Ask the LLM to translate a question into a transaction filter."""

    def __init__(self, llm: LLMClient, model: Optional[str] = None):
        self.llm = llm
        self.model = model

    async def parse(self, query: str, today: date) -> QueryFilter:
        """
        Raises:
            ParseError: if the model cannot produce a valid filter.
            UpstreamError: if the LLM call fails.
        """
        logger.info("Sending query to the LLM for analysis")
        content = await self.llm.complete(build_query_prompt(today), query, temperature=0, model=self.model)
        return validate_query(decode_json_reply(content))
