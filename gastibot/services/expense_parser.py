"""
Expense parser service using DeepSeek.
Extracts structured expense data from natural language text.
"""

import logging
import re
from typing import Any, Iterable, Optional

from gastibot.config import EXPENSE_CATEGORIES, FALLBACK_CATEGORY
from gastibot.errors import NotAnExpenseError, ParseError
from gastibot.models import ParsedExpense
from gastibot.services.llm import LLMClient, decode_json_reply

logger = logging.getLogger(__name__)

DEFAULT_CURRENCY = "USD"
PESO_CURRENCY = "ARS"

# Argentine-peso cues in the user's own words
_PESO_CUES_RE = re.compile(r"\b(?:pesos?|ars|mangos|lucas)\b", re.IGNORECASE)
_CURRENCY_RE = re.compile(r"^[A-Za-z]{3}$")


def build_system_prompt(categories: Iterable[str]) -> str:
    categories_list = ", ".join(f'"{cat}"' for cat in categories)
    return f"""
Eres una API asistente de finanzas. Tu única tarea es analizar el texto de un usuario que describe un gasto y devolver un objeto JSON.
Tu respuesta DEBE SER ÚNICAMENTE el objeto JSON, sin explicaciones ni texto adicional.

El JSON debe tener la siguiente estructura:
{{
  "amount": <número>,
  "description": "<descripción limpia del gasto>",
  "currency": "<código ISO de 3 letras, ej. USD, ARS, EUR>",
  "category": "<una de las siguientes categorías, incluyendo el emoji>"
}}

Las categorías permitidas son ESTRICTAMENTE las siguientes: {categories_list}.

Reglas:
1. Debes elegir la categoría más apropiada de la lista, incluyendo su emoji. Si ninguna encaja, usa "{FALLBACK_CATEGORY}".
2. Si no se especifica una moneda, asume 'USD'. El usuario es de Argentina, por lo que si dice 'pesos', asume 'ARS'.
3. La descripción debe ser concisa y clara.
4. Si el texto no parece ser un gasto, devuelve un JSON con la clave de error: {{"error": "El texto no parece ser un gasto."}}
"""


def has_peso_cue(text: str) -> bool:
    """True if the text mentions Argentine pesos."""
    return bool(_PESO_CUES_RE.search(text))


def resolve_currency(raw_currency: Any, text: str) -> str:
    """Use the model's ISO code when valid, otherwise fall back to the peso rule."""
    if isinstance(raw_currency, str) and _CURRENCY_RE.match(raw_currency.strip()):
        return raw_currency.strip().upper()
    return PESO_CURRENCY if has_peso_cue(text) else DEFAULT_CURRENCY


def _category_name(category: str) -> str:
    return category.split(" ", 1)[1] if " " in category else category


class ExpenseParser:
    """Parse expense information from natural language using an LLM."""

    def __init__(self, llm: LLMClient, categories: Iterable[str] = EXPENSE_CATEGORIES):
        self.llm = llm
        self.categories = list(categories)
        self.system_prompt = build_system_prompt(self.categories)

        # Lookup by the bare name so "Comida" still maps to "🍽️ Comida"
        self._by_name = {_category_name(cat).casefold(): cat for cat in self.categories}

    async def parse(self, text: str) -> ParsedExpense:
        """
        Parse expense from natural language text.

        Raises:
            NotAnExpenseError: if the model says the text is not an expense.
            ParseError: if the reply is not a complete, valid expense.
            UpstreamError: if the LLM call fails.
        """
        logger.info("Sending expense text to the LLM for parsing")
        content = await self.llm.complete(self.system_prompt, text, temperature=0)
        result = decode_json_reply(content)
        return self.validate(result, text)

    def validate(self, result: dict[str, Any], text: str) -> ParsedExpense:
        """Turn the model's JSON into a ParsedExpense or raise."""
        if result.get("error"):
            raise NotAnExpenseError(str(result["error"]))

        amount = self._parse_amount(result.get("amount"))

        description = result.get("description")
        if not isinstance(description, str) or not description.strip():
            raise ParseError("Missing description")

        return ParsedExpense(
            amount=amount,
            description=description.strip(),
            currency=resolve_currency(result.get("currency"), text),
            category=self._resolve_category(result.get("category")),
        )

    @staticmethod
    def _parse_amount(raw: Any) -> float:
        if isinstance(raw, bool) or raw is None:
            raise ParseError("Missing amount")
        if isinstance(raw, str):
            raw = raw.strip().replace(",", ".")
        try:
            amount = float(raw)
        except (TypeError, ValueError) as e:
            raise ParseError(f"Amount is not a number: {raw!r}") from e
        if not amount > 0 or amount == float("inf"):
            raise ParseError(f"Amount must be positive: {amount}")
        return amount

    def _resolve_category(self, raw: Any) -> str:
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            return FALLBACK_CATEGORY
        if not isinstance(raw, str):
            raise ParseError(f"Category is not a string: {raw!r}")

        raw = raw.strip()
        if raw in self.categories:
            return raw

        category: Optional[str] = self._by_name.get(_category_name(raw).casefold())
        if category is None:
            category = self._by_name.get(raw.casefold())
        if category is None:
            raise ParseError(f"Unknown category: {raw!r}")
        return category
