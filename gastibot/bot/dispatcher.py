"""
Command routing for inbound text messages.
"""

from enum import Enum
from typing import Optional


class Route(str, Enum):
    GREETING = "greeting"
    LISTING = "listing"
    NARRATIVE = "narrative"
    QUERY = "query"
    RECORD = "record"


COMMANDS: dict[str, Route] = {
    "/start": Route.GREETING,
    "/ayuda": Route.GREETING,
    "/help": Route.GREETING,
    "/gastos": Route.LISTING,
    "/resumen": Route.NARRATIVE,
    "/info": Route.QUERY,
}


def _command_token(text: str) -> str:
    token = text.split(maxsplit=1)[0].lower()
    # "/gastos@MiBot" in group chats
    return token.split("@", 1)[0]


def command_argument(text: str) -> str:
    """Text after the command token, stripped."""
    parts = text.strip().split(maxsplit=1)
    return parts[1].strip() if len(parts) > 1 else ""


def resolve_route(text: Optional[str]) -> Optional[Route]:
    """
    Pick the flow for a message based on its leading command.

    Returns None for empty or whitespace-only text. Unknown commands and
    plain text fall through to expense recording.
    """
    if not text or not text.strip():
        return None

    route = COMMANDS.get(_command_token(text), Route.RECORD)
    if route is Route.QUERY and not command_argument(text):
        return Route.GREETING
    return route
