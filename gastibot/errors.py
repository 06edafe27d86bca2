"""
Exception hierarchy for the expense bot.
"""

from typing import Optional


class GastiBotError(Exception):
    """Base class for all bot errors."""


class ConfigError(GastiBotError):
    """Required configuration is missing or malformed."""


class AuthError(GastiBotError):
    """The backend rejected a refresh token exchange."""

    def __init__(self, status: Optional[int], body: str):
        self.status = status
        self.body = body
        super().__init__(f"Token refresh failed. Status: {status}. Body: {body}")


class UpstreamError(GastiBotError):
    """A remote service (backend or LLM) answered with an error."""

    def __init__(self, service: str, status: Optional[int], body: str):
        self.service = service
        self.status = status
        self.body = body
        super().__init__(f"Error calling {service}. Status: {status}. Body: {body}")


class ParseError(GastiBotError):
    """The LLM reply could not be turned into the expected structure."""


class NotAnExpenseError(GastiBotError):
    """The LLM reported that the text does not describe an expense."""


class TokenStoreError(GastiBotError):
    """The refresh token could not be persisted."""
