"""
Exceptions raised by search client connectors.
"""

from typing import Optional


class SearchClientException(Exception):
    """Connector-level failure carrying the engine's message."""

    def __init__(self, msg: str, status: Optional[int] = None):
        super().__init__(msg)
        self.msg = msg
        self.status = status


class SearchTransportException(SearchClientException):
    """Non-200 response or I/O failure talking to the engine."""


class SearchResponseParseException(SearchClientException):
    """A required field is missing from an engine response."""


class SearchClientConfigurationError(SearchClientException, ValueError):
    """Malformed connection settings, raised at construction time."""
