"""
HTTP transport that posts and fetches JSON for search client connectors.
"""

import logging
from typing import Any, Optional

import httpx

from .exceptions import SearchTransportException
from .models import JsonResponse

logger = logging.getLogger(__name__)

# Suppress httpx INFO logs
logging.getLogger("httpx").setLevel(logging.WARNING)

JSON_CONTENT_TYPE = "application/json"
NDJSON_CONTENT_TYPE = "application/x-ndjson"


class HttpJsonTransport:
    """Thin JSON-over-HTTP adapter built on an httpx client."""

    def __init__(self, timeout: float = 30.0, client: Optional[httpx.Client] = None):
        """Initialize transport; an existing httpx client may be supplied."""
        self.client = client or httpx.Client(timeout=timeout)

    def post_json(self, url: str, body: str, content_type: str = JSON_CONTENT_TYPE) -> JsonResponse:
        """POST a request body and return status, message and parsed JSON."""
        logger.debug(f"POST {url}")
        return self._send("POST", url, body, content_type)

    def delete_json(self, url: str, body: str) -> JsonResponse:
        """DELETE with a JSON request body."""
        logger.debug(f"DELETE {url}")
        return self._send("DELETE", url, body, JSON_CONTENT_TYPE)

    def get_json(self, url: str) -> Any:
        """GET a URL and return the parsed JSON body; non-200 is a failure."""
        logger.debug(f"GET {url}")
        response = self._send("GET", url, None, None)
        if response.status != 200:
            raise SearchTransportException(response.msg, status=response.status)
        return response.json

    def _send(self, method: str, url: str, body: Optional[str],
              content_type: Optional[str]) -> JsonResponse:
        headers = {"Content-Type": content_type} if content_type else None
        try:
            response = self.client.request(
                method,
                url,
                content=body.encode("utf-8") if body is not None else None,
                headers=headers,
            )
        except httpx.HTTPError as e:
            logger.error(f"{method} {url} failed: {e}")
            raise SearchTransportException(f"{method} {url} failed: {e}") from e

        return self._to_json_response(response)

    @staticmethod
    def _to_json_response(response: httpx.Response) -> JsonResponse:
        try:
            parsed = response.json() if response.content else None
        except ValueError:
            parsed = None

        if response.status_code == 200:
            msg = response.reason_phrase
        else:
            msg = response.text or response.reason_phrase
        return JsonResponse(status=response.status_code, msg=msg, json=parsed)

    def close(self) -> None:
        """Release the underlying httpx client."""
        self.client.close()

    def __enter__(self) -> "HttpJsonTransport":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
