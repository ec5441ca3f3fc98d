"""openFDA drug label lookup for medication explanations."""

import time
from typing import Any, Dict, Optional

import httpx

from medbuddy.config import settings
from medbuddy.utils import log_performance, logger


class ReferenceLookupError(Exception):
    """Raised when the reference service cannot be reached or answers garbage."""
    pass


class OpenFDAClient:
    """Best-effort client for the openFDA drug label endpoint.

    A query that matches nothing (404 or empty results) is "not found" and
    returns None; transport failures raise ReferenceLookupError.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url or settings.openfda_url
        self.timeout = timeout if timeout is not None else settings.openfda_timeout
        self.transport = transport

    async def fetch(self, query: str) -> Optional[Dict[str, Any]]:
        """Fetch the first label matching an openFDA search query.

        Args:
            query: openFDA search expression, e.g. 'openfda.brand_name:"metformin"'

        Returns:
            Label fields of the first result, or None if nothing matched

        Raises:
            ReferenceLookupError: On network errors or malformed responses
        """
        start_time = time.time()

        try:
            async with httpx.AsyncClient(transport=self.transport) as client:
                response = await client.get(
                    self.base_url,
                    params={"search": query, "limit": 1},
                    timeout=self.timeout,
                )
        except httpx.HTTPError as e:
            logger.warning(f"openFDA request failed for {query}: {type(e).__name__}: {e}")
            raise ReferenceLookupError(str(e)) from e

        log_performance("openfda_request", (time.time() - start_time) * 1000)

        if response.status_code != 200:
            logger.debug(f"openFDA returned {response.status_code} for {query}")
            return None

        try:
            results = response.json().get("results") or []
        except (ValueError, AttributeError) as e:
            raise ReferenceLookupError(f"Malformed openFDA response: {e}") from e

        if not isinstance(results, list) or not results:
            return None

        label = results[0]
        if not isinstance(label, dict):
            logger.warning(f"Unexpected openFDA result type for {query}: {type(label).__name__}")
            return None
        return label
