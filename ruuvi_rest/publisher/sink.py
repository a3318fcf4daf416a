"""
Publish sinks for averaged Ruuvi samples.
Sends batches to a REST collection endpoint or renders them on the console.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

import requests
import urllib3
from requests.adapters import HTTPAdapter
from rich.console import Console
from urllib3.util.retry import Retry

from .models import EnrichedSample, serialize_batch


class PublishError(Exception):
    """Raised when a batch could not be delivered."""
    pass


class PublishSink(ABC):
    """
    Destination for drained batches.

    ``send`` reports failure through its return value; an empty batch is a
    successful no-op.
    """

    @abstractmethod
    async def send(self, batch: Sequence[EnrichedSample]) -> bool:
        """
        Publish a batch.

        Returns:
            bool: True if the batch was delivered
        """

    async def close(self):
        """Release sink resources."""


class RestPublishSink(PublishSink):
    """
    POSTs each batch as a JSON array to a collection endpoint.

    Requests run in the default executor so the event loop never blocks on
    network I/O. Non-2xx responses and transport errors are failures.
    """

    def __init__(self,
                 endpoint_url: str,
                 trust_ssl: bool = False,
                 timeout: float = 10.0,
                 retry_attempts: int = 0,
                 logger: Optional[logging.Logger] = None,
                 session: Optional[requests.Session] = None):
        """
        Initialize REST sink.

        Args:
            endpoint_url: Collector endpoint URL
            trust_ssl: Skip TLS certificate validation
            timeout: Request timeout in seconds
            retry_attempts: urllib3 retries for connection errors and 429/5xx responses
            logger: Logger instance
            session: HTTP session to use instead of a new one
        """
        self.endpoint_url = endpoint_url
        self.trust_ssl = trust_ssl
        self.timeout = timeout
        self.retry_attempts = retry_attempts
        self.logger = logger or logging.getLogger('ruuvi.rest')

        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})
        self.session.verify = not trust_ssl

        if retry_attempts > 0:
            retry_strategy = Retry(
                total=retry_attempts,
                backoff_factor=0.5,
                status_forcelist=[429, 500, 502, 503, 504],
                allowed_methods=["POST"],
            )
            adapter = HTTPAdapter(max_retries=retry_strategy)
            self.session.mount("http://", adapter)
            self.session.mount("https://", adapter)

        if trust_ssl:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
            self.logger.warning("TLS certificate validation is disabled for the REST endpoint")

        self.logger.info(f"RestPublishSink initialized for {self.endpoint_url}")

    def _post(self, payload: List[Dict[str, Any]]):
        """
        Blocking POST of a serialized batch.

        Raises:
            PublishError: If the request fails or the endpoint rejects it
        """
        try:
            response = self.session.post(
                self.endpoint_url,
                data=json.dumps(payload),
                timeout=self.timeout,
                allow_redirects=False
            )
        except requests.exceptions.RequestException as e:
            raise PublishError(f"Request to {self.endpoint_url} failed: {e}") from e

        if not 200 <= response.status_code < 300:
            raise PublishError(
                f"Invalid endpoint response: {response.status_code} ({response.reason})"
            )

    async def send(self, batch: Sequence[EnrichedSample]) -> bool:
        if not batch:
            return True

        payload = serialize_batch(batch)
        loop = asyncio.get_running_loop()

        try:
            await loop.run_in_executor(None, self._post, payload)
        except PublishError as e:
            self.logger.error(f"Failed to publish {len(payload)} samples: {e}")
            return False

        self.logger.debug(f"Published {len(payload)} samples to {self.endpoint_url}")
        return True

    async def close(self):
        self.session.close()


class ConsolePublishSink(PublishSink):
    """Prints each batch as JSON; used to preview what would be posted."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    async def send(self, batch: Sequence[EnrichedSample]) -> bool:
        if not batch:
            return True

        self.console.print_json(data=serialize_batch(batch))
        return True
