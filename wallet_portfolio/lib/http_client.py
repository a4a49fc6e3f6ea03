"""
HTTP client with automatic rate limit handling and retry logic.

This module provides the shared transport for every third-party API the
engine talks to (chain explorers and the market-data provider), handling
429 rate limit retries, server error retries, timeouts and credential
redaction.
"""

import logging
import random
import time
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, Optional

import requests

from .exceptions import ConfigurationError, RateLimitError, TransientFetchError

logger = logging.getLogger(__name__)

# Retry configuration
DEFAULT_INITIAL_DELAY = 1.0  # seconds
DEFAULT_BACKOFF_MULTIPLIER = 2.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_MAX_DELAY = 32.0  # seconds
DEFAULT_JITTER = 0.1  # ±10%
DEFAULT_TIMEOUT = 15.0  # seconds


class HttpClient:
    """
    JSON-over-HTTP client with automatic 429 and 5xx retry handling.

    Every request is bounded by a timeout; a timed out request counts as a
    failed attempt and is retried like any other connection error.
    """

    def __init__(
        self,
        secrets: Iterable[str] = (),
        timeout: float = DEFAULT_TIMEOUT,
        initial_delay: float = DEFAULT_INITIAL_DELAY,
        backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER,
        max_retries: int = DEFAULT_MAX_RETRIES,
        max_delay: float = DEFAULT_MAX_DELAY,
        jitter: float = DEFAULT_JITTER,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the client.

        Args:
            secrets: Credentials that must never appear in error messages
            timeout: Per-request timeout in seconds
            initial_delay: Initial delay in seconds for retry backoff
            backoff_multiplier: Multiplier for exponential backoff
            max_retries: Maximum number of retry attempts
            max_delay: Maximum delay cap in seconds
            jitter: Jitter factor (±percentage) to randomize delays
            session: Optional requests session to reuse
        """
        self.secrets = [s for s in secrets if s]
        self.timeout = timeout
        self.initial_delay = initial_delay
        self.backoff_multiplier = backoff_multiplier
        self.max_retries = max_retries
        self.max_delay = max_delay
        self.jitter = jitter
        self.session = session or requests.Session()

    def _sanitize_error_message(self, message: str) -> str:
        """Remove API keys from error messages to prevent credential leakage."""
        for secret in self.secrets:
            message = message.replace(secret, "[REDACTED]")
        return message

    def _apply_jitter(self, delay: float) -> float:
        """Apply random jitter to a delay value."""
        jitter_range = delay * self.jitter
        return delay + random.uniform(-jitter_range, jitter_range)

    def _sleep_before_retry(self, delay: float) -> float:
        time.sleep(self._apply_jitter(min(delay, self.max_delay)))
        return delay * self.backoff_multiplier

    def _execute_with_retry(
        self,
        request_func: Callable[[], requests.Response],
    ) -> requests.Response:
        """
        Execute a request function with retry logic for rate limits and server errors.

        Args:
            request_func: A callable that returns a requests.Response

        Returns:
            The successful response

        Raises:
            ConfigurationError: When the provider rejects the credential
            TransientFetchError: For API errors after retries exhausted
            RateLimitError: When rate limit retries are exhausted
        """
        delay = self.initial_delay

        for attempt in range(self.max_retries + 1):
            try:
                response = request_func()

                if response.status_code == 429:
                    if attempt < self.max_retries:
                        delay = self._sleep_before_retry(delay)
                        continue
                    raise RateLimitError(
                        "Rate limit exceeded and max retries reached",
                        status_code=429,
                    )

                if response.status_code in (401, 403):
                    raise ConfigurationError(
                        f"Invalid or unauthorized API key (HTTP {response.status_code})"
                    )

                if response.status_code >= 500:
                    if attempt < self.max_retries:
                        delay = self._sleep_before_retry(delay)
                        continue
                    raise TransientFetchError(
                        f"Server error: {response.status_code}",
                        status_code=response.status_code,
                    )

                response.raise_for_status()
                return response

            except requests.RequestException as e:
                if attempt < self.max_retries:
                    delay = self._sleep_before_retry(delay)
                    continue
                sanitized_msg = self._sanitize_error_message(str(e))
                raise TransientFetchError(f"Request failed: {sanitized_msg}") from e

        raise TransientFetchError("Max retries exceeded")

    def get_json(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """
        Make a GET request and decode the JSON body.

        Args:
            url: Endpoint URL
            params: Query parameters
            headers: Extra request headers

        Returns:
            The decoded JSON response, with floats decoded as Decimal

        Raises:
            TransientFetchError: If the request fails or the body is not JSON
        """
        response = self._execute_with_retry(
            lambda: self.session.get(url, params=params, headers=headers, timeout=self.timeout)
        )
        try:
            return response.json(parse_float=Decimal)
        except ValueError as e:
            raise TransientFetchError(
                f"Invalid JSON from {self._sanitize_error_message(url)}"
            ) from e
