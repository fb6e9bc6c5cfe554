"""
JSON-RPC client for bundle relays.

Submits bundles with sendBundle and reads bundle status with
getBundleStatuses. Every HTTP or protocol failure is raised as a subclass of
RelayClientError so the submission loop can decide how to treat the endpoint.
"""

import asyncio
import itertools
import json
import time
from typing import Dict, List, Any, Optional
import requests
from loguru import logger

from bundler.config import RELAY_TIMEOUT
from bundler.utils.retry_utils import parse_retry_after, is_transient_status


class RelayClientError(Exception):
    """Base exception for relay client errors."""
    pass


class RelayNetworkError(RelayClientError):
    """Exception raised when the relay cannot be reached."""
    pass


class RelayTimeoutError(RelayClientError):
    """Exception raised when a relay request times out."""
    pass


class RelayBadResponseError(RelayClientError):
    """Exception raised when the relay answers without a usable result."""

    def __init__(self, message: str, status_code: Optional[int] = None, payload: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


class RelayServerError(RelayClientError):
    """Exception raised for 5xx and request-timeout class responses."""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


class RelayRateLimitError(RelayClientError):
    """Exception raised when the relay answers HTTP 429."""

    def __init__(self, message: str, retry_after_ms: Optional[int] = None):
        super().__init__(message)
        self.retry_after_ms = retry_after_ms


class RelayClient:
    """Client for the relay JSON-RPC interface."""

    def __init__(self, timeout: float = RELAY_TIMEOUT, session: Optional[requests.Session] = None):
        """
        Initialize the relay client.

        Args:
            timeout: Request timeout in seconds
            session: Optional pre-configured requests session
        """
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            'Content-Type': 'application/json',
            'User-Agent': 'bundler-relay-client/1.0'
        })
        self._ids = itertools.count(1)

    async def send_bundle(self, url: str, transactions: List[str], encoding: str = "base58") -> str:
        """
        Submit a bundle to a relay.

        Args:
            url: Relay endpoint URL
            transactions: Transport-encoded transactions, fee transaction first
            encoding: Encoding of the transactions (base58 or base64)

        Returns:
            The relay-assigned bundle id

        Raises:
            RelayRateLimitError: On HTTP 429
            RelayServerError: On 5xx or request-timeout class responses
            RelayTimeoutError: If the request times out
            RelayNetworkError: If the relay cannot be reached
            RelayBadResponseError: If the response carries no result
        """
        params: List[Any] = [list(transactions)]
        if encoding != "base58":
            params.append({"encoding": encoding})

        data = await self._call(url, "sendBundle", params)
        bundle_id = data.get("result")

        if not isinstance(bundle_id, str) or not bundle_id:
            error = data.get("error")
            message = error.get("message") if isinstance(error, dict) else "missing result"
            raise RelayBadResponseError(f"sendBundle rejected by {url}: {message}", payload=data)

        return bundle_id

    async def get_bundle_statuses(self, url: str, bundle_ids: List[str]) -> List[Optional[Dict[str, Any]]]:
        """
        Query bundle statuses from a relay.

        Args:
            url: Relay endpoint URL
            bundle_ids: Bundle ids to query

        Returns:
            Status objects in request order; entries may be None for unknown ids
        """
        data = await self._call(url, "getBundleStatuses", [list(bundle_ids)])
        result = data.get("result")

        if not isinstance(result, dict):
            raise RelayBadResponseError(f"getBundleStatuses returned no result from {url}", payload=data)

        value = result.get("value") or []
        if not isinstance(value, list):
            raise RelayBadResponseError(f"getBundleStatuses returned malformed value from {url}", payload=data)

        return value

    async def _call(self, url: str, method: str, params: List[Any]) -> Dict[str, Any]:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }
        return await asyncio.to_thread(self._post, url, payload)

    def _post(self, url: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Make a JSON-RPC POST request.

        Args:
            url: Relay endpoint URL
            payload: JSON-RPC request body

        Returns:
            The decoded JSON response

        Raises:
            RelayClientError subclasses, see send_bundle
        """
        method = payload["method"]
        start_time = time.time()

        logger.bind(url=url, method=method, rpc_id=payload["id"]).debug(
            f"Making {method} request to {url}"
        )

        try:
            response = self.session.post(url, json=payload, timeout=self.timeout)
        except requests.exceptions.Timeout:
            logger.bind(url=url, timeout=self.timeout).error(
                f"Request to {url} timed out after {self.timeout}s"
            )
            raise RelayTimeoutError(f"{method} to {url} timed out")
        except requests.exceptions.RequestException as e:
            logger.bind(url=url, error=str(e)).error(
                f"Request to {url} failed: {str(e)}"
            )
            raise RelayNetworkError(f"Request failed: {str(e)}")

        elapsed = time.time() - start_time
        logger.bind(status_code=response.status_code, elapsed_time=elapsed, url=url).debug(
            f"Received response from {url} in {elapsed:.2f}s"
        )

        if response.status_code == 429:
            retry_after_ms = parse_retry_after(response.headers.get("Retry-After"))
            logger.bind(url=url, retry_after_ms=retry_after_ms).warning(
                f"Relay {url} rate limited {method}"
            )
            raise RelayRateLimitError(f"{method} rate limited by {url}", retry_after_ms=retry_after_ms)

        if is_transient_status(response.status_code):
            logger.bind(status_code=response.status_code, url=url).warning(f"Relay error: {response.status_code} {response.text}")
            raise RelayServerError(
                f"Relay returned {response.status_code}: {response.text}",
                status_code=response.status_code
            )

        try:
            data = response.json()
        except (json.JSONDecodeError, ValueError) as e:
            logger.error(f"Failed to parse JSON response from {url}: {str(e)}")
            raise RelayBadResponseError(
                f"Failed to parse JSON response: {str(e)}",
                status_code=response.status_code
            )

        if not isinstance(data, dict):
            raise RelayBadResponseError(
                f"Unexpected response body from {url}",
                status_code=response.status_code,
                payload=data
            )

        if response.status_code >= 400:
            logger.bind(status_code=response.status_code, response_text=response.text).error(
                f"Relay error: {response.status_code} {response.text}"
            )
            raise RelayBadResponseError(
                f"Relay returned {response.status_code}: {response.text}",
                status_code=response.status_code,
                payload=data
            )

        return data
