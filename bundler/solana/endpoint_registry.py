"""
Relay endpoint tracking with cooldown and error state.
"""

import threading
from typing import Dict, List, Optional, Sequence
from loguru import logger

from bundler.solana.models import Endpoint
from bundler.utils.clock import Clock, SelectionStrategy

class EndpointRegistry:
    """
    Tracks candidate relay endpoints and their per-URL cooldown and error state.

    Cooldown only deprioritizes an endpoint: when every candidate is cooling
    down the full candidate list is returned instead of an empty one.
    """

    def __init__(self,
                 urls: Sequence[str],
                 clock: Optional[Clock] = None,
                 shuffle: bool = False,
                 strategy: Optional[SelectionStrategy] = None):
        """
        Initialize the registry.

        Args:
            urls: Candidate endpoint URLs in declared priority order
            clock: Time source for cooldown bookkeeping
            shuffle: Randomize order on every listing instead of priority order
            strategy: Random source used when shuffling
        """
        if not urls:
            raise ValueError("At least one relay endpoint is required")

        self.clock = clock or Clock()
        self.shuffle = shuffle
        self.strategy = strategy or SelectionStrategy()
        self._lock = threading.Lock()

        # Preserve declared order, dropping duplicates
        self._endpoints: Dict[str, Endpoint] = {}
        for url in urls:
            if url not in self._endpoints:
                self._endpoints[url] = Endpoint(url=url)

        logger.info(f"EndpointRegistry initialized with {len(self._endpoints)} endpoints (shuffle={shuffle})")

    @property
    def urls(self) -> List[str]:
        return list(self._endpoints)

    def list_eligible(self) -> List[Endpoint]:
        """
        Lists endpoints that are not cooling down, in policy order.

        Returns:
            Copies of the eligible endpoints; all endpoints if none are eligible
        """
        with self._lock:
            now = self.clock.now_ms()
            candidates = list(self._endpoints.values())
            eligible = [e for e in candidates if e.cooldown_until <= now]

            if not eligible:
                logger.warning("All relay endpoints cooling down, falling back to full candidate list")
                eligible = candidates

            snapshot = [e.model_copy() for e in eligible]

        if self.shuffle:
            snapshot = self.strategy.shuffled(snapshot)
        return snapshot

    def mark_cooldown(self, url: str, duration_ms: float):
        """
        Puts an endpoint into cooldown.

        Args:
            url: Endpoint URL
            duration_ms: Cooldown length in milliseconds
        """
        with self._lock:
            endpoint = self._get(url)
            endpoint.cooldown_until = self.clock.now_ms() + duration_ms

        logger.bind(endpoint=url, cooldown_ms=duration_ms).debug(
            f"Endpoint {url} cooling down for {duration_ms:.0f}ms"
        )

    def bump_error(self, url: str) -> int:
        """
        Increments the error counter of an endpoint.

        Args:
            url: Endpoint URL

        Returns:
            The new error count
        """
        with self._lock:
            endpoint = self._get(url)
            endpoint.error_count += 1
            return endpoint.error_count

    def reset(self, url: str):
        """Clears cooldown and error state for an endpoint."""
        with self._lock:
            endpoint = self._get(url)
            endpoint.cooldown_until = 0.0
            endpoint.error_count = 0

    def snapshot(self) -> List[Endpoint]:
        """Returns copies of every endpoint in declared order."""
        with self._lock:
            return [e.model_copy() for e in self._endpoints.values()]

    def _get(self, url: str) -> Endpoint:
        try:
            return self._endpoints[url]
        except KeyError:
            raise KeyError(f"Unknown relay endpoint: {url}") from None
