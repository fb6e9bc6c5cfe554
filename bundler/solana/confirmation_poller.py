"""
Bundle confirmation polling against a relay and the ledger.
"""

from typing import Dict, Any, Optional, Callable
from datetime import datetime
from loguru import logger

from bundler.api.relay_client import RelayClient
from bundler.solana.models import BundleResult, ConfirmationOutcome
from bundler.utils.clock import Clock

DURABLE_STATUSES = ("confirmed", "finalized")


class ConfirmationPoller:
    """
    Polls two independent sources until either reports durable confirmation.

    The relay that accepted the bundle is asked for the bundle status and the
    ledger is asked for the status of every known signature. Either source is
    sufficient; they never have to agree. Errors from either source count as
    "not yet confirmed".
    """

    # Confirmation timeout in milliseconds
    CONFIRMATION_TIMEOUT_MS = 60000
    # Delay between polling cycles in milliseconds
    POLL_INTERVAL_MS = 2000

    def __init__(self,
                 relay_client: RelayClient,
                 ledger,
                 timeout_ms: int = CONFIRMATION_TIMEOUT_MS,
                 poll_interval_ms: int = POLL_INTERVAL_MS,
                 clock: Optional[Clock] = None,
                 on_bundle_confirmed: Optional[Callable[[Dict[str, Any]], None]] = None):
        """
        Initialize the poller.

        Args:
            relay_client: Client used for getBundleStatuses
            ledger: Object with an async get_signature_statuses(signatures, search_transaction_history)
            timeout_ms: Default bound on a confirm() call
            poll_interval_ms: Delay between polling cycles
            clock: Time source for the deadline and sleeps
            on_bundle_confirmed: Callback when confirmation is observed
        """
        self.relay_client = relay_client
        self.ledger = ledger
        self.timeout_ms = timeout_ms
        self.poll_interval_ms = poll_interval_ms
        self.clock = clock or Clock()
        self.on_bundle_confirmed = on_bundle_confirmed

    async def confirm(self, result: BundleResult, timeout_override: Optional[int] = None) -> ConfirmationOutcome:
        """
        Waits for the bundle to be confirmed.

        Args:
            result: Result of the send() call
            timeout_override: Timeout in milliseconds for this call

        Returns:
            ConfirmationOutcome; confirmed is False on timeout
        """
        timeout_ms = timeout_override if timeout_override is not None else self.timeout_ms
        deadline = self.clock.now_ms() + timeout_ms
        signatures = [s for s in result.signatures if s]

        logger.bind(bundle_id=result.bundle_id, endpoint=result.used_endpoint, signatures=len(signatures)).info(
            f"Waiting up to {timeout_ms}ms for bundle {result.bundle_id} confirmation"
        )

        while True:
            outcome = await self._check_relay(result)
            if outcome is None and signatures:
                outcome = await self._check_ledger(signatures)

            if outcome is not None:
                logger.bind(bundle_id=result.bundle_id, source=outcome.source).info(
                    f"Bundle {result.bundle_id} confirmed via {outcome.source}"
                )
                if self.on_bundle_confirmed:
                    try:
                        self.on_bundle_confirmed({
                            "bundle_id": result.bundle_id,
                            "source": outcome.source,
                            "timestamp": datetime.now().isoformat()
                        })
                    except Exception as e:
                        logger.error(f"Error in confirmation callback: {str(e)}")
                return outcome

            remaining = deadline - self.clock.now_ms()
            if remaining <= 0:
                break

            await self.clock.sleep(min(self.poll_interval_ms, remaining))

        logger.warning(f"Bundle confirmation timeout for {result.bundle_id}")
        return ConfirmationOutcome(confirmed=False)

    async def _check_relay(self, result: BundleResult) -> Optional[ConfirmationOutcome]:
        if not result.bundle_id or not result.used_endpoint:
            return None

        try:
            statuses = await self.relay_client.get_bundle_statuses(result.used_endpoint, [result.bundle_id])
        except Exception as e:
            logger.debug(f"Error checking bundle status at {result.used_endpoint}: {str(e)}")
            return None

        for status in statuses:
            if isinstance(status, dict) and status.get("confirmation_status") in DURABLE_STATUSES:
                return ConfirmationOutcome(confirmed=True, source="relay", status=status)
        return None

    async def _check_ledger(self, signatures) -> Optional[ConfirmationOutcome]:
        try:
            statuses = await self.ledger.get_signature_statuses(signatures, search_transaction_history=True)
        except Exception as e:
            logger.debug(f"Error checking signature statuses: {str(e)}")
            return None

        for status in statuses:
            if status is None:
                continue
            if status.confirmation_status in DURABLE_STATUSES and status.err is None:
                return ConfirmationOutcome(confirmed=True, source="ledger", status=status.model_dump())
        return None
