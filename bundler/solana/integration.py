"""
Integration module that combines the bundle components.

BundleClient wires the endpoint registry, fee policy, submitter and
confirmation poller into a single object owning all mutable endpoint state.
"""

from typing import Dict, List, Any, Optional, Callable, Sequence, Tuple
from collections import defaultdict
from loguru import logger

from bundler import config
from bundler.config import SubmitterSettings
from bundler.api.relay_client import RelayClient
from bundler.solana.models import BundleResult, ConfirmationOutcome
from bundler.solana.endpoint_registry import EndpointRegistry
from bundler.solana.fee_policy import FeeEscalationPolicy
from bundler.solana.fee_tx_builder import SolanaFeeTxBuilder, TipAccountSelector
from bundler.solana.ledger_client import SolanaLedgerClient
from bundler.solana.bundle_submitter import BundleSubmitter
from bundler.solana.confirmation_poller import ConfirmationPoller
from bundler.utils.clock import Clock, SelectionStrategy

EVENT_TYPES = ("on_bundle_sent", "on_bundle_retry", "on_bundle_failed", "on_bundle_confirmed")


class BundleClient:
    """
    Submits bundles and confirms their inclusion.

    Any collaborator that is not passed in is created from configuration.
    """

    def __init__(self,
                 payer,
                 endpoints: Optional[Sequence[str]] = None,
                 settings: Optional[SubmitterSettings] = None,
                 shuffle_endpoints: bool = config.RELAY_SHUFFLE,
                 tip_accounts: Optional[Sequence[str]] = None,
                 relay_client: Optional[RelayClient] = None,
                 ledger: Optional[SolanaLedgerClient] = None,
                 checkpoints=None,
                 fee_tx_builder=None,
                 clock: Optional[Clock] = None,
                 strategy: Optional[SelectionStrategy] = None):
        """
        Initialize the client.

        Args:
            payer: Identity paying the priority fee (a solders Keypair for the default builder)
            endpoints: Relay URLs in priority order; defaults to RELAY_ENDPOINTS
            settings: Fee, retry and confirmation settings
            shuffle_endpoints: Randomize endpoint order on every attempt
            tip_accounts: Fee recipient candidates; defaults to TIP_ACCOUNTS
            relay_client: Optional RelayClient instance
            ledger: Optional ledger client for signature status
            checkpoints: Optional checkpoint source; defaults to the ledger client
            fee_tx_builder: Optional fee transaction builder
            clock: Optional time source shared by every component
            strategy: Optional random source shared by every component
        """
        self.settings = settings or SubmitterSettings()
        self.clock = clock or Clock()
        self.strategy = strategy or SelectionStrategy()
        self.event_callbacks: Dict[str, List[Callable[[Dict[str, Any]], None]]] = defaultdict(list)

        self.registry = EndpointRegistry(
            endpoints or config.RELAY_ENDPOINTS,
            clock=self.clock,
            shuffle=shuffle_endpoints,
            strategy=self.strategy
        )
        self.policy = FeeEscalationPolicy(
            start_multiplier=self.settings.start_multiplier,
            max_multiplier=self.settings.max_multiplier,
            escalation_factor=self.settings.escalation_factor
        )
        self.relay_client = relay_client or RelayClient()
        self.ledger = ledger or SolanaLedgerClient(clock=self.clock)

        self.submitter = BundleSubmitter(
            registry=self.registry,
            policy=self.policy,
            relay_client=self.relay_client,
            fee_tx_builder=fee_tx_builder or SolanaFeeTxBuilder(),
            checkpoints=checkpoints or self.ledger,
            payer=payer,
            recipients=TipAccountSelector(tip_accounts or config.TIP_ACCOUNTS, strategy=self.strategy),
            settings=self.settings,
            clock=self.clock,
            strategy=self.strategy,
            on_bundle_sent=self._dispatcher("on_bundle_sent"),
            on_bundle_retry=self._dispatcher("on_bundle_retry"),
            on_bundle_failed=self._dispatcher("on_bundle_failed")
        )
        self.poller = ConfirmationPoller(
            relay_client=self.relay_client,
            ledger=self.ledger,
            timeout_ms=self.settings.confirm_timeout_ms,
            poll_interval_ms=self.settings.confirm_poll_interval_ms,
            clock=self.clock,
            on_bundle_confirmed=self._dispatcher("on_bundle_confirmed")
        )

        logger.info(f"BundleClient initialized with {len(self.registry.urls)} relay endpoints")

    async def send(
        self,
        transactions: Sequence[str],
        fee_override: Optional[int] = None,
        signatures: Optional[Sequence[str]] = None
    ) -> BundleResult:
        """Submits a bundle. See BundleSubmitter.send."""
        return await self.submitter.send(transactions, fee_override=fee_override, signatures=signatures)

    async def confirm(self, result: BundleResult, timeout_override: Optional[int] = None) -> ConfirmationOutcome:
        """Waits for confirmation of a submitted bundle. See ConfirmationPoller.confirm."""
        return await self.poller.confirm(result, timeout_override=timeout_override)

    async def send_and_confirm(
        self,
        transactions: Sequence[str],
        fee_override: Optional[int] = None,
        signatures: Optional[Sequence[str]] = None,
        timeout_override: Optional[int] = None
    ) -> Tuple[BundleResult, ConfirmationOutcome]:
        """
        Submits a bundle and, if accepted, waits for its confirmation.

        Returns:
            (BundleResult, ConfirmationOutcome); the outcome is unconfirmed when submission failed
        """
        result = await self.send(transactions, fee_override=fee_override, signatures=signatures)
        if not result.success:
            return result, ConfirmationOutcome(confirmed=False)
        return result, await self.confirm(result, timeout_override=timeout_override)

    def register_event_callback(self, event_type: str, callback: Callable[[Dict[str, Any]], None]):
        """
        Registers a callback for an event type.

        Args:
            event_type: One of on_bundle_sent, on_bundle_retry, on_bundle_failed, on_bundle_confirmed
            callback: Callback function that takes event data dict
        """
        if event_type not in EVENT_TYPES:
            logger.warning(f"Unknown event type: {event_type}")
            return
        self.event_callbacks[event_type].append(callback)
        logger.debug(f"Registered callback for event type: {event_type}")

    async def close(self):
        self.relay_client.session.close()
        await self.ledger.close()

    def _dispatcher(self, event_type: str) -> Callable[[Dict[str, Any]], None]:
        def dispatch(data: Dict[str, Any]):
            for callback in self.event_callbacks[event_type]:
                try:
                    callback(data)
                except Exception as e:
                    logger.error(f"Error in {event_type} callback: {str(e)}")
        return dispatch
