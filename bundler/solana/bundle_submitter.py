"""
Bundle submission with endpoint failover and fee escalation.
"""

from typing import Dict, Any, Optional, Callable, Sequence, Tuple
from datetime import datetime
from loguru import logger

from bundler.api.relay_client import (
    RelayClient,
    RelayRateLimitError,
    RelayServerError,
    RelayTimeoutError,
)
from bundler.config import SubmitterSettings
from bundler.solana.endpoint_registry import EndpointRegistry
from bundler.solana.fee_policy import FeeEscalationPolicy
from bundler.solana.fee_tx_builder import TipAccountSelector
from bundler.solana.models import AttemptRound, BundleResult, FeeTransaction
from bundler.utils.clock import Clock, SelectionStrategy
from bundler.utils.retry_utils import calculate_backoff

class BundleSubmitter:
    """
    Submits bundles to relays, retrying across endpoints and fee levels.

    Each attempt builds a fresh fee transaction, prepends it to the caller's
    transactions and offers the bundle to eligible endpoints one at a time.
    Endpoints are never contacted in parallel so at most one relay can accept
    a given bundle.
    """

    def __init__(self,
                 registry: EndpointRegistry,
                 policy: FeeEscalationPolicy,
                 relay_client: RelayClient,
                 fee_tx_builder,
                 checkpoints,
                 payer,
                 recipients: TipAccountSelector,
                 settings: Optional[SubmitterSettings] = None,
                 clock: Optional[Clock] = None,
                 strategy: Optional[SelectionStrategy] = None,
                 on_bundle_sent: Optional[Callable[[Dict[str, Any]], None]] = None,
                 on_bundle_retry: Optional[Callable[[Dict[str, Any]], None]] = None,
                 on_bundle_failed: Optional[Callable[[Dict[str, Any]], None]] = None):
        """
        Initialize the bundle submitter.

        Args:
            registry: Relay endpoints and their cooldown state
            policy: Fee escalation policy
            relay_client: JSON-RPC client used to submit bundles
            fee_tx_builder: Object with an async build_fee_transaction(payer, recipients, lamports, checkpoint)
            checkpoints: Object with an async get_checkpoint() returning a recent blockhash
            payer: Identity that pays and signs the fee transaction
            recipients: Strategy choosing the fee recipient
            settings: Attempt, backoff and cooldown settings
            clock: Time source for backoff sleeps
            strategy: Random source for backoff jitter
            on_bundle_sent: Callback when a relay accepts the bundle
            on_bundle_retry: Callback when an attempt fails and another follows
            on_bundle_failed: Callback when every attempt has failed
        """
        self.registry = registry
        self.policy = policy
        self.relay_client = relay_client
        self.fee_tx_builder = fee_tx_builder
        self.checkpoints = checkpoints
        self.payer = payer
        self.recipients = recipients
        self.settings = settings or SubmitterSettings()
        self.clock = clock or Clock()
        self.strategy = strategy or SelectionStrategy()

        if self.settings.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self.settings.max_attempts}")

        # Event callbacks
        self.on_bundle_sent = on_bundle_sent
        self.on_bundle_retry = on_bundle_retry
        self.on_bundle_failed = on_bundle_failed

    async def send(
        self,
        transactions: Sequence[str],
        fee_override: Optional[int] = None,
        signatures: Optional[Sequence[str]] = None
    ) -> BundleResult:
        """
        Submits a bundle, retrying until a relay accepts it or attempts run out.

        Args:
            transactions: Caller's transport-encoded transactions, in bundle order
            fee_override: Base fee in lamports for this call instead of the configured one
            signatures: Signature ids of the caller's transactions, tracked for confirmation

        Returns:
            BundleResult; success is False when every attempt failed
        """
        if not transactions:
            raise ValueError("A bundle needs at least one transaction")

        base_fee = fee_override if fee_override is not None else self.settings.base_fee_lamports
        caller_signatures = list(signatures or [])
        max_attempts = self.settings.max_attempts

        # Multiplier lives only for this call
        multiplier = self.policy.start_multiplier

        last_fee_signature: Optional[str] = None
        last_endpoint: Optional[str] = None

        logger.bind(transactions=len(transactions), base_fee=base_fee, max_attempts=max_attempts).info(
            f"Submitting bundle of {len(transactions)} transactions (base fee: {base_fee} lamports)"
        )

        for attempt in range(1, max_attempts + 1):
            round_ = AttemptRound(
                attempt=attempt,
                endpoints=self.registry.list_eligible(),
                multiplier=multiplier,
                fee_lamports=self.policy.compute_fee(base_fee, multiplier),
            )

            fee_tx = await self._build_fee_transaction(round_)

            if fee_tx is not None:
                last_fee_signature = fee_tx.signature
                round_.bundle = [fee_tx.encoded, *transactions]

                for endpoint in round_.endpoints:
                    last_endpoint = endpoint.url
                    bundle_id, multiplier = await self._broadcast(endpoint.url, round_, fee_tx, multiplier)

                    if bundle_id is not None:
                        result = BundleResult(
                            success=True,
                            bundle_id=bundle_id,
                            fee_signature=fee_tx.signature,
                            used_endpoint=endpoint.url,
                            signatures=[fee_tx.signature, *caller_signatures],
                            attempts=attempt,
                        )
                        logger.bind(bundle_id=bundle_id, endpoint=endpoint.url,
                                   fee_lamports=round_.fee_lamports, attempt=attempt).info(
                            f"Bundle {bundle_id} accepted by {endpoint.url} on attempt {attempt}/{max_attempts}"
                        )
                        self._notify(self.on_bundle_sent, {
                            "bundle_id": bundle_id,
                            "endpoint": endpoint.url,
                            "fee_signature": fee_tx.signature,
                            "fee_lamports": round_.fee_lamports,
                            "attempt": attempt,
                            "timestamp": datetime.now().isoformat()
                        })
                        return result

            # Round exhausted
            if attempt < max_attempts:
                backoff = calculate_backoff(
                    attempt,
                    self.settings.backoff_base_ms,
                    self.settings.backoff_cap_ms,
                    self.settings.backoff_jitter_ms,
                    self.strategy
                )
                logger.bind(attempt=attempt, backoff_ms=backoff, multiplier=multiplier).warning(
                    f"No relay accepted the bundle, retrying in {backoff:.0f}ms (attempt {attempt}/{max_attempts})"
                )
                self._notify(self.on_bundle_retry, {
                    "attempt": attempt,
                    "backoff_ms": backoff,
                    "multiplier": multiplier,
                    "timestamp": datetime.now().isoformat()
                })
                await self.clock.sleep(backoff)

        logger.bind(last_endpoint=last_endpoint, fee_signature=last_fee_signature).error(
            f"Bundle submission failed after {max_attempts} attempts"
        )
        self._notify(self.on_bundle_failed, {
            "attempts": max_attempts,
            "last_endpoint": last_endpoint,
            "fee_signature": last_fee_signature,
            "timestamp": datetime.now().isoformat()
        })

        return BundleResult(
            success=False,
            bundle_id=None,
            fee_signature=last_fee_signature,
            used_endpoint=last_endpoint,
            signatures=[last_fee_signature, *caller_signatures] if last_fee_signature else caller_signatures,
            attempts=max_attempts,
        )

    async def _build_fee_transaction(self, round_: AttemptRound) -> Optional[FeeTransaction]:
        """
        Fetches a checkpoint and builds this attempt's fee transaction.

        Returns:
            The fee transaction, or None if this attempt has to be abandoned
        """
        try:
            checkpoint = await self.checkpoints.get_checkpoint()
            return await self.fee_tx_builder.build_fee_transaction(
                self.payer,
                self.recipients,
                round_.fee_lamports,
                checkpoint
            )
        except Exception as e:
            logger.bind(attempt=round_.attempt, error=str(e)).warning(
                f"Fee transaction build failed on attempt {round_.attempt}: {str(e)}"
            )
            return None

    async def _broadcast(
        self,
        url: str,
        round_: AttemptRound,
        fee_tx: FeeTransaction,
        multiplier: float
    ) -> Tuple[Optional[str], float]:
        """
        Offers the bundle to one endpoint and records the outcome.

        Returns:
            (bundle id or None, multiplier for later attempts)
        """
        try:
            bundle_id = await self.relay_client.send_bundle(url, round_.bundle, encoding=fee_tx.encoding)
            return bundle_id, multiplier

        except RelayRateLimitError as e:
            multiplier = self.policy.on_rate_limited(multiplier)
            cooldown = e.retry_after_ms if e.retry_after_ms is not None else self.settings.rate_limit_cooldown_ms
            self.registry.mark_cooldown(url, cooldown)
            logger.bind(endpoint=url, cooldown_ms=cooldown, multiplier=multiplier).warning(
                f"Relay {url} rate limited, cooling down {cooldown}ms"
            )

        except (RelayServerError, RelayTimeoutError) as e:
            self.registry.mark_cooldown(url, self.settings.server_busy_cooldown_ms)
            logger.bind(endpoint=url, cooldown_ms=self.settings.server_busy_cooldown_ms).warning(
                f"Relay {url} busy: {str(e)}"
            )

        except Exception as e:
            error_count = self.registry.bump_error(url)
            self.registry.mark_cooldown(url, self.settings.rate_limit_cooldown_ms)
            logger.bind(endpoint=url, error_count=error_count, error=str(e)).warning(
                f"Relay {url} failed: {str(e)}"
            )

        return None, multiplier

    def _notify(self, callback: Optional[Callable[[Dict[str, Any]], None]], data: Dict[str, Any]):
        if not callback:
            return
        try:
            callback(data)
        except Exception as e:
            logger.error(f"Error in bundle event callback: {str(e)}")
