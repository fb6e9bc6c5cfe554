"""
Ledger access for checkpoints and signature status.
"""

from typing import List, Optional, Tuple
from loguru import logger
from solana.rpc.async_api import AsyncClient
from solders.signature import Signature
from solders.transaction_status import TransactionConfirmationStatus

from bundler.config import LEDGER_RPC_URL
from bundler.solana.models import SignatureStatus
from bundler.utils.clock import Clock

# Compared by equality; the enum members are not hashable in every solders release
_CONFIRMATION_LEVELS = (
    (TransactionConfirmationStatus.Processed, "processed"),
    (TransactionConfirmationStatus.Confirmed, "confirmed"),
    (TransactionConfirmationStatus.Finalized, "finalized"),
)


def _confirmation_level(status) -> Optional[str]:
    if status is None:
        return None
    for level, name in _CONFIRMATION_LEVELS:
        if status == level:
            return name
    return None


class CheckpointError(Exception):
    """Raised when a recent blockhash cannot be obtained."""
    pass


class SolanaLedgerClient:
    """
    Reads recent blockhashes and signature statuses from a Solana RPC node.
    """

    # Milliseconds a fetched blockhash is reused before refreshing
    BLOCKHASH_TTL_MS = 20_000

    def __init__(self, rpc_url: str = LEDGER_RPC_URL, async_client: Optional[AsyncClient] = None, clock: Optional[Clock] = None):
        """
        Initialize the ledger client.

        Args:
            rpc_url: Solana RPC URL
            async_client: Optional pre-built AsyncClient
            clock: Time source for the blockhash cache
        """
        self.rpc_url = rpc_url
        self.async_client = async_client or AsyncClient(rpc_url)
        self.clock = clock or Clock()
        self._latest_blockhash: Optional[Tuple[str, float]] = None

        logger.info(f"SolanaLedgerClient initialized on {rpc_url}")

    async def get_checkpoint(self) -> str:
        """
        Gets a recent blockhash for use in transactions.

        Returns:
            Recent blockhash as a base58 string

        Raises:
            CheckpointError: If the RPC node cannot provide one
        """
        if self._latest_blockhash:
            blockhash, fetched_at = self._latest_blockhash
            if self.clock.now_ms() - fetched_at < self.BLOCKHASH_TTL_MS:
                return blockhash

        try:
            resp = await self.async_client.get_latest_blockhash()
            blockhash = str(resp.value.blockhash)
        except Exception as e:
            logger.error(f"Error getting recent blockhash: {str(e)}")
            self._latest_blockhash = None
            raise CheckpointError(f"Failed to get recent blockhash: {str(e)}") from e

        self._latest_blockhash = (blockhash, self.clock.now_ms())
        return blockhash

    async def get_signature_statuses(
        self,
        signatures: List[str],
        search_transaction_history: bool = True
    ) -> List[Optional[SignatureStatus]]:
        """
        Gets ledger status for a set of signatures in one call.

        Args:
            signatures: Base58 signature ids
            search_transaction_history: Search beyond the recent status cache

        Returns:
            One entry per signature, None where the ledger has no record
        """
        resp = await self.async_client.get_signature_statuses(
            [Signature.from_string(s) for s in signatures],
            search_transaction_history=search_transaction_history,
        )

        statuses: List[Optional[SignatureStatus]] = []
        for signature, status in zip(signatures, resp.value):
            if status is None:
                statuses.append(None)
                continue
            statuses.append(SignatureStatus(
                signature=signature,
                confirmation_status=_confirmation_level(status.confirmation_status),
                err=str(status.err) if status.err is not None else None,
            ))
        return statuses

    async def close(self):
        await self.async_client.close()
