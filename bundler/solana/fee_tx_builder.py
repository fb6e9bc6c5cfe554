"""
Priority fee transaction construction for Solana.
"""

import base64
from typing import Optional, Sequence
import base58
from loguru import logger
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from solders.transaction import Transaction

from bundler.config import TIP_ACCOUNTS, TX_ENCODING
from bundler.solana.models import FeeTransaction
from bundler.utils.clock import SelectionStrategy

SUPPORTED_ENCODINGS = ("base58", "base64")


class FeeTransactionError(Exception):
    """Raised when the fee transaction cannot be built or signed."""
    pass


class TipAccountSelector:
    """
    Picks the fee recipient for each attempt from a list of tip accounts.
    """

    def __init__(self, accounts: Sequence[str] = TIP_ACCOUNTS, strategy: Optional[SelectionStrategy] = None):
        if not accounts:
            raise ValueError("At least one tip account is required")
        self.accounts = list(accounts)
        self.strategy = strategy or SelectionStrategy()

    def select(self) -> str:
        return self.strategy.choose(self.accounts)


class SolanaFeeTxBuilder:
    """
    Builds, signs and encodes a SOL transfer that pays the bundle priority fee.
    """

    def __init__(self, encoding: str = TX_ENCODING):
        """
        Initialize the builder.

        Args:
            encoding: Transport encoding for the serialized transaction
        """
        if encoding not in SUPPORTED_ENCODINGS:
            raise ValueError(f"Unsupported transaction encoding: {encoding}")
        self.encoding = encoding

    async def build_fee_transaction(
        self,
        payer: Keypair,
        recipients: TipAccountSelector,
        lamports: int,
        checkpoint: str
    ) -> FeeTransaction:
        """
        Build a signed fee transfer.

        Args:
            payer: Keypair paying the fee and signing the transaction
            recipients: Strategy choosing the recipient address
            lamports: Fee amount in lamports
            checkpoint: Recent blockhash

        Returns:
            FeeTransaction with the encoded transaction and its signature

        Raises:
            FeeTransactionError: If any step of construction or signing fails
        """
        try:
            recipient = recipients.select()
            blockhash = Hash.from_string(checkpoint)

            instruction = transfer(
                TransferParams(
                    from_pubkey=payer.pubkey(),
                    to_pubkey=Pubkey.from_string(recipient),
                    lamports=lamports
                )
            )

            message = Message([instruction], payer.pubkey())
            tx = Transaction([payer], message, blockhash)

            serialized_tx = bytes(tx)
            if self.encoding == "base64":
                encoded = base64.b64encode(serialized_tx).decode('utf-8')
            else:
                encoded = base58.b58encode(serialized_tx).decode('utf-8')

            signature = str(tx.signatures[0])

        except Exception as e:
            logger.error(f"Error building fee transaction: {str(e)}")
            raise FeeTransactionError(f"Failed to build fee transaction: {str(e)}") from e

        logger.bind(signature=signature, lamports=lamports, recipient=recipient).debug(
            f"Built fee transaction {signature} paying {lamports} lamports to {recipient}"
        )

        return FeeTransaction(
            encoded=encoded,
            signature=signature,
            recipient=recipient,
            lamports=lamports,
            encoding=self.encoding
        )
