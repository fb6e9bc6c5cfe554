"""
Solana integration for the bundle submitter.

This package contains the resilience engine: relay endpoint tracking, fee
escalation, the multi-round submission loop and confirmation polling, plus
default ledger and fee transaction collaborators.
"""

from bundler.solana.models import (
    Endpoint,
    AttemptRound,
    BundleResult,
    ConfirmationOutcome,
    FeeTransaction,
    SignatureStatus,
)
from bundler.solana.endpoint_registry import EndpointRegistry
from bundler.solana.fee_policy import FeeEscalationPolicy
from bundler.solana.fee_tx_builder import SolanaFeeTxBuilder, TipAccountSelector, FeeTransactionError
from bundler.solana.ledger_client import SolanaLedgerClient, CheckpointError
from bundler.solana.bundle_submitter import BundleSubmitter
from bundler.solana.confirmation_poller import ConfirmationPoller
from bundler.solana.integration import BundleClient
