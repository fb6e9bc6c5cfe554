"""
Models for bundle submission and confirmation.
"""
from typing import Dict, List, Any, Optional, Literal
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime

class Endpoint(BaseModel):
    """A candidate relay endpoint and its health state."""
    url: str
    cooldown_until: float = 0.0  # ms on the registry clock
    error_count: int = 0

class FeeTransaction(BaseModel):
    """A signed, transport-encoded priority fee transfer."""
    encoded: str
    signature: str
    recipient: str
    lamports: int
    encoding: str = "base58"  # base58 or base64

class AttemptRound(BaseModel):
    """State for a single submission attempt."""
    attempt: int
    endpoints: List[Endpoint]
    multiplier: float
    fee_lamports: int
    bundle: List[str] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=datetime.now)

class BundleResult(BaseModel):
    """Outcome of a send() call."""
    model_config = ConfigDict(frozen=True)

    success: bool
    bundle_id: Optional[str] = None
    fee_signature: Optional[str] = None
    used_endpoint: Optional[str] = None
    signatures: List[str] = Field(default_factory=list)  # fee signature first
    attempts: int = 0

class SignatureStatus(BaseModel):
    """Ledger status of a single signature."""
    signature: str
    confirmation_status: Optional[str] = None  # processed, confirmed, finalized
    err: Optional[Any] = None

class ConfirmationOutcome(BaseModel):
    """Outcome of a confirm() call."""
    model_config = ConfigDict(frozen=True)

    confirmed: bool
    source: Optional[Literal["relay", "ledger"]] = None
    status: Optional[Dict[str, Any]] = None
