import os
from typing import List
from dotenv import load_dotenv
from pydantic import BaseModel

# Load environment variables from .env file
load_dotenv()

# Default relay endpoints, cheapest/most permissive first
DEFAULT_RELAY_ENDPOINTS = [
    "https://mainnet.block-engine.jito.wtf/api/v1/bundles",
    "https://amsterdam.mainnet.block-engine.jito.wtf/api/v1/bundles",
    "https://frankfurt.mainnet.block-engine.jito.wtf/api/v1/bundles",
    "https://ny.mainnet.block-engine.jito.wtf/api/v1/bundles",
    "https://tokyo.mainnet.block-engine.jito.wtf/api/v1/bundles",
]

# Jito tip accounts used as fee recipients
DEFAULT_TIP_ACCOUNTS = [
    "96gYZGLnJYVFmbjzopPSU6QiEV5fGqZNyN9nmNhvrZU5",
    "HFqU5x63VTqvQss8hp11i4wVV8bD44PvwucfZ2bU7gRe",
    "Cw8CFyM9FkoMi7K7Crf6HNQqf4uEMzpKw6QNghXLvLkY",
    "ADaUMid9yfUytqMBgopwjb2DTLSokTSzL1zt6iGPaS49",
    "DfXygSm4jCyNCybVYYK6DwvWqjKee8pbDmJGcLWNDXjh",
    "ADuUkR4vqLUMWXxW9gh6D6L8pMSawimctcNZ5pGwDcEt",
    "DttWaMuVvTiduZRnguLF7jNxTgiMBZ1hyAumKUiL2KRL",
    "3AVi9Tg9Uo68tJfuvoKvqKNWKkC5wPdSSdeBnizKZ6jT",
]


def _split_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


# Relay configuration
RELAY_ENDPOINTS = _split_list(os.getenv("RELAY_ENDPOINTS", "")) or list(DEFAULT_RELAY_ENDPOINTS)
RELAY_SHUFFLE = os.getenv("RELAY_SHUFFLE", "false").lower() in ("1", "true", "yes")
RELAY_TIMEOUT = float(os.getenv("RELAY_TIMEOUT", "10"))  # seconds
TIP_ACCOUNTS = _split_list(os.getenv("TIP_ACCOUNTS", "")) or list(DEFAULT_TIP_ACCOUNTS)

# Ledger configuration
LEDGER_RPC_URL = os.getenv("LEDGER_RPC_URL", "https://api.mainnet-beta.solana.com")

# Logging configuration
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Wallet configuration
PAYER_PRIVATE_KEY = os.getenv("PAYER_PRIVATE_KEY")
PAYER_KEYPAIR_PATH = os.getenv("PAYER_KEYPAIR_PATH")
TX_ENCODING = os.getenv("TX_ENCODING", "base58")

# Fee configuration
BASE_FEE_LAMPORTS = int(os.getenv("BASE_FEE_LAMPORTS", "1000000"))
START_FEE_MULTIPLIER = float(os.getenv("START_FEE_MULTIPLIER", "1.0"))
MAX_FEE_MULTIPLIER = float(os.getenv("MAX_FEE_MULTIPLIER", "3.0"))
FEE_ESCALATION_FACTOR = float(os.getenv("FEE_ESCALATION_FACTOR", "1.15"))

# Retry configuration
MAX_ATTEMPTS = int(os.getenv("MAX_ATTEMPTS", "5"))
BACKOFF_BASE_MS = int(os.getenv("BACKOFF_BASE_MS", "250"))
BACKOFF_CAP_MS = int(os.getenv("BACKOFF_CAP_MS", "4000"))
BACKOFF_JITTER_MS = int(os.getenv("BACKOFF_JITTER_MS", "250"))
RATE_LIMIT_COOLDOWN_MS = int(os.getenv("RATE_LIMIT_COOLDOWN_MS", "4000"))
SERVER_BUSY_COOLDOWN_MS = int(os.getenv("SERVER_BUSY_COOLDOWN_MS", "8000"))

# Confirmation configuration
CONFIRM_TIMEOUT_MS = int(os.getenv("CONFIRM_TIMEOUT_MS", "60000"))
CONFIRM_POLL_INTERVAL_MS = int(os.getenv("CONFIRM_POLL_INTERVAL_MS", "2000"))


class SubmitterSettings(BaseModel):
    """Tunable knobs for submission and confirmation."""
    base_fee_lamports: int = BASE_FEE_LAMPORTS
    start_multiplier: float = START_FEE_MULTIPLIER
    max_multiplier: float = MAX_FEE_MULTIPLIER
    escalation_factor: float = FEE_ESCALATION_FACTOR
    max_attempts: int = MAX_ATTEMPTS
    backoff_base_ms: int = BACKOFF_BASE_MS
    backoff_cap_ms: int = BACKOFF_CAP_MS
    backoff_jitter_ms: int = BACKOFF_JITTER_MS
    rate_limit_cooldown_ms: int = RATE_LIMIT_COOLDOWN_MS
    server_busy_cooldown_ms: int = SERVER_BUSY_COOLDOWN_MS
    confirm_timeout_ms: int = CONFIRM_TIMEOUT_MS
    confirm_poll_interval_ms: int = CONFIRM_POLL_INTERVAL_MS
