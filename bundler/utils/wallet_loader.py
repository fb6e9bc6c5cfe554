import json
import os
from typing import Optional
import base58
from loguru import logger
from solders.keypair import Keypair

def load_payer_keypair(private_key: Optional[str] = None, keypair_path: Optional[str] = None) -> Keypair:
    """
    Load the fee payer keypair.

    Args:
        private_key: Base58 encoded 64-byte secret key
        keypair_path: Path to a JSON key file (array of 64 integers)

    Returns:
        Keypair for the payer

    Raises:
        ValueError: If neither source is given or the key is malformed
    """
    if private_key:
        try:
            keypair = Keypair.from_bytes(base58.b58decode(private_key))
        except Exception as e:
            logger.error(f"Invalid payer private key format: {type(e).__name__}")
            raise ValueError("Invalid private key format. Must be base58 encoded.") from e
        logger.info(f"Loaded payer wallet: {str(keypair.pubkey())[:8]}...")
        return keypair

    if keypair_path:
        if not os.path.exists(keypair_path):
            raise ValueError(f"Keypair file not found: {keypair_path}")

        with open(keypair_path, 'r') as f:
            key_data = json.load(f)

        if not isinstance(key_data, list) or len(key_data) != 64:
            raise ValueError(f"Keypair file {keypair_path} must contain an array of 64 integers")

        keypair = Keypair.from_bytes(bytes(key_data))
        logger.info(f"Loaded payer wallet from {keypair_path}: {str(keypair.pubkey())[:8]}...")
        return keypair

    raise ValueError("No payer key configured. Set PAYER_PRIVATE_KEY or PAYER_KEYPAIR_PATH.")
