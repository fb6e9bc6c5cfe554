"""
Priority fee escalation for bundle submission.
"""

import math
from loguru import logger

class FeeEscalationPolicy:
    """
    Computes the priority fee for each attempt and escalates it on rate limits.

    The policy is stateless: the current multiplier is owned by the caller for
    the duration of a single send() and starts again at start_multiplier.
    """

    # Default escalation per rate-limited response
    ESCALATION_FACTOR = 1.15

    def __init__(self,
                 start_multiplier: float = 1.0,
                 max_multiplier: float = 3.0,
                 escalation_factor: float = ESCALATION_FACTOR):
        """
        Initialize the fee policy.

        Args:
            start_multiplier: Multiplier used for the first attempt of every send
            max_multiplier: Upper bound for the multiplier and the fee
            escalation_factor: Multiplicative step applied on each rate limit
        """
        if start_multiplier <= 0 or max_multiplier <= 0:
            raise ValueError("Fee multipliers must be positive")
        if start_multiplier > max_multiplier:
            raise ValueError(
                f"start_multiplier ({start_multiplier}) exceeds max_multiplier ({max_multiplier})"
            )
        if escalation_factor < 1:
            raise ValueError(f"escalation_factor must be >= 1, got {escalation_factor}")

        self.start_multiplier = start_multiplier
        self.max_multiplier = max_multiplier
        self.escalation_factor = escalation_factor

    def compute_fee(self, base_amount: int, multiplier: float) -> int:
        """
        Computes the fee for an attempt.

        Args:
            base_amount: Base fee in lamports
            multiplier: Current multiplier

        Returns:
            floor(base * multiplier), clamped to floor(base * max_multiplier)
        """
        ceiling = _floor(base_amount * self.max_multiplier)
        fee = min(_floor(base_amount * multiplier), ceiling)

        logger.bind(base_fee=base_amount, multiplier=multiplier, fee=fee).debug(
            f"Computed fee: {fee} lamports (base: {base_amount}, multiplier: {multiplier:.4f})"
        )
        return fee

    def on_rate_limited(self, multiplier: float) -> float:
        """
        Escalates the multiplier after a rate-limited response.

        Args:
            multiplier: Current multiplier

        Returns:
            min(multiplier * escalation_factor, max_multiplier)
        """
        escalated = min(multiplier * self.escalation_factor, self.max_multiplier)

        if escalated > multiplier:
            logger.info(f"Escalating fee multiplier {multiplier:.4f} -> {escalated:.4f}")
        return escalated


def _floor(value: float) -> int:
    # Round first so 1_000_000 * 1.15 floors to 1_150_000, not 1_149_999
    return math.floor(round(value, 6))
