"""
Re-attestation decision policy.

Compares a fresh prediction with the one already recorded on-chain and
decides whether the change is large enough to attest again. Timing rules
(how long to wait between attestations) live with the caller.
"""

import math
from typing import Any

from attestor.codec import decode_price, parse_encoded_price
from attestor.errors import DecodeAmbiguousError, DomainError


def should_reattest(
    previous_encoded_price: Any,
    new_probability: float,
    change_threshold_percent: float
) -> bool:
    """
    Decide whether a market should be attested again.

    Args:
        previous_encoded_price: Recorded Q96 sqrt-price (int, decimal or hex string)
        new_probability: Fresh prediction in percent (0 to 100)
        change_threshold_percent: Minimum absolute change, in percentage points

    Returns:
        True if the prediction moved by at least the threshold

    Raises:
        DecodeAmbiguousError: If the recorded value cannot be decoded
        DomainError: If new_probability or the threshold is invalid
    """
    _check_probability(new_probability)

    if not math.isfinite(change_threshold_percent) or change_threshold_percent < 0:
        raise DomainError(f"change threshold must be a non-negative number, got {change_threshold_percent}")

    try:
        previous_probability = decode_price(parse_encoded_price(previous_encoded_price))
    except DomainError as e:
        raise DecodeAmbiguousError(previous_encoded_price, str(e)) from e

    return abs(new_probability - previous_probability) >= change_threshold_percent


def _check_probability(probability: float) -> None:
    if isinstance(probability, bool) or not isinstance(probability, (int, float)):
        raise DomainError(f"probability must be a real number, got {type(probability).__name__}")
    if not math.isfinite(probability) or not (0 <= probability <= 100):
        raise DomainError(f"probability must be between 0 and 100, got {probability}")
