"""
Fixed-point price codec for attestation predictions.

A probability in percent is attested as a Q96 square-root price, the same
convention AMM pricing curves use:

    encoded = floor(sqrt(p / 100) * 2**96)

Both directions use exact rational arithmetic. Encoding converts the input to
an exact fraction, scales it by 2**192 / 100, floors it and takes the integer
square root; because floor(sqrt(x)) == isqrt(floor(x)) for x >= 0 the result
is the exact truncated value, with no floating point in between. Decoding
squares the integer and converts to float once at the end.

Round-trip error: truncation loses less than one Q96 unit in sqrt-price
space, so |p - decode(encode(p))| < 200 * 2**-96 plus one float rounding
step, far below ROUND_TRIP_TOLERANCE.
"""

import math
import numbers
from fractions import Fraction
from typing import Any

from attestor.errors import DomainError

Q96 = 2 ** 96
MAX_ENCODED_PRICE = 2 ** 160 - 1
ROUND_TRIP_TOLERANCE = 0.5

_Q192 = Q96 * Q96


def encode_price(probability_percent: float) -> int:
    """
    Encode a probability in percent as a Q96 square-root price.

    Args:
        probability_percent: Percent chance of YES, 0 to 100 inclusive

    Returns:
        The truncated sqrt-price integer (0 for 0%, exactly 2**96 for 100%)

    Raises:
        DomainError: If the input is not a finite number in [0, 100]
    """
    if isinstance(probability_percent, bool) or not isinstance(probability_percent, numbers.Real):
        raise DomainError(f"probability must be a real number, got {type(probability_percent).__name__}")

    if not math.isfinite(probability_percent):
        raise DomainError(f"probability must be finite, got {probability_percent}")

    if not (0 <= probability_percent <= 100):
        raise DomainError(f"probability must be between 0 and 100, got {probability_percent}")

    scaled = Fraction(probability_percent) * _Q192 / 100
    return math.isqrt(math.floor(scaled))


def decode_price(encoded: int) -> float:
    """
    Decode a Q96 square-root price back into a probability in percent.

    The result is clamped to [0, 100]; values above 2**96 are legal uint160
    prices but read as certainty.

    Raises:
        DomainError: If encoded is not an integer in [0, 2**160)
    """
    if isinstance(encoded, bool) or not isinstance(encoded, int):
        raise DomainError(f"encoded price must be an integer, got {type(encoded).__name__}")

    if encoded < 0 or encoded > MAX_ENCODED_PRICE:
        raise DomainError(f"encoded price {encoded} is outside the uint160 range")

    probability = float(Fraction(encoded * encoded * 100, _Q192))
    return max(0.0, min(probability, 100.0))


def parse_encoded_price(value: Any) -> int:
    """
    Parse an encoded price as stored by an indexer.

    Accepts an int, a decimal string or a 0x-prefixed hex string. Range
    checks are left to decode_price.

    Raises:
        DomainError: If the value is not an integer or integer string
    """
    if isinstance(value, bool):
        raise DomainError("encoded price must be an integer, got bool")

    if isinstance(value, int):
        return value

    if isinstance(value, str):
        text = value.strip()
        try:
            if text.lower().startswith("0x"):
                return int(text[2:], 16)
            return int(text, 10)
        except ValueError:
            raise DomainError(f"encoded price {value!r} is not an integer string") from None

    raise DomainError(f"encoded price must be an int or string, got {type(value).__name__}")
