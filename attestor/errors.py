"""
Error types raised by the attestation encoding core.

DomainError and EncodingError mean the caller passed something invalid and
the current build attempt is over. UnsupportedChainError and
DecodeAmbiguousError are recoverable: the caller picks another chain, or
decides what to do about a stored value it cannot read.
"""

from typing import Any


class AttestationError(Exception):
    """Base class for all attestation errors."""


class DomainError(AttestationError, ValueError):
    """A value lies outside its valid domain (probability or encoded price)."""


class EncodingError(AttestationError, ValueError):
    """A payload field cannot be ABI-encoded or decoded."""


class UnsupportedChainError(AttestationError, LookupError):
    """No attestation contract is registered for the chain id."""

    def __init__(self, chain_id: int):
        super().__init__(f"No EAS contract registered for chain {chain_id}")
        self.chain_id = chain_id


class DecodeAmbiguousError(AttestationError):
    """
    A previously recorded prediction could not be decoded.

    Raised by the re-attestation policy instead of answering "no change", so
    callers cannot mistake unreadable history for a stable prediction.
    """

    def __init__(self, raw_value: Any, reason: str):
        super().__init__(f"Cannot decode stored prediction {raw_value!r}: {reason}")
        self.raw_value = raw_value
        self.reason = reason
