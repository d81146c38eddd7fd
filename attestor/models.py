"""
Data models for the prediction attestation agent.

This module defines the dataclasses used throughout the application for
representing markets, predictions, on-chain attestations and the calldata
built from them.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

ZERO_ADDRESS = "0x" + "00" * 20
ZERO_BYTES32 = bytes(32)


@dataclass(frozen=True)
class MarketReference:
    """
    Identifies the market an attestation pertains to.

    Attributes:
        contract_address: Market (group) contract address, 0x-prefixed hex
        market_id: Market id within the contract
        question_id: 32-byte question identifier (zero until the indexer exposes it)
    """
    contract_address: str
    market_id: int
    question_id: bytes = ZERO_BYTES32


@dataclass(frozen=True)
class AttestationPayloadFields:
    """Decoded contents of an attestation payload."""
    market_address: str
    market_id: int
    question_id: bytes
    prediction: int
    comment: str


@dataclass(frozen=True)
class AttestationCalldata:
    """
    A ready-to-send call to the attestation contract.

    Attributes:
        target_address: Attestation contract address on the chain
        payload_bytes: Full calldata (selector followed by the encoded request)
        chain_id: Chain the call is meant for
        human_description: One-line description shown verbatim to users
        value_wei: Native value sent with the call (always 0)
    """
    target_address: str
    payload_bytes: bytes
    chain_id: int
    human_description: str
    value_wei: int = 0

    @property
    def data_hex(self) -> str:
        return "0x" + self.payload_bytes.hex()

    def to_transaction(self) -> dict:
        """
        Format the calldata as a transaction request.

        Returns:
            Dictionary with "to", "data" (hex) and "value" (decimal string)
        """
        return {
            "to": self.target_address,
            "data": self.data_hex,
            "value": str(self.value_wei),
        }


@dataclass
class Market:
    """
    Represents an active prediction market from Sapience.

    Attributes:
        id: Listing identifier
        market_id: Market id inside the market group contract
        address: Market group contract address
        question: Market question
        current_price: Current implied probability in percent, if known
        volume: Traded volume
        end_date: Market resolution date
    """
    id: str
    market_id: int
    address: str
    question: str
    current_price: Optional[float] = None
    volume: float = 0.0
    end_date: Optional[datetime] = None

    def reference(self) -> MarketReference:
        return MarketReference(contract_address=self.address, market_id=self.market_id)


@dataclass
class Prediction:
    """
    A probability assessment for a market.

    Attributes:
        probability: Percent chance of YES (0 to 100)
        reasoning: Free-text reasoning, used as the attestation comment
        confidence: Confidence in the estimate (0.0 to 1.0)
    """
    probability: float
    reasoning: str
    confidence: float


@dataclass
class AttestationRecord:
    """
    A previously recorded on-chain attestation as returned by the indexer.

    The prediction is kept exactly as the indexer returned it (usually a
    decimal string of the uint160 value); decoding happens later.
    """
    attester: str
    market_address: str
    market_id: str
    prediction: Any
    created_at: Optional[datetime]
    uid: str = ""
    comment: str = ""


@dataclass
class AttestationCandidate:
    """A market selected for attestation, with the reason it was selected."""
    market: Market
    reason: str
    prediction: Optional[Prediction] = None


@dataclass
class AttestationResult:
    """
    Outcome of processing one market in an attestation cycle.

    Attributes:
        market_id: Market id
        status: "submitted", "built", "skipped" or "failed"
        message: Human-readable detail
        probability: Attested probability, if a prediction was made
        confidence: Prediction confidence, if a prediction was made
        submission_ref: Reference returned by the submitter (e.g. tx hash)
        created_at: When the result was recorded
    """
    market_id: int
    status: str
    message: str
    probability: Optional[float] = None
    confidence: Optional[float] = None
    submission_ref: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
