"""
Calldata builder for EAS prediction attestations.

Wraps an encoded prediction payload into a call to the Ethereum Attestation
Service `attest` function on the requested chain. Nothing here signs or
broadcasts; the result is handed to whatever submits transactions.
"""

from decimal import Decimal
from typing import Optional, Union

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from web3 import Web3

from attestor.codec import encode_price
from attestor.errors import EncodingError, UnsupportedChainError
from attestor.models import (
    ZERO_ADDRESS,
    ZERO_BYTES32,
    AttestationCalldata,
    AttestationPayloadFields,
    MarketReference,
)
from attestor.payload import decode_attestation_payload, encode_attestation_payload

# EAS contract addresses by chain id
EAS_CONTRACTS: dict[int, str] = {
    1: "0xA1207F3BBa224E2c9c3c6D5aF63D0eb1582Ce587",  # Ethereum Mainnet
    11155111: "0xC2679fBD37d54388Ce493F1DB75320D236e1815e",  # Sepolia
    10: "0x4200000000000000000000000000000000000021",  # Optimism
    8453: "0x4200000000000000000000000000000000000021",  # Base
    42161: "0xbD75f629A22Dc1ceD33dDA0b68c546A1c035c458",  # Arbitrum
}

DEFAULT_CHAIN_ID = 42161

# Schema uid of the prediction market schema
SCHEMA_ID = bytes.fromhex("2dbb0921fa38ebc044ab0a7fe109442c456fb9ad39a68ce0a32f193744d17744")

# AttestationRequest(bytes32 schema, AttestationRequestData data)
ATTEST_REQUEST_TYPE = "(bytes32,(address,uint64,bool,bytes32,bytes,uint256))"
ATTEST_SIGNATURE = f"attest({ATTEST_REQUEST_TYPE})"
ATTEST_SELECTOR = bytes(Web3.keccak(text=ATTEST_SIGNATURE)[:4])


def resolve_eas_address(chain_id: int) -> str:
    """
    Look up the EAS contract deployed on a chain.

    Raises:
        UnsupportedChainError: If no contract is registered for chain_id
    """
    try:
        return EAS_CONTRACTS[chain_id]
    except (KeyError, TypeError):
        raise UnsupportedChainError(chain_id) from None


def format_probability(probability: float) -> str:
    """Render a probability the way users see it: 68 rather than 68.0."""
    if isinstance(probability, float) and probability.is_integer():
        return str(int(probability))
    text = repr(probability)
    if "e" in text or "E" in text:
        # Positional notation for tiny values: 0.00001 rather than 1e-05
        return format(Decimal(text), "f")
    return text


def build_attestation_calldata(
    market: MarketReference,
    probability: float,
    reasoning: str,
    chain_id: int = DEFAULT_CHAIN_ID
) -> Optional[AttestationCalldata]:
    """
    Build the `attest` calldata for a prediction.

    Args:
        market: Market being attested
        probability: Percent chance of YES (0 to 100)
        reasoning: Free-text reasoning stored as the attestation comment
        chain_id: Chain to attest on

    Returns:
        AttestationCalldata, or None if no EAS contract is registered for chain_id

    Raises:
        DomainError: If probability is outside [0, 100]
        EncodingError: If the market reference cannot be encoded
    """
    encoded_price = encode_price(probability)
    payload = encode_attestation_payload(market, encoded_price, reasoning)

    try:
        target_address = resolve_eas_address(chain_id)
    except UnsupportedChainError:
        return None

    request = (
        SCHEMA_ID,
        (
            ZERO_ADDRESS,  # recipient
            0,  # expirationTime: never expires
            False,  # revocable
            ZERO_BYTES32,  # refUID
            payload,
            0,  # value
        ),
    )
    calldata = ATTEST_SELECTOR + encode([ATTEST_REQUEST_TYPE], [request])

    return AttestationCalldata(
        target_address=target_address,
        payload_bytes=calldata,
        chain_id=chain_id,
        human_description=(
            f"Attest: {format_probability(probability)}% YES for market {market.market_id}"
        ),
    )


def decode_attestation_calldata(
    data: Union[bytes, str]
) -> tuple[bytes, AttestationPayloadFields]:
    """
    Decode calldata built by build_attestation_calldata.

    Args:
        data: Calldata bytes, or a 0x-prefixed hex string

    Returns:
        Tuple of (schema uid, decoded payload fields)

    Raises:
        EncodingError: If the data is not an `attest` call with a valid payload
    """
    if isinstance(data, str):
        try:
            data = bytes.fromhex(data[2:] if data.startswith("0x") else data)
        except ValueError as e:
            raise EncodingError(f"calldata is not valid hex: {e}") from e

    if data[:4] != ATTEST_SELECTOR:
        raise EncodingError("calldata does not call attest()")

    try:
        (request,) = decode([ATTEST_REQUEST_TYPE], data[4:])
    except (DecodingError, ValueError) as e:
        raise EncodingError(f"ABI decoding failed: {e}") from e

    schema_id, request_data = request
    return schema_id, decode_attestation_payload(request_data[4])
