"""
ABI encoding of the prediction attestation payload.

The payload schema is a compatibility contract with the attestation schema
registered on-chain and with the indexer that reads it back:

    address marketAddress, uint256 marketId, bytes32 questionId,
    uint160 prediction, string comment

Field order and types must not change.
"""

from typing import Union

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError, EncodingError as AbiEncodingError
from web3 import Web3

from attestor.codec import MAX_ENCODED_PRICE
from attestor.errors import EncodingError
from attestor.models import AttestationPayloadFields, MarketReference

# Schema string as registered with the schema registry
PAYLOAD_SCHEMA_STRING = (
    "address marketAddress,uint256 marketId,bytes32 questionId,"
    "uint160 prediction,string comment"
)
PAYLOAD_SCHEMA = tuple(field.split()[0] for field in PAYLOAD_SCHEMA_STRING.split(","))

COMMENT_LIMIT = 180
ELLIPSIS = "..."

_MAX_UINT256 = 2 ** 256 - 1


def truncate_comment(comment: str) -> str:
    """
    Shorten a comment to at most COMMENT_LIMIT characters.

    Longer comments keep their first 177 characters followed by "...".
    """
    if len(comment) > COMMENT_LIMIT:
        return comment[:COMMENT_LIMIT - len(ELLIPSIS)] + ELLIPSIS
    return comment


def encode_attestation_payload(
    market: MarketReference,
    encoded_price: int,
    comment: str
) -> bytes:
    """
    ABI-encode an attestation payload.

    Args:
        market: Market the prediction is about
        encoded_price: Q96 sqrt-price from codec.encode_price
        comment: Reasoning text, truncated before encoding

    Returns:
        ABI-encoded payload bytes

    Raises:
        EncodingError: If any field cannot be represented in the schema
    """
    address = _checksum_address(market.contract_address)
    question_id = _as_bytes32(market.question_id)

    market_id = market.market_id
    if isinstance(market_id, bool) or not isinstance(market_id, int):
        raise EncodingError(f"market id must be an integer, got {type(market_id).__name__}")
    if market_id < 0 or market_id > _MAX_UINT256:
        raise EncodingError(f"market id {market_id} is outside the uint256 range")

    if isinstance(encoded_price, bool) or not isinstance(encoded_price, int):
        raise EncodingError(f"encoded price must be an integer, got {type(encoded_price).__name__}")
    if encoded_price < 0 or encoded_price > MAX_ENCODED_PRICE:
        raise EncodingError(f"encoded price {encoded_price} does not fit in uint160")

    if not isinstance(comment, str):
        raise EncodingError(f"comment must be a string, got {type(comment).__name__}")

    try:
        return encode(
            list(PAYLOAD_SCHEMA),
            [address, market_id, question_id, encoded_price, truncate_comment(comment)]
        )
    except AbiEncodingError as e:
        raise EncodingError(f"ABI encoding failed: {e}") from e


def decode_attestation_payload(data: Union[bytes, str]) -> AttestationPayloadFields:
    """
    Decode an attestation payload produced by encode_attestation_payload.

    Args:
        data: Payload bytes, or a 0x-prefixed hex string

    Raises:
        EncodingError: If the data is not a valid payload
    """
    if isinstance(data, str):
        try:
            data = bytes.fromhex(data[2:] if data.startswith("0x") else data)
        except ValueError as e:
            raise EncodingError(f"payload is not valid hex: {e}") from e

    try:
        address, market_id, question_id, prediction, comment = decode(list(PAYLOAD_SCHEMA), data)
    except (DecodingError, UnicodeDecodeError, ValueError) as e:
        raise EncodingError(f"ABI decoding failed: {e}") from e

    return AttestationPayloadFields(
        market_address=address,
        market_id=market_id,
        question_id=question_id,
        prediction=prediction,
        comment=comment,
    )


def _checksum_address(address: str) -> str:
    if not isinstance(address, str) or not Web3.is_address(address):
        raise EncodingError(f"invalid market address: {address!r}")
    return Web3.to_checksum_address(address)


def _as_bytes32(value: Union[bytes, str]) -> bytes:
    if isinstance(value, str):
        try:
            value = bytes.fromhex(value[2:] if value.startswith("0x") else value)
        except ValueError as e:
            raise EncodingError(f"question id is not valid hex: {e}") from e

    if not isinstance(value, (bytes, bytearray)) or len(value) != 32:
        raise EncodingError("question id must be exactly 32 bytes")
    return bytes(value)
