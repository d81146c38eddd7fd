import pytest
from eth_abi import decode

from attestor.codec import encode_price
from attestor.errors import EncodingError
from attestor.models import MarketReference
from attestor.payload import (
    COMMENT_LIMIT,
    ELLIPSIS,
    PAYLOAD_SCHEMA,
    PAYLOAD_SCHEMA_STRING,
    decode_attestation_payload,
    encode_attestation_payload,
    truncate_comment,
)

MARKET = MarketReference(contract_address="0x" + "aa" * 20, market_id=147)


def test_truncate_comment_short_passes_through():
    assert truncate_comment("btc momentum strong") == "btc momentum strong"
    exact = "x" * COMMENT_LIMIT
    assert truncate_comment(exact) == exact


def test_truncate_comment_long_gets_ellipsis():
    truncated = truncate_comment("y" * 181)
    assert len(truncated) == 180
    assert truncated == "y" * 177 + ELLIPSIS


def test_payload_is_deterministic():
    first = encode_attestation_payload(MARKET, encode_price(68), "btc momentum strong")
    second = encode_attestation_payload(MARKET, encode_price(68), "btc momentum strong")
    assert first == second


def test_long_comment_is_truncated_before_encoding():
    comment = "".join(chr(ord("a") + i % 26) for i in range(250))
    payload = encode_attestation_payload(MARKET, encode_price(50), comment)

    fields = decode_attestation_payload(payload)
    assert len(fields.comment) == 180
    assert fields.comment.endswith("...")
    assert fields.comment[:177] == comment[:177]


def test_payload_fields_decode_back():
    question_id = bytes(range(32))
    market = MarketReference(contract_address="0x" + "ab" * 20, market_id=7, question_id=question_id)
    payload = encode_attestation_payload(market, encode_price(68), "hello")

    fields = decode_attestation_payload("0x" + payload.hex())
    assert fields.market_address.lower() == "0x" + "ab" * 20
    assert fields.market_id == 7
    assert fields.question_id == question_id
    assert fields.prediction == encode_price(68)
    assert fields.comment == "hello"


def test_payload_layout_follows_abi_head_tail():
    payload = encode_attestation_payload(MARKET, encode_price(100), "hi")

    words = [payload[i:i + 32] for i in range(0, len(payload), 32)]
    assert words[0] == bytes(12) + bytes.fromhex("aa" * 20)
    assert int.from_bytes(words[1], "big") == 147
    assert words[2] == bytes(32)
    assert int.from_bytes(words[3], "big") == 2 ** 96
    # String is dynamic: head holds the offset of its tail
    assert int.from_bytes(words[4], "big") == 5 * 32
    assert int.from_bytes(words[5], "big") == 2
    assert words[6] == b"hi" + bytes(30)
    assert len(words) == 7


def test_payload_decodes_with_schema_types():
    payload = encode_attestation_payload(MARKET, 123, "comment")
    address, market_id, question_id, prediction, comment = decode(list(PAYLOAD_SCHEMA), payload)
    assert market_id == 147
    assert prediction == 123
    assert comment == "comment"


def test_negative_market_id_rejected():
    with pytest.raises(EncodingError):
        encode_attestation_payload(MarketReference("0x" + "aa" * 20, -1), 0, "")


def test_non_integer_market_id_rejected():
    with pytest.raises(EncodingError):
        encode_attestation_payload(MarketReference("0x" + "aa" * 20, "147"), 0, "")


@pytest.mark.parametrize("price", [-1, 2 ** 160, 2 ** 161])
def test_price_outside_uint160_rejected(price):
    with pytest.raises(EncodingError):
        encode_attestation_payload(MARKET, price, "")


@pytest.mark.parametrize("address", ["0x1234", "not an address", "", None])
def test_invalid_address_rejected(address):
    with pytest.raises(EncodingError):
        encode_attestation_payload(MarketReference(address, 1), 0, "")


@pytest.mark.parametrize("question_id", [bytes(31), bytes(33), "0x1234", "zz"])
def test_invalid_question_id_rejected(question_id):
    with pytest.raises(EncodingError):
        encode_attestation_payload(MarketReference("0x" + "aa" * 20, 1, question_id), 0, "")


def test_question_id_accepts_hex_string():
    market = MarketReference("0x" + "aa" * 20, 1, "0x" + "11" * 32)
    fields = decode_attestation_payload(encode_attestation_payload(market, 0, ""))
    assert fields.question_id == bytes.fromhex("11" * 32)


def test_garbage_payload_fails_to_decode():
    with pytest.raises(EncodingError):
        decode_attestation_payload(b"\x01\x02")
    with pytest.raises(EncodingError):
        decode_attestation_payload("0xnothex")


def test_schema_types_follow_registered_schema_string():
    assert PAYLOAD_SCHEMA == ("address", "uint256", "bytes32", "uint160", "string")
    names = [field.split()[1] for field in PAYLOAD_SCHEMA_STRING.split(",")]
    assert names == ["marketAddress", "marketId", "questionId", "prediction", "comment"]
