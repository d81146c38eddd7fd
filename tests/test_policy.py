import pytest

from attestor.codec import encode_price
from attestor.errors import DecodeAmbiguousError, DomainError
from attestor.policy import should_reattest


def test_large_change_triggers_reattestation():
    previous = encode_price(50)
    assert should_reattest(previous, 65, 10) is True


def test_small_change_does_not_trigger():
    previous = encode_price(50)
    assert should_reattest(previous, 65, 20) is False


def test_change_equal_to_threshold_triggers():
    # 25% encodes exactly, so the decoded value is exactly 25.0
    assert should_reattest(2 ** 95, 35, 10) is True
    assert should_reattest(2 ** 95, 15, 10) is True


def test_downward_change_counts():
    assert should_reattest(encode_price(80), 60, 10) is True


def test_stored_string_values_are_decoded():
    previous = encode_price(50)
    assert should_reattest(str(previous), 65, 10) is True
    assert should_reattest(hex(previous), 55, 10) is False


@pytest.mark.parametrize("corrupt", [2 ** 160, -1, "garbage", None, 1.5])
def test_corrupt_history_is_ambiguous_not_false(corrupt):
    with pytest.raises(DecodeAmbiguousError) as excinfo:
        should_reattest(corrupt, 65, 10)
    assert excinfo.value.raw_value == corrupt
    assert isinstance(excinfo.value.__cause__, DomainError)


@pytest.mark.parametrize("probability", [-1, 101, float("nan")])
def test_invalid_new_probability_rejected(probability):
    with pytest.raises(DomainError):
        should_reattest(encode_price(50), probability, 10)


def test_negative_threshold_rejected():
    with pytest.raises(DomainError):
        should_reattest(encode_price(50), 50, -1)
