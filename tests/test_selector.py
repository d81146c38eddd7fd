from datetime import datetime, timedelta, timezone

from attestor.codec import encode_price
from attestor.models import AttestationRecord, Market, Prediction
from attestor.selector import find_matching_attestation, select_markets_for_attestation

NOW = datetime(2026, 10, 19, 12, tzinfo=timezone.utc)
ADDRESS = "0x" + "ab" * 20


def _market(market_id, address=ADDRESS):
    return Market(id=str(market_id), market_id=market_id, address=address, question=f"Question {market_id}?")


def _record(market_id, probability, hours_ago, address=ADDRESS.upper().replace("0X", "0x"), prediction=None):
    return AttestationRecord(
        attester="0xme",
        market_address=address,
        market_id=str(market_id),
        prediction=str(encode_price(probability)) if prediction is None else prediction,
        created_at=NOW - timedelta(hours=hours_ago),
    )


class RecordingPredictor:
    def __init__(self, probabilities):
        self.probabilities = probabilities
        self.calls = []

    def __call__(self, market):
        self.calls.append(market.market_id)
        probability = self.probabilities.get(market.market_id)
        if probability is None:
            return None
        return Prediction(probability=probability, reasoning="fresh view", confidence=0.9)


def _select(markets, records, predictor):
    return select_markets_for_attestation(
        markets, records, predictor, change_threshold=10, min_hours_between=24, now=NOW
    )


def test_find_matching_attestation_matches_address_case_insensitively():
    older = _record(1, 40, hours_ago=50)
    newer = _record(1, 60, hours_ago=30)
    other_market = _record(2, 60, hours_ago=1)
    other_address = _record(1, 60, hours_ago=1, address="0x" + "cd" * 20)

    match = find_matching_attestation(_market(1), [older, newer, other_market, other_address])
    assert match is newer


def test_find_matching_attestation_none_when_never_attested():
    assert find_matching_attestation(_market(1), [_record(2, 50, hours_ago=1)]) is None


def test_never_attested_market_is_selected_without_prediction():
    predictor = RecordingPredictor({})
    (candidate,) = _select([_market(1)], [], predictor)

    assert candidate.market.market_id == 1
    assert candidate.reason.startswith("Never attested")
    assert candidate.prediction is None
    assert predictor.calls == []


def test_recent_attestation_is_skipped_without_predicting():
    predictor = RecordingPredictor({1: 90})
    assert _select([_market(1)], [_record(1, 50, hours_ago=2)], predictor) == []
    assert predictor.calls == []


def test_old_attestation_with_large_change_is_selected():
    predictor = RecordingPredictor({1: 65})
    (candidate,) = _select([_market(1)], [_record(1, 50, hours_ago=30)], predictor)

    assert candidate.prediction.probability == 65
    assert "30.0h since last attestation" in candidate.reason


def test_old_attestation_with_small_change_is_skipped():
    predictor = RecordingPredictor({1: 55})
    assert _select([_market(1)], [_record(1, 50, hours_ago=30)], predictor) == []
    assert predictor.calls == [1]


def test_unreadable_history_is_reattested():
    predictor = RecordingPredictor({1: 55})
    records = [_record(1, 50, hours_ago=30, prediction="not-a-number")]

    (candidate,) = _select([_market(1)], records, predictor)
    assert "unreadable" in candidate.reason
    assert candidate.prediction.probability == 55


def test_missing_prediction_skips_market():
    predictor = RecordingPredictor({})
    assert _select([_market(1)], [_record(1, 50, hours_ago=30)], predictor) == []


def test_undated_history_goes_straight_to_comparison():
    predictor = RecordingPredictor({1: 80})
    record = _record(1, 50, hours_ago=0)
    record.created_at = None

    (candidate,) = _select([_market(1)], [record], predictor)
    assert "unknown time" in candidate.reason


def test_market_order_is_preserved():
    predictor = RecordingPredictor({2: 90})
    markets = [_market(3), _market(2), _market(1)]
    records = [_record(2, 10, hours_ago=48), _record(1, 50, hours_ago=1)]

    candidates = _select(markets, records, predictor)
    assert [c.market.market_id for c in candidates] == [3, 2]


def test_predictor_failure_skips_only_that_market():
    class FailingPredictor(RecordingPredictor):
        def __call__(self, market):
            if market.market_id == 1:
                self.calls.append(market.market_id)
                raise RuntimeError("model timeout")
            return super().__call__(market)

    predictor = FailingPredictor({2: 90})
    markets = [_market(1), _market(2)]
    records = [_record(1, 50, hours_ago=48), _record(2, 10, hours_ago=48)]

    (candidate,) = _select(markets, records, predictor)
    assert candidate.market.market_id == 2
    assert candidate.prediction.probability == 90
    assert predictor.calls == [1, 2]
