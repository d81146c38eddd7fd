import json

from attestor.models import Market
from attestor.predictions import FilePredictor, parse_prediction


def _market(market_id=147, listing_id="m-147"):
    return Market(id=listing_id, market_id=market_id, address="0x" + "aa" * 20, question="Will BTC close above 100k?")


def test_parse_plain_json():
    prediction = parse_prediction('{"probability": 68, "reasoning": "btc momentum strong", "confidence": 0.8}')
    assert prediction.probability == 68
    assert isinstance(prediction.probability, int)
    assert prediction.reasoning == "btc momentum strong"
    assert prediction.confidence == 0.8


def test_parse_model_output_with_code_fence():
    text = 'Here you go:\n```json\n{"probability": 42.5, "reasoning": " unclear ", "confidence": 0.7}\n```'
    prediction = parse_prediction(text)
    assert prediction.probability == 42.5
    assert prediction.reasoning == "unclear"


def test_parse_dict_and_string_numbers():
    prediction = parse_prediction({"probability": "30", "reasoning": "r", "confidence": "0.9"})
    assert prediction.probability == 30.0
    assert prediction.confidence == 0.9


def test_percentage_confidence_is_scaled():
    prediction = parse_prediction({"probability": 30, "reasoning": "r", "confidence": 85})
    assert prediction.confidence == 0.85


def test_missing_fields_rejected():
    assert parse_prediction({"probability": 30, "confidence": 0.5}) is None
    assert parse_prediction({"probability": 30, "reasoning": "", "confidence": 0.5}) is None
    assert parse_prediction("no json here") is None
    assert parse_prediction(None) is None
    assert parse_prediction("[1, 2]") is None


def test_out_of_range_values_rejected():
    assert parse_prediction({"probability": 120, "reasoning": "r", "confidence": 0.5}) is None
    assert parse_prediction({"probability": -1, "reasoning": "r", "confidence": 0.5}) is None
    assert parse_prediction({"probability": 50, "reasoning": "r", "confidence": 250}) is None
    assert parse_prediction({"probability": "high", "reasoning": "r", "confidence": 0.5}) is None


def test_file_predictor_object_keyed_by_market_id(tmp_path):
    path = tmp_path / "predictions.json"
    path.write_text(json.dumps({"147": {"probability": 68, "reasoning": "btc momentum strong", "confidence": 0.8}}))

    predictor = FilePredictor(path)
    prediction = predictor(_market())
    assert prediction.probability == 68
    assert predictor(_market(market_id=5, listing_id="m-5")) is None


def test_file_predictor_list_form(tmp_path):
    path = tmp_path / "predictions.json"
    path.write_text(json.dumps([
        {"marketId": 147, "probability": 10, "reasoning": "unlikely", "confidence": 0.9},
        {"probability": 90, "reasoning": "no id", "confidence": 0.9},
    ]))

    predictor = FilePredictor(path)
    assert predictor.reload() == 1
    assert predictor(_market()).probability == 10


def test_file_predictor_falls_back_to_listing_id(tmp_path):
    path = tmp_path / "predictions.json"
    path.write_text(json.dumps({"m-147": {"probability": 20, "reasoning": "r", "confidence": 0.9}}))

    assert FilePredictor(path)(_market()).probability == 20


def test_file_predictor_picks_up_changes_on_reload(tmp_path):
    path = tmp_path / "predictions.json"
    path.write_text(json.dumps({"147": {"probability": 20, "reasoning": "r", "confidence": 0.9}}))
    predictor = FilePredictor(path)
    assert predictor(_market()).probability == 20

    path.write_text(json.dumps({"147": {"probability": 75, "reasoning": "r", "confidence": 0.9}}))
    predictor.reload()
    assert predictor(_market()).probability == 75


def test_file_predictor_missing_file(tmp_path):
    predictor = FilePredictor(tmp_path / "missing.json")
    assert predictor(_market()) is None


def test_file_predictor_invalid_json(tmp_path):
    path = tmp_path / "predictions.json"
    path.write_text("{not json")
    assert FilePredictor(path)(_market()) is None
