"""
Prediction intake for the attestation agent.

Predictions are produced elsewhere (a model, a human, another bot) and arrive
as JSON objects of the form:

    {"probability": 68, "reasoning": "...", "confidence": 0.8}

This module validates that shape and provides a file-backed predictor for
running the agent without any model attached.
"""

import json
import logging
import math
from pathlib import Path
from typing import Any, Callable, Optional, Union

from attestor.models import Market, Prediction
from attestor.utils import safe_float, safe_json_loads

# Configure module logger
logger = logging.getLogger(__name__)

# A predictor returns a prediction for a market, or None if it has none
Predictor = Callable[[Market], Optional[Prediction]]


def parse_prediction(raw: Union[str, dict, None]) -> Optional[Prediction]:
    """
    Parse and validate a prediction.

    Model output wrapped in code fences or surrounded by prose is accepted.
    A confidence given on a 0-100 scale is scaled down to 0-1.

    Args:
        raw: JSON text or an already-decoded dictionary

    Returns:
        Prediction object, or None if the data is incomplete or out of range
    """
    data = safe_json_loads(raw) if isinstance(raw, str) else raw

    if not isinstance(data, dict):
        logger.warning("Prediction is not a JSON object")
        return None

    missing = [key for key in ("probability", "reasoning", "confidence") if data.get(key) in (None, "")]
    if missing:
        logger.warning(f"Prediction missing required fields: {', '.join(missing)}")
        return None

    probability = safe_float(data["probability"], None)
    confidence = safe_float(data["confidence"], None)
    reasoning = data["reasoning"]

    if probability is None or not math.isfinite(probability) or not (0.0 <= probability <= 100.0):
        logger.warning(f"Invalid probability: {data['probability']!r}")
        return None

    if confidence is not None and 1.0 < confidence <= 100.0:
        confidence /= 100.0

    if confidence is None or not math.isfinite(confidence) or not (0.0 <= confidence <= 1.0):
        logger.warning(f"Invalid confidence: {data['confidence']!r}")
        return None

    if not isinstance(reasoning, str):
        logger.warning("Prediction reasoning must be a string")
        return None

    # Keep integral probabilities as ints so descriptions read "68%"
    if isinstance(data["probability"], int) and not isinstance(data["probability"], bool):
        probability = data["probability"]

    return Prediction(probability=probability, reasoning=reasoning.strip(), confidence=confidence)


class FilePredictor:
    """
    Predictor backed by a JSON file.

    The file holds either an object keyed by market id or a list of
    prediction objects carrying a "marketId" field. It is re-read on every
    lookup batch so it can be updated while the agent runs.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._predictions: Optional[dict[str, Any]] = None

    def reload(self) -> int:
        """
        Load predictions from disk.

        Returns:
            Number of predictions loaded (0 if the file is missing or invalid)
        """
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            logger.error(f"Predictions file not found: {self.path}")
            self._predictions = {}
            return 0
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to read predictions file {self.path}: {e}")
            self._predictions = {}
            return 0

        if isinstance(data, list):
            data = {
                str(item.get("marketId")): item
                for item in data
                if isinstance(item, dict) and item.get("marketId") is not None
            }

        if not isinstance(data, dict):
            logger.error(f"Predictions file must hold an object or a list, got {type(data).__name__}")
            data = {}

        self._predictions = {str(key): value for key, value in data.items()}
        logger.info(f"Loaded {len(self._predictions)} predictions from {self.path}")
        return len(self._predictions)

    def __call__(self, market: Market) -> Optional[Prediction]:
        if self._predictions is None:
            self.reload()

        raw = self._predictions.get(str(market.market_id))
        if raw is None:
            raw = self._predictions.get(str(market.id))

        if raw is None:
            logger.debug(f"No prediction available for market {market.market_id}")
            return None

        return parse_prediction(raw)
