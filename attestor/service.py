"""
Attestation service coordinating one attestation cycle.

A cycle:
1. Fetch active markets from Sapience
2. Fetch attestations previously made by our wallet
3. Select markets that need a (re-)attestation
4. For a batch of them: get a prediction, check confidence, build calldata
5. Hand the calldata to the submitter and record the outcome

The service is an ordinary object owned by whoever runs it; periodic
execution is handled by attestor.scheduler.
"""

import logging
import threading
from collections import deque
from datetime import datetime
from typing import Callable, Optional, Protocol

from attestor.calldata import build_attestation_calldata
from attestor.config import Config
from attestor.errors import AttestationError
from attestor.models import (
    AttestationCalldata,
    AttestationCandidate,
    AttestationRecord,
    AttestationResult,
    Market,
)
from attestor.predictions import Predictor
from attestor.sapience import SapienceError
from attestor.selector import select_markets_for_attestation
from attestor.utils import format_percentage

# Configure module logger
logger = logging.getLogger(__name__)

# A submitter sends calldata on-chain and returns a reference (e.g. tx hash)
Submitter = Callable[[AttestationCalldata], Optional[str]]


class MarketSource(Protocol):
    def list_active_markets(self) -> list[Market]: ...

    def get_attestations_by_address(self, attester: str) -> list[AttestationRecord]: ...


def log_submitter(calldata: AttestationCalldata) -> Optional[str]:
    """
    Default submitter: log the calldata without sending it.

    Returns:
        None, since nothing was submitted
    """
    logger.info(f"{calldata.human_description} -> {calldata.target_address} (chain {calldata.chain_id})")
    logger.info(f"Calldata generated (not submitted): {calldata.data_hex[:74]}...")
    return None


class AttestationService:
    """
    Runs attestation cycles against a market source.

    Tracks cycle statistics and a bounded history of results for status
    reporting. Safe to query from another thread while a cycle runs.
    """

    def __init__(
        self,
        client: MarketSource,
        predictor: Predictor,
        attester_address: str,
        submitter: Optional[Submitter] = None,
        chain_id: Optional[int] = None,
        change_threshold: Optional[float] = None,
        min_hours_between: Optional[float] = None,
        min_confidence: Optional[float] = None,
        batch_size: Optional[int] = None,
        history_limit: int = 100
    ):
        """
        Initialize the service.

        Args:
            client: Source of markets and recorded attestations
            predictor: Produces a prediction for a market
            attester_address: Wallet whose attestations are checked
            submitter: Sends calldata; defaults to log_submitter
            chain_id: Chain to attest on. If None, uses Config.CHAIN_ID
            change_threshold: If None, uses Config.PROBABILITY_CHANGE_THRESHOLD
            min_hours_between: If None, uses Config.REATTEST_MIN_HOURS
            min_confidence: If None, uses Config.MIN_CONFIDENCE
            batch_size: If None, uses Config.BATCH_SIZE
            history_limit: Number of recent results kept for status reporting
        """
        self.client = client
        self.predictor = predictor
        self.attester_address = attester_address
        self.submitter = submitter or log_submitter
        self.chain_id = chain_id if chain_id is not None else Config.CHAIN_ID
        self.change_threshold = (
            change_threshold if change_threshold is not None else Config.PROBABILITY_CHANGE_THRESHOLD
        )
        self.min_hours_between = (
            min_hours_between if min_hours_between is not None else Config.REATTEST_MIN_HOURS
        )
        self.min_confidence = min_confidence if min_confidence is not None else Config.MIN_CONFIDENCE
        self.batch_size = batch_size if batch_size is not None else Config.BATCH_SIZE

        self._lock = threading.Lock()
        self._history: deque[AttestationResult] = deque(maxlen=history_limit)
        self.cycles_run = 0
        self.markets_processed = 0
        self.attestation_count = 0
        self.last_cycle_time: Optional[datetime] = None

    def run_cycle(self) -> list[AttestationResult]:
        """
        Run one attestation cycle.

        Returns:
            Results for the markets processed in this cycle (empty if the
            market source was unavailable or nothing was eligible)
        """
        logger.info("Starting attestation cycle")

        reload = getattr(self.predictor, "reload", None)
        if callable(reload):
            reload()

        try:
            markets = self.client.list_active_markets()
            records = self.client.get_attestations_by_address(self.attester_address)
        except SapienceError as e:
            logger.error(f"Market source unavailable - will retry next cycle: {e}")
            self._finish_cycle([])
            return []

        logger.info(f"Found {len(markets)} active markets")

        candidates = select_markets_for_attestation(
            markets,
            records,
            self.predictor,
            change_threshold=self.change_threshold,
            min_hours_between=self.min_hours_between,
        )

        results: list[AttestationResult] = []
        for candidate in candidates[:self.batch_size]:
            logger.info(f"Market {candidate.market.market_id}: {candidate.reason}")
            try:
                results.append(self.attest_candidate(candidate))
            except Exception as e:
                logger.error(f"Failed to process market {candidate.market.market_id}: {e}", exc_info=True)
                results.append(AttestationResult(
                    market_id=candidate.market.market_id,
                    status="failed",
                    message=str(e),
                ))

        self._finish_cycle(results)
        logger.info(f"Attestation cycle completed: {len(results)} markets processed")
        return results

    def attest_candidate(self, candidate: AttestationCandidate) -> AttestationResult:
        """
        Predict, build and submit an attestation for one market.

        Args:
            candidate: Selected market, possibly carrying a fresh prediction

        Returns:
            AttestationResult describing what happened
        """
        market = candidate.market
        prediction = candidate.prediction or self.predictor(market)

        if prediction is None:
            logger.warning(f"No prediction for market {market.market_id}")
            return AttestationResult(market_id=market.market_id, status="skipped", message="no prediction")

        logger.info(
            f"Market {market.market_id}: {prediction.probability}% yes "
            f"(confidence: {format_percentage(prediction.confidence, 0)})"
        )

        if prediction.confidence < self.min_confidence:
            logger.info(
                f"Skipping market {market.market_id} - confidence {prediction.confidence} below threshold"
            )
            return AttestationResult(
                market_id=market.market_id,
                status="skipped",
                message="confidence below threshold",
                probability=prediction.probability,
                confidence=prediction.confidence,
            )

        try:
            calldata = build_attestation_calldata(
                market.reference(),
                prediction.probability,
                prediction.reasoning,
                self.chain_id,
            )
        except AttestationError as e:
            logger.error(f"Cannot encode attestation for market {market.market_id}: {e}")
            return AttestationResult(
                market_id=market.market_id,
                status="failed",
                message=str(e),
                probability=prediction.probability,
                confidence=prediction.confidence,
            )

        if calldata is None:
            logger.error(f"No EAS contract for chain {self.chain_id}")
            return AttestationResult(
                market_id=market.market_id,
                status="failed",
                message=f"unsupported chain {self.chain_id}",
                probability=prediction.probability,
                confidence=prediction.confidence,
            )

        submission_ref = self.submitter(calldata)

        return AttestationResult(
            market_id=market.market_id,
            status="submitted" if submission_ref else "built",
            message=calldata.human_description,
            probability=prediction.probability,
            confidence=prediction.confidence,
            submission_ref=submission_ref,
        )

    def _finish_cycle(self, results: list[AttestationResult]) -> None:
        with self._lock:
            self.cycles_run += 1
            self.markets_processed += len(results)
            self.attestation_count += sum(1 for r in results if r.status in ("submitted", "built"))
            self.last_cycle_time = datetime.utcnow()
            self._history.extend(results)

    def recent_results(self, limit: int = 10) -> list[AttestationResult]:
        """Most recent results, newest first."""
        with self._lock:
            return list(reversed(self._history))[:limit]

    def get_status(self) -> dict:
        """
        Get current service status.

        Returns:
            Dictionary with cycle statistics and configuration
        """
        with self._lock:
            return {
                "chain_id": self.chain_id,
                "cycles_run": self.cycles_run,
                "markets_processed": self.markets_processed,
                "attestation_count": self.attestation_count,
                "last_cycle_time": self.last_cycle_time.isoformat() if self.last_cycle_time else None,
                "batch_size": self.batch_size,
                "min_confidence": self.min_confidence,
                "change_threshold": self.change_threshold,
            }
