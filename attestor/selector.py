"""
Selection of markets that need an attestation.

A market is attested when it has never been attested by our wallet, or when
enough time has passed since the last attestation and the fresh prediction
differs from the recorded one by at least the change threshold.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from attestor.errors import DecodeAmbiguousError, DomainError
from attestor.models import AttestationCandidate, AttestationRecord, Market
from attestor.policy import should_reattest
from attestor.predictions import Predictor

# Configure module logger
logger = logging.getLogger(__name__)


def find_matching_attestation(
    market: Market,
    records: list[AttestationRecord]
) -> Optional[AttestationRecord]:
    """
    Find the most recent attestation recorded for a market.

    Markets are matched on contract address (case-insensitive) and market id
    together, since market ids repeat across market groups.

    Args:
        market: Market to look up
        records: Attestations by our wallet

    Returns:
        The newest matching record, or None if the market was never attested
    """
    address = market.address.lower()
    market_id = str(market.market_id)

    matches = [
        record for record in records
        if record.market_address.lower() == address and record.market_id == market_id
    ]
    if not matches:
        return None

    oldest = datetime.min.replace(tzinfo=timezone.utc)
    return max(matches, key=lambda r: r.created_at or oldest)


def _evaluate_market(
    market: Market,
    records: list[AttestationRecord],
    predictor: Predictor,
    change_threshold: float,
    min_hours_between: float,
    now: datetime
) -> Optional[AttestationCandidate]:
    """Decide whether a single market should be attested, and why."""
    last = find_matching_attestation(market, records)

    if last is None:
        return AttestationCandidate(
            market=market,
            reason=f"Never attested (address: {market.address[:8]}..., marketId: {market.market_id})"
        )

    if last.created_at is not None:
        hours_since = (now - last.created_at).total_seconds() / 3600.0
        if hours_since < min_hours_between:
            logger.debug(
                f"Market {market.market_id}: only {hours_since:.1f}h since last attestation - skipping"
            )
            return None
    else:
        hours_since = None

    prediction = predictor(market)
    if prediction is None:
        logger.info(f"Market {market.market_id}: no fresh prediction available - skipping")
        return None

    try:
        changed = should_reattest(last.prediction, prediction.probability, change_threshold)
    except DecodeAmbiguousError as e:
        logger.warning(f"Market {market.market_id}: {e} - re-attesting")
        return AttestationCandidate(
            market=market,
            reason="Previous attestation unreadable, re-attesting",
            prediction=prediction,
        )
    except DomainError as e:
        logger.warning(f"Market {market.market_id}: invalid fresh prediction ({e}) - skipping")
        return None

    if not changed:
        logger.info(
            f"Market {market.market_id}: probability change below {change_threshold}% threshold - skipping"
        )
        return None

    elapsed = f"{hours_since:.1f}h" if hours_since is not None else "unknown time"
    return AttestationCandidate(
        market=market,
        reason=(
            f"{elapsed} since last attestation and probability moved at least "
            f"{change_threshold}% (now {prediction.probability}%)"
        ),
        prediction=prediction,
    )


def select_markets_for_attestation(
    markets: list[Market],
    records: list[AttestationRecord],
    predictor: Predictor,
    change_threshold: float,
    min_hours_between: float,
    now: Optional[datetime] = None
) -> list[AttestationCandidate]:
    """
    Select the markets that should be attested in this cycle.

    A market whose evaluation fails (for example, the predictor raises) is
    logged and left out; the remaining markets are still evaluated.

    Args:
        markets: Active markets
        records: Attestations previously made by our wallet
        predictor: Source of fresh predictions, used for re-attestation checks
        change_threshold: Minimum probability change (percentage points) to re-attest
        min_hours_between: Minimum hours between attestations of the same market
        now: Current time (defaults to the current UTC time)

    Returns:
        Candidates in market order, each with the reason it was selected
    """
    now = now or datetime.now(timezone.utc)
    candidates: list[AttestationCandidate] = []

    logger.info(f"Checking {len(markets)} markets against {len(records)} recorded attestations")

    for market in markets:
        try:
            candidate = _evaluate_market(
                market, records, predictor, change_threshold, min_hours_between, now
            )
        except Exception as e:
            logger.error(f"Error evaluating market {market.market_id}: {e}", exc_info=True)
            continue

        if candidate is not None:
            candidates.append(candidate)

    logger.info(f"{len(candidates)} markets eligible for attestation")
    return candidates
