from __future__ import annotations

from typing import Any, Literal, Mapping

from insiderwire.compute.rules import URGENT_ALERT_SCORE_THRESHOLD, URGENT_ALERT_VALUE_THRESHOLD
from insiderwire.compute.scoring import should_trigger_urgent_alert
from insiderwire.config import Config

ROUTE_URGENT = "urgent"
ROUTE_NONE = "none"  # picked up by the daily digest

Route = Literal["urgent", "none"]


def route_alert(
    signal_score: float,
    transaction_value: float,
    *,
    score_threshold: float = URGENT_ALERT_SCORE_THRESHOLD,
    value_threshold: float = URGENT_ALERT_VALUE_THRESHOLD,
) -> Route:
    """Send now ("urgent") or leave for the digest ("none").

    Stateless: duplicate sends are prevented by the alerts table, not here.
    """
    if should_trigger_urgent_alert(
        signal_score,
        transaction_value,
        score_threshold=score_threshold,
        value_threshold=value_threshold,
    ):
        return ROUTE_URGENT
    return ROUTE_NONE


def route_transaction(row: Mapping[str, Any], cfg: Config) -> Route:
    """Route a persisted transaction row with the configured thresholds."""
    return route_alert(
        float(row.get("signal_score") or 0.0),
        float(row.get("transaction_value") or 0.0),
        score_threshold=cfg.URGENT_SCORE_THRESHOLD,
        value_threshold=cfg.URGENT_VALUE_THRESHOLD,
    )
