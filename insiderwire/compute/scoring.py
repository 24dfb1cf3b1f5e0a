from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from insiderwire.compute.rules import (
    ROLE_MULTIPLIER_EXECUTIVE,
    SIGNIFICANT_HOLDINGS_CHANGE_PERCENT,
    SIGNIFICANT_SCORE_THRESHOLD,
    SIZE_REFERENCE_VALUE,
    URGENT_ALERT_SCORE_THRESHOLD,
    URGENT_ALERT_VALUE_THRESHOLD,
    is_executive_role,
)
from insiderwire.sec.parser import TRANSACTION_CODE_BUY


@dataclass(frozen=True)
class ScoreInput:
    transaction_code: str  # 'P' = buy, anything else scores as a sell
    transaction_value: float
    insider_title: Optional[str] = None
    is_first_activity: bool = False
    additional_insiders_in_cluster: int = 0


@dataclass(frozen=True)
class ScoreBreakdown:
    base_score: int
    size_multiplier: float
    role_multiplier: float
    first_activity_bonus: int
    cluster_bonus: int


@dataclass(frozen=True)
class ScoreResult:
    score: float
    breakdown: ScoreBreakdown

    def to_dict(self) -> Dict[str, Any]:
        return {"score": self.score, "breakdown": asdict(self.breakdown)}


def size_multiplier(transaction_value: float) -> float:
    """max(1, log10(value / 10k)); non-positive or non-finite values get 1.0."""
    v = float(transaction_value or 0.0)
    if not math.isfinite(v) or v <= 0:
        return 1.0
    return max(1.0, math.log10(v / SIZE_REFERENCE_VALUE))


def calculate_signal_score(inp: ScoreInput) -> ScoreResult:
    """Score one insider trade.

    score = (base + first_activity_bonus + cluster_bonus) * size * role

    - base: +1 buy, -1 sell
    - size: log10(value / $10,000), floored at 1.0
    - role: 1.5 for CEO/CFO/Chair/President/COO titles, else 1.0
    - first activity: +1 when the insider has no trade in the lookback window
    - cluster: +1 per other insider trading the same issuer in the cluster window

    Rounded to 2 decimals. Never raises.
    """
    base = 1 if inp.transaction_code == TRANSACTION_CODE_BUY else -1
    size = size_multiplier(inp.transaction_value)
    role = ROLE_MULTIPLIER_EXECUTIVE if is_executive_role(inp.insider_title) else 1.0
    first_bonus = 1 if inp.is_first_activity else 0
    cluster_bonus = max(0, int(inp.additional_insiders_in_cluster or 0))

    score = (base + first_bonus + cluster_bonus) * size * role

    return ScoreResult(
        score=round(score, 2),
        breakdown=ScoreBreakdown(
            base_score=base,
            size_multiplier=round(size, 2),
            role_multiplier=role,
            first_activity_bonus=first_bonus,
            cluster_bonus=cluster_bonus,
        ),
    )


def is_significant(score: float, threshold: float = SIGNIFICANT_SCORE_THRESHOLD) -> bool:
    return abs(score) >= threshold


def should_trigger_urgent_alert(
    signal_score: float,
    transaction_value: float,
    *,
    score_threshold: float = URGENT_ALERT_SCORE_THRESHOLD,
    value_threshold: float = URGENT_ALERT_VALUE_THRESHOLD,
) -> bool:
    """Either condition alone is sufficient."""
    return abs(signal_score) >= score_threshold or transaction_value >= value_threshold


def calculate_holdings_delta(prior_holdings: float, post_transaction_holdings: float) -> float:
    """Percent change in holdings, 2 decimals. A zero prior position yields 0."""
    if not prior_holdings:
        return 0.0
    delta = (post_transaction_holdings - prior_holdings) / prior_holdings * 100
    return round(delta, 2)


def is_significant_holdings_change(delta_percent: float) -> bool:
    return abs(delta_percent) >= SIGNIFICANT_HOLDINGS_CHANGE_PERCENT
