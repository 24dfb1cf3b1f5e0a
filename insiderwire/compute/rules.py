"""Alert rules, thresholds and display helpers for insider trade signals."""

from __future__ import annotations

from enum import Enum
from typing import Optional

# Urgent alert thresholds
URGENT_ALERT_SCORE_THRESHOLD = 5.0  # signal score magnitude
URGENT_ALERT_VALUE_THRESHOLD = 250_000.0  # transaction value in USD

# |score| at or above this is "significant" (dashboard highlights)
SIGNIFICANT_SCORE_THRESHOLD = 2.0

SIGNIFICANT_HOLDINGS_CHANGE_PERCENT = 10.0

# Windows (days)
CLUSTER_WINDOW_DAYS = 7  # half-width, centered on the trade date
FIRST_ACTIVITY_DAYS = 180  # trailing lookback

# Size reference point: trades at or below this value get no size boost
SIZE_REFERENCE_VALUE = 10_000.0

ROLE_MULTIPLIER_EXECUTIVE = 1.5

# Case-insensitive substring match against the reported officer title.
EXECUTIVE_TITLES = (
    "CEO",
    "Chief Executive Officer",
    "CFO",
    "Chief Financial Officer",
    "Chairman",
    "Chairwoman",
    "Chair",
    "President",
    "COO",
    "Chief Operating Officer",
)


def is_executive_role(title: Optional[str]) -> bool:
    if not title:
        return False
    t = title.upper()
    return any(exec_title.upper() in t for exec_title in EXECUTIVE_TITLES)


class AlertPriority(str, Enum):
    HIGH = "high"  # |score| >= 5.0
    MEDIUM = "medium"  # 2.5 <= |score| < 5.0
    LOW = "low"


def get_alert_priority(signal_score: float) -> AlertPriority:
    magnitude = abs(signal_score)
    if magnitude >= 5.0:
        return AlertPriority.HIGH
    if magnitude >= 2.5:
        return AlertPriority.MEDIUM
    return AlertPriority.LOW


def format_signal_score(score: float) -> str:
    sign = "+" if score >= 0 else ""
    return f"{sign}{score:.2f}"


def get_score_emoji(score: float) -> str:
    if score >= 5.0:
        return "🚀"  # strong buy
    if score >= 2.5:
        return "📈"
    if score > 0:
        return "✅"
    if score > -2.5:
        return "⚠️"
    if score > -5.0:
        return "📉"
    return "🔴"  # strong sell
