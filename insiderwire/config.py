import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

# Load a local .env file if present (no-op otherwise).
load_dotenv()


def _env_bool(name: str, default: Optional[bool] = None) -> Optional[bool]:
    """Parse a boolean environment variable.

    Returns:
      - True/False if the env var is set to a recognizable value
      - default if unset or unrecognized

    Accepted truthy: 1, true, yes, y, on
    Accepted falsy:  0, false, no, n, off
    """

    raw = os.environ.get(name)
    if raw is None:
        return default
    v = raw.strip().lower()
    if v in ("1", "true", "yes", "y", "on"):
        return True
    if v in ("0", "false", "no", "n", "off"):
        return False
    return default


@dataclass(frozen=True)
class Config:
    """Runtime configuration.

    IMPORTANT: Provide the Slack webhook URL via environment variables or a .env file.
    Do not hardcode secrets in source code.
    """

    # -----------------
    # Core
    # -----------------
    # Preferred: set INSIDERWIRE_DATABASE_URL (or DATABASE_URL) to use Postgres.
    # Fallback: INSIDERWIRE_DB_PATH for SQLite.
    DB_DSN: str = (
        os.environ.get("INSIDERWIRE_DATABASE_URL")
        or os.environ.get("DATABASE_URL")
        or os.environ.get("INSIDERWIRE_DB_PATH", "./insiderwire.sqlite")
    )

    # SEC (EDGAR requires a descriptive User-Agent)
    SEC_USER_AGENT: str = os.environ.get(
        "SEC_USER_AGENT",
        "InsiderWire/0.1 (contact: support@example.com)",
    )
    # SEC throttling (polite rate limiting; EDGAR allows ~10 requests/second).
    SEC_MIN_INTERVAL_SECONDS: float = float(os.environ.get("SEC_MIN_INTERVAL_SECONDS", "0.12"))
    SEC_FEED_URL: str = os.environ.get(
        "SEC_FEED_URL",
        "https://www.sec.gov/cgi-bin/browse-edgar",
    )

    # -----------------
    # Notifications (Slack incoming webhook)
    # -----------------
    SLACK_WEBHOOK_URL: str = os.environ.get("SLACK_WEBHOOK_URL", "")
    SLACK_TIMEOUT_SECONDS: float = float(os.environ.get("SLACK_TIMEOUT_SECONDS", "15"))

    # -----------------
    # Scoring windows
    # -----------------
    # Trailing window with no prior trade that earns the first-activity bonus.
    FIRST_ACTIVITY_DAYS: int = int(os.environ.get("FIRST_ACTIVITY_DAYS", "180"))
    # Half-width of the symmetric window used for the cluster bonus.
    CLUSTER_WINDOW_DAYS: int = int(os.environ.get("CLUSTER_WINDOW_DAYS", "7"))

    # -----------------
    # Alert thresholds
    # -----------------
    URGENT_SCORE_THRESHOLD: float = float(os.environ.get("URGENT_SCORE_THRESHOLD", "5.0"))
    URGENT_VALUE_THRESHOLD: float = float(os.environ.get("URGENT_VALUE_THRESHOLD", "250000"))
    SIGNIFICANT_SCORE_THRESHOLD: float = float(os.environ.get("SIGNIFICANT_SCORE_THRESHOLD", "2.0"))

    # -----------------
    # Batch sizes
    # -----------------
    PROCESSOR_FILING_COUNT: int = int(os.environ.get("PROCESSOR_FILING_COUNT", "100"))
    DIGEST_DETAIL_LIMIT: int = int(os.environ.get("DIGEST_DETAIL_LIMIT", "3"))

    # Urgent alerts are skipped (transactions still persist) when disabled.
    ENABLE_URGENT_ALERTS: bool = _env_bool("ENABLE_URGENT_ALERTS", True) is True

    # -----------------
    # CORS (development)
    # -----------------
    CORS_ALLOW_ORIGINS: str = os.environ.get(
        "CORS_ALLOW_ORIGINS",
        "http://localhost:5173,http://127.0.0.1:5173,http://localhost:3000",
    )


def load_config() -> Config:
    return Config()
