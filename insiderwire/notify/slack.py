from __future__ import annotations

from typing import Any, Dict, Optional

import requests

from insiderwire.config import Config
from insiderwire.models import SendResult
from insiderwire.util.time import utcnow_iso


def _debug(msg: str) -> None:
    print(f"[slack] {msg}")


class SlackClient:
    """Posts Block Kit messages to a Slack incoming webhook.

    Delivery failures are returned, never raised: the caller decides whether an
    alert is recorded, so a failed send simply leaves it eligible for the next run.
    """

    def __init__(self, webhook_url: str, *, timeout_seconds: float = 15, session: Optional[requests.Session] = None):
        self.webhook_url = (webhook_url or "").strip()
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, cfg: Config) -> "SlackClient":
        return cls(cfg.SLACK_WEBHOOK_URL, timeout_seconds=cfg.SLACK_TIMEOUT_SECONDS)

    def post_message(self, message: Dict[str, Any]) -> SendResult:
        if not self.webhook_url:
            return SendResult(ok=False, error="SLACK_WEBHOOK_URL not configured")

        try:
            r = self.session.post(self.webhook_url, json=message, timeout=self.timeout_seconds)
        except requests.RequestException as e:
            _debug(f"post failed: {e}")
            return SendResult(ok=False, error=str(e))

        if not (200 <= r.status_code < 300):
            err = f"Slack API error: {r.status_code} {r.text[:300]}"
            _debug(err)
            return SendResult(ok=False, error=err)

        # Incoming webhooks answer a bare "ok" without a message ts.
        return SendResult(ok=True, ts=utcnow_iso())
