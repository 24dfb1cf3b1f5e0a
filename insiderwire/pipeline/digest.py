from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Sequence

from insiderwire.config import Config
from insiderwire.db import rollback_quietly, upsert_app_config
from insiderwire.models import DigestSummary, TickerSummary
from insiderwire.notify.formatters import format_daily_digest
from insiderwire.pipeline.processor import Notifier
from insiderwire.sec.parser import TRANSACTION_CODE_BUY, TRANSACTION_CODE_SELL
from insiderwire.store.mutations import ALERT_TYPE_DIGEST, record_alert
from insiderwire.store.queries import get_daily_transactions_by_date
from insiderwire.util.time import shift_days, utc_today


def _debug(msg: str) -> None:
    print(f"[digest] {msg}")


@dataclass
class DigestStats:
    day: str
    transactions_processed: int = 0
    tickers_included: int = 0
    message_sent: bool = False
    alerts_recorded: int = 0
    error: Optional[str] = None
    alert_errors: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _abs_score(tx: Mapping[str, Any]) -> float:
    return abs(float(tx.get("signal_score") or 0.0))


def summarize_transactions(
    day: date,
    rows: Sequence[Mapping[str, Any]],
    detail_limit: int = 3,
) -> DigestSummary:
    """Group a day's transactions by issuer and rank them for presentation.

    Issuers are ordered by their highest |score| (ties keep first-seen order);
    within an issuer, transactions by |score| descending, capped at detail_limit.
    """
    groups: Dict[int, List[Mapping[str, Any]]] = {}
    for r in rows:
        groups.setdefault(int(r["issuer_id"]), []).append(r)

    tickers: List[TickerSummary] = []
    for issuer_id, txs in groups.items():
        ranked = sorted(txs, key=_abs_score, reverse=True)
        top = ranked[: max(0, int(detail_limit))]
        first = ranked[0]
        tickers.append(
            TickerSummary(
                issuer_id=issuer_id,
                label=str(first.get("ticker") or first.get("company_name") or ""),
                transaction_count=len(txs),
                buy_count=sum(1 for t in txs if t.get("transaction_code") == TRANSACTION_CODE_BUY),
                sell_count=sum(1 for t in txs if t.get("transaction_code") == TRANSACTION_CODE_SELL),
                total_value=sum(float(t.get("transaction_value") or 0.0) for t in txs),
                max_abs_score=_abs_score(first),
                top_transactions=tuple(top),
                omitted_count=len(txs) - len(top),
            )
        )

    tickers.sort(key=lambda t: t.max_abs_score, reverse=True)
    return DigestSummary(day=day, total_transactions=len(rows), tickers=tuple(tickers))


class DailyDigestAggregator:
    def __init__(self, conn: Any, cfg: Config, notifier: Notifier):
        self.conn = conn
        self.cfg = cfg
        self.notifier = notifier

    def generate_yesterday_digest(self) -> DigestStats:
        return self.generate_digest(shift_days(utc_today(), -1))

    def generate_digest(self, day: date) -> DigestStats:
        """Summarize one day's transactions into a single message.

        Nothing is sent for an empty day. Digest alert rows are written only
        after a successful send; one failed row does not stop the others.
        """
        stats = DigestStats(day=day.isoformat())
        _debug(f"Generating digest for {stats.day}")

        try:
            rows = get_daily_transactions_by_date(self.conn, day)
            stats.transactions_processed = len(rows)
            if not rows:
                _debug("No transactions for this date; nothing sent")
                return stats

            summary = summarize_transactions(day, rows, self.cfg.DIGEST_DETAIL_LIMIT)
            stats.tickers_included = len(summary.tickers)

            result = self.notifier.post_message(format_daily_digest(summary))
            if not result.ok:
                stats.error = result.error or "unknown error posting digest"
                _debug(f"Failed to post digest: {stats.error}")
                return stats
            stats.message_sent = True

            for r in rows:
                try:
                    record_alert(
                        self.conn,
                        transaction_id=int(r["transaction_id"]),
                        issuer_id=int(r["issuer_id"]),
                        alert_type=ALERT_TYPE_DIGEST,
                        message_ts=result.ts,
                        thread_ts=result.ts,
                    )
                    self.conn.commit()
                    stats.alerts_recorded += 1
                except Exception as e:
                    rollback_quietly(self.conn)
                    _debug(f"Failed to record digest alert for transaction {r['transaction_id']}: {e}")
                    stats.alert_errors.append({"transaction_id": r["transaction_id"], "error": str(e)})

            upsert_app_config(self.conn, "digest_last_date", stats.day)
            self.conn.commit()
        except Exception as e:
            rollback_quietly(self.conn)
            stats.error = str(e)
            _debug(f"Error generating digest: {e}")
            return stats

        _debug(
            f"Digest sent: {stats.transactions_processed} transactions, {stats.tickers_included} tickers, "
            f"{stats.alerts_recorded} alerts recorded, {len(stats.alert_errors)} errors"
        )
        return stats
