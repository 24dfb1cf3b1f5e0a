"""Form 4 pipeline: fetch -> parse -> persist issuer/insider -> score -> upsert -> route.

Filings are processed strictly one at a time, transactions in extraction order.
Each transaction's persist step is committed before its alert is attempted, so
an interrupted run is resumed by simply running again (upserts and the
urgent-alert guard are idempotent).
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Protocol

from insiderwire.compute.scoring import ScoreInput, calculate_holdings_delta, calculate_signal_score
from insiderwire.config import Config
from insiderwire.db import rollback_quietly, upsert_app_config
from insiderwire.models import FilingEntry, SendResult
from insiderwire.notify.formatters import format_urgent_alert
from insiderwire.pipeline.router import ROUTE_URGENT, route_transaction
from insiderwire.sec.parser import IssuerInfo, ParsedFiling, TransactionInfo, parse_form4
from insiderwire.store.mutations import (
    ALERT_TYPE_URGENT,
    record_alert,
    upsert_insider,
    upsert_issuer,
    upsert_transaction,
)
from insiderwire.store.queries import (
    get_distinct_insider_count_in_window,
    get_insider_last_transaction_date,
    get_insider_previous_transaction,
    get_transaction_detail,
    has_alert_for_transaction,
)
from insiderwire.util.time import shift_days, utcnow_iso

FETCH_FILINGS_ERROR = "FETCH_FILINGS"
RECORD_RUN_ERROR = "RECORD_RUN"


def _debug(msg: str) -> None:
    print(f"[processor] {msg}")


class FilingFetcher(Protocol):
    def fetch_recent_filings(self, count: int) -> List[FilingEntry]: ...

    def fetch_filing_document(self, accession_number: str, cik: str) -> str: ...


class Notifier(Protocol):
    def post_message(self, message: Dict[str, Any]) -> SendResult: ...


@dataclass
class ProcessorStats:
    filings_processed: int = 0
    transactions_created: int = 0
    transactions_updated: int = 0
    urgent_alerts_posted: int = 0
    urgent_alerts_skipped: int = 0
    urgent_alerts_failed: int = 0
    errors: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class Form4Processor:
    def __init__(self, conn: Any, cfg: Config, fetcher: FilingFetcher, notifier: Notifier):
        self.conn = conn
        self.cfg = cfg
        self.fetcher = fetcher
        self.notifier = notifier

    # -----------------------------
    # Run
    # -----------------------------

    def process(self, filing_count: Optional[int] = None) -> ProcessorStats:
        """Process the most recent filings. Never raises; failures land in stats.errors."""
        count = int(filing_count or self.cfg.PROCESSOR_FILING_COUNT)
        stats = ProcessorStats()

        _debug(f"Fetching {count} recent Form 4 filings...")
        try:
            filings = self.fetcher.fetch_recent_filings(count)
        except Exception as e:
            _debug(f"Fatal error fetching filings: {e}")
            stats.errors.append({"filing": FETCH_FILINGS_ERROR, "error": str(e)})
            self._record_run(stats)
            return stats

        _debug(f"Found {len(filings)} filings to process")
        for entry in filings:
            try:
                self.process_filing(entry, stats)
                stats.filings_processed += 1
            except Exception as e:
                rollback_quietly(self.conn)
                _debug(f"Error processing filing {entry.accession_number}: {e}")
                stats.errors.append({"filing": entry.accession_number, "error": str(e)})

        _debug(f"Processing complete: {stats.to_dict()}")
        self._record_run(stats)
        return stats

    def _record_run(self, stats: ProcessorStats) -> None:
        try:
            upsert_app_config(self.conn, "processor_last_run_utc", utcnow_iso())
            upsert_app_config(self.conn, "processor_last_stats", json.dumps(stats.to_dict(), sort_keys=True))
            self.conn.commit()
        except Exception as e:
            rollback_quietly(self.conn)
            _debug(f"Failed to record run bookkeeping: {e}")
            stats.errors.append({"filing": RECORD_RUN_ERROR, "error": str(e)})

    # -----------------------------
    # Filing
    # -----------------------------

    def process_filing(self, entry: FilingEntry, stats: Optional[ProcessorStats] = None) -> ProcessorStats:
        """Fetch, parse and persist one filing. Raises on fetch/persist failure."""
        stats = stats if stats is not None else ProcessorStats()

        document = self.fetcher.fetch_filing_document(entry.accession_number, entry.cik)
        parsed = parse_form4(document, entry.accession_number, entry.filing_date)
        return self.process_parsed(parsed, entry, stats)

    def process_parsed(self, parsed: ParsedFiling, entry: FilingEntry, stats: ProcessorStats) -> ProcessorStats:
        issuer = IssuerInfo(
            cik=parsed.issuer.cik or entry.cik,
            company_name=parsed.issuer.company_name or entry.company_name or "",
            ticker=parsed.issuer.ticker,
        )
        if not issuer.cik:
            raise RuntimeError(f"no issuer CIK in document or feed for accession={parsed.accession_number}")

        issuer_id = upsert_issuer(self.conn, issuer)
        insider_id = upsert_insider(self.conn, parsed.insider, issuer_id)
        self.conn.commit()

        label = issuer.ticker or issuer.company_name
        _debug(f"Processing {len(parsed.transactions)} transactions for {label} ({parsed.accession_number})")

        for tx in parsed.transactions:
            self._process_transaction(parsed, tx, issuer_id, insider_id, stats)

        return stats

    # -----------------------------
    # Transaction
    # -----------------------------

    def _is_first_activity(self, insider_id: int, tx_date: date) -> bool:
        window_start = shift_days(tx_date, -self.cfg.FIRST_ACTIVITY_DAYS)
        last = get_insider_last_transaction_date(self.conn, insider_id, tx_date)
        return last is None or last < window_start

    def _cluster_count(self, issuer_id: int, insider_id: int, tx_date: date) -> int:
        half = self.cfg.CLUSTER_WINDOW_DAYS
        n = get_distinct_insider_count_in_window(
            self.conn,
            issuer_id,
            shift_days(tx_date, -half),
            shift_days(tx_date, half),
            exclude_insider_id=insider_id,
        )
        return max(0, n)

    def _process_transaction(
        self,
        parsed: ParsedFiling,
        tx: TransactionInfo,
        issuer_id: int,
        insider_id: int,
        stats: ProcessorStats,
    ) -> None:
        score = calculate_signal_score(
            ScoreInput(
                transaction_code=tx.transaction_code,
                transaction_value=tx.transaction_value,
                insider_title=parsed.insider.title,
                is_first_activity=self._is_first_activity(insider_id, tx.transaction_date),
                additional_insiders_in_cluster=self._cluster_count(issuer_id, insider_id, tx.transaction_date),
            )
        )

        row, created = upsert_transaction(
            self.conn,
            filing_accession=parsed.accession_number,
            insider_id=insider_id,
            issuer_id=issuer_id,
            tx=tx,
            score=score,
        )
        self.conn.commit()
        if created:
            stats.transactions_created += 1
        else:
            stats.transactions_updated += 1

        _debug(
            f"Transaction saved: id={row['transaction_id']} {parsed.insider.name or '-'} "
            f"{tx.transaction_code} score={score.score}"
        )

        if not self.cfg.ENABLE_URGENT_ALERTS:
            return
        if route_transaction(row, self.cfg) == ROUTE_URGENT:
            self._post_urgent_alert(row, stats)

    def _post_urgent_alert(self, row: Dict[str, Any], stats: ProcessorStats) -> None:
        transaction_id = int(row["transaction_id"])
        if has_alert_for_transaction(self.conn, transaction_id, ALERT_TYPE_URGENT):
            _debug(f"Skipping alert for transaction {transaction_id} - already alerted")
            stats.urgent_alerts_skipped += 1
            return

        prev = get_insider_previous_transaction(self.conn, int(row["insider_id"]), str(row["transaction_date"]))
        holdings_delta = (
            calculate_holdings_delta(
                float(prev["post_transaction_shares"] or 0.0),
                float(row["post_transaction_shares"] or 0.0),
            )
            if prev is not None
            else None
        )

        detail = get_transaction_detail(self.conn, transaction_id) or row
        result = self.notifier.post_message(format_urgent_alert(detail, holdings_delta))
        if not result.ok:
            # No alert row: the next run re-attempts the send without re-scoring.
            _debug(f"Failed to post urgent alert for transaction {transaction_id}: {result.error}")
            stats.urgent_alerts_failed += 1
            return

        record_alert(
            self.conn,
            transaction_id=transaction_id,
            issuer_id=int(row["issuer_id"]),
            alert_type=ALERT_TYPE_URGENT,
            message_ts=result.ts,
            thread_ts=result.ts,
        )
        self.conn.commit()
        stats.urgent_alerts_posted += 1
        _debug(f"Posted urgent alert for transaction {transaction_id}")
