"""Idempotent writes.

Every upsert is keyed on the row's natural key so reprocessing the same filing
(retries, amendments, manual replays) converges on one row per key with the
latest values. Callers own the transaction boundary (commit/rollback).
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional, Tuple

from insiderwire.compute.scoring import ScoreResult
from insiderwire.models import TransactionKey
from insiderwire.sec.parser import InsiderInfo, IssuerInfo, TransactionInfo
from insiderwire.store.queries import get_transaction_by_key
from insiderwire.util.time import utcnow_iso

ALERT_TYPE_URGENT = "urgent"
ALERT_TYPE_DIGEST = "digest"
ALERT_TYPES = (ALERT_TYPE_URGENT, ALERT_TYPE_DIGEST)


def _b(v: bool) -> int:
    return 1 if v else 0


def upsert_issuer(conn: Any, issuer: IssuerInfo) -> int:
    """Insert or refresh an issuer by CIK. Returns issuer_id."""
    if not issuer.cik:
        raise ValueError("issuer cik is required")
    now = utcnow_iso()
    conn.execute(
        """
        INSERT INTO issuers (cik, ticker, company_name, created_at, updated_at)
        VALUES (?,?,?,?,?)
        ON CONFLICT(cik) DO UPDATE SET
            -- Only overwrite the ticker when the filing actually carries one
            ticker=COALESCE(excluded.ticker, issuers.ticker),
            company_name=CASE
                WHEN excluded.company_name <> '' THEN excluded.company_name
                ELSE issuers.company_name
            END,
            updated_at=excluded.updated_at
        """,
        (issuer.cik, issuer.ticker, issuer.company_name or "", now, now),
    )
    row = conn.execute("SELECT issuer_id FROM issuers WHERE cik=?", (issuer.cik,)).fetchone()
    return int(row["issuer_id"])


def upsert_insider(conn: Any, insider: InsiderInfo, issuer_id: int) -> int:
    """Insert or refresh an insider scoped to one issuer. Returns insider_id."""
    now = utcnow_iso()
    conn.execute(
        """
        INSERT INTO insiders (
            issuer_id, name, title, is_director, is_officer, is_ten_percent_owner, is_other,
            created_at, updated_at
        )
        VALUES (?,?,?,?,?,?,?,?,?)
        ON CONFLICT(name, issuer_id) DO UPDATE SET
            title=COALESCE(excluded.title, insiders.title),
            is_director=excluded.is_director,
            is_officer=excluded.is_officer,
            is_ten_percent_owner=excluded.is_ten_percent_owner,
            is_other=excluded.is_other,
            updated_at=excluded.updated_at
        """,
        (
            issuer_id,
            insider.name,
            insider.title,
            _b(insider.is_director),
            _b(insider.is_officer),
            _b(insider.is_ten_percent_owner),
            _b(insider.is_other),
            now,
            now,
        ),
    )
    row = conn.execute(
        "SELECT insider_id FROM insiders WHERE name=? AND issuer_id=?",
        (insider.name, issuer_id),
    ).fetchone()
    return int(row["insider_id"])


def transaction_key(filing_accession: str, insider_id: int, tx: TransactionInfo) -> TransactionKey:
    return TransactionKey(
        filing_accession=filing_accession,
        insider_id=int(insider_id),
        transaction_date=tx.transaction_date.isoformat(),
        shares=float(tx.shares),
        price=float(tx.price_per_share),
    )


def upsert_transaction(
    conn: Any,
    *,
    filing_accession: str,
    insider_id: int,
    issuer_id: int,
    tx: TransactionInfo,
    score: ScoreResult,
) -> Tuple[Dict[str, Any], bool]:
    """Upsert one transaction on its dedupe key.

    Returns (persisted row, created). `created` is False when the key already
    existed and the row was overwritten with this pass's values.
    """
    key = transaction_key(filing_accession, insider_id, tx)
    existed = get_transaction_by_key(conn, key) is not None

    now = utcnow_iso()
    conn.execute(
        """
        INSERT INTO transactions (
            filing_accession, insider_id, issuer_id, transaction_date, transaction_code,
            shares, price, transaction_value, post_transaction_shares,
            is_direct_ownership, is_10b5_1, signal_score, score_breakdown_json,
            created_at, updated_at
        )
        VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?,?,?)
        ON CONFLICT(filing_accession, insider_id, transaction_date, shares, price) DO UPDATE SET
            issuer_id=excluded.issuer_id,
            transaction_code=excluded.transaction_code,
            transaction_value=excluded.transaction_value,
            post_transaction_shares=excluded.post_transaction_shares,
            is_direct_ownership=excluded.is_direct_ownership,
            is_10b5_1=excluded.is_10b5_1,
            signal_score=excluded.signal_score,
            score_breakdown_json=excluded.score_breakdown_json,
            updated_at=excluded.updated_at
        """,
        (
            key.filing_accession,
            key.insider_id,
            issuer_id,
            key.transaction_date,
            tx.transaction_code,
            key.shares,
            key.price,
            round(tx.transaction_value, 2),
            float(tx.post_transaction_shares),
            _b(tx.is_direct_ownership),
            _b(tx.is_10b5_1),
            round(score.score, 2),
            json.dumps(score.to_dict(), sort_keys=True),
            now,
            now,
        ),
    )

    row = get_transaction_by_key(conn, key)
    if row is None:
        raise RuntimeError(f"transaction upsert did not persist key={key}")
    return row, not existed


def record_alert(
    conn: Any,
    *,
    transaction_id: int,
    issuer_id: int,
    alert_type: str,
    message_ts: Optional[str] = None,
    thread_ts: Optional[str] = None,
) -> None:
    """Append an alert audit row. A second urgent row for a transaction violates uq_alerts_urgent_once."""
    if alert_type not in ALERT_TYPES:
        raise ValueError(f"unknown alert_type={alert_type!r}")
    now = utcnow_iso()
    conn.execute(
        """
        INSERT INTO alerts (transaction_id, issuer_id, alert_type, message_ts, thread_ts, posted_at, created_at)
        VALUES (?,?,?,?,?,?,?)
        """,
        (transaction_id, issuer_id, alert_type, message_ts, thread_ts, now, now),
    )
