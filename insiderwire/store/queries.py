"""Read-side queries.

Temporal context lookups used while scoring, the digest's daily fetch, and the
read API queries. All dates are ISO `YYYY-MM-DD` strings so window predicates
are plain string comparisons.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional

from insiderwire.db import row_to_dict
from insiderwire.models import TransactionKey
from insiderwire.util.time import parse_iso_date


def _iso(d: date | str) -> str:
    return d.isoformat() if isinstance(d, date) else str(d)[:10]


_TRANSACTION_SELECT = """
    SELECT
        t.transaction_id, t.filing_accession, t.insider_id, t.issuer_id,
        t.transaction_date, t.transaction_code, t.shares, t.price,
        t.transaction_value, t.post_transaction_shares, t.is_direct_ownership,
        t.is_10b5_1, t.signal_score, t.score_breakdown_json,
        t.created_at, t.updated_at,
        i.cik AS issuer_cik, i.ticker, i.company_name,
        p.name AS insider_name, p.title AS insider_title
    FROM transactions t
    JOIN issuers i ON i.issuer_id = t.issuer_id
    JOIN insiders p ON p.insider_id = t.insider_id
"""


# -----------------------------
# Temporal context (scoring)
# -----------------------------


def get_insider_last_transaction_date(conn: Any, insider_id: int, before_date: date | str) -> Optional[date]:
    """Most recent transaction date for an insider strictly before `before_date`."""
    row = conn.execute(
        """
        SELECT MAX(transaction_date) AS last_date
        FROM transactions
        WHERE insider_id=? AND transaction_date < ?
        """,
        (insider_id, _iso(before_date)),
    ).fetchone()
    if row is None or row["last_date"] is None:
        return None
    return parse_iso_date(str(row["last_date"]))


def get_distinct_insider_count_in_window(
    conn: Any,
    issuer_id: int,
    start_date: date | str,
    end_date: date | str,
    exclude_insider_id: int,
) -> int:
    """Distinct other insiders trading this issuer within [start_date, end_date]."""
    row = conn.execute(
        """
        SELECT COUNT(DISTINCT insider_id) AS n
        FROM transactions
        WHERE issuer_id=?
          AND insider_id <> ?
          AND transaction_date >= ?
          AND transaction_date <= ?
        """,
        (issuer_id, exclude_insider_id, _iso(start_date), _iso(end_date)),
    ).fetchone()
    return int(row["n"] or 0) if row is not None else 0


def get_insider_previous_transaction(conn: Any, insider_id: int, before_date: date | str) -> Optional[Dict[str, Any]]:
    """Latest transaction of this insider strictly before `before_date` (for holdings delta)."""
    row = conn.execute(
        """
        SELECT transaction_id, transaction_date, post_transaction_shares
        FROM transactions
        WHERE insider_id=? AND transaction_date < ?
        ORDER BY transaction_date DESC, transaction_id DESC
        LIMIT 1
        """,
        (insider_id, _iso(before_date)),
    ).fetchone()
    return row_to_dict(row)


# -----------------------------
# Dedupe / alerts
# -----------------------------


def get_transaction_by_key(conn: Any, key: TransactionKey) -> Optional[Dict[str, Any]]:
    row = conn.execute(
        """
        SELECT * FROM transactions
        WHERE filing_accession=? AND insider_id=? AND transaction_date=? AND shares=? AND price=?
        """,
        (key.filing_accession, key.insider_id, key.transaction_date, key.shares, key.price),
    ).fetchone()
    return row_to_dict(row)


def has_alert_for_transaction(conn: Any, transaction_id: int, alert_type: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM alerts WHERE transaction_id=? AND alert_type=? LIMIT 1",
        (transaction_id, alert_type),
    ).fetchone()
    return row is not None


# -----------------------------
# Digest
# -----------------------------


def get_daily_transactions_by_date(conn: Any, day: date | str) -> List[Dict[str, Any]]:
    """Every transaction dated `day`, joined to issuer/insider, highest |score| first."""
    rows = conn.execute(
        _TRANSACTION_SELECT
        + """
        WHERE t.transaction_date = ?
        ORDER BY ABS(t.signal_score) DESC, t.transaction_id ASC
        """,
        (_iso(day),),
    ).fetchall()
    return [dict(r) for r in rows]


# -----------------------------
# Read API
# -----------------------------


def list_transactions(
    conn: Any,
    *,
    ticker: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    min_score: Optional[float] = None,
    limit: int = 50,
    offset: int = 0,
) -> Dict[str, Any]:
    where: List[str] = []
    params: List[Any] = []
    if ticker:
        where.append("UPPER(i.ticker) = ?")
        params.append(ticker.strip().upper())
    if start_date:
        where.append("t.transaction_date >= ?")
        params.append(start_date[:10])
    if end_date:
        where.append("t.transaction_date <= ?")
        params.append(end_date[:10])
    if min_score is not None:
        where.append("ABS(t.signal_score) >= ?")
        params.append(float(min_score))

    where_sql = (" WHERE " + " AND ".join(where)) if where else ""

    total_row = conn.execute(
        """
        SELECT COUNT(*) AS n
        FROM transactions t
        JOIN issuers i ON i.issuer_id = t.issuer_id
        """
        + where_sql,
        tuple(params),
    ).fetchone()
    total = int(total_row["n"] or 0) if total_row is not None else 0

    rows = conn.execute(
        _TRANSACTION_SELECT
        + where_sql
        + " ORDER BY t.transaction_date DESC, t.transaction_id DESC LIMIT ? OFFSET ?",
        tuple(params) + (int(limit), int(offset)),
    ).fetchall()
    items = [dict(r) for r in rows]
    return {"total": total, "items": items, "has_more": int(offset) + len(items) < total}


def get_transaction_detail(conn: Any, transaction_id: int) -> Optional[Dict[str, Any]]:
    row = conn.execute(_TRANSACTION_SELECT + " WHERE t.transaction_id=?", (transaction_id,)).fetchone()
    return row_to_dict(row)


def get_ticker_stats(conn: Any, ticker: str, since_date: str, recent_limit: int = 20) -> Optional[Dict[str, Any]]:
    issuer = conn.execute(
        "SELECT issuer_id, cik, ticker, company_name FROM issuers WHERE UPPER(ticker)=? ORDER BY issuer_id LIMIT 1",
        (ticker.strip().upper(),),
    ).fetchone()
    if issuer is None:
        return None
    issuer_id = int(issuer["issuer_id"])

    agg = conn.execute(
        """
        SELECT
            COUNT(*) AS n,
            SUM(CASE WHEN transaction_code='P' THEN 1 ELSE 0 END) AS buy_count,
            SUM(CASE WHEN transaction_code='S' THEN 1 ELSE 0 END) AS sell_count,
            SUM(transaction_value) AS total_value,
            AVG(signal_score) AS avg_score
        FROM transactions
        WHERE issuer_id=? AND transaction_date >= ?
        """,
        (issuer_id, since_date),
    ).fetchone()

    recent = conn.execute(
        _TRANSACTION_SELECT + " WHERE t.issuer_id=? ORDER BY t.transaction_date DESC, t.transaction_id DESC LIMIT ?",
        (issuer_id, int(recent_limit)),
    ).fetchall()

    avg = agg["avg_score"] if agg is not None else None
    return {
        "issuer": dict(issuer),
        "since_date": since_date,
        "transaction_count": int(agg["n"] or 0) if agg is not None else 0,
        "buy_count": int(agg["buy_count"] or 0) if agg is not None else 0,
        "sell_count": int(agg["sell_count"] or 0) if agg is not None else 0,
        "total_value": round(float(agg["total_value"] or 0.0), 2) if agg is not None else 0.0,
        "avg_score": round(float(avg), 2) if avg is not None else None,
        "recent_transactions": [dict(r) for r in recent],
    }


def get_recent_highlights(conn: Any, since_date: str, min_abs_score: float, limit: int = 25) -> List[Dict[str, Any]]:
    rows = conn.execute(
        _TRANSACTION_SELECT
        + """
        WHERE t.transaction_date >= ? AND ABS(t.signal_score) >= ?
        ORDER BY ABS(t.signal_score) DESC, t.transaction_date DESC
        LIMIT ?
        """,
        (since_date, float(min_abs_score), int(limit)),
    ).fetchall()
    return [dict(r) for r in rows]


def search_tickers(conn: Any, q: str, limit: int = 20) -> List[Dict[str, Any]]:
    needle = f"%{q.strip().upper()}%"
    rows = conn.execute(
        """
        SELECT issuer_id, cik, ticker, company_name
        FROM issuers
        WHERE UPPER(COALESCE(ticker, '')) LIKE ? OR UPPER(company_name) LIKE ?
        ORDER BY ticker
        LIMIT ?
        """,
        (needle, needle, int(limit)),
    ).fetchall()
    return [dict(r) for r in rows]
