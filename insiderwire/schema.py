"""Database schema for InsiderWire.

SQLite is the default engine; Postgres is supported through the same DDL.

Dates are ISO `YYYY-MM-DD` TEXT and timestamps ISO-8601 TEXT (UTC, with 'Z').
ISO strings sort lexicographically in time order, so window queries like
`transaction_date BETWEEN ? AND ?` behave correctly on both engines.

NOTE: The Postgres schema is generated from the SQLite schema with a small set of
transformations (types + autoincrement).
"""

from __future__ import annotations

import re


SCHEMA_SQLITE = r"""
PRAGMA foreign_keys = ON;

CREATE TABLE IF NOT EXISTS app_config (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

-- Subjects: one row per issuer CIK (canonical form, no leading zeros)
CREATE TABLE IF NOT EXISTS issuers (
    issuer_id INTEGER PRIMARY KEY AUTOINCREMENT,
    cik TEXT NOT NULL UNIQUE,
    ticker TEXT,
    company_name TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_issuers_ticker ON issuers (ticker);

-- Actors: identity is scoped per issuer
CREATE TABLE IF NOT EXISTS insiders (
    insider_id INTEGER PRIMARY KEY AUTOINCREMENT,
    issuer_id INTEGER NOT NULL,
    name TEXT NOT NULL,
    title TEXT,
    is_director INTEGER NOT NULL DEFAULT 0,
    is_officer INTEGER NOT NULL DEFAULT 0,
    is_ten_percent_owner INTEGER NOT NULL DEFAULT 0,
    is_other INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (name, issuer_id),
    FOREIGN KEY (issuer_id) REFERENCES issuers(issuer_id)
);
CREATE INDEX IF NOT EXISTS idx_insiders_issuer ON insiders (issuer_id);

-- Open-market buy/sell transactions with their computed score
CREATE TABLE IF NOT EXISTS transactions (
    transaction_id INTEGER PRIMARY KEY AUTOINCREMENT,
    filing_accession TEXT NOT NULL,
    insider_id INTEGER NOT NULL,
    issuer_id INTEGER NOT NULL,
    transaction_date TEXT NOT NULL,
    transaction_code TEXT NOT NULL CHECK (transaction_code IN ('P','S')),
    shares REAL NOT NULL CHECK (shares > 0),
    price REAL NOT NULL CHECK (price >= 0),
    transaction_value REAL NOT NULL,
    post_transaction_shares REAL NOT NULL DEFAULT 0,
    is_direct_ownership INTEGER NOT NULL DEFAULT 1,
    is_10b5_1 INTEGER NOT NULL DEFAULT 0,
    signal_score REAL NOT NULL DEFAULT 0,
    score_breakdown_json TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (filing_accession, insider_id, transaction_date, shares, price),
    FOREIGN KEY (insider_id) REFERENCES insiders(insider_id),
    FOREIGN KEY (issuer_id) REFERENCES issuers(issuer_id)
);
CREATE INDEX IF NOT EXISTS idx_transactions_filing ON transactions (filing_accession);
CREATE INDEX IF NOT EXISTS idx_transactions_date ON transactions (transaction_date);
CREATE INDEX IF NOT EXISTS idx_transactions_insider_date ON transactions (insider_id, transaction_date);
CREATE INDEX IF NOT EXISTS idx_transactions_issuer_date ON transactions (issuer_id, transaction_date);

-- Append-only audit of notifications already sent
CREATE TABLE IF NOT EXISTS alerts (
    alert_id INTEGER PRIMARY KEY AUTOINCREMENT,
    transaction_id INTEGER NOT NULL,
    issuer_id INTEGER NOT NULL,
    alert_type TEXT NOT NULL CHECK (alert_type IN ('urgent','digest')),
    message_ts TEXT,
    thread_ts TEXT,
    posted_at TEXT,
    created_at TEXT NOT NULL,
    FOREIGN KEY (transaction_id) REFERENCES transactions(transaction_id),
    FOREIGN KEY (issuer_id) REFERENCES issuers(issuer_id)
);
CREATE INDEX IF NOT EXISTS idx_alerts_transaction ON alerts (transaction_id, alert_type);
CREATE INDEX IF NOT EXISTS idx_alerts_issuer_created ON alerts (issuer_id, created_at);
-- At most one urgent alert per transaction
CREATE UNIQUE INDEX IF NOT EXISTS uq_alerts_urgent_once ON alerts (transaction_id) WHERE alert_type = 'urgent';
"""


def _sqlite_to_postgres(ddl: str) -> str:
    # Remove SQLite pragmas
    lines: list[str] = []
    for line in ddl.splitlines():
        if line.strip().upper().startswith("PRAGMA "):
            continue
        lines.append(line)
    out = "\n".join(lines)

    # Types
    out = re.sub(r"\bREAL\b", "DOUBLE PRECISION", out)

    # AUTOINCREMENT primary keys
    out = re.sub(
        r"INTEGER\s+PRIMARY\s+KEY\s+AUTOINCREMENT",
        "BIGSERIAL PRIMARY KEY",
        out,
        flags=re.IGNORECASE,
    )
    out = re.sub(r"\bAUTOINCREMENT\b", "", out, flags=re.IGNORECASE)

    return out


SCHEMA_POSTGRES = _sqlite_to_postgres(SCHEMA_SQLITE)


def get_schema_sql(dialect: str) -> str:
    d = (dialect or "").lower()
    if d.startswith("post"):
        return SCHEMA_POSTGRES
    return SCHEMA_SQLITE
