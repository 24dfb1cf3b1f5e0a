from __future__ import annotations

import json
from datetime import timedelta
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from insiderwire import __version__
from insiderwire.compute.rules import format_signal_score, get_alert_priority, get_score_emoji
from insiderwire.config import Config, load_config
from insiderwire.db import connect, get_app_config, init_db
from insiderwire.store import queries
from insiderwire.util.time import parse_iso_date, utc_today


def _debug(msg: str) -> None:
    print(f"[api] {msg}")


app = FastAPI(title="InsiderWire", version=__version__)
cfg: Config = load_config()

HIGHLIGHT_DAYS = 7
HIGHLIGHT_LIMIT = 25

# CORS is mainly needed for local development (dashboard dev server -> API on :8000).
_cors_origins = [o.strip() for o in (cfg.CORS_ALLOW_ORIGINS or "").split(",") if o.strip()]
if _cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins,
        allow_credentials=False,
        allow_methods=["GET"],
        allow_headers=["*"],
    )


@app.on_event("startup")
def _on_startup() -> None:
    # Ensure schema exists.
    init_db(cfg.DB_DSN)
    _debug("Schema ready")


class TransactionOut(BaseModel):
    transaction_id: int
    filing_accession: str
    transaction_date: str
    transaction_code: str
    shares: float
    price: float
    transaction_value: float
    post_transaction_shares: float
    is_direct_ownership: bool
    is_10b5_1: bool
    signal_score: float
    score_display: str
    score_emoji: str
    priority: str
    score_breakdown: Optional[Dict[str, Any]] = None
    issuer_id: int
    issuer_cik: str
    ticker: Optional[str] = None
    company_name: str
    insider_id: int
    insider_name: str
    insider_title: Optional[str] = None


class TransactionPage(BaseModel):
    total: int
    limit: int
    offset: int
    has_more: bool
    items: List[TransactionOut]


def _to_out(row: Dict[str, Any]) -> TransactionOut:
    score = float(row.get("signal_score") or 0.0)
    breakdown = None
    raw = row.get("score_breakdown_json")
    if raw:
        try:
            breakdown = json.loads(raw).get("breakdown")
        except (TypeError, ValueError):
            breakdown = None
    return TransactionOut(
        transaction_id=int(row["transaction_id"]),
        filing_accession=str(row["filing_accession"]),
        transaction_date=str(row["transaction_date"]),
        transaction_code=str(row["transaction_code"]),
        shares=float(row["shares"]),
        price=float(row["price"]),
        transaction_value=float(row["transaction_value"]),
        post_transaction_shares=float(row.get("post_transaction_shares") or 0.0),
        is_direct_ownership=bool(row.get("is_direct_ownership")),
        is_10b5_1=bool(row.get("is_10b5_1")),
        signal_score=score,
        score_display=format_signal_score(score),
        score_emoji=get_score_emoji(score),
        priority=get_alert_priority(score).value,
        score_breakdown=breakdown,
        issuer_id=int(row["issuer_id"]),
        issuer_cik=str(row["issuer_cik"]),
        ticker=row.get("ticker"),
        company_name=str(row.get("company_name") or ""),
        insider_id=int(row["insider_id"]),
        insider_name=str(row.get("insider_name") or ""),
        insider_title=row.get("insider_title"),
    )


def _date_param(name: str, s: Optional[str]) -> Optional[str]:
    if s is None or not s.strip():
        return None
    d = parse_iso_date(s)
    if d is None:
        raise HTTPException(status_code=400, detail=f"invalid_{name}")
    return d.isoformat()


# -----------------------------
# Health
# -----------------------------


@app.get("/health")
def health() -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        last_run = get_app_config(conn, "processor_last_run_utc")
        last_digest = get_app_config(conn, "digest_last_date")
    return {"status": "ok", "processor_last_run_utc": last_run, "digest_last_date": last_digest}


# -----------------------------
# Transactions
# -----------------------------


@app.get("/transactions", response_model=TransactionPage)
def list_transactions(
    ticker: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    min_score: Optional[float] = Query(None, ge=0, description="Minimum |signal score|"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0, le=50000),
) -> TransactionPage:
    start = _date_param("start_date", start_date)
    end = _date_param("end_date", end_date)

    with connect(cfg.DB_DSN) as conn:
        page = queries.list_transactions(
            conn,
            ticker=ticker,
            start_date=start,
            end_date=end,
            min_score=min_score,
            limit=limit,
            offset=offset,
        )

    return TransactionPage(
        total=page["total"],
        limit=limit,
        offset=offset,
        has_more=page["has_more"],
        items=[_to_out(r) for r in page["items"]],
    )


@app.get("/transaction/{transaction_id}", response_model=TransactionOut)
def get_transaction(transaction_id: int) -> TransactionOut:
    with connect(cfg.DB_DSN) as conn:
        row = queries.get_transaction_detail(conn, transaction_id)
    if row is None:
        raise HTTPException(status_code=404, detail="transaction_not_found")
    return _to_out(row)


# -----------------------------
# Tickers
# -----------------------------


@app.get("/ticker/{ticker}/stats")
def ticker_stats(ticker: str, days: int = Query(90, ge=1, le=3650)) -> Dict[str, Any]:
    since = (utc_today() - timedelta(days=int(days))).isoformat()
    with connect(cfg.DB_DSN) as conn:
        stats = queries.get_ticker_stats(conn, ticker, since)
    if stats is None:
        raise HTTPException(status_code=404, detail="ticker_not_found")
    stats["days"] = days
    stats["recent_transactions"] = [_to_out(r).model_dump() for r in stats["recent_transactions"]]
    return stats


@app.get("/tickers")
def search_tickers(q: str = Query(..., min_length=1), limit: int = Query(20, ge=1, le=100)) -> List[Dict[str, Any]]:
    with connect(cfg.DB_DSN) as conn:
        return queries.search_tickers(conn, q, limit=limit)


@app.get("/highlights", response_model=List[TransactionOut])
def highlights() -> List[TransactionOut]:
    """Most noteworthy trades of the past week (|score| above the significance threshold)."""
    since = (utc_today() - timedelta(days=HIGHLIGHT_DAYS)).isoformat()
    with connect(cfg.DB_DSN) as conn:
        rows = queries.get_recent_highlights(conn, since, cfg.SIGNIFICANT_SCORE_THRESHOLD, limit=HIGHLIGHT_LIMIT)
    return [_to_out(r) for r in rows]
