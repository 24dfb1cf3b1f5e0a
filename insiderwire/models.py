from __future__ import annotations

from dataclasses import dataclass
from datetime import date


@dataclass(frozen=True)
class FilingEntry:
    """One row of the recent-filings feed."""

    accession_number: str
    cik: str
    filing_date: date
    company_name: str | None = None
    form_type: str = "4"
    filing_url: str | None = None


@dataclass(frozen=True)
class TransactionKey:
    """Natural identity of a stored transaction (the dedupe key)."""

    filing_accession: str
    insider_id: int
    transaction_date: str
    shares: float
    price: float


@dataclass(frozen=True)
class SendResult:
    ok: bool
    ts: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class TickerSummary:
    """Digest section for one issuer."""

    issuer_id: int
    label: str  # ticker, or company name when the filing carried no symbol
    transaction_count: int
    buy_count: int
    sell_count: int
    total_value: float
    max_abs_score: float
    top_transactions: tuple = ()  # row dicts, highest |score| first
    omitted_count: int = 0


@dataclass(frozen=True)
class DigestSummary:
    day: date
    total_transactions: int
    tickers: tuple = ()  # TickerSummary, ranked by max |score|
