from __future__ import annotations

from dataclasses import replace
from datetime import date
from typing import Any, Callable, Dict, Iterable, List, Optional

import pytest

from insiderwire.compute.scoring import ScoreInput, calculate_signal_score
from insiderwire.config import Config
from insiderwire.db import connect, init_db
from insiderwire.models import FilingEntry, SendResult
from insiderwire.sec.parser import InsiderInfo, IssuerInfo, TransactionInfo
from insiderwire.store.mutations import upsert_insider, upsert_issuer, upsert_transaction


# -----------------------------
# Database
# -----------------------------


@pytest.fixture
def db_dsn(tmp_path) -> str:
    dsn = str(tmp_path / "insiderwire-test.sqlite")
    init_db(dsn)
    return dsn


@pytest.fixture
def conn(db_dsn):
    with connect(db_dsn) as c:
        yield c


@pytest.fixture
def cfg(db_dsn) -> Config:
    return replace(
        Config(),
        DB_DSN=db_dsn,
        SLACK_WEBHOOK_URL="https://hooks.slack.test/services/T000/B000/XXX",
        ENABLE_URGENT_ALERTS=True,
        FIRST_ACTIVITY_DAYS=180,
        CLUSTER_WINDOW_DAYS=7,
        URGENT_SCORE_THRESHOLD=5.0,
        URGENT_VALUE_THRESHOLD=250_000.0,
        DIGEST_DETAIL_LIMIT=3,
        PROCESSOR_FILING_COUNT=100,
    )


# -----------------------------
# Collaborator fakes
# -----------------------------


class FakeFetcher:
    """In-memory stand-in for EdgarClient."""

    def __init__(
        self,
        entries: Iterable[FilingEntry] = (),
        documents: Optional[Dict[str, str]] = None,
        list_error: Optional[Exception] = None,
    ):
        self.entries = list(entries)
        self.documents = dict(documents or {})
        self.list_error = list_error
        self.list_calls: List[int] = []
        self.document_calls: List[tuple] = []

    def fetch_recent_filings(self, count: int) -> List[FilingEntry]:
        self.list_calls.append(count)
        if self.list_error is not None:
            raise self.list_error
        return self.entries[:count]

    def fetch_filing_document(self, accession_number: str, cik: str) -> str:
        self.document_calls.append((accession_number, cik))
        doc = self.documents.get(accession_number)
        if doc is None:
            raise RuntimeError(f"SEC request failed 404: {accession_number}")
        return doc


class RecordingNotifier:
    def __init__(self, ok: bool = True, error: str = "channel_not_found"):
        self.ok = ok
        self.error = error
        self.messages: List[Dict[str, Any]] = []

    def post_message(self, message: Dict[str, Any]) -> SendResult:
        self.messages.append(message)
        if not self.ok:
            return SendResult(ok=False, error=self.error)
        return SendResult(ok=True, ts=f"1700000000.{len(self.messages):06d}")


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def make_fetcher() -> Callable[..., FakeFetcher]:
    return FakeFetcher


@pytest.fixture
def make_notifier() -> Callable[..., RecordingNotifier]:
    return RecordingNotifier


# -----------------------------
# Form 4 documents
# -----------------------------


def _tx_xml(tx: Dict[str, Any], tag: str) -> str:
    refs = tx.get("footnote") or ()
    if isinstance(refs, str):
        refs = (refs,)
    foot = "".join(f'<footnoteId id="{fid}"/>' for fid in refs)
    post = (
        f"<postTransactionAmounts><sharesOwnedFollowingTransaction><value>{tx['post']}</value>"
        f"</sharesOwnedFollowingTransaction></postTransactionAmounts>"
        if tx.get("post") is not None
        else ""
    )
    return f"""
      <{tag}>
        <securityTitle><value>Common Stock</value></securityTitle>
        <transactionDate><value>{tx.get("date", "2024-01-15")}</value></transactionDate>
        <transactionCoding>
          <transactionFormType>4</transactionFormType>
          <transactionCode>{tx.get("code", "P")}</transactionCode>
          <equitySwapInvolved>0</equitySwapInvolved>
          {foot}
        </transactionCoding>
        <transactionAmounts>
          <transactionShares><value>{tx.get("shares", "1000")}</value></transactionShares>
          <transactionPricePerShare><value>{tx.get("price", "100.00")}</value>{foot}</transactionPricePerShare>
          <transactionAcquiredDisposedCode><value>A</value></transactionAcquiredDisposedCode>
        </transactionAmounts>
        {post}
        <ownershipNature>
          <directOrIndirectOwnership><value>{tx.get("ownership", "D")}</value></directOrIndirectOwnership>
        </ownershipNature>
      </{tag}>"""


def build_form4(
    *,
    issuer_cik: str = "0000320193",
    issuer_name: str = "Apple Inc.",
    symbol: Optional[str] = "AAPL",
    owner: str = "Cook Timothy",
    title: Optional[str] = "Chief Executive Officer",
    is_director: str = "0",
    is_officer: str = "1",
    transactions: Iterable[Dict[str, Any]] = (),
    derivative_transactions: Iterable[Dict[str, Any]] = (),
    footnotes: Optional[Dict[str, str]] = None,
) -> str:
    symbol_xml = f"<issuerTradingSymbol>{symbol}</issuerTradingSymbol>" if symbol else ""
    title_xml = f"<officerTitle>{title}</officerTitle>" if title else ""
    nd = "".join(_tx_xml(t, "nonDerivativeTransaction") for t in transactions)
    dv = "".join(_tx_xml(t, "derivativeTransaction") for t in derivative_transactions)
    nd_table = f"<nonDerivativeTable>{nd}</nonDerivativeTable>" if nd else ""
    dv_table = f"<derivativeTable>{dv}</derivativeTable>" if dv else ""
    foot_xml = ""
    if footnotes:
        foot_xml = "<footnotes>" + "".join(
            f'<footnote id="{fid}">{txt}</footnote>' for fid, txt in footnotes.items()
        ) + "</footnotes>"

    return f"""<?xml version="1.0"?>
<ownershipDocument>
  <schemaVersion>X0508</schemaVersion>
  <documentType>4</documentType>
  <periodOfReport>2024-01-15</periodOfReport>
  <issuer>
    <issuerCik>{issuer_cik}</issuerCik>
    <issuerName>{issuer_name}</issuerName>
    {symbol_xml}
  </issuer>
  <reportingOwner>
    <reportingOwnerId>
      <rptOwnerCik>0001214156</rptOwnerCik>
      <rptOwnerName>{owner}</rptOwnerName>
    </reportingOwnerId>
    <reportingOwnerRelationship>
      <isDirector>{is_director}</isDirector>
      <isOfficer>{is_officer}</isOfficer>
      <isTenPercentOwner>0</isTenPercentOwner>
      <isOther>0</isOther>
      {title_xml}
    </reportingOwnerRelationship>
  </reportingOwner>
  {nd_table}
  {dv_table}
  {foot_xml}
</ownershipDocument>
"""


@pytest.fixture
def form4() -> Callable[..., str]:
    return build_form4


# -----------------------------
# Seeding persisted transactions
# -----------------------------


@pytest.fixture
def seed_transaction(conn) -> Callable[..., Dict[str, Any]]:
    """Persist one scored transaction directly through the store layer."""

    def _seed(
        *,
        cik: str = "320193",
        ticker: Optional[str] = "AAPL",
        company_name: str = "Apple Inc.",
        insider: str = "Cook Timothy",
        title: Optional[str] = None,
        day: date = date(2024, 1, 15),
        code: str = "P",
        shares: float = 1000.0,
        price: float = 100.0,
        post: float = 5000.0,
        accession: str = "0000320193-24-000001",
        is_10b5_1: bool = False,
        is_first_activity: bool = False,
    ) -> Dict[str, Any]:
        issuer_id = upsert_issuer(conn, IssuerInfo(cik=cik, company_name=company_name, ticker=ticker))
        insider_id = upsert_insider(conn, InsiderInfo(name=insider, title=title), issuer_id)
        tx = TransactionInfo(
            transaction_date=day,
            transaction_code=code,
            shares=shares,
            price_per_share=price,
            transaction_value=shares * price,
            post_transaction_shares=post,
            is_direct_ownership=True,
            is_10b5_1=is_10b5_1,
        )
        score = calculate_signal_score(
            ScoreInput(
                transaction_code=code,
                transaction_value=tx.transaction_value,
                insider_title=title,
                is_first_activity=is_first_activity,
            )
        )
        row, _ = upsert_transaction(
            conn,
            filing_accession=accession,
            insider_id=insider_id,
            issuer_id=issuer_id,
            tx=tx,
            score=score,
        )
        conn.commit()
        return row

    return _seed
