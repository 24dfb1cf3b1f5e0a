"""Tolerant Form 4 (ownershipDocument) extraction.

Filings arrive as loosely-formatted markup: sometimes a clean XML file, sometimes
an ownershipDocument fragment embedded in a .txt submission, occasionally with
broken nesting. Instead of a full XML parse we extract exactly the fields we need
with a small table of per-field rules.

Every scalar field is looked up with the same ordered fallback:
  1. wrapped shape: <tag><value>TEXT</value>...</tag>
  2. direct shape:  <tag>TEXT</tag>
If neither yields non-blank text the field is absent (None). The wrapped shape
is always tried first across the whole scope, so a document containing both
shapes for the same tag resolves to the wrapped value.

Parsing never raises. Transactions with missing or unparseable required facts
are dropped; optional facts degrade to None/defaults.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterator, List, Optional, Tuple

from insiderwire.util.normalization import canonical_cik, clean_text, parse_number
from insiderwire.util.time import parse_iso_date


def _debug(msg: str) -> None:
    print(f"[parser] {msg}")


TRANSACTION_CODE_BUY = "P"  # open-market purchase
TRANSACTION_CODE_SELL = "S"  # open-market sale
OPEN_MARKET_CODES = (TRANSACTION_CODE_BUY, TRANSACTION_CODE_SELL)

DIRECT_OWNERSHIP_CODE = "D"
PLAN_FOOTNOTE_MARKERS = ("10b5-1", "10b5")

WRAPPED = "wrapped"
DIRECT = "direct"


@dataclass(frozen=True)
class FieldRule:
    name: str
    tag: str
    shapes: Tuple[str, ...] = (WRAPPED, DIRECT)


# Adding a new field (or a new shape variant) only touches this table.
FIELD_RULES: Dict[str, FieldRule] = {
    r.name: r
    for r in (
        # issuer
        FieldRule("issuer_cik", "issuerCik"),
        FieldRule("issuer_name", "issuerName"),
        FieldRule("issuer_symbol", "issuerTradingSymbol"),
        # reporting owner
        FieldRule("owner_name", "rptOwnerName"),
        FieldRule("officer_title", "officerTitle"),
        FieldRule("is_director", "isDirector"),
        FieldRule("is_officer", "isOfficer"),
        FieldRule("is_ten_percent_owner", "isTenPercentOwner"),
        FieldRule("is_other", "isOther"),
        # transaction
        FieldRule("transaction_code", "transactionCode"),
        FieldRule("transaction_date", "transactionDate"),
        FieldRule("shares", "transactionShares"),
        FieldRule("price", "transactionPricePerShare"),
        FieldRule("shares_following", "sharesOwnedFollowingTransaction"),
        FieldRule("ownership", "directOrIndirectOwnership"),
    )
}

# (table tag, transaction tag, is_derivative)
TRANSACTION_TABLES: Tuple[Tuple[str, str, bool], ...] = (
    ("nonDerivativeTable", "nonDerivativeTransaction", False),
    ("derivativeTable", "derivativeTransaction", True),
)


@dataclass(frozen=True)
class IssuerInfo:
    cik: str
    company_name: str
    ticker: Optional[str] = None


@dataclass(frozen=True)
class InsiderInfo:
    name: str
    title: Optional[str] = None
    is_director: bool = False
    is_officer: bool = False
    is_ten_percent_owner: bool = False
    is_other: bool = False


@dataclass(frozen=True)
class TransactionInfo:
    transaction_date: date
    transaction_code: str
    shares: float
    price_per_share: float
    transaction_value: float
    post_transaction_shares: float
    is_direct_ownership: bool
    is_10b5_1: bool
    is_derivative: bool = False
    footnote_ids: Tuple[str, ...] = ()

    @property
    def is_buy(self) -> bool:
        return self.transaction_code == TRANSACTION_CODE_BUY


@dataclass(frozen=True)
class ParsedFiling:
    accession_number: str
    filing_date: date
    issuer: IssuerInfo
    insider: InsiderInfo
    transactions: List[TransactionInfo] = field(default_factory=list)


# -----------------------------
# Low-level tolerant extraction
# -----------------------------

_VALUE_RE = re.compile(r"<(?:[\w.-]+:)?value\b[^>]*>(.*?)</(?:[\w.-]+:)?value\s*>", re.IGNORECASE | re.DOTALL)
_FOOTNOTE_REF_RE = re.compile(
    r"<(?:[\w.-]+:)?footnoteId\b[^>]*?\bid\s*=\s*[\"']([^\"']+)[\"']", re.IGNORECASE
)


def _block_re(tag: str) -> re.Pattern[str]:
    # Opening tag (optionally namespaced, not self-closing) ... matching close tag.
    return re.compile(
        rf"<(?:[\w.-]+:)?{tag}\b[^>]*?(?<!/)>(.*?)</(?:[\w.-]+:)?{tag}\s*>",
        re.IGNORECASE | re.DOTALL,
    )


_BLOCK_CACHE: Dict[str, re.Pattern[str]] = {}


def iter_blocks(text: str, tag: str) -> Iterator[str]:
    """Yield the inner text of every <tag>...</tag> element, in document order."""
    pat = _BLOCK_CACHE.get(tag)
    if pat is None:
        pat = _block_re(tag)
        _BLOCK_CACHE[tag] = pat
    for m in pat.finditer(text or ""):
        yield m.group(1)


def first_block(text: str, tag: str) -> Optional[str]:
    for inner in iter_blocks(text, tag):
        return inner
    return None


def _wrapped_text(inner: str) -> Optional[str]:
    m = _VALUE_RE.search(inner)
    if m is None:
        return None
    return clean_text(m.group(1))


def _direct_text(inner: str) -> Optional[str]:
    if _VALUE_RE.search(inner) is not None:
        # A wrapper whose <value> was blank is not a direct value.
        return None
    return clean_text(inner)


_SHAPE_READERS = {WRAPPED: _wrapped_text, DIRECT: _direct_text}


def extract_field(text: str, rule: FieldRule) -> Optional[str]:
    """Apply a field rule to a scope of text. Shapes are tried in rule order."""
    blocks = list(iter_blocks(text, rule.tag))
    if not blocks:
        return None
    for shape in rule.shapes:
        reader = _SHAPE_READERS[shape]
        for inner in blocks:
            v = reader(inner)
            if v is not None:
                return v
    return None


def _field(text: str, name: str) -> Optional[str]:
    return extract_field(text, FIELD_RULES[name])


def _flag(text: str, name: str) -> bool:
    return _field(text, name) == "1"


# -----------------------------
# Document sections
# -----------------------------


def _parse_issuer(doc: str) -> IssuerInfo:
    scope = first_block(doc, "issuer") or doc
    return IssuerInfo(
        cik=canonical_cik(_field(scope, "issuer_cik")),
        company_name=_field(scope, "issuer_name") or "",
        ticker=_field(scope, "issuer_symbol"),
    )


def _parse_insider(doc: str) -> InsiderInfo:
    # Only the first reporting owner is attributed; joint filers share the rows.
    scope = first_block(doc, "reportingOwner") or doc
    return InsiderInfo(
        name=_field(scope, "owner_name") or "",
        title=_field(scope, "officer_title"),
        is_director=_flag(scope, "is_director"),
        is_officer=_flag(scope, "is_officer"),
        is_ten_percent_owner=_flag(scope, "is_ten_percent_owner"),
        is_other=_flag(scope, "is_other"),
    )


def footnote_text(doc: str, footnote_id: str) -> Optional[str]:
    """Text of <footnote id="..."> anywhere in the document, or None."""
    pat = re.compile(
        rf"<(?:[\w.-]+:)?footnote\b[^>]*?\bid\s*=\s*[\"']{re.escape(footnote_id)}[\"'][^>]*>(.*?)</(?:[\w.-]+:)?footnote\s*>",
        re.IGNORECASE | re.DOTALL,
    )
    m = pat.search(doc or "")
    if m is None:
        return None
    return clean_text(m.group(1))


def _footnote_refs(tx_xml: str) -> Tuple[str, ...]:
    # unique but stable order
    seen: List[str] = []
    for fid in _FOOTNOTE_REF_RE.findall(tx_xml):
        fid = fid.strip()
        if fid and fid not in seen:
            seen.append(fid)
    return tuple(seen)


def _cites_trading_plan(doc: str, footnote_ids: Tuple[str, ...]) -> bool:
    for fid in footnote_ids:
        txt = footnote_text(doc, fid)
        if txt is None:
            continue
        lowered = txt.lower()
        if any(marker in lowered for marker in PLAN_FOOTNOTE_MARKERS):
            return True
    return False


def _parse_transaction(doc: str, tx_xml: str, *, is_derivative: bool) -> Optional[TransactionInfo]:
    code = _field(tx_xml, "transaction_code")
    if code not in OPEN_MARKET_CODES:
        return None

    tx_date = parse_iso_date(_field(tx_xml, "transaction_date"))
    shares = parse_number(_field(tx_xml, "shares"))
    price = parse_number(_field(tx_xml, "price"))
    if tx_date is None or shares is None or price is None:
        return None
    if shares <= 0 or price < 0:
        return None

    post_shares = parse_number(_field(tx_xml, "shares_following"))
    ownership = _field(tx_xml, "ownership")
    refs = _footnote_refs(tx_xml)

    return TransactionInfo(
        transaction_date=tx_date,
        transaction_code=code,
        shares=shares,
        price_per_share=price,
        transaction_value=shares * price,
        post_transaction_shares=post_shares if post_shares is not None else 0.0,
        is_direct_ownership=(ownership == DIRECT_OWNERSHIP_CODE),
        is_10b5_1=_cites_trading_plan(doc, refs),
        is_derivative=is_derivative,
        footnote_ids=refs,
    )


def _parse_transactions(doc: str) -> Tuple[List[TransactionInfo], int]:
    out: List[TransactionInfo] = []
    seen_blocks = 0
    for table_tag, tx_tag, is_derivative in TRANSACTION_TABLES:
        table = first_block(doc, table_tag)
        if table is None:
            continue
        for tx_xml in iter_blocks(table, tx_tag):
            seen_blocks += 1
            tx = _parse_transaction(doc, tx_xml, is_derivative=is_derivative)
            if tx is not None:
                out.append(tx)
    return out, seen_blocks


def parse_form4(document: str, accession_number: str, filing_date: date) -> ParsedFiling:
    """Extract issuer, reporting owner and open-market transactions from one filing."""
    doc = document if isinstance(document, str) else ""

    issuer = _parse_issuer(doc)
    insider = _parse_insider(doc)
    transactions, seen_blocks = _parse_transactions(doc)

    _debug(
        f"Parsed accession={accession_number} issuer_cik={issuer.cik or '-'} symbol={issuer.ticker or '-'} "
        f"kept={len(transactions)} dropped={seen_blocks - len(transactions)}"
    )

    return ParsedFiling(
        accession_number=accession_number,
        filing_date=filing_date,
        issuer=issuer,
        insider=insider,
        transactions=transactions,
    )
