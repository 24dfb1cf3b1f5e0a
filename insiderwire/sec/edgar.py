from __future__ import annotations

import re
import threading
import time
from typing import Any, Dict, List, Optional

import requests

from insiderwire.config import Config
from insiderwire.models import FilingEntry
from insiderwire.util.normalization import canonical_cik, clean_text, padded_cik
from insiderwire.util.time import parse_iso_date, utc_today

SEC_BASE_URL = "https://www.sec.gov"

# Forms that carry insider transaction tables.
FEED_FORM_TYPES = ("4", "4/A")


def _debug(msg: str) -> None:
    print(f"[sec] {msg}")


# Per-process polite throttling for SEC endpoints.
_SEC_LAST_REQUEST_MONO: float = 0.0
_SEC_LOCK = threading.Lock()


def _throttle(min_interval_seconds: float | None) -> None:
    if not min_interval_seconds or min_interval_seconds <= 0:
        return
    global _SEC_LAST_REQUEST_MONO
    with _SEC_LOCK:
        now = time.monotonic()
        dt = now - _SEC_LAST_REQUEST_MONO
        if dt < min_interval_seconds:
            time.sleep(min_interval_seconds - dt)
        _SEC_LAST_REQUEST_MONO = time.monotonic()


def _accession_nodash(accession_number: str) -> str:
    return str(accession_number or "").replace("-", "").strip()


def _cik_from_accession(accession_number: str) -> str:
    # Accession starts with the 10-digit CIK of the filer agent (often the issuer)
    return canonical_cik(str(accession_number or "").split("-")[0])


# -----------------------------
# Atom "current filings" feed
# -----------------------------

_ENTRY_RE = re.compile(r"<entry\b[^>]*>(.*?)</entry\s*>", re.IGNORECASE | re.DOTALL)
# "4 - Apple Inc. (0000320193) (Issuer)"; the trailing role is absent in older feeds.
_TITLE_RE = re.compile(r"^\s*(4(?:/A)?)\s*-\s*(.+?)\s*\((\d+)\)\s*(?:\(([^)]*)\))?\s*$", re.IGNORECASE)
_ACCESSION_RE = re.compile(r"accession-number=([0-9-]+)", re.IGNORECASE)
_ACCESSION_URL_RE = re.compile(r"/(\d{10}-\d{2}-\d{6})(?:-index)?\.htm", re.IGNORECASE)


def _tag_text(xml: str, tag: str) -> Optional[str]:
    m = re.search(rf"<{tag}\b[^>]*>(.*?)</{tag}\s*>", xml, flags=re.IGNORECASE | re.DOTALL)
    if m is None:
        return None
    return clean_text(m.group(1))


def _attr(xml: str, tag: str, attr: str) -> Optional[str]:
    m = re.search(rf"<{tag}\b[^>]*\b{attr}\s*=\s*[\"']([^\"']+)[\"']", xml, flags=re.IGNORECASE)
    return m.group(1) if m else None


def parse_atom_feed(xml_text: str) -> List[FilingEntry]:
    """Parse EDGAR's getcurrent Atom feed into filing entries.

    Each filing appears once per party: an "(Issuer)" entry and one "(Reporting)"
    entry per owner. Only issuer entries are kept (their CIK is the subject), and
    entries are de-duplicated by accession number in feed order.
    """
    out: List[FilingEntry] = []
    seen: set[str] = set()

    for m in _ENTRY_RE.finditer(xml_text or ""):
        entry = m.group(1)

        title = _tag_text(entry, "title") or ""
        tm = _TITLE_RE.match(title)
        if tm is None:
            continue
        form_type, company_name, cik_raw, role = tm.group(1).upper(), tm.group(2), tm.group(3), tm.group(4)
        if form_type not in FEED_FORM_TYPES:
            continue
        if role and role.strip().lower() != "issuer":
            continue

        link = _attr(entry, "link", "href")
        entry_id = _tag_text(entry, "id") or ""
        am = _ACCESSION_RE.search(entry_id) or _ACCESSION_URL_RE.search(link or "")
        if am is None:
            continue
        accession = am.group(1)
        if accession in seen:
            continue
        seen.add(accession)

        filing_date = parse_iso_date(_tag_text(entry, "updated")) or utc_today()

        out.append(
            FilingEntry(
                accession_number=accession,
                cik=canonical_cik(cik_raw),
                filing_date=filing_date,
                company_name=company_name.strip(),
                form_type=form_type,
                filing_url=link,
            )
        )

    return out


def extract_ownership(text: str) -> Optional[str]:
    """Return the <ownershipDocument>...</ownershipDocument> fragment embedded in text."""
    if not isinstance(text, str):
        return None
    m_start = re.search(r"<ownershipdocument\b", text, flags=re.IGNORECASE)
    if not m_start:
        return None
    m_end = re.search(r"</ownershipdocument\s*>", text, flags=re.IGNORECASE)
    if not m_end:
        return None
    return text[m_start.start() : m_end.end()]


def _candidate_rank(name: str) -> int:
    # Heuristic: prefer likely ownership docs; sorted ascending so negate.
    n = name.lower()
    s = 0
    if n.endswith(".xml"):
        s += 3
    if "ownership" in n:
        s += 4
    if "form" in n:
        s += 2
    if "4" in n:
        s += 1
    if n.endswith(".xsd"):
        s -= 5
    return -s


class EdgarClient:
    """Rate-limited EDGAR client: recent Form 4 feed and filing documents."""

    def __init__(
        self,
        user_agent: str,
        *,
        feed_url: str = f"{SEC_BASE_URL}/cgi-bin/browse-edgar",
        min_interval_seconds: float | None = 0.12,
        timeout_seconds: float = 60,
        session: Optional[requests.Session] = None,
    ):
        if not (user_agent or "").strip():
            raise ValueError("SEC requires a descriptive User-Agent")
        self.user_agent = user_agent
        self.feed_url = feed_url
        self.min_interval_seconds = min_interval_seconds
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, cfg: Config) -> "EdgarClient":
        return cls(
            cfg.SEC_USER_AGENT,
            feed_url=cfg.SEC_FEED_URL,
            min_interval_seconds=cfg.SEC_MIN_INTERVAL_SECONDS,
        )

    def _get(self, url: str, *, params: Dict[str, Any] | None = None, accept: str | None = None) -> requests.Response:
        _debug(f"GET {url}")
        _throttle(self.min_interval_seconds)
        headers = {"User-Agent": self.user_agent}
        if accept:
            headers["Accept"] = accept
        r = self.session.get(url, params=params, headers=headers, timeout=self.timeout_seconds)
        if r.status_code != 200:
            raise RuntimeError(f"SEC request failed {r.status_code}: {r.text[:300]}")
        return r

    def fetch_recent_filings(self, count: int = 100) -> List[FilingEntry]:
        """Most recent Form 4 filings from the getcurrent Atom feed. Raises on HTTP failure."""
        params = {
            "action": "getcurrent",
            "type": "4",
            "owner": "include",
            "start": "0",
            "count": str(int(count)),
            "output": "atom",
        }
        r = self._get(self.feed_url, params=params, accept="application/atom+xml, application/xml, text/xml")
        entries = parse_atom_feed(r.text)
        _debug(f"Feed returned {len(entries)} Form 4 filings (requested {count})")
        return entries[: int(count)]

    def fetch_filing_document(self, accession_number: str, cik: str) -> str:
        """Fetch the ownershipDocument for an accession.

        Tries the issuer CIK first, then the accession prefix CIK. Within the
        filing directory, candidates are ranked (.xml, "ownership", "form") and
        the first one embedding an <ownershipDocument> wins.
        """
        acc = str(accession_number or "").strip()

        ciks: List[str] = []
        hint = canonical_cik(cik)
        if hint:
            ciks.append(hint)
        prefix = _cik_from_accession(acc)
        if prefix and prefix not in ciks:
            ciks.append(prefix)

        last_err: Optional[Exception] = None
        for c in ciks:
            try:
                return self._fetch_for_cik(acc, c)
            except (requests.RequestException, RuntimeError) as e:
                last_err = e
                continue

        raise RuntimeError(f"Could not fetch ownershipDocument for accession={acc}. last_err={last_err}")

    def _fetch_for_cik(self, acc: str, cik: str) -> str:
        acc_nd = _accession_nodash(acc)
        base_dir = f"{SEC_BASE_URL}/Archives/edgar/data/{cik}/{acc_nd}/"
        index_url = base_dir + "index.json"
        idx = self._get(index_url).json()

        items = (idx.get("directory") or {}).get("item") or []
        names = [str(it.get("name") or "").strip() for it in items]
        exts = (".xml", ".txt", ".htm", ".html")
        candidates = sorted((n for n in names if n and n.lower().endswith(exts)), key=_candidate_rank)
        if not candidates:
            raise RuntimeError(f"No XML/TXT/HTM files found in accession directory: {index_url}")

        last_err: Optional[Exception] = None
        for fname in candidates:
            try:
                text = self._get(base_dir + fname, accept="application/xml, text/xml, text/plain").text
            except (requests.RequestException, RuntimeError) as e:
                last_err = e
                continue
            frag = extract_ownership(text)
            if frag:
                _debug(f"Selected ownershipDocument file: {fname} (cik={padded_cik(cik)})")
                return frag

        raise RuntimeError(f"Could not locate ownershipDocument in accession directory: {index_url} last_err={last_err}")


def filing_index_url(accession_number: str, cik: str) -> str:
    """Human-facing filing index page on sec.gov."""
    acc = str(accession_number or "").strip()
    return f"{SEC_BASE_URL}/Archives/edgar/data/{canonical_cik(cik)}/{_accession_nodash(acc)}/{acc}-index.htm"
