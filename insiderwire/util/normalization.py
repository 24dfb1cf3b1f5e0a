from __future__ import annotations

import html
import math
import re
import unicodedata


_TAG_RE = re.compile(r"<[^>]*>")


def canonical_cik(cik: str | None) -> str:
    """Canonical issuer CIK: digits only, leading zeros stripped.

    "0000320193" -> "320193". An all-zero or digit-free value yields "".
    """
    if cik is None:
        return ""
    digits = "".join(ch for ch in str(cik).strip() if ch.isdigit())
    return digits.lstrip("0")


def padded_cik(cik: str | None) -> str:
    """10-digit zero-padded CIK as used in EDGAR URLs and viewer links."""
    c = canonical_cik(cik)
    return c.zfill(10) if c else ""


def clean_text(raw: str | None) -> str | None:
    """Strip nested markup, unescape entities and collapse whitespace.

    Returns None for blank results so absence never masquerades as "".
    """
    if raw is None:
        return None
    s = _TAG_RE.sub(" ", str(raw))
    s = html.unescape(s)
    s = unicodedata.normalize("NFKC", s)
    s = " ".join(s.split())
    return s if s else None


def parse_number(s: str | None) -> float | None:
    """Parse a finite float; commas and a leading $ are tolerated."""
    if s is None:
        return None
    t = str(s).strip().replace(",", "").lstrip("$")
    if not t:
        return None
    try:
        v = float(t)
    except ValueError:
        return None
    if not math.isfinite(v):
        return None
    return v
