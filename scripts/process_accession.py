"""Reprocess a single filing (amendments, retries).

Usage:
  python scripts/process_accession.py <accession_number> <issuer_cik> [filing_date]

Safe to repeat: transactions are upserted on their natural key and an urgent
alert is sent at most once per transaction.
"""

import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from insiderwire.config import load_config
from insiderwire.db import connect, init_db
from insiderwire.models import FilingEntry
from insiderwire.notify.slack import SlackClient
from insiderwire.pipeline.processor import Form4Processor
from insiderwire.sec.edgar import EdgarClient
from insiderwire.util.normalization import canonical_cik
from insiderwire.util.time import parse_iso_date, utc_today


def main() -> None:
    if len(sys.argv) < 3:
        print("Usage: python scripts/process_accession.py <accession_number> <issuer_cik> [filing_date]")
        sys.exit(2)

    accession = sys.argv[1].strip()
    cik = canonical_cik(sys.argv[2])
    filing_date = parse_iso_date(sys.argv[3]) if len(sys.argv) >= 4 else None

    cfg = load_config()
    init_db(cfg.DB_DSN)

    entry = FilingEntry(accession_number=accession, cik=cik, filing_date=filing_date or utc_today())
    with connect(cfg.DB_DSN) as conn:
        processor = Form4Processor(conn, cfg, EdgarClient.from_config(cfg), SlackClient.from_config(cfg))
        stats = processor.process_filing(entry)

    print(json.dumps(stats.to_dict(), indent=2))


if __name__ == "__main__":
    main()
